"""Infrastructure layer — resilience and performance decorators for operations.

Modules:
    retry              Exponential backoff retry layer.
    rate_limiter       Per-key sliding-window rate limiter layer.
    cache              In-memory result cache with TTL and LRU/LFU/FIFO eviction.
    logging_decorator  Call/latency/outcome logging layer.
    pipeline           Builder that assembles layers in a declared order.
    metrics            Prometheus metrics registry.
"""
