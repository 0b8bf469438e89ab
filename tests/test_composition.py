"""Tests for decorator stacking order and the pipeline builder.

Covers:
- Retry(Cache(op)) vs Cache(Retry(op))
- RateLimiter(Cache(op)) vs Cache(RateLimiter(op))
- Inner-to-outer describe() composition and cost accumulation
- PipelineBuilder declared order, build_pipeline from PipelineConfig
"""

from __future__ import annotations

import pytest

from core.config import CacheConfig, PipelineConfig, RateLimitConfig, RetryConfig
from core.errors import RateLimited, RetryExhausted
from infrastructure.cache import CacheDecorator
from infrastructure.logging_decorator import LoggingDecorator
from infrastructure.pipeline import PipelineBuilder, build_pipeline
from infrastructure.rate_limiter import RateLimiterDecorator
from infrastructure.retry import RetryDecorator

# ---------------------------------------------------------------------------
# Retry x Cache
# ---------------------------------------------------------------------------


class TestRetryAndCache:
    def test_retry_outside_cache_hit_skips_retry(self, doubler, clock, sleeps) -> None:
        cache = CacheDecorator(doubler, clock=clock)
        op = RetryDecorator(cache, max_attempts=3, base_delay=0.1, sleep=sleeps.append)
        op.execute(1)
        op.execute(1)
        assert doubler.call_count == 1
        assert op.last_attempt_count() == 1
        assert sleeps == []

    def test_retry_outside_cache_stores_only_final_success(self, make_stub, clock, sleeps) -> None:
        stub = make_stub(failures=2)
        cache = CacheDecorator(stub, clock=clock)
        op = RetryDecorator(cache, max_attempts=3, base_delay=0.1, sleep=sleeps.append)

        assert op.execute(4) == 8
        assert cache.size() == 1
        stats = cache.stats()
        assert stats.misses == 3
        assert stats.hits == 0

        assert op.execute(4) == 8
        assert stub.call_count == 3

    def test_cache_outside_retry_caches_result_as_one_unit(self, make_stub, clock, sleeps) -> None:
        stub = make_stub(failures=2)
        retry = RetryDecorator(stub, max_attempts=3, base_delay=0.1, sleep=sleeps.append)
        op = CacheDecorator(retry, clock=clock)

        assert op.execute(4) == 8
        assert op.stats().misses == 1
        assert op.execute(4) == 8
        assert stub.call_count == 3

    def test_cache_outside_retry_does_not_cache_exhaustion(self, make_stub, clock, sleeps) -> None:
        stub = make_stub(failures=3)
        retry = RetryDecorator(stub, max_attempts=3, base_delay=0.1, sleep=sleeps.append)
        op = CacheDecorator(retry, clock=clock)

        with pytest.raises(RetryExhausted):
            op.execute(4)
        assert op.size() == 0

        assert op.execute(4) == 8
        assert stub.call_count == 4


# ---------------------------------------------------------------------------
# RateLimiter x Cache
# ---------------------------------------------------------------------------


class TestRateLimiterAndCache:
    def test_limiter_outside_cache_hits_consume_quota(self, doubler, clock) -> None:
        cache = CacheDecorator(doubler, clock=clock)
        op = RateLimiterDecorator(cache, max_requests=2, clock=clock)
        op.execute(1)
        op.execute(1)
        with pytest.raises(RateLimited):
            op.execute(1)
        assert doubler.call_count == 1

    def test_cache_outside_limiter_hits_bypass_quota(self, doubler, clock) -> None:
        limiter = RateLimiterDecorator(doubler, max_requests=1, clock=clock)
        op = CacheDecorator(limiter, clock=clock)
        for _ in range(5):
            assert op.execute(1) == 2
        assert limiter.current_count("stub") == 1
        with pytest.raises(RateLimited):
            op.execute(2)

    def test_rate_limited_result_is_not_cached(self, doubler, clock) -> None:
        limiter = RateLimiterDecorator(doubler, max_requests=1, window_seconds=10.0, clock=clock)
        op = CacheDecorator(limiter, clock=clock)
        op.execute(1)
        with pytest.raises(RateLimited):
            op.execute(2)
        clock.advance(11)
        assert op.execute(2) == 4


# ---------------------------------------------------------------------------
# describe() / cost composition
# ---------------------------------------------------------------------------


class TestStackDescription:
    def test_describe_is_inner_to_outer(self, doubler, clock) -> None:
        op = LoggingDecorator(
            RateLimiterDecorator(
                RetryDecorator(CacheDecorator(doubler, max_entries=5, clock=clock), max_attempts=2),
                max_requests=3,
                window_seconds=30,
                clock=clock,
            )
        )
        assert op.describe() == (
            "Stub[stub] + Cache(0/5, LRU, hit ratio: 0.0%) + Retry(max=2)"
            " + RateLimit(3/30s) + Logging"
        )

    def test_cost_accumulates(self, make_stub, clock) -> None:
        op = LoggingDecorator(
            RateLimiterDecorator(
                RetryDecorator(make_stub(cost=1.0), max_attempts=3), clock=clock
            )
        )
        assert op.estimated_cost() == pytest.approx(1.2 + 0.002 + 0.001)

    def test_identity_is_base_identity(self, make_stub, clock) -> None:
        op = CacheDecorator(RetryDecorator(make_stub(identity="render")), clock=clock)
        assert op.identity == "render"


# ---------------------------------------------------------------------------
# PipelineBuilder
# ---------------------------------------------------------------------------


class TestPipelineBuilder:
    def test_first_declared_layer_is_innermost(self, doubler, clock, sleeps) -> None:
        op = (
            PipelineBuilder(doubler)
            .with_cache(max_entries=10, clock=clock)
            .with_retry(max_attempts=2, base_delay=0.1, sleep=sleeps.append)
            .build()
        )
        assert isinstance(op, RetryDecorator)
        assert isinstance(op.inner, CacheDecorator)

    def test_layers_recorded(self, doubler, clock) -> None:
        builder = (
            PipelineBuilder(doubler)
            .with_rate_limit(max_requests=5, clock=clock)
            .with_cache(clock=clock)
            .with_logging()
        )
        assert builder.layers == ["rate_limit", "cache", "logging"]

    def test_built_pipeline_executes(self, doubler, clock) -> None:
        op = PipelineBuilder(doubler).with_cache(clock=clock).with_logging().build()
        assert op.execute(3) == 6
        assert op.execute(3) == 6
        assert doubler.call_count == 1

    def test_build_without_layers_returns_base(self, doubler) -> None:
        assert PipelineBuilder(doubler).build() is doubler


# ---------------------------------------------------------------------------
# build_pipeline
# ---------------------------------------------------------------------------


class TestBuildPipeline:
    def test_full_stack_order(self, doubler, clock, sleeps) -> None:
        config = PipelineConfig(
            cache=CacheConfig(max_entries=2),
            retry=RetryConfig(max_attempts=2, base_delay=0.1),
            rate_limit=RateLimitConfig(max_requests=5, window_seconds=60.0),
        )
        op = build_pipeline(
            doubler,
            config,
            cache={"clock": clock},
            retry={"sleep": sleeps.append},
            rate_limit={"clock": clock},
        )
        assert isinstance(op, LoggingDecorator)
        assert isinstance(op.inner, RateLimiterDecorator)
        assert isinstance(op.inner.inner, RetryDecorator)
        assert isinstance(op.inner.inner.inner, CacheDecorator)
        assert op.execute(2) == 4

    def test_disabled_layers_are_skipped(self, doubler) -> None:
        op = build_pipeline(doubler, PipelineConfig(logging=False))
        assert op is doubler

    def test_only_cache(self, doubler, clock) -> None:
        op = build_pipeline(
            doubler, PipelineConfig(cache=CacheConfig(), logging=False), cache={"clock": clock}
        )
        assert isinstance(op, CacheDecorator)

    def test_unknown_layer_kwargs_raise(self, doubler) -> None:
        with pytest.raises(ValueError, match="Unknown layer"):
            build_pipeline(doubler, PipelineConfig(), circuit={"x": 1})
