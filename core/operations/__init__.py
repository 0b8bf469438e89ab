"""Operation contract — the protocol every pipeline layer satisfies.

Exports:
    Operation            (protocol)
    OperationDecorator   (forwarding base for layers)
    FunctionOperation    (callable adapter)
"""

from core.operations.base import FunctionOperation, Operation, OperationDecorator

__all__ = [
    "Operation",
    "OperationDecorator",
    "FunctionOperation",
]
