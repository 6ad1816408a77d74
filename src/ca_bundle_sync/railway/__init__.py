"""
Railway-Oriented Programming helpers — explicit, composable error handling.

    from ca_bundle_sync.railway import Result, ErrorCode

    def require_key(data: dict[str, str], key: str) -> Result[str]:
        return Result.from_optional(data.get(key), f"key {key!r} not present")
"""

from ca_bundle_sync.railway.assertions import ResultAssertions
from ca_bundle_sync.railway.execution import (
    ExecutionContext,
    LoggingExecutionContext,
    NoOpExecutionContext,
)
from ca_bundle_sync.railway.failure import ErrorCode, FailureDescription
from ca_bundle_sync.railway.result import Failure, Result, Success
from ca_bundle_sync.railway.result_failures import ResultFailures

__all__ = [
    "Result",
    "Success",
    "Failure",
    "ErrorCode",
    "FailureDescription",
    "ExecutionContext",
    "NoOpExecutionContext",
    "LoggingExecutionContext",
    "ResultFailures",
    "ResultAssertions",
]
