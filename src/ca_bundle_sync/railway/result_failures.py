"""
Convenience factory methods for common Result failures.

    ResultFailures.from_exception_auto(FileNotFoundError(...))  # → NOT_FOUND
"""

from __future__ import annotations

from ca_bundle_sync.railway.failure import ErrorCode
from ca_bundle_sync.railway.result import Result


class ResultFailures:
    """Factory methods for common failure types."""

    @staticmethod
    def configuration_error(message: str) -> Result:
        return Result.failure(ErrorCode.CONFIGURATION_ERROR, message)

    @staticmethod
    def from_exception_auto(exception: BaseException) -> Result:
        """
        Map an exception to a failure using its own message verbatim.

        Mapping:
          - FileNotFoundError → NOT_FOUND
          - PermissionError → AUTHORIZATION_ERROR
          - TimeoutError → TIMEOUT_ERROR
          - ValueError, TypeError, KeyError → VALIDATION_ERROR
          - other OSError → TECHNICAL_ERROR
          - Everything else → UNKNOWN_ERROR
        """
        return Result.failure(_map_exception_to_code(exception), str(exception), exception)


def _map_exception_to_code(exception: BaseException) -> ErrorCode:
    # OSError subclasses first: TimeoutError and FileNotFoundError are OSErrors too.
    match exception:
        case FileNotFoundError():
            return ErrorCode.NOT_FOUND
        case PermissionError():
            return ErrorCode.AUTHORIZATION_ERROR
        case TimeoutError():
            return ErrorCode.TIMEOUT_ERROR
        case OSError():
            return ErrorCode.TECHNICAL_ERROR
        case ValueError() | TypeError() | KeyError():
            return ErrorCode.VALIDATION_ERROR
        case _:
            return ErrorCode.UNKNOWN_ERROR
