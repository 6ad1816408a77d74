"""
System trust bundle adapter — reads the node-local CA bundle file.

Implements the SystemBundleReader port. The file is the last-resort trust
anchor, so its read errors are reported with the operating system's own
message (e.g. "[Errno 2] No such file or directory: '/broken/ca/path.pem'").
"""

from __future__ import annotations

from pathlib import Path

import structlog

from ca_bundle_sync.railway.result import Result
from ca_bundle_sync.railway.result_failures import ResultFailures

log = structlog.get_logger()


class FileSystemBundleReader:
    """Read the system trust bundle from a fixed local path on every call."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> Result[bytes]:
        try:
            data = self._path.read_bytes()
        except OSError as e:
            log.error("system_bundle.read_failed", path=str(self._path), error=str(e))
            return ResultFailures.from_exception_auto(e)
        log.debug("system_bundle.read", path=str(self._path), size_bytes=len(data))
        return Result.success(data)
