"""
Error taxonomy for asyncscope.

Every failure surfaced by collect() or visualize() is an AsyncScopeError.
Nothing is retried; the caller decides whether to rerun.

    AsyncScopeError
    ├── CollectError            (carries log_directory)
    │   ├── LaunchError
    │   ├── AbnormalTermination (carries result)
    │   └── RelocationError
    ├── DecodeError             (carries path)
    ├── AnalysisError
    └── AssemblyError
        └── BundleError
"""

from pathlib import Path
from typing import Optional


class AsyncScopeError(Exception):
    """Base class for all asyncscope failures."""


# =============================================================================
# COLLECT PHASE
# =============================================================================

class CollectError(AsyncScopeError):
    """Raised when collect() fails. The log directory is kept for inspection."""
    def __init__(self, message: str, log_directory: Optional[Path] = None):
        self.log_directory = log_directory
        super().__init__(message)


class LaunchError(CollectError):
    """Raised when the target program could not be started."""


class AbnormalTermination(CollectError):
    """Raised when the target exits non-zero or dies by a non-interrupt signal."""
    def __init__(self, message: str, result, log_directory: Optional[Path] = None):
        self.result = result
        super().__init__(message, log_directory)


class RelocationError(CollectError):
    """Raised when the raw trace log cannot be moved into the log directory."""


# =============================================================================
# VISUALIZE PHASE
# =============================================================================

class DecodeError(AsyncScopeError):
    """Raised when a telemetry file is malformed or truncated."""
    def __init__(self, message: str, path: Optional[Path] = None):
        self.path = path
        if path is not None:
            message = f"{message}: {path}"
        super().__init__(message)


class AnalysisError(AsyncScopeError):
    """Raised when the analysis engine fails."""


class AssemblyError(AsyncScopeError):
    """Raised when bundling, templating or writing the artifact fails."""


class BundleError(AssemblyError):
    """Raised when the script bundle cannot be compiled."""
