"""
Log directory layout.

A run identified by pid 4242 writes into:

    ./4242.asyncscope/
        4242.asyncscope-systeminfo
        4242.asyncscope-stacktrace
        4242.asyncscope-traceevent

Both the parent (collect) and the instrumentation hook inside the child
derive the same layout from the pid, so the names are never passed around.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

DIRECTORY_SUFFIX = ".asyncscope"

LOG_KINDS = ("root", "systeminfo", "stacktrace", "traceevent")


@dataclass(frozen=True)
class LoggingPaths:
    """Absolute paths for one run, keyed by logical log kind."""
    root: Path
    systeminfo: Path
    stacktrace: Path
    traceevent: Path

    def __getitem__(self, kind: str) -> Path:
        if kind not in LOG_KINDS:
            raise KeyError(kind)
        return getattr(self, kind)

    def ensure_root(self) -> Path:
        """Create the log directory if it does not exist yet."""
        self.root.mkdir(parents=True, exist_ok=True)
        return self.root


def get_logging_paths(
    identifier: Optional[Union[int, str]] = None,
    path: Optional[Union[str, Path]] = None,
    cwd: Optional[Path] = None,
) -> LoggingPaths:
    """
    Derive the log layout from a run identifier or an existing directory.

    Args:
        identifier: Run identifier (the child's pid)
        path: Explicit log directory, e.g. the one collect() returned
        cwd: Base for relative paths (defaults to the current directory)

    Exactly one of identifier/path must be given.
    """
    if (identifier is None) == (path is None):
        raise ValueError("exactly one of identifier or path is required")

    base = Path(cwd) if cwd is not None else Path.cwd()
    if identifier is not None:
        dirpath = base / f"{identifier}{DIRECTORY_SUFFIX}"
    else:
        dirpath = base / Path(path)

    dirpath = Path(dirpath).absolute()
    basename = dirpath.name

    return LoggingPaths(
        root=dirpath,
        systeminfo=dirpath / f"{basename}-systeminfo",
        stacktrace=dirpath / f"{basename}-stacktrace",
        traceevent=dirpath / f"{basename}-traceevent",
    )
