"""
Move the raw trace log into the run's log directory.

The tracing side of the hook cannot know which directory to use until the
process exits cleanly, so it always writes to a fixed file name in the
working directory (DEFAULT_TRACE_SOURCE). collect() moves that file into
place once the child has exited successfully.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from asyncscope.collector.paths import LoggingPaths
from asyncscope.config import DEFAULT_TRACE_SOURCE
from asyncscope.errors import RelocationError

logger = logging.getLogger(__name__)


def relocate_trace_log(paths: LoggingPaths, source: Optional[Path] = None) -> Path:
    """
    Move the raw trace file to paths.traceevent.

    Raises:
        RelocationError: If the directory cannot be created or the move fails.
            The error carries paths.root so partial state can be inspected.
    """
    source = Path(source) if source is not None else Path(DEFAULT_TRACE_SOURCE)

    try:
        paths.ensure_root()
        os.replace(source, paths.traceevent)
    except OSError as e:
        raise RelocationError(
            f"could not move trace log {source} to {paths.traceevent}: {e}",
            paths.root,
        ) from e

    logger.debug(f"Moved {source} -> {paths.traceevent}")
    return paths.traceevent
