"""
Artifact writer.

The artifact is written to a temporary file beside the destination and moved
into place only after the last chunk is written, so a failed run never leaves
a complete-looking artifact behind. On failure the chunk stream is closed,
which closes every stage upstream of it.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable, Union

from asyncscope.errors import AssemblyError, AsyncScopeError
from asyncscope.streams import close_source

logger = logging.getLogger(__name__)


def write_artifact(chunks: Iterable[str], output_path: Union[str, Path]) -> Path:
    """
    Write chunks to output_path.

    Raises:
        DecodeError, AnalysisError, AssemblyError: the first error raised by
            any upstream stage, or AssemblyError for write failures
    """
    output_path = Path(output_path)
    directory = output_path.parent

    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{output_path.name}.", suffix=".tmp", dir=directory
        )
    except OSError as e:
        close_source(chunks)
        raise AssemblyError(f"cannot create {output_path}: {e}") from e

    written = 0
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            for chunk in chunks:
                f.write(chunk)
                written += len(chunk)
        os.chmod(tmp_name, 0o644)
        os.replace(tmp_name, output_path)
    except BaseException as e:
        close_source(chunks)
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        if isinstance(e, AsyncScopeError) or not isinstance(e, Exception):
            raise
        raise AssemblyError(f"failed writing {output_path}: {e}") from e

    logger.info(f"Wrote {output_path} ({written:,} characters)")
    return output_path
