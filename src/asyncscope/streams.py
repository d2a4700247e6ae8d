"""
Lazy file readers shared by the decoders and the assembler.

Both return generators: the file is opened on first next() and closed when
the generator is exhausted or closed, so a consumer that stops early
releases the file immediately.
"""

from pathlib import Path
from typing import Iterable, Iterator, Union

DEFAULT_CHUNK_SIZE = 64 * 1024


def read_chunks(path: Union[str, Path], chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
    """Yield the file's bytes in chunks. OSError propagates to the consumer."""
    with open(path, "rb") as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                return
            yield chunk


def read_text_chunks(path: Union[str, Path], chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[str]:
    """Yield the file's UTF-8 text in chunks."""
    with open(path, "r", encoding="utf-8") as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                return
            yield chunk


def close_source(source) -> None:
    """Close source if it is a generator, releasing whatever it holds open."""
    close = getattr(source, "close", None)
    if close is not None:
        close()


class OwningStream:
    """Iterate chunks; closing it also closes the upstream sources it owns."""

    def __init__(self, chunks: Iterable[str], *sources):
        self._chunks = chunks
        self._sources = sources

    def __iter__(self) -> Iterator[str]:
        return iter(self._chunks)

    def close(self) -> None:
        close_source(self._chunks)
        for source in self._sources:
            close_source(source)
