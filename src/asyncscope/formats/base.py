"""
Shared decoder plumbing.

A decoder turns an iterable of byte chunks into an iterator of records.
decode_file() feeds it from disk and turns read failures into DecodeError,
so a missing or unreadable log fails the stream instead of ending it early.
"""

from pathlib import Path
from typing import Generic, Iterable, Iterator, Optional, TypeVar, Union

from asyncscope.errors import DecodeError
from asyncscope.streams import DEFAULT_CHUNK_SIZE, read_chunks

R = TypeVar("R")


class Decoder(Generic[R]):
    """Base class for the three log decoders."""

    kind = "unknown"

    def __init__(self, path: Optional[Path] = None):
        self.path = path

    def decode(self, chunks: Iterable[bytes]) -> Iterator[R]:
        raise NotImplementedError

    def error(self, message: str) -> DecodeError:
        return DecodeError(f"{self.kind}: {message}", self.path)

    def decode_file(
        self,
        path: Union[str, Path],
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> Iterator[R]:
        """Lazily decode the file at path."""
        self.path = Path(path)
        return self.decode(self._guarded_chunks(read_chunks(self.path, chunk_size)))

    def _guarded_chunks(self, chunks: Iterator[bytes]) -> Iterator[bytes]:
        try:
            yield from chunks
        except OSError as e:
            raise self.error(f"read failed ({e.strerror or e})") from e

