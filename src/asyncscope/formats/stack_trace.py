"""
stacktrace log: length-prefixed JSON frames.

Each frame is a 4-byte big-endian payload length followed by the UTF-8 JSON
payload:

    {"asyncId": 7, "frames": [{"functionName": "main", "fileName": "app.py",
                               "lineNumber": 12, "columnNumber": 4}, ...]}

A frame cut short by the end of the file is a decode error, never a silently
dropped record.
"""

import json
import struct
from typing import Iterable, Iterator

from asyncscope.formats.base import Decoder
from asyncscope.streams import close_source
from asyncscope.formats.records import StackFrame, StackTraceRecord

HEADER = struct.Struct(">I")


def encode_stack_trace(record: StackTraceRecord) -> bytes:
    payload = json.dumps({
        "asyncId": record.async_id,
        "frames": [frame.to_dict() for frame in record.frames],
    }).encode("utf-8")
    return HEADER.pack(len(payload)) + payload


class StackTraceDecoder(Decoder[StackTraceRecord]):
    """Decode the stacktrace log frame by frame."""

    kind = "stacktrace"

    def decode(self, chunks: Iterable[bytes]) -> Iterator[StackTraceRecord]:
        buf = bytearray()
        try:
            for chunk in chunks:
                buf.extend(chunk)
                while len(buf) >= HEADER.size:
                    (length,) = HEADER.unpack_from(buf)
                    end = HEADER.size + length
                    if len(buf) < end:
                        break
                    payload = bytes(buf[HEADER.size:end])
                    del buf[:end]
                    yield self._parse(payload)
        finally:
            close_source(chunks)

        if buf:
            raise self.error(f"truncated frame ({len(buf)} trailing bytes)")

    def _parse(self, payload: bytes) -> StackTraceRecord:
        try:
            data = json.loads(payload.decode("utf-8"))
            frames = tuple(
                StackFrame(
                    function_name=str(f.get("functionName", "")),
                    file_name=str(f.get("fileName", "")),
                    line_number=int(f.get("lineNumber", 0)),
                    column_number=int(f.get("columnNumber", 0)),
                )
                for f in data.get("frames", [])
            )
            return StackTraceRecord(async_id=int(data["asyncId"]), frames=frames)
        except (UnicodeDecodeError, json.JSONDecodeError, KeyError,
                TypeError, ValueError, AttributeError) as e:
            raise self.error(f"malformed frame ({e})") from e
