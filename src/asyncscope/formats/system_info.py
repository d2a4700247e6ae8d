"""
systeminfo log: a single UTF-8 JSON object describing the target process.
"""

import json
from typing import Iterable, Iterator

from asyncscope.formats.base import Decoder
from asyncscope.streams import close_source
from asyncscope.formats.records import SystemInfoRecord


def encode_system_info(record: SystemInfoRecord) -> bytes:
    return json.dumps(record.to_dict(), sort_keys=True).encode("utf-8")


class SystemInfoDecoder(Decoder[SystemInfoRecord]):
    """Decode the systeminfo log into exactly one SystemInfoRecord."""

    kind = "systeminfo"

    def decode(self, chunks: Iterable[bytes]) -> Iterator[SystemInfoRecord]:
        buf = bytearray()
        try:
            for chunk in chunks:
                buf.extend(chunk)
        finally:
            close_source(chunks)

        if not buf.strip():
            raise self.error("empty log")
        try:
            data = json.loads(buf.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise self.error(f"truncated or malformed JSON ({e})") from e
        if not isinstance(data, dict):
            raise self.error("expected a JSON object")

        try:
            yield SystemInfoRecord(
                pid=int(data["pid"]),
                python_version=str(data["python_version"]),
                platform=str(data["platform"]),
                main_directory=str(data["main_directory"]),
                argv=tuple(data.get("argv") or ()),
                start_time=float(data.get("start_time", 0.0)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise self.error(f"missing or invalid field {e}") from e
