"""
traceevent log: Chrome trace-event JSON.

    {"traceEvents":[
    {"pid":1,"tid":1,"ts":1200,"ph":"b","cat":"asyncscope.tasks","name":"Task",
     "id":"0x2","args":{"data":{"triggerAsyncId":1,"executionAsyncId":1}}},
    ...
    ]}

Event mapping:
    ph "b", name "Task"           -> init
    ph "e", name "Task"           -> destroy
    ph "b", name "Task_CALLBACK"  -> before
    ph "e", name "Task_CALLBACK"  -> after

Events outside TRACE_CATEGORY are skipped. The document is decoded
incrementally, one event at a time, so an arbitrarily long trace never has to
be held in memory. A missing ']}' terminator means the writer never finished
(the target was killed) and is a decode error.
"""

import codecs
import json
import re
import threading
from typing import IO, Iterable, Iterator, Optional

from asyncscope.formats.base import Decoder
from asyncscope.streams import close_source
from asyncscope.formats.records import TraceEventRecord

TRACE_CATEGORY = "asyncscope.tasks"
CALLBACK_SUFFIX = "_CALLBACK"

_HEADER_RE = re.compile(r'\s*\{\s*"traceEvents"\s*:\s*\[')
_WS = " \t\r\n"


# =============================================================================
# ENCODING
# =============================================================================

def trace_event_to_dict(record: TraceEventRecord, pid: int = 0, tid: int = 0) -> dict:
    """Convert a record back into its Chrome trace-event form."""
    if record.event in ("before", "after"):
        name = record.type + CALLBACK_SUFFIX
        phase = "b" if record.event == "before" else "e"
    else:
        name = record.type
        phase = "b" if record.event == "init" else "e"

    data = {}
    if record.event == "init":
        data["triggerAsyncId"] = record.trigger_async_id
    return {
        "pid": pid,
        "tid": tid,
        "ts": record.timestamp,
        "ph": phase,
        "cat": TRACE_CATEGORY,
        "name": name,
        "id": hex(record.async_id),
        "args": {"data": data},
    }


class TraceEventWriter:
    """
    Streams trace events into an open text file.

    The header is written on construction and the terminator by close();
    a file that was never closed stays unterminated and will not decode.
    """

    def __init__(self, fp: IO[str], pid: int = 0):
        self.fp = fp
        self.pid = pid
        self.count = 0
        self.closed = False
        self._lock = threading.Lock()
        self.fp.write('{"traceEvents":[')

    def write(self, record: TraceEventRecord, tid: int = 0) -> None:
        line = json.dumps(trace_event_to_dict(record, self.pid, tid), separators=(",", ":"))
        with self._lock:
            if self.closed:
                return
            self.fp.write(("\n" if self.count == 0 else ",\n") + line)
            self.count += 1

    def close(self) -> None:
        with self._lock:
            if self.closed:
                return
            self.closed = True
            self.fp.write("\n]}\n")
            self.fp.close()


def encode_trace_events(records: Iterable[TraceEventRecord], pid: int = 0) -> bytes:
    events = [trace_event_to_dict(r, pid) for r in records]
    return json.dumps({"traceEvents": events}).encode("utf-8")


# =============================================================================
# DECODING
# =============================================================================

class TraceEventDecoder(Decoder[TraceEventRecord]):
    """Incrementally decode a Chrome trace-event document."""

    kind = "traceevent"

    def __init__(self, path=None, category: Optional[str] = TRACE_CATEGORY):
        super().__init__(path)
        self.category = category
        self._json = json.JSONDecoder()

    def decode(self, chunks: Iterable[bytes]) -> Iterator[TraceEventRecord]:
        utf8 = codecs.getincrementaldecoder("utf-8")()
        buf = ""
        pos = 0
        state = "header"      # header -> events -> footer
        expect_comma = False

        try:
            for chunk in chunks:
                try:
                    buf = buf[pos:] + utf8.decode(chunk)
                except UnicodeDecodeError as e:
                    raise self.error(f"invalid UTF-8 ({e})") from e
                pos = 0

                while True:
                    if state == "header":
                        match = _HEADER_RE.match(buf, pos)
                        if match is None:
                            if len(buf.strip()) > 64 or (buf.strip() and not buf.lstrip().startswith("{")):
                                raise self.error("not a trace-event document")
                            break
                        pos = match.end()
                        state = "events"
                        continue

                    if state == "events":
                        while pos < len(buf) and buf[pos] in _WS:
                            pos += 1
                        if pos >= len(buf):
                            break
                        if buf[pos] == "]":
                            pos += 1
                            state = "footer"
                            continue
                        if expect_comma:
                            if buf[pos] != ",":
                                raise self.error(f"expected ',' between events, got {buf[pos]!r}")
                            pos += 1
                            expect_comma = False
                            continue
                        try:
                            event, end = self._json.raw_decode(buf, pos)
                        except json.JSONDecodeError:
                            # Event not complete yet; wait for more input
                            break
                        pos = end
                        expect_comma = True
                        record = self._convert(event)
                        if record is not None:
                            yield record
                        continue

                    # footer: only the closing brace and whitespace may follow
                    if buf[pos:].strip() not in ("", "}"):
                        raise self.error("unexpected data after trace events")
                    break
        finally:
            close_source(chunks)

        try:
            buf = buf[pos:] + utf8.decode(b"", final=True)
        except UnicodeDecodeError as e:
            raise self.error(f"invalid UTF-8 ({e})") from e
        pos = 0

        if state == "header":
            raise self.error("empty or truncated log (no traceEvents header)")
        if state == "events":
            raise self.error("truncated or malformed log (missing ']}' terminator)")
        if buf.strip() != "}":
            raise self.error("truncated log (missing closing '}')")

    def _convert(self, event) -> Optional[TraceEventRecord]:
        if not isinstance(event, dict):
            raise self.error(f"expected an event object, got {type(event).__name__}")
        if self.category is not None and event.get("cat") != self.category:
            return None

        phase = event.get("ph")
        if phase not in ("b", "e"):
            return None

        name = str(event.get("name", ""))
        if name.endswith(CALLBACK_SUFFIX):
            kind = "before" if phase == "b" else "after"
            resource_type = name[:-len(CALLBACK_SUFFIX)]
        else:
            kind = "init" if phase == "b" else "destroy"
            resource_type = name

        try:
            raw_id = event["id"]
            async_id = int(raw_id, 16) if isinstance(raw_id, str) else int(raw_id)
            data = (event.get("args") or {}).get("data") or {}
            trigger = data.get("triggerAsyncId")
            return TraceEventRecord(
                event=kind,
                type=resource_type,
                async_id=async_id,
                trigger_async_id=int(trigger) if trigger is not None else None,
                timestamp=float(event["ts"]),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise self.error(f"malformed event ({e})") from e
