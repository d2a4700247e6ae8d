"""
Tests for the three log decoders.
"""

import json

import pytest

from asyncscope.errors import DecodeError
from asyncscope.formats import (
    TRACE_CATEGORY,
    StackFrame,
    StackTraceDecoder,
    StackTraceRecord,
    SystemInfoDecoder,
    TraceEventDecoder,
    TraceEventRecord,
    TraceEventWriter,
    encode_stack_trace,
    encode_system_info,
    encode_trace_events,
)
from asyncscope.formats.stack_trace import HEADER


def byte_chunks(data: bytes, size: int = 1):
    return [data[i:i + size] for i in range(0, len(data), size)]


def tracked(chunks, closed):
    """Chunk source that records when it is closed."""
    try:
        yield from chunks
    finally:
        closed.append(True)


# =============================================================================
# SYSTEMINFO
# =============================================================================

class TestSystemInfoDecoder:

    def test_decodes_one_record(self, system_info):
        records = list(SystemInfoDecoder().decode([encode_system_info(system_info)]))
        assert records == [system_info]

    def test_split_across_chunks(self, system_info):
        data = encode_system_info(system_info)
        assert list(SystemInfoDecoder().decode(byte_chunks(data, 3))) == [system_info]

    def test_empty_log(self):
        with pytest.raises(DecodeError, match="empty"):
            list(SystemInfoDecoder().decode([b"", b"  \n"]))

    def test_truncated(self, system_info):
        data = encode_system_info(system_info)
        with pytest.raises(DecodeError, match="systeminfo"):
            list(SystemInfoDecoder().decode([data[:-1]]))

    def test_not_an_object(self):
        with pytest.raises(DecodeError, match="object"):
            list(SystemInfoDecoder().decode([b"[1, 2]"]))

    def test_missing_field(self):
        with pytest.raises(DecodeError, match="pid"):
            list(SystemInfoDecoder().decode([b'{"platform": "linux"}']))

    def test_missing_file_names_path(self, tmp_path):
        """Unreadable logs fail the stream; they do not look empty."""
        path = tmp_path / "nope-systeminfo"
        with pytest.raises(DecodeError) as exc:
            list(SystemInfoDecoder().decode_file(path))
        assert exc.value.path == path
        assert str(path) in str(exc.value)


# =============================================================================
# STACKTRACE
# =============================================================================

class TestStackTraceDecoder:

    def test_decodes_all_frames(self, stack_traces):
        data = b"".join(encode_stack_trace(r) for r in stack_traces)
        assert list(StackTraceDecoder().decode([data])) == stack_traces

    def test_single_byte_chunks(self, stack_traces):
        """Frame boundaries need not line up with read boundaries."""
        data = b"".join(encode_stack_trace(r) for r in stack_traces)
        assert list(StackTraceDecoder().decode(byte_chunks(data))) == stack_traces

    def test_non_ascii_names(self):
        record = StackTraceRecord(5, (StackFrame("créer", "/srv/ünï.py", 3, 1),))
        data = encode_stack_trace(record)
        assert list(StackTraceDecoder().decode(byte_chunks(data))) == [record]

    def test_empty_log_has_no_records(self):
        assert list(StackTraceDecoder().decode([])) == []

    def test_truncated_payload(self, stack_traces):
        """Records before the cut are yielded, then the stream fails."""
        data = b"".join(encode_stack_trace(r) for r in stack_traces)
        decoded = []
        with pytest.raises(DecodeError, match="truncated"):
            for record in StackTraceDecoder().decode([data[:-1]]):
                decoded.append(record)
        assert decoded == stack_traces[:1]

    def test_truncated_header(self, stack_traces):
        data = encode_stack_trace(stack_traces[0]) + b"\x00\x00"
        with pytest.raises(DecodeError, match="2 trailing bytes"):
            list(StackTraceDecoder().decode([data]))

    def test_malformed_payload(self):
        payload = b"not json"
        with pytest.raises(DecodeError, match="malformed"):
            list(StackTraceDecoder().decode([HEADER.pack(len(payload)) + payload]))

    def test_missing_async_id(self):
        payload = json.dumps({"frames": []}).encode()
        with pytest.raises(DecodeError):
            list(StackTraceDecoder().decode([HEADER.pack(len(payload)) + payload]))

    def test_early_close_closes_source(self, stack_traces):
        """A consumer that stops early releases the upstream source."""
        data = b"".join(encode_stack_trace(r) for r in stack_traces)
        closed = []
        records = StackTraceDecoder().decode(tracked(byte_chunks(data, 8), closed))
        next(records)
        records.close()
        assert closed == [True]

    def test_decode_file(self, log_dir, stack_traces):
        decoded = StackTraceDecoder().decode_file(log_dir.stacktrace, chunk_size=5)
        assert list(decoded) == stack_traces


# =============================================================================
# TRACEEVENT
# =============================================================================

def event(name="Task", ph="b", async_id=2, cat=TRACE_CATEGORY, **data):
    return {
        "pid": 1, "tid": 1, "ts": 10, "ph": ph, "cat": cat,
        "name": name, "id": hex(async_id), "args": {"data": data},
    }


def document(*events) -> bytes:
    return json.dumps({"traceEvents": list(events)}, ensure_ascii=False).encode("utf-8")


class TestTraceEventDecoder:

    def test_decodes_encoded_events(self, trace_events):
        data = encode_trace_events(trace_events, pid=7)
        assert list(TraceEventDecoder().decode([data])) == trace_events

    def test_single_byte_chunks(self, trace_events):
        data = encode_trace_events(trace_events)
        assert list(TraceEventDecoder().decode(byte_chunks(data))) == trace_events

    def test_multibyte_utf8_split(self):
        """A character split across chunks decodes intact."""
        data = document(event(name="Tâche", triggerAsyncId=1))
        records = list(TraceEventDecoder().decode(byte_chunks(data)))
        assert records[0].type == "Tâche"

    def test_phase_mapping(self):
        data = document(
            event(ph="b", triggerAsyncId=1),
            event(name="Task_CALLBACK", ph="b"),
            event(name="Task_CALLBACK", ph="e"),
            event(ph="e"),
        )
        records = list(TraceEventDecoder().decode([data]))
        assert [r.event for r in records] == ["init", "before", "after", "destroy"]
        assert {r.type for r in records} == {"Task"}
        assert records[0].trigger_async_id == 1
        assert records[0].async_id == 2

    def test_other_categories_skipped(self):
        data = document(
            event(cat="v8", ph="b"),
            event(ph="X"),
            event(ph="b", async_id=9, triggerAsyncId=1),
        )
        records = list(TraceEventDecoder().decode([data]))
        assert [r.async_id for r in records] == [9]

    def test_category_filter_disabled(self):
        data = document(event(cat="v8", ph="b"))
        assert len(list(TraceEventDecoder(category=None).decode([data]))) == 1

    def test_empty_event_list(self):
        assert list(TraceEventDecoder().decode([b'{"traceEvents":[]}'])) == []

    def test_empty_log(self):
        with pytest.raises(DecodeError, match="header"):
            list(TraceEventDecoder().decode([b""]))

    def test_not_a_trace_document(self):
        with pytest.raises(DecodeError, match="not a trace-event document"):
            list(TraceEventDecoder().decode([b"[1, 2, 3]"]))

    @pytest.mark.parametrize("cut", [1, 2, 3, 20])
    def test_truncated(self, trace_events, cut):
        """Any cut through the tail is detected."""
        data = encode_trace_events(trace_events)
        with pytest.raises(DecodeError):
            list(TraceEventDecoder().decode([data[:-cut]]))

    def test_trailing_garbage(self, trace_events):
        data = encode_trace_events(trace_events) + b"[]"
        with pytest.raises(DecodeError, match="unexpected data"):
            list(TraceEventDecoder().decode([data]))

    def test_missing_comma(self):
        data = b'{"traceEvents":[' + json.dumps(event()).encode() + json.dumps(event()).encode() + b"]}"
        with pytest.raises(DecodeError, match="expected ','"):
            list(TraceEventDecoder().decode([data]))

    def test_malformed_event(self):
        bad = event()
        del bad["id"]
        with pytest.raises(DecodeError, match="malformed event"):
            list(TraceEventDecoder().decode([document(bad)]))

    def test_early_close_closes_source(self, trace_events):
        closed = []
        data = encode_trace_events(trace_events)
        records = TraceEventDecoder().decode(tracked(byte_chunks(data, 16), closed))
        next(records)
        records.close()
        assert closed == [True]


class TestTraceEventWriter:

    def test_closed_file_decodes(self, tmp_path, trace_events):
        path = tmp_path / "trace.log"
        writer = TraceEventWriter(open(path, "w", encoding="utf-8"), pid=3)
        for record in trace_events:
            writer.write(record, tid=5)
        writer.close()
        writer.close()
        assert list(TraceEventDecoder().decode_file(path)) == trace_events

    def test_no_events(self, tmp_path):
        path = tmp_path / "trace.log"
        TraceEventWriter(open(path, "w", encoding="utf-8")).close()
        assert list(TraceEventDecoder().decode_file(path)) == []

    def test_unclosed_file_fails(self, tmp_path, trace_events):
        """A writer that never finished leaves an undecodable log."""
        path = tmp_path / "trace.log"
        fp = open(path, "w", encoding="utf-8")
        writer = TraceEventWriter(fp)
        writer.write(trace_events[0])
        fp.flush()
        try:
            with pytest.raises(DecodeError, match="terminator"):
                list(TraceEventDecoder().decode_file(path))
        finally:
            writer.close()

    def test_write_after_close_ignored(self, tmp_path, trace_events):
        path = tmp_path / "trace.log"
        writer = TraceEventWriter(open(path, "w", encoding="utf-8"))
        writer.close()
        writer.write(trace_events[0])
        assert writer.count == 0
