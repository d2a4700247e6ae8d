"""
Telemetry log formats.

One decoder per log kind, each paired with the encoder the instrumentation
hook writes with:

- systeminfo  - one JSON object               (SystemInfoDecoder)
- stacktrace  - length-prefixed JSON frames   (StackTraceDecoder)
- traceevent  - Chrome trace-event JSON       (TraceEventDecoder)
"""

from asyncscope.formats.records import (
    SystemInfoRecord,
    StackFrame,
    StackTraceRecord,
    TraceEventRecord,
    TRACE_EVENT_KINDS,
)
from asyncscope.formats.system_info import SystemInfoDecoder, encode_system_info
from asyncscope.formats.stack_trace import StackTraceDecoder, encode_stack_trace
from asyncscope.formats.trace_event import (
    TRACE_CATEGORY,
    TraceEventDecoder,
    TraceEventWriter,
    encode_trace_events,
)

__all__ = [
    # Records
    "SystemInfoRecord",
    "StackFrame",
    "StackTraceRecord",
    "TraceEventRecord",
    "TRACE_EVENT_KINDS",
    # Codecs
    "SystemInfoDecoder",
    "encode_system_info",
    "StackTraceDecoder",
    "encode_stack_trace",
    "TRACE_CATEGORY",
    "TraceEventDecoder",
    "TraceEventWriter",
    "encode_trace_events",
]
