"""
Decoded telemetry records.

One dataclass per log kind. These exist only between the decoders and the
analysis engine; nothing persists them.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class SystemInfoRecord:
    """Facts about the target process, written once at hook install."""
    pid: int
    python_version: str
    platform: str
    main_directory: str
    argv: Tuple[str, ...] = ()
    start_time: float = 0.0  # microseconds, same clock as trace events

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["argv"] = list(self.argv)
        return d


@dataclass(frozen=True)
class StackFrame:
    function_name: str
    file_name: str
    line_number: int
    column_number: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "functionName": self.function_name,
            "fileName": self.file_name,
            "lineNumber": self.line_number,
            "columnNumber": self.column_number,
        }


@dataclass(frozen=True)
class StackTraceRecord:
    """Stack captured when the task with async_id was created."""
    async_id: int
    frames: Tuple[StackFrame, ...] = field(default_factory=tuple)


TRACE_EVENT_KINDS = ("init", "before", "after", "destroy")


@dataclass(frozen=True)
class TraceEventRecord:
    """One lifecycle event of an async resource."""
    event: str               # one of TRACE_EVENT_KINDS
    type: str                # resource type, e.g. "Task"
    async_id: int
    trigger_async_id: Optional[int]
    timestamp: float         # microseconds
