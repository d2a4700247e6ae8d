"""
Collect phase: run the target, supervise it, lay out its logs.
"""

from asyncscope.collector.paths import (
    LOG_KINDS,
    LoggingPaths,
    get_logging_paths,
)
from asyncscope.collector.relocate import relocate_trace_log
from asyncscope.collector.supervisor import (
    CancellationToken,
    CollectResult,
    InstrumentationOptions,
    InterruptRelay,
    ProcessResult,
    TerminationOutcome,
    classify_termination,
    collect,
)

__all__ = [
    "LOG_KINDS",
    "LoggingPaths",
    "get_logging_paths",
    "relocate_trace_log",
    "CancellationToken",
    "CollectResult",
    "InstrumentationOptions",
    "InterruptRelay",
    "ProcessResult",
    "TerminationOutcome",
    "classify_termination",
    "collect",
]
