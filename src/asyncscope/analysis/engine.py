"""
Analysis engine interface.

An engine receives the three decoded sequences as live iterators and yields
JSON-serializable analysis records. It may consume the inputs in any order
and buffer as it likes; the pipeline makes no other ordering promise.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Iterator

from asyncscope.errors import AnalysisError, AsyncScopeError
from asyncscope.streams import close_source
from asyncscope.formats.records import SystemInfoRecord, StackTraceRecord, TraceEventRecord

logger = logging.getLogger(__name__)

AnalysisRecord = Dict[str, Any]


class AnalysisEngine(ABC):
    """Turns decoded telemetry into records for the visualizer."""

    name = "engine"

    @abstractmethod
    def consume(
        self,
        system_info: Iterable[SystemInfoRecord],
        stack_traces: Iterable[StackTraceRecord],
        trace_events: Iterable[TraceEventRecord],
    ) -> Iterator[AnalysisRecord]:
        ...


def analyse(
    engine: AnalysisEngine,
    system_info: Iterable[SystemInfoRecord],
    stack_traces: Iterable[StackTraceRecord],
    trace_events: Iterable[TraceEventRecord],
) -> Iterator[AnalysisRecord]:
    """
    Run engine over the three sequences.

    asyncscope errors (DecodeError from an input, AnalysisError from the
    engine) propagate unchanged; anything else the engine raises is wrapped
    in AnalysisError. Closing the returned generator closes the engine and
    all three inputs.
    """
    records = None
    logger.debug(f"Running analysis engine {engine.name}")
    try:
        records = engine.consume(system_info, stack_traces, trace_events)
        yield from records
    except AsyncScopeError:
        raise
    except Exception as e:
        raise AnalysisError(f"{engine.name} failed: {e}") from e
    finally:
        for source in (records, system_info, stack_traces, trace_events):
            close_source(source)
