"""
Default analysis engine: the async-task graph.

Every async resource becomes one node record:

    {
        "asyncId": 7,
        "triggerAsyncId": 1,
        "type": "Task",
        "init": 1200.0,
        "before": [1210.0],
        "after": [1290.0],
        "destroy": 1300.0,
        "frames": [{"functionName": ..., "fileName": ..., "lineNumber": ...,
                    "columnNumber": ..., "isUser": true}, ...]
    }

Nodes are emitted as soon as their destroy event is seen; resources still
alive when the trace ends follow in init order. Stack traces are joined by
asyncId, pulling from the stacktrace sequence only as far as needed.
"""

import logging
from pathlib import PurePath
from typing import Dict, Iterable, Iterator, Optional

from asyncscope.analysis.engine import AnalysisEngine, AnalysisRecord
from asyncscope.errors import AnalysisError
from asyncscope.formats.records import (
    StackFrame,
    StackTraceRecord,
    SystemInfoRecord,
    TraceEventRecord,
)

logger = logging.getLogger(__name__)

THIRD_PARTY_MARKERS = ("site-packages", "dist-packages")


class _StackIndex:
    """Lazy asyncId -> frames lookup over a forward-only sequence."""

    def __init__(self, stack_traces: Iterable[StackTraceRecord]):
        self._source = iter(stack_traces)
        self._seen: Dict[int, StackTraceRecord] = {}
        self._exhausted = False

    def pop(self, async_id: int) -> Optional[StackTraceRecord]:
        if async_id in self._seen:
            return self._seen.pop(async_id)
        while not self._exhausted:
            try:
                record = next(self._source)
            except StopIteration:
                self._exhausted = True
                break
            if record.async_id == async_id:
                return record
            self._seen[record.async_id] = record
        return None

    def drain(self) -> int:
        """Read the rest of the sequence; returns how many records never matched an init."""
        unmatched = len(self._seen)
        self._seen.clear()
        if not self._exhausted:
            unmatched += sum(1 for _ in self._source)
            self._exhausted = True
        return unmatched


class AsyncGraphAnalysis(AnalysisEngine):
    """Builds one node record per async resource."""

    name = "async-graph"

    def consume(
        self,
        system_info: Iterable[SystemInfoRecord],
        stack_traces: Iterable[StackTraceRecord],
        trace_events: Iterable[TraceEventRecord],
    ) -> Iterator[AnalysisRecord]:
        infos = list(system_info)
        if not infos:
            raise AnalysisError("no system info record")
        info = infos[0]
        main_directory = PurePath(info.main_directory)

        stacks = _StackIndex(stack_traces)
        live: Dict[int, AnalysisRecord] = {}
        emitted = 0

        for event in trace_events:
            if event.event == "init":
                live[event.async_id] = self._node(event, stacks, main_directory)
                continue

            node = live.get(event.async_id)
            if node is None:
                logger.debug(f"{event.event} for unknown asyncId {event.async_id}, skipped")
                continue

            if event.event == "destroy":
                node["destroy"] = event.timestamp
                del live[event.async_id]
                emitted += 1
                yield node
            else:
                node[event.event].append(event.timestamp)

        # Read the stack log to its end; a truncated tail fails the run
        unmatched = stacks.drain()
        if unmatched:
            logger.debug(f"{unmatched} stack traces had no init event")

        for node in live.values():
            emitted += 1
            yield node

        logger.info(f"Analysis produced {emitted} nodes")

    def _node(
        self,
        event: TraceEventRecord,
        stacks: _StackIndex,
        main_directory: PurePath,
    ) -> AnalysisRecord:
        stack = stacks.pop(event.async_id)
        frames = stack.frames if stack is not None else ()
        return {
            "asyncId": event.async_id,
            "triggerAsyncId": event.trigger_async_id,
            "type": event.type,
            "init": event.timestamp,
            "before": [],
            "after": [],
            "destroy": None,
            "frames": [self._frame(f, main_directory) for f in frames],
        }

    def _frame(self, frame: StackFrame, main_directory: PurePath) -> dict:
        d = frame.to_dict()
        d["isUser"] = is_user_frame(frame.file_name, main_directory)
        return d


def is_user_frame(file_name: str, main_directory: PurePath) -> bool:
    """True for files under the program's directory that are not installed packages."""
    if not file_name or file_name.startswith("<"):
        return False
    path = PurePath(file_name)
    if any(marker in path.parts for marker in THIRD_PARTY_MARKERS):
        return False
    try:
        path.relative_to(main_directory)
    except ValueError:
        return False
    return True
