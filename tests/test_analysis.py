"""
Tests for the analysis stage and the default async-graph engine.
"""

from pathlib import PurePath

import pytest

from asyncscope.analysis import (
    DEFAULT_ENGINE,
    AnalysisEngine,
    AsyncGraphAnalysis,
    ENGINES,
    analyse,
    get_engine,
    is_user_frame,
    register_engine,
)
from asyncscope.errors import AnalysisError, DecodeError
from asyncscope.formats import TraceEventRecord


def run_graph(system_info, stack_traces, trace_events):
    return list(analyse(AsyncGraphAnalysis(), [system_info], stack_traces, trace_events))


def tracked(items, closed, name):
    try:
        yield from items
    finally:
        closed.append(name)


# =============================================================================
# ASYNC GRAPH
# =============================================================================

class TestAsyncGraph:

    def test_nodes_emitted_on_destroy(self, system_info, stack_traces, trace_events):
        """Destroyed nodes come first, survivors follow in init order."""
        nodes = run_graph(system_info, stack_traces, trace_events)
        assert [n["asyncId"] for n in nodes] == [3, 2, 4]

    def test_node_fields(self, system_info, stack_traces, trace_events):
        nodes = {n["asyncId"]: n for n in run_graph(system_info, stack_traces, trace_events)}
        node = nodes[3]
        assert node["triggerAsyncId"] == 2
        assert node["type"] == "Task"
        assert node["init"] == 110.0
        assert node["before"] == [120.0]
        assert node["after"] == [140.0]
        assert node["destroy"] == 150.0

    def test_live_node_has_no_destroy(self, system_info, stack_traces, trace_events):
        nodes = {n["asyncId"]: n for n in run_graph(system_info, stack_traces, trace_events)}
        assert nodes[4]["destroy"] is None
        assert nodes[4]["frames"] == []

    def test_stacks_joined_by_async_id(self, system_info, stack_traces, trace_events):
        nodes = {n["asyncId"]: n for n in run_graph(system_info, stack_traces, trace_events)}
        assert [f["functionName"] for f in nodes[2]["frames"]] == ["main", "run"]
        assert [f["functionName"] for f in nodes[3]["frames"]] == ["fetch", "handler"]

    def test_stacks_out_of_order(self, system_info, stack_traces, trace_events):
        """Stacks may arrive in any order relative to init events."""
        nodes = run_graph(system_info, list(reversed(stack_traces)), trace_events)
        by_id = {n["asyncId"]: n for n in nodes}
        assert by_id[2]["frames"][0]["fileName"].endswith("server.py")

    def test_user_frames_marked(self, system_info, stack_traces, trace_events):
        nodes = {n["asyncId"]: n for n in run_graph(system_info, stack_traces, trace_events)}
        assert [f["isUser"] for f in nodes[2]["frames"]] == [True, False]
        assert [f["isUser"] for f in nodes[3]["frames"]] == [False, True]

    def test_unknown_ids_skipped(self, system_info, stack_traces, trace_events):
        events = [TraceEventRecord("destroy", "Task", 99, None, 1.0)] + trace_events
        assert [n["asyncId"] for n in run_graph(system_info, stack_traces, events)] == [3, 2, 4]

    def test_records_are_lazy(self, system_info, stack_traces, trace_events):
        """The first node is available before the trace is read to the end."""
        pulled = []

        def events():
            for event in trace_events:
                pulled.append(event)
                yield event

        records = analyse(AsyncGraphAnalysis(), [system_info], stack_traces, events())
        assert next(records)["asyncId"] == 3
        assert len(pulled) == 5
        records.close()

    def test_no_system_info(self, stack_traces, trace_events):
        with pytest.raises(AnalysisError, match="system info"):
            list(analyse(AsyncGraphAnalysis(), [], stack_traces, trace_events))

    def test_stack_tail_read_to_end(self, system_info, stack_traces, trace_events):
        """Stack records past the last joined one are still read."""
        pulled = []

        def stacks():
            for record in stack_traces:
                pulled.append(record.async_id)
                yield record
            pulled.append("end")

        nodes = run_graph(system_info, stacks(), trace_events[:2])
        assert [n["asyncId"] for n in nodes] == [2, 3]
        assert pulled == [2, 3, "end"]

    def test_stack_tail_error_raised(self, system_info, stack_traces, trace_events):
        def stacks():
            yield from stack_traces
            raise DecodeError("stacktrace: truncated frame")

        with pytest.raises(DecodeError, match="truncated frame"):
            run_graph(system_info, stacks(), trace_events[:2])


class TestIsUserFrame:

    def test_under_main_directory(self):
        assert is_user_frame("/srv/app/jobs/run.py", PurePath("/srv/app"))

    def test_outside_main_directory(self):
        assert not is_user_frame("/usr/lib/python3.12/asyncio/tasks.py", PurePath("/srv/app"))

    def test_installed_package_inside_project(self):
        """A virtualenv under the project directory is still third-party."""
        path = "/srv/app/.venv/lib/python3.12/site-packages/aiohttp/client.py"
        assert not is_user_frame(path, PurePath("/srv/app"))

    @pytest.mark.parametrize("name", ["", "<frozen runpy>", "<string>"])
    def test_synthetic_files(self, name):
        assert not is_user_frame(name, PurePath("/"))


# =============================================================================
# ERROR HANDLING AND RESOURCE RELEASE
# =============================================================================

class FailingEngine(AnalysisEngine):
    name = "failing"

    def consume(self, system_info, stack_traces, trace_events):
        yield {"ok": True}
        raise RuntimeError("boom")


class PassThroughEngine(AnalysisEngine):
    name = "pass-through"

    def consume(self, system_info, stack_traces, trace_events):
        for event in trace_events:
            yield {"asyncId": event.async_id}


class TestAnalyse:

    def test_engine_failure_wrapped(self, system_info, stack_traces, trace_events):
        records = analyse(FailingEngine(), [system_info], stack_traces, trace_events)
        assert next(records) == {"ok": True}
        with pytest.raises(AnalysisError, match="failing failed: boom") as exc:
            next(records)
        assert isinstance(exc.value.__cause__, RuntimeError)

    def test_decode_error_passes_through(self, system_info, stack_traces):
        def broken():
            raise DecodeError("traceevent: truncated")
            yield

        with pytest.raises(DecodeError, match="truncated"):
            list(analyse(PassThroughEngine(), [system_info], stack_traces, broken()))

    def test_inputs_closed_on_completion(self, system_info, stack_traces, trace_events):
        closed = []
        list(analyse(
            AsyncGraphAnalysis(),
            tracked([system_info], closed, "systeminfo"),
            tracked(stack_traces, closed, "stacktrace"),
            tracked(trace_events, closed, "traceevent"),
        ))
        assert sorted(closed) == ["stacktrace", "systeminfo", "traceevent"]

    def test_inputs_closed_on_early_stop(self, system_info, stack_traces, trace_events):
        """Closing the analysis stream releases every input."""
        closed = []
        records = analyse(
            AsyncGraphAnalysis(),
            tracked([system_info], closed, "systeminfo"),
            tracked(stack_traces, closed, "stacktrace"),
            tracked(trace_events, closed, "traceevent"),
        )
        next(records)
        records.close()
        assert sorted(closed) == ["stacktrace", "systeminfo", "traceevent"]

    def test_started_input_closed_on_failure(self, system_info, stack_traces, trace_events):
        class PullThenFail(AnalysisEngine):
            name = "pull-then-fail"

            def consume(self, system_info, stack_traces, trace_events):
                next(iter(trace_events))
                raise ValueError("bad")
                yield

        closed = []
        with pytest.raises(AnalysisError):
            list(analyse(PullThenFail(), [system_info], stack_traces,
                         tracked(trace_events, closed, "traceevent")))
        assert closed == ["traceevent"]


class TestRegistry:

    def test_default_engine(self):
        assert DEFAULT_ENGINE == "async-graph"
        assert isinstance(get_engine(), AsyncGraphAnalysis)

    def test_unknown_engine(self):
        with pytest.raises(ValueError, match="unknown analysis engine 'nope'"):
            get_engine("nope")

    def test_register(self):
        register_engine(PassThroughEngine)
        try:
            assert isinstance(get_engine("pass-through"), PassThroughEngine)
        finally:
            ENGINES.pop("pass-through", None)
