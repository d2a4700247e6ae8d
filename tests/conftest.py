"""
Pytest configuration and shared fixtures.
"""

import sys
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from asyncscope.collector.paths import LoggingPaths, get_logging_paths
from asyncscope.config import ScopeConfig
from asyncscope.formats import (
    StackFrame,
    StackTraceRecord,
    SystemInfoRecord,
    TraceEventRecord,
    encode_stack_trace,
    encode_system_info,
    encode_trace_events,
)


# =============================================================================
# ENVIRONMENT FIXTURES
# =============================================================================

@pytest.fixture
def chdir_tmp(tmp_path, monkeypatch):
    """Run the test from an empty temporary directory."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def config(tmp_path, monkeypatch):
    """Default configuration, isolated from ~/.asyncscope and ASYNCSCOPE_* vars."""
    for var in ("ASYNCSCOPE_TRACE_SOURCE", "ASYNCSCOPE_SAMPLE_STACK_LIMIT",
                "ASYNCSCOPE_CHUNK_SIZE", "ASYNCSCOPE_JOURNAL", "ASYNCSCOPE_JOURNAL_DIR"):
        monkeypatch.delenv(var, raising=False)
    return ScopeConfig(tmp_path / "no-such-config.yaml")


# =============================================================================
# TELEMETRY FIXTURES
# =============================================================================

@pytest.fixture
def app_dir(tmp_path):
    return tmp_path / "app"


@pytest.fixture
def system_info(app_dir):
    return SystemInfoRecord(
        pid=4242,
        python_version="3.12.1",
        platform="linux",
        main_directory=str(app_dir),
        argv=("python", str(app_dir / "server.py")),
        start_time=50.0,
    )


@pytest.fixture
def stack_traces(app_dir):
    return [
        StackTraceRecord(2, (
            StackFrame("main", str(app_dir / "server.py"), 12, 4),
            StackFrame("run", "/usr/lib/python3.12/asyncio/runners.py", 118, 8),
        )),
        StackTraceRecord(3, (
            StackFrame("fetch", "/venv/lib/python3.12/site-packages/client/http.py", 40, 0),
            StackFrame("handler", str(app_dir / "handlers.py"), 7, 2),
        )),
    ]


@pytest.fixture
def trace_events():
    return [
        TraceEventRecord("init", "Task", 2, 1, 100.0),
        TraceEventRecord("init", "Task", 3, 2, 110.0),
        TraceEventRecord("before", "Task", 3, None, 120.0),
        TraceEventRecord("after", "Task", 3, None, 140.0),
        TraceEventRecord("destroy", "Task", 3, None, 150.0),
        TraceEventRecord("destroy", "Task", 2, None, 200.0),
        TraceEventRecord("init", "Task", 4, 2, 210.0),
    ]


def write_log_dir(
    paths: LoggingPaths,
    system_info: SystemInfoRecord,
    stack_traces,
    trace_events,
) -> LoggingPaths:
    """Write a complete log directory with the production encoders."""
    paths.ensure_root()
    paths.systeminfo.write_bytes(encode_system_info(system_info))
    paths.stacktrace.write_bytes(b"".join(encode_stack_trace(r) for r in stack_traces))
    paths.traceevent.write_bytes(encode_trace_events(trace_events, pid=system_info.pid))
    return paths


@pytest.fixture
def log_dir(tmp_path, system_info, stack_traces, trace_events) -> LoggingPaths:
    """A well-formed log directory as collect() would leave it."""
    paths = get_logging_paths(identifier=system_info.pid, cwd=tmp_path)
    return write_log_dir(paths, system_info, stack_traces, trace_events)


# =============================================================================
# HELPERS
# =============================================================================

DATA_START = "module.exports = [\n"
DATA_END = "\n]\n;"


def extract_data_text(artifact: str) -> str:
    """Cut the embedded analysis data (a JSON array) out of an artifact."""
    start = artifact.index(DATA_START) + len("module.exports = ")
    end = artifact.index(DATA_END, start) + len("\n]\n")
    return artifact[start:end]
