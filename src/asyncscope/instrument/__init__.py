"""
Instrumentation hook - runs inside the target process.

THIS CODE RUNS IN THE PROFILED PROGRAM. It is loaded by hook/sitecustomize.py
before the program's own code, when collect() puts the hook directory on
PYTHONPATH.

What it records:
- systeminfo: pid, interpreter, platform, program directory, argv
- stacktrace: the stack at every asyncio task creation
- trace events: init and destroy of every task and a before/after pair
  around each of its steps, written to the fixed-name file
  DEFAULT_TRACE_SOURCE in the working directory; collect() moves it into the
  log directory after the program exits

Only the process started directly by collect() records anything;
grandchildren inherit PYTHONPATH but see a different parent pid.
"""

import asyncio
import asyncio.base_events
import atexit
import collections.abc
import itertools
import os
import platform
import sys
import threading
import time
import traceback
from pathlib import Path
from typing import List, Optional

from asyncscope.collector.paths import LoggingPaths, get_logging_paths
from asyncscope.collector.supervisor import SUPERVISOR_PID_ENV
from asyncscope.config import DEFAULT_TRACE_SOURCE
from asyncscope.formats.records import (
    StackFrame,
    StackTraceRecord,
    SystemInfoRecord,
    TraceEventRecord,
)
from asyncscope.formats.stack_trace import encode_stack_trace
from asyncscope.formats.system_info import encode_system_info
from asyncscope.formats.trace_event import TraceEventWriter

ROOT_ASYNC_ID = 1
DEFAULT_STACK_LIMIT = 32
TASK_TYPE = "Task"

_HOOK_FILES = {os.path.normcase(os.path.abspath(__file__))}

_sampler: Optional["TaskSampler"] = None


def now_us() -> float:
    return time.monotonic_ns() / 1000


def _main_directory(argv: List[str]) -> str:
    """Directory of the script being run, or the working directory."""
    for arg in argv[1:]:
        if arg.endswith(".py") and os.path.exists(arg):
            return os.path.dirname(os.path.abspath(arg))
    return os.getcwd()


class TracedCoroutine(collections.abc.Coroutine):
    """
    Wraps a task's coroutine so every step the task takes is bracketed by
    before/after events. The event loop drives it through send() and throw().
    """

    def __init__(self, coro, sampler: "TaskSampler", async_id: int):
        self._coro = coro
        self._sampler = sampler
        self.async_id = async_id

    def _step(self, method, *args):
        self._sampler.on_step(self.async_id, "before")
        try:
            return method(*args)
        finally:
            self._sampler.on_step(self.async_id, "after")

    def send(self, value):
        return self._step(self._coro.send, value)

    def throw(self, *args):
        return self._step(self._coro.throw, *args)

    def close(self):
        return self._coro.close()

    def __await__(self):
        return self._coro.__await__()

    def __getattr__(self, name):
        # cr_code, cr_frame and __qualname__ for task reprs
        if name == "_coro":
            raise AttributeError(name)
        return getattr(self._coro, name)


class TaskSampler:
    """Records task lifecycles of the current process."""

    def __init__(self, paths: LoggingPaths, trace_source: Path, stack_limit: int):
        self.paths = paths
        self.stack_limit = stack_limit
        self.pid = os.getpid()
        self._counter = itertools.count(ROOT_ASYNC_ID + 1)
        self._lock = threading.Lock()
        self._original_create_task = None

        paths.ensure_root()
        self._stack_file = open(paths.stacktrace, "wb")
        self._trace = TraceEventWriter(open(trace_source, "w", encoding="utf-8"), pid=self.pid)

    def write_system_info(self) -> None:
        argv = list(getattr(sys, "orig_argv", None) or sys.argv)
        record = SystemInfoRecord(
            pid=self.pid,
            python_version=platform.python_version(),
            platform=sys.platform,
            main_directory=_main_directory(argv),
            argv=tuple(argv),
            start_time=now_us(),
        )
        with open(self.paths.systeminfo, "wb") as f:
            f.write(encode_system_info(record))

    def patch(self) -> None:
        original = asyncio.base_events.BaseEventLoop.create_task
        sampler = self

        def create_task(loop, coro, *args, **kwargs):
            try:
                traced = sampler.on_task_created(loop, coro)
            except Exception as e:
                sampler.disable(e)
                return original(loop, coro, *args, **kwargs)
            if traced is None:
                return original(loop, coro, *args, **kwargs)

            task = original(loop, traced, *args, **kwargs)
            async_id = traced.async_id
            task.add_done_callback(lambda _task: sampler.on_task_done(async_id))
            return task

        create_task.__wrapped__ = original
        self._original_create_task = original
        asyncio.base_events.BaseEventLoop.create_task = create_task

    def disable(self, error: Exception) -> None:
        """Stop recording; the program keeps running untouched."""
        self.unpatch()
        sys.stderr.write(f"asyncscope: task recording disabled: {error!r}\n")

    def unpatch(self) -> None:
        if self._original_create_task is not None:
            asyncio.base_events.BaseEventLoop.create_task = self._original_create_task
            self._original_create_task = None

    def _stack(self) -> tuple:
        summary = traceback.extract_stack(limit=self.stack_limit + 4)
        frames = [
            StackFrame(
                function_name=entry.name,
                file_name=entry.filename,
                line_number=entry.lineno or 0,
                column_number=getattr(entry, "colno", None) or 0,
            )
            for entry in reversed(summary)
            if os.path.normcase(os.path.abspath(entry.filename)) not in _HOOK_FILES
        ]
        return tuple(frames[:self.stack_limit])

    def _event(self, event: str, async_id: int, trigger: Optional[int] = None) -> None:
        self._trace.write(TraceEventRecord(
            event=event,
            type=TASK_TYPE,
            async_id=async_id,
            trigger_async_id=trigger,
            timestamp=now_us(),
        ), tid=threading.get_ident())

    def on_task_created(self, loop, coro) -> Optional[TracedCoroutine]:
        """
        Record the init event and stack for a task about to be created.

        Returns the wrapped coroutine, or None for objects asyncio will
        reject anyway.
        """
        if not asyncio.iscoroutine(coro):
            return None
        parent = asyncio.current_task(loop)
        trigger = ROOT_ASYNC_ID
        if parent is not None:
            trigger = getattr(parent.get_coro(), "async_id", ROOT_ASYNC_ID)
        frames = self._stack()

        with self._lock:
            async_id = next(self._counter)
            self._stack_file.write(encode_stack_trace(StackTraceRecord(async_id, frames)))

        # init goes out before the task exists: an eager task steps at once
        self._event("init", async_id, trigger)
        return TracedCoroutine(coro, self, async_id)

    def on_step(self, async_id: int, event: str) -> None:
        self._event(event, async_id)

    def on_task_done(self, async_id: int) -> None:
        self._event("destroy", async_id)

    def close(self) -> None:
        self.unpatch()
        with self._lock:
            if not self._stack_file.closed:
                self._stack_file.close()
        self._trace.close()


def install(environ=None) -> Optional[TaskSampler]:
    """
    Start recording in this process. Called once from sitecustomize.

    Returns the sampler, or None when this process is not the one collect()
    launched.
    """
    global _sampler
    if _sampler is not None:
        return _sampler

    environ = os.environ if environ is None else environ
    supervisor = environ.get(SUPERVISOR_PID_ENV)
    if supervisor is not None and supervisor != str(os.getppid()):
        return None

    trace_source = Path(environ.get("ASYNCSCOPE_TRACE_SOURCE", DEFAULT_TRACE_SOURCE))
    stack_limit = int(environ.get("ASYNCSCOPE_SAMPLE_STACK_LIMIT", DEFAULT_STACK_LIMIT))

    sampler = TaskSampler(get_logging_paths(identifier=os.getpid()), trace_source, stack_limit)
    sampler.write_system_info()
    sampler.patch()
    atexit.register(sampler.close)
    _sampler = sampler
    return sampler
