"""
Process supervisor - run a target program under asyncscope instrumentation.

collect() launches the target with the instrumentation hook injected through
PYTHONPATH, forwards Ctrl+C to it while it runs, classifies how it ended and
moves the raw trace log into the run's log directory.

Usage:
    from asyncscope.collector import collect

    result = collect([sys.executable, "app.py"])
    print(result.log_directory, result.outcome)

Termination rules:
    exit code 0                 -> TerminationOutcome.EXITED
    SIGINT                      -> TerminationOutcome.INTERRUPTED
    exit code 3221225786 (win32) -> treated as SIGINT (STATUS_CONTROL_C_EXIT)
    anything else               -> AbnormalTermination
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from asyncscope.collector.paths import LoggingPaths, get_logging_paths
from asyncscope.collector.relocate import relocate_trace_log
from asyncscope.config import DEFAULT_TRACE_SOURCE, ScopeConfig, get_config
from asyncscope.errors import AbnormalTermination, CollectError, LaunchError
from asyncscope.journal import RunJournal

logger = logging.getLogger(__name__)


PACKAGE_DIR = Path(__file__).resolve().parent.parent
HOOK_DIR = PACKAGE_DIR / "instrument" / "hook"

# Lets the hook tell the launched process apart from its own children
SUPERVISOR_PID_ENV = "ASYNCSCOPE_SUPERVISOR_PID"

# Windows reports an uncaught Ctrl+C as STATUS_CONTROL_C_EXIT (0xC000013A)
WINDOWS_CTRL_C_EXIT = 3221225786


class TerminationOutcome(Enum):
    """How a successful run ended."""
    EXITED = "exited"            # exit code 0
    INTERRUPTED = "interrupted"  # SIGINT, forwarded or from the terminal


@dataclass(frozen=True)
class ProcessResult:
    """Exit status of the target. At most one field is set."""
    exit_code: Optional[int] = None
    signal: Optional[str] = None

    @classmethod
    def from_returncode(cls, returncode: int) -> ProcessResult:
        """Convert a Popen returncode (negative means killed by signal)."""
        if returncode < 0:
            try:
                name = signal.Signals(-returncode).name
            except ValueError:
                name = f"signal {-returncode}"
            return cls(signal=name)
        return cls(exit_code=returncode)


def classify_termination(
    result: ProcessResult,
    platform: str = sys.platform,
    log_directory: Optional[Path] = None,
) -> TerminationOutcome:
    """
    Decide whether the target ended successfully.

    Raises:
        AbnormalTermination: non-zero exit code or a signal other than SIGINT
    """
    if platform == "win32" and result.exit_code == WINDOWS_CTRL_C_EXIT:
        result = ProcessResult(signal="SIGINT")

    if result.exit_code == 0:
        return TerminationOutcome.EXITED
    if result.signal == "SIGINT":
        return TerminationOutcome.INTERRUPTED

    if result.exit_code is not None:
        message = f"process exited with exit code {result.exit_code}"
    else:
        message = f"process exited by signal {result.signal}"
    raise AbnormalTermination(message, result, log_directory)


# =============================================================================
# CANCELLATION
# =============================================================================

class CancellationToken:
    """
    One-shot cancellation flag.

    Callbacks registered with add_callback() run once, on the first cancel().
    A callback added after cancellation runs immediately.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback; returns a function that unregisters it."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return lambda: self._remove(callback)
        callback()
        return lambda: None

    def _remove(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)


class InterruptRelay:
    """
    Turn the first SIGINT received by this process into token.cancel().

    Installed on __enter__ and restored on __exit__. After the first interrupt
    the previous handler is put back, so a second Ctrl+C behaves normally.
    Signal handlers can only be set from the main thread; elsewhere the relay
    does nothing and cancellation is left to the token's owner.
    """

    def __init__(self, token: CancellationToken):
        self.token = token
        self._previous = None
        self._installed = False

    def _handle(self, signum, frame) -> None:
        self._restore()
        logger.info("Interrupt received, forwarding to target")
        self.token.cancel()

    def _restore(self) -> None:
        if self._installed:
            signal.signal(signal.SIGINT, self._previous)
            self._installed = False

    def __enter__(self) -> InterruptRelay:
        if threading.current_thread() is threading.main_thread():
            self._previous = signal.getsignal(signal.SIGINT)
            signal.signal(signal.SIGINT, self._handle)
            self._installed = True
        else:
            logger.debug("Not on the main thread, SIGINT relay not installed")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._restore()


def _forward_interrupt(proc: subprocess.Popen) -> None:
    """Send SIGINT to the target if it is still running."""
    if proc.poll() is not None:
        return
    if sys.platform == "win32":
        # The console delivers Ctrl+C to the whole process group already
        return
    try:
        proc.send_signal(signal.SIGINT)
    except ProcessLookupError:
        pass


# =============================================================================
# ENVIRONMENT INJECTION
# =============================================================================

@dataclass
class InstrumentationOptions:
    """
    How the target is instrumented.

    entries are prepended to env_var; trace_source is the fixed-name file the
    hook's tracer writes in the working directory.
    """
    env_var: str = "PYTHONPATH"
    entries: List[str] = field(default_factory=lambda: [str(HOOK_DIR), str(PACKAGE_DIR.parent)])
    trace_source: Path = Path(DEFAULT_TRACE_SOURCE)
    extra_env: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: ScopeConfig) -> InstrumentationOptions:
        return cls(
            trace_source=config.trace_source,
            extra_env={
                "ASYNCSCOPE_TRACE_SOURCE": str(config.trace_source),
                "ASYNCSCOPE_SAMPLE_STACK_LIMIT": str(config.sample_stack_limit),
            },
        )

    def child_environment(self, environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        """Copy of environ with the injected entries in front of env_var."""
        env = dict(os.environ if environ is None else environ)
        parts = [entry for entry in self.entries if entry]
        existing = env.get(self.env_var)
        if existing:
            parts.append(existing)
        if parts:
            env[self.env_var] = os.pathsep.join(parts)
        env.update(self.extra_env)
        env[SUPERVISOR_PID_ENV] = str(os.getpid())
        return env


# =============================================================================
# COLLECT
# =============================================================================

@dataclass(frozen=True)
class CollectResult:
    """Successful outcome of collect()."""
    log_directory: Path
    outcome: TerminationOutcome
    result: ProcessResult
    paths: LoggingPaths


def collect(
    command: Sequence[str],
    *,
    options: Optional[InstrumentationOptions] = None,
    token: Optional[CancellationToken] = None,
    config: Optional[ScopeConfig] = None,
    journal: Optional[RunJournal] = None,
) -> CollectResult:
    """
    Run command under instrumentation and return its log directory.

    Args:
        command: Program and arguments, e.g. [sys.executable, "app.py"]
        options: Environment injection settings (default: from config)
        token: Cancelling it forwards SIGINT to the target
        config: Configuration (default: get_config())
        journal: Run journal (default: from config)

    Raises:
        LaunchError: the program could not be started
        AbnormalTermination: non-zero exit or non-SIGINT signal
        RelocationError: the trace log could not be moved
    """
    command = list(command)
    if not command:
        raise ValueError("command must not be empty")

    config = config or get_config()
    options = options or InstrumentationOptions.from_config(config)
    journal = journal or RunJournal.from_config(config)
    token = token or CancellationToken()

    journal.collect_start(command)
    try:
        proc = subprocess.Popen(command, env=options.child_environment())
    except OSError as e:
        error = LaunchError(f"could not start {command[0]!r}: {e}")
        journal.collect_error(error)
        raise error from e

    paths = get_logging_paths(identifier=proc.pid)
    logger.info(f"Started {command[0]} (pid {proc.pid}), logging to {paths.root}")

    unregister = token.add_callback(lambda: _forward_interrupt(proc))
    try:
        with InterruptRelay(token):
            returncode = proc.wait()
    finally:
        unregister()

    result = ProcessResult.from_returncode(returncode)
    logger.debug(f"Target exited: {result}")

    try:
        outcome = classify_termination(result, log_directory=paths.root)
        relocate_trace_log(paths, options.trace_source)
    except CollectError as e:
        journal.collect_error(e, paths.root)
        raise

    journal.collect_complete(proc.pid, paths.root, outcome.value)
    logger.info(f"Collected {paths.root} ({outcome.value})")
    return CollectResult(
        log_directory=paths.root,
        outcome=outcome,
        result=result,
        paths=paths,
    )
