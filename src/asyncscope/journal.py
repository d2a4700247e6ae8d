"""
asyncscope JSONL Run Journal - Structured record of collect/visualize runs.

Writes timestamped JSON entries to <journal_dir>/asyncscope_YYYY-MM-DD.jsonl

Entry types:
- collect_start / collect_complete / collect_error
- visualize_start / visualize_complete / visualize_error

Disabled unless `journal: true` is set in config (or ASYNCSCOPE_JOURNAL=1).
"""

from __future__ import annotations
import json
import time
from dataclasses import dataclass, asdict
from datetime import datetime
from pathlib import Path
from typing import Optional


def get_journal_file(journal_dir: Path) -> Path:
    """Get today's journal file path, creating the directory if needed."""
    journal_dir.mkdir(parents=True, exist_ok=True)
    today = datetime.now().strftime("%Y-%m-%d")
    return journal_dir / f"asyncscope_{today}.jsonl"


@dataclass
class JournalEntry:
    """A structured journal entry."""
    ts: float  # Unix timestamp
    event: str
    command: Optional[list] = None
    pid: Optional[int] = None
    log_directory: Optional[str] = None
    output: Optional[str] = None
    outcome: Optional[str] = None
    duration_ms: Optional[float] = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    def to_json(self) -> str:
        d = {k: v for k, v in asdict(self).items() if v is not None}
        return json.dumps(d, default=str)


class RunJournal:
    """
    Append-only JSONL journal of asyncscope runs.

    A disabled journal accepts every call and writes nothing.
    """

    def __init__(self, journal_dir: Optional[Path] = None, enabled: bool = True):
        self.enabled = enabled and journal_dir is not None
        self.journal_file = get_journal_file(journal_dir) if self.enabled else None
        self._starts: dict[str, float] = {}

    @classmethod
    def from_config(cls, config) -> "RunJournal":
        return cls(config.journal_dir, enabled=config.journal_enabled)

    def _write(self, entry: JournalEntry) -> None:
        if not self.enabled:
            return
        with open(self.journal_file, "a", encoding="utf-8") as f:
            f.write(entry.to_json() + "\n")

    def _elapsed(self, phase: str) -> Optional[float]:
        start = self._starts.pop(phase, None)
        return (time.time() - start) * 1000 if start else None

    # =========================================================================
    # collect
    # =========================================================================

    def collect_start(self, command: list) -> None:
        self._starts["collect"] = time.time()
        self._write(JournalEntry(ts=time.time(), event="collect_start", command=list(command)))

    def collect_complete(self, pid: int, log_directory: Path, outcome: str) -> None:
        self._write(JournalEntry(
            ts=time.time(),
            event="collect_complete",
            pid=pid,
            log_directory=str(log_directory),
            outcome=outcome,
            duration_ms=self._elapsed("collect"),
        ))

    def collect_error(self, error: Exception, log_directory: Optional[Path] = None) -> None:
        self._write(JournalEntry(
            ts=time.time(),
            event="collect_error",
            log_directory=str(log_directory) if log_directory else None,
            duration_ms=self._elapsed("collect"),
            error=str(error),
            error_type=type(error).__name__,
        ))

    # =========================================================================
    # visualize
    # =========================================================================

    def visualize_start(self, log_directory: Path, output: Path) -> None:
        self._starts["visualize"] = time.time()
        self._write(JournalEntry(
            ts=time.time(),
            event="visualize_start",
            log_directory=str(log_directory),
            output=str(output),
        ))

    def visualize_complete(self, output: Path) -> None:
        self._write(JournalEntry(
            ts=time.time(),
            event="visualize_complete",
            output=str(output),
            duration_ms=self._elapsed("visualize"),
        ))

    def visualize_error(self, error: Exception) -> None:
        self._write(JournalEntry(
            ts=time.time(),
            event="visualize_error",
            duration_ms=self._elapsed("visualize"),
            error=str(error),
            error_type=type(error).__name__,
        ))
