"""
Analysis stage: decoded telemetry in, JSON-serializable records out.

Engines are looked up by name so an alternative can be plugged in without
touching the pipeline:

    engine = get_engine("async-graph")
    records = analyse(engine, system_info, stack_traces, trace_events)
"""

from typing import Dict, Type

from asyncscope.analysis.engine import AnalysisEngine, AnalysisRecord, analyse
from asyncscope.analysis.graph import AsyncGraphAnalysis, is_user_frame

DEFAULT_ENGINE = AsyncGraphAnalysis.name

ENGINES: Dict[str, Type[AnalysisEngine]] = {
    AsyncGraphAnalysis.name: AsyncGraphAnalysis,
}


def register_engine(engine_cls: Type[AnalysisEngine]) -> Type[AnalysisEngine]:
    """Make an engine available to get_engine() and the CLI. Usable as a decorator."""
    ENGINES[engine_cls.name] = engine_cls
    return engine_cls


def get_engine(name: str = DEFAULT_ENGINE) -> AnalysisEngine:
    try:
        return ENGINES[name]()
    except KeyError:
        raise ValueError(f"unknown analysis engine {name!r} (known: {', '.join(sorted(ENGINES))})")


__all__ = [
    "AnalysisEngine",
    "AnalysisRecord",
    "AsyncGraphAnalysis",
    "DEFAULT_ENGINE",
    "ENGINES",
    "analyse",
    "get_engine",
    "is_user_frame",
    "register_engine",
]
