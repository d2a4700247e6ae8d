"""
visualize() - turn a collected log directory into an HTML artifact.

    systeminfo  -> SystemInfoDecoder  \\
    stacktrace  -> StackTraceDecoder   } -> analysis engine -> assemble -> output
    traceevent  -> TraceEventDecoder  /

Every stage is a generator pulled by the artifact writer. The first error
anywhere unwinds the whole chain and is raised to the caller; no artifact is
left at output_file in that case.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from asyncscope.analysis import AnalysisEngine, analyse, get_engine
from asyncscope.assembler import assemble
from asyncscope.collector.paths import get_logging_paths
from asyncscope.config import ScopeConfig, get_config
from asyncscope.errors import AsyncScopeError
from asyncscope.formats import StackTraceDecoder, SystemInfoDecoder, TraceEventDecoder
from asyncscope.journal import RunJournal

logger = logging.getLogger(__name__)


def default_output_path(data_dir: Union[str, Path]) -> Path:
    """<data_dir>.html next to the log directory."""
    data_dir = Path(data_dir).absolute()
    return data_dir.with_name(data_dir.name + ".html")


def visualize(
    data_dir: Union[str, Path],
    output_file: Optional[Union[str, Path]] = None,
    *,
    engine: Optional[AnalysisEngine] = None,
    config: Optional[ScopeConfig] = None,
    journal: Optional[RunJournal] = None,
) -> Path:
    """
    Decode, analyse and assemble the logs in data_dir into output_file.

    Raises:
        DecodeError: a log is missing, malformed or truncated
        AnalysisError: the engine failed
        AssemblyError: bundling or writing failed
    """
    config = config or get_config()
    engine = engine or get_engine()
    journal = journal or RunJournal.from_config(config)
    output_file = Path(output_file) if output_file is not None else default_output_path(data_dir)

    paths = get_logging_paths(path=data_dir)
    logger.info(f"Visualizing {paths.root} -> {output_file}")
    journal.visualize_start(paths.root, output_file)

    chunk_size = config.chunk_size
    system_info = SystemInfoDecoder().decode_file(paths.systeminfo, chunk_size)
    stack_traces = StackTraceDecoder().decode_file(paths.stacktrace, chunk_size)
    trace_events = TraceEventDecoder().decode_file(paths.traceevent, chunk_size)

    records = analyse(engine, system_info, stack_traces, trace_events)

    try:
        assemble(
            records,
            output_file,
            separator=config.separator,
            title=config.title,
            chunk_size=chunk_size,
        )
    except AsyncScopeError as e:
        journal.visualize_error(e)
        raise

    journal.visualize_complete(output_file)
    return output_file
