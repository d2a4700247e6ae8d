"""
Artifact assembly: analysis records in, one self-contained HTML file out.

    records -> stringify -> ScriptBundle (as visualizer/data.json)
                                 |
    style.css, logo.svg  ---> StreamTemplate -> write_artifact(output)

Nothing is buffered whole: the records are serialized while the file is
being written.
"""

import html
from pathlib import Path
from typing import Any, Iterable, Iterator, Sequence, Union

from asyncscope.assembler.bundler import ScriptBundle
from asyncscope.assembler.stringify import DEFAULT_SEPARATOR, stringify
from asyncscope.assembler.template import HTML_TEMPLATE, StreamTemplate
from asyncscope.assembler.writer import write_artifact
from asyncscope.errors import AssemblyError
from asyncscope.streams import DEFAULT_CHUNK_SIZE, OwningStream, read_text_chunks

VISUALIZER_DIR = Path(__file__).resolve().parent.parent / "visualizer"
DATA_MODULE = VISUALIZER_DIR / "data.json"
SCRIPT_ENTRY = VISUALIZER_DIR / "main.js"
STYLE_PATH = VISUALIZER_DIR / "style.css"
LOGO_PATH = VISUALIZER_DIR / "logo.svg"


def read_asset(path: Union[str, Path], chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[str]:
    """Lazily read a text asset; read failures become AssemblyError."""
    try:
        yield from read_text_chunks(path, chunk_size)
    except (OSError, UnicodeDecodeError) as e:
        raise AssemblyError(f"cannot read asset {path}: {e}") from e


def _assets(paths: Sequence[Path], chunk_size: int) -> Iterator[str]:
    for path in paths:
        yield from read_asset(path, chunk_size)


def assemble(
    analysis_records: Iterable[Any],
    output_path: Union[str, Path],
    script_entry: Union[str, Path] = SCRIPT_ENTRY,
    style_path: Union[str, Path] = STYLE_PATH,
    asset_paths: Sequence[Union[str, Path]] = (LOGO_PATH,),
    *,
    data_module: Union[str, Path] = DATA_MODULE,
    separator: str = DEFAULT_SEPARATOR,
    title: str = "asyncscope",
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Path:
    """
    Build the artifact at output_path.

    Args:
        analysis_records: JSON-serializable records, in display order
        output_path: Destination HTML file
        script_entry: CommonJS entry point; requires data_module for the records
        style_path: Style sheet inlined into <style>
        asset_paths: Files inlined, in order, into the banner
        data_module: Path the records are exposed under inside the bundle
        separator: Text between serialized records (must contain one comma)

    Raises:
        DecodeError, AnalysisError: propagated from analysis_records
        AssemblyError: bundling, asset reading or writing failed
    """
    script_entry = Path(script_entry)
    bundle = ScriptBundle(basedir=script_entry.parent, no_parse=[data_module])
    bundle.require(stringify(analysis_records, separator=separator), file=data_module)
    bundle.add(script_entry)

    page = StreamTemplate(HTML_TEMPLATE).render(
        title=html.escape(title),
        style=read_asset(style_path, chunk_size),
        banner=_assets([Path(p) for p in asset_paths], chunk_size),
        script=bundle.bundle(),
    )
    return write_artifact(OwningStream(page, analysis_records), output_path)


__all__ = [
    "DATA_MODULE",
    "LOGO_PATH",
    "SCRIPT_ENTRY",
    "STYLE_PATH",
    "VISUALIZER_DIR",
    "ScriptBundle",
    "StreamTemplate",
    "assemble",
    "read_asset",
    "stringify",
    "write_artifact",
]
