"""
Stream template - a fixed text template whose fields are text streams.

    page = StreamTemplate("<style>{style}</style><script>{script}</script>")
    for chunk in page.render(style=read_text_chunks(css), script=bundle.bundle()):
        ...

Fields are filled in template order, each stream is consumed only when
rendering reaches it, and a stream that fails stops the render with its
error. Literal braces are written as {{ and }}.
"""

from string import Formatter
from typing import Iterable, Iterator, List, Optional, Tuple

from asyncscope.errors import AssemblyError
from asyncscope.streams import close_source

HTML_TEMPLATE = """<!DOCTYPE html>
<meta charset="utf8">
<title>{title}</title>
<style>{style}</style>
<div id="banner">{banner}</div>
<div id="main"></div>
<script>{script}</script>
"""


class StreamTemplate:
    """Parsed template: literal text interleaved with named fields."""

    def __init__(self, text: str):
        self._parts: List[Tuple[str, Optional[str]]] = []
        for literal, field_name, format_spec, conversion in Formatter().parse(text):
            if field_name is not None and (not field_name or format_spec or conversion):
                raise ValueError(f"template fields must be plain names, got {field_name!r}")
            self._parts.append((literal, field_name))

    @property
    def fields(self) -> List[str]:
        return [name for _, name in self._parts if name is not None]

    def render(self, **streams: Iterable[str]) -> Iterator[str]:
        missing = [name for name in self.fields if name not in streams]
        if missing:
            raise AssemblyError(f"template fields without a stream: {', '.join(missing)}")

        try:
            for literal, name in self._parts:
                if literal:
                    yield literal
                if name is not None:
                    stream = streams[name]
                    if isinstance(stream, str):
                        yield stream
                    else:
                        yield from stream
        finally:
            for stream in streams.values():
                close_source(stream)
