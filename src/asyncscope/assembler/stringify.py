"""
Streaming JSON array serialization.

    stringify(records) -> "[\n", rec0, ",\n", rec1, ..., "\n]\n"

Records are encoded one at a time as they arrive; the sequence is never
materialized. The output is meant to be embedded inside a <script> element,
so "</" is written as "<\\/" (still valid JSON, and parses to the same value).
"""

import json
from typing import Any, Callable, Iterable, Iterator

from asyncscope.streams import close_source

DEFAULT_SEPARATOR = ",\n"
OPENER = "[\n"
CLOSER = "\n]\n"


def script_safe_dumps(record: Any) -> str:
    return json.dumps(record, sort_keys=True).replace("</", "<\\/")


def stringify(
    records: Iterable[Any],
    separator: str = DEFAULT_SEPARATOR,
    stringifier: Callable[[Any], str] = script_safe_dumps,
) -> Iterator[str]:
    """Yield the JSON-array text of records, one chunk per record."""
    yield OPENER
    first = True
    try:
        for record in records:
            if first:
                first = False
                yield stringifier(record)
            else:
                yield separator + stringifier(record)
    finally:
        close_source(records)
    yield CLOSER
