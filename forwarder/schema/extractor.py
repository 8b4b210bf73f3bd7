"""Derive series names and schema keys from a batch of metrics.

Everything here is a pure function of its input.
"""

import re
from typing import Any, List, Sequence

from .models import (
    BOOLEAN, FLOAT, LONG, STRING,
    ExtractedSchema, Metric, SeriesKeys,
)


def infer_value_type(value: Any) -> str:
    """Map a native field value to a pipeline schema value type.

    Unknown types fall back to "string".
    """
    # bool is a subclass of int, test it first
    if isinstance(value, bool):
        return BOOLEAN
    if isinstance(value, int):
        return LONG
    if isinstance(value, float):
        return FLOAT
    return STRING


# Characters that would split a pipeline pair or line
_UNSAFE_KEY_CHARS = re.compile(r"[\s=]+")


def namespaced_key(series: str, key: str) -> str:
    """Key under which a series' tag or field is stored in the shared repo.

    Runs of whitespace and "=" are replaced by a single underscore.
    """
    return _UNSAFE_KEY_CHARS.sub("_", f"{series}_{key}")


def series_names(metrics: Sequence[Metric]) -> List[str]:
    """Distinct series names in first-seen order."""
    seen = {}
    for metric in metrics:
        seen.setdefault(metric.name, None)
    return list(seen)


def series_from_line_protocol(buffer: bytes) -> List[str]:
    """Extract series names from raw line protocol.

    Only lines carrying at least one tag (a comma after the measurement)
    yield a name. Order is first-seen, duplicates are dropped.

    Args:
        buffer: Newline separated line protocol

    Returns:
        List of series names
    """
    seen = {}
    for line in buffer.split(b'\n'):
        if not line:
            continue
        parts = line.split(b',')
        if len(parts) > 1:
            seen.setdefault(parts[0].decode('utf-8'), None)
    return list(seen)


def extract_schema(metrics: Sequence[Metric]) -> ExtractedSchema:
    """Collect series, namespaced tag keys and typed field keys of a batch.

    When a field shows up with different value types inside one batch the
    first observed type wins.
    """
    schema = ExtractedSchema()
    tag_keys = {}

    for metric in metrics:
        keys = schema.per_series.get(metric.name)
        if keys is None:
            keys = schema.per_series[metric.name] = SeriesKeys()
            schema.series.append(metric.name)

        for tag in metric.tags:
            tag_keys.setdefault(namespaced_key(metric.name, tag), None)
            keys.tags.add(tag)

        for name, value in metric.fields.items():
            schema.field_types.setdefault(namespaced_key(metric.name, name), infer_value_type(value))
            keys.fields.add(name)

    schema.tag_keys = list(tag_keys)
    return schema
