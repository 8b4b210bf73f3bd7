"""Parse InfluxDB line protocol into Metric objects.

Used by the CLI to read metrics produced by an upstream collector.

Format: measurement,tag1=value1,tag2=value2 field1=value1,field2=value2 timestamp
"""

import logging
import time
from typing import Any, Iterable, List, Tuple

from .models import Metric

LOG = logging.getLogger(__name__)


class LineProtocolError(ValueError):
    """A line could not be parsed."""

    def __init__(self, line_number: int, line: str, reason: str):
        super().__init__(f"line {line_number}: {reason}: {line!r}")
        self.line_number = line_number


def _split(text: str, sep: str, respect_quotes: bool = False) -> List[str]:
    """Split on unescaped ``sep``, leaving escapes in place."""
    parts = []
    current = []
    in_quotes = False
    i = 0
    while i < len(text):
        char = text[i]
        if char == '\\' and i + 1 < len(text):
            current.append(text[i:i + 2])
            i += 2
            continue
        if respect_quotes and char == '"':
            in_quotes = not in_quotes
        elif char == sep and not in_quotes:
            parts.append(''.join(current))
            current = []
            i += 1
            continue
        current.append(char)
        i += 1
    if in_quotes:
        raise ValueError("unterminated string")
    parts.append(''.join(current))
    return parts


def _unescape(text: str) -> str:
    for escaped, plain in (('\\,', ','), ('\\=', '='), ('\\ ', ' '), ('\\"', '"'), ('\\\\', '\\')):
        text = text.replace(escaped, plain)
    return text


def _split_pair(pair: str) -> Tuple[str, str]:
    """Split ``key=value`` on the first unescaped, unquoted equals sign."""
    pieces = _split(pair, '=', respect_quotes=True)
    if len(pieces) < 2 or not pieces[0]:
        raise ValueError(f"invalid key=value pair {pair!r}")
    return _unescape(pieces[0]), '='.join(pieces[1:])


def parse_field_value(raw: str) -> Any:
    """Convert a raw line protocol field value to a Python value."""
    if len(raw) >= 2 and raw[0] == '"' and raw[-1] == '"':
        return raw[1:-1].replace('\\"', '"').replace('\\\\', '\\')
    if raw in ('t', 'T', 'true', 'True', 'TRUE'):
        return True
    if raw in ('f', 'F', 'false', 'False', 'FALSE'):
        return False
    if raw.endswith('i') or raw.endswith('u'):
        return int(raw[:-1])
    return float(raw)


def parse_line(line: str, default_timestamp: int = 0, line_number: int = 1) -> Metric:
    """Parse a single line of line protocol.

    Args:
        line: Line without the trailing newline
        default_timestamp: Timestamp (ns) used when the line carries none
        line_number: Position of the line, for error messages

    Returns:
        Parsed Metric

    Raises:
        LineProtocolError: if the line is malformed
    """
    try:
        sections = [s for s in _split(line.strip(), ' ', respect_quotes=True) if s]
        if len(sections) < 2 or len(sections) > 3:
            raise ValueError("expected measurement, fields and optional timestamp")

        series_and_tags = _split(sections[0], ',')
        name = _unescape(series_and_tags[0])
        if not name:
            raise ValueError("missing measurement")

        tags = {}
        for pair in series_and_tags[1:]:
            key, value = _split_pair(pair)
            tags[key] = _unescape(value)

        fields = {}
        for pair in _split(sections[1], ',', respect_quotes=True):
            key, value = _split_pair(pair)
            fields[key] = parse_field_value(value)

        timestamp = int(sections[2]) if len(sections) == 3 else default_timestamp
    except ValueError as e:
        raise LineProtocolError(line_number, line, str(e))

    return Metric(name=name, tags=tags, fields=fields, timestamp=timestamp)


def parse_lines(lines: Iterable[str], strict: bool = False) -> List[Metric]:
    """Parse many lines, skipping blanks and comments.

    Lines without a timestamp all receive the time of the call. Malformed lines
    are logged and skipped, or raised when ``strict`` is set.
    """
    now = time.time_ns()
    metrics = []
    for number, line in enumerate(lines, start=1):
        line = line.rstrip('\r\n')
        if not line.strip() or line.lstrip().startswith('#'):
            continue
        try:
            metrics.append(parse_line(line, default_timestamp=now, line_number=number))
        except LineProtocolError as e:
            if strict:
                raise
            LOG.warning(f"Skipping malformed line protocol: {e}")
    return metrics
