"""Serialize metric batches into the backends' wire formats.

Pipeline format, one line per distinct timestamp::

    cpu_host=h1<TAB>cpu_value=1.5<TAB>mem_host=h1<TAB>mem_used=42<TAB>timestamp=1500000000000000000

TSDB format is plain InfluxDB line protocol, one line per point.
"""

import logging
from collections import defaultdict
from typing import Any, Dict, List, Sequence

from influxdb_client_3 import Point, WritePrecision

from ..core.errors import EncodingError
from ..schema.extractor import namespaced_key
from ..schema.models import TIMESTAMP_KEY, Metric

LOG = logging.getLogger(__name__)

PAIR_SEPARATOR = '\t'


def _pack(chunks: Sequence[bytes]) -> bytes:
    """Copy ``chunks`` into one buffer sized from their predicted lengths."""
    size = sum(len(chunk) for chunk in chunks)
    buffer = bytearray(size)
    offset = 0
    for chunk in chunks:
        end = offset + len(chunk)
        if end > size:
            raise EncodingError(f"serialized batch overflows predicted size {size}")
        buffer[offset:end] = chunk
        offset = end
    if offset != size or len(buffer) != size:
        raise EncodingError(f"serialized {offset} bytes, predicted {size}")
    return bytes(buffer)


def format_value(value: Any) -> str:
    """Render a tag or field value for the pipeline format.

    Whitespace inside strings is collapsed so tabs and newlines never reach
    the wire.
    """
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (int, float)):
        return str(value)
    return ' '.join(str(value).split())


def _pipeline_pairs(metric: Metric) -> bytes:
    pairs = []
    for key, value in metric.tags.items():
        pairs.append(f"{namespaced_key(metric.name, key)}={format_value(value)}{PAIR_SEPARATOR}")
    for key, value in metric.fields.items():
        pairs.append(f"{namespaced_key(metric.name, key)}={format_value(value)}{PAIR_SEPARATOR}")
    return ''.join(pairs).encode('utf-8')


def group_by_timestamp(metrics: Sequence[Metric]) -> Dict[int, List[Metric]]:
    """Group points sharing a timestamp, preserving input order inside a group."""
    groups: Dict[int, List[Metric]] = defaultdict(list)
    for metric in metrics:
        groups[metric.timestamp].append(metric)
    return groups


def encode_pipeline(metrics: Sequence[Metric]) -> bytes:
    """Encode a batch for the pipeline data API.

    All points with the same timestamp collapse into one line. Lines are
    emitted in ascending timestamp order.

    Raises:
        EncodingError: if the buffer does not match its predicted size
    """
    chunks = []
    groups = group_by_timestamp(metrics)
    for timestamp in sorted(groups):
        chunks.extend(_pipeline_pairs(metric) for metric in groups[timestamp])
        chunks.append(f"{TIMESTAMP_KEY}={timestamp}\n".encode('utf-8'))
    return _pack(chunks)


def decode_pipeline(buffer: bytes) -> List[Dict[str, str]]:
    """Parse pipeline format back into one ``{key: raw value}`` dict per line."""
    records = []
    for line in buffer.decode('utf-8').split('\n'):
        if not line:
            continue
        record = {}
        for pair in line.split(PAIR_SEPARATOR):
            if not pair:
                continue
            key, _, value = pair.partition('=')
            record[key] = value
        records.append(record)
    return records


def to_point(metric: Metric) -> Point:
    """Build an InfluxDB Point at nanosecond precision."""
    point = Point(metric.name)
    for key, value in metric.tags.items():
        point = point.tag(key, value)
    for key, value in metric.fields.items():
        point = point.field(key, value)
    return point.time(metric.timestamp, WritePrecision.NS)


def encode_line_protocol(metrics: Sequence[Metric]) -> bytes:
    """Encode a batch as line protocol for the TSDB points API.

    Points without any field cannot be represented and are skipped.

    Raises:
        EncodingError: if the buffer does not match its predicted size
    """
    chunks = []
    for metric in metrics:
        line = to_point(metric).to_line_protocol()
        if not line:
            LOG.warning(f"Skipping point without fields: {metric.name}")
            continue
        chunks.append(line.encode('utf-8') + b'\n')
    return _pack(chunks)
