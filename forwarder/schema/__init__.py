"""Metric data model, line protocol input and schema extraction."""

from .extractor import extract_schema, infer_value_type, series_from_line_protocol, series_names
from .line_protocol import LineProtocolError, parse_line, parse_lines
from .models import (
    AdapterState, ExportSpec, ExtractedSchema, Metric, SchemaEntry,
    SeriesKeys, WriteOutcome, WriteResult, export_name,
)

__all__ = [
    'extract_schema', 'infer_value_type', 'series_from_line_protocol', 'series_names',
    'LineProtocolError', 'parse_line', 'parse_lines',
    'AdapterState', 'ExportSpec', 'ExtractedSchema', 'Metric', 'SchemaEntry',
    'SeriesKeys', 'WriteOutcome', 'WriteResult', 'export_name',
]
