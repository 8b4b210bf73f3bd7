"""Data structures shared by the encoders, clients and reconcilers."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

# Value types understood by the pipeline repo schema
LONG = 'long'
FLOAT = 'float'
STRING = 'string'
BOOLEAN = 'boolean'

TIMESTAMP_KEY = 'timestamp'


@dataclass
class Metric:
    """A single collected metric point.

    Attributes:
        name: Series (measurement) name
        tags: Tag key -> string value
        fields: Field key -> int, float, str or bool value
        timestamp: Nanoseconds since the epoch, not unique across points
    """
    name: str
    tags: Dict[str, str] = field(default_factory=dict)
    fields: Dict[str, Any] = field(default_factory=dict)
    timestamp: int = 0


@dataclass
class SchemaEntry:
    """One key of a pipeline repo schema."""
    key: str
    value_type: str
    required: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {'key': self.key, 'valtype': self.value_type, 'required': self.required}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SchemaEntry':
        return cls(
            key=data['key'],
            value_type=data.get('valtype', STRING),
            required=bool(data.get('required', False)),
        )


# Ordered, keys unique within the list
RepoSchema = List[SchemaEntry]


@dataclass
class ExportSpec:
    """Routing of pipeline repo fields into a TSDB series.

    ``tags`` and ``fields`` map the destination key to a ``#<field>``
    reference into the pipeline repo.
    """
    dest_repo_name: str
    series_name: str
    tags: Dict[str, str] = field(default_factory=dict)
    fields: Dict[str, str] = field(default_factory=dict)
    timestamp: str = '#' + TIMESTAMP_KEY

    def to_dict(self) -> Dict[str, Any]:
        return {
            'destRepoName': self.dest_repo_name,
            'seriesName': self.series_name,
            'tags': dict(self.tags),
            'fields': dict(self.fields),
            'timestamp': self.timestamp,
        }


def export_name(series: str) -> str:
    """Deterministic name of the export routing ``series`` into the TSDB."""
    return f"export_{series}_toTSDB"


@dataclass
class SeriesKeys:
    """Raw (un-namespaced) tag and field keys seen for one series."""
    tags: set = field(default_factory=set)
    fields: set = field(default_factory=set)


@dataclass
class ExtractedSchema:
    """Schema information derived from one batch of metrics."""
    series: List[str] = field(default_factory=list)
    tag_keys: List[str] = field(default_factory=list)
    field_types: Dict[str, str] = field(default_factory=dict)
    per_series: Dict[str, SeriesKeys] = field(default_factory=dict)


class WriteOutcome(Enum):
    """Classification of one write attempt."""
    OK = "ok"
    MISSING_SERIES = "missing_series"
    MISSING_REPO = "missing_repo"
    SCHEMA_MISMATCH = "schema_mismatch"
    FATAL = "fatal"


@dataclass
class WriteResult:
    """Result of a submit: the outcome plus the error behind it, if any."""
    outcome: WriteOutcome
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.outcome is WriteOutcome.OK


class AdapterState(Enum):
    """Lifecycle of an adapter instance."""
    UNCONNECTED = "unconnected"
    CONNECTED = "connected"
    CLOSED = "closed"
