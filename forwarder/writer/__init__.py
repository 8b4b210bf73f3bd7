"""Writer module for the Pandora forwarder.

Provides the pipeline and TSDB adapters plus the pieces they are built from.
"""

from .base import Writer
from .export_reconciler import ExportReconciler
from .factory import WriterRegistry, default_registry
from .pipeline_writer import ExportRefreshSchedule, PipelineWriter
from .schema_reconciler import SchemaReconciler, schema_delta
from .stats import WriteStats
from .submitter import WriteSubmitter
from .tsdb_writer import TSDBWriter

__all__ = [
    'Writer', 'ExportReconciler', 'WriterRegistry', 'default_registry',
    'ExportRefreshSchedule', 'PipelineWriter', 'SchemaReconciler', 'schema_delta',
    'WriteStats', 'WriteSubmitter', 'TSDBWriter',
]
