"""Keep one pipeline -> TSDB export per series in line with the data.

Stateless: every call re-derives the desired export from the batch and
pushes it, so calling it redundantly is harmless.
"""

import logging
from typing import Dict, Iterable, Optional, Sequence

from ..client.codes import ErrorCode
from ..client.pipeline_client import PipelineClient
from ..client.tsdb_client import TSDBClient
from ..core.errors import BackendError, ForwarderError, ReconciliationError
from ..schema.extractor import extract_schema, namespaced_key
from ..schema.models import ExportSpec, Metric, export_name
from .stats import WriteStats

LOG = logging.getLogger(__name__)

# Retention of series created while setting up an export
DEFAULT_SERIES_RETENTION = '7d'


def field_reference(series: str, key: str) -> str:
    """Reference to a pipeline repo field, as understood by exports."""
    return '#' + namespaced_key(series, key)


class ExportReconciler:
    """Creates or replaces the ``export_<series>_toTSDB`` routing objects."""

    def __init__(self, pipeline: PipelineClient, tsdb: TSDBClient, repo: str,
                 stats: Optional[WriteStats] = None):
        self.pipeline = pipeline
        self.tsdb = tsdb
        self.repo = repo
        self.stats = stats or WriteStats()

    def build_spec(self, series: str, tags: Iterable[str], fields: Iterable[str]) -> ExportSpec:
        return ExportSpec(
            dest_repo_name=self.repo,
            series_name=series,
            tags={tag: field_reference(series, tag) for tag in sorted(tags)},
            fields={name: field_reference(series, name) for name in sorted(fields)},
        )

    def _ensure_series(self, series: str) -> None:
        """Best effort: failures other than "already exists" are only logged."""
        try:
            self.tsdb.create_series(self.repo, series, DEFAULT_SERIES_RETENTION)
        except BackendError as e:
            if e.code is not ErrorCode.SERIES_EXISTS:
                LOG.warning(f"Create series {series} for repo {self.repo} failed: {e}")
                self.stats.record_reconciliation('create_series', False)
            return
        except ForwarderError as e:
            LOG.warning(f"Create series {series} for repo {self.repo} failed: {e}")
            self.stats.record_reconciliation('create_series', False)
            return
        LOG.info(f"Created series {series} (retention {DEFAULT_SERIES_RETENTION}) in repo {self.repo}")
        self.stats.record_reconciliation('create_series', True)

    def create_or_update_export(self, series: str, tags: Iterable[str], fields: Iterable[str]) -> ExportSpec:
        """
        Create the export for ``series``, or replace it if it already exists.

        The update is a full replacement: keys present in the previous
        definition but absent from ``tags``/``fields`` are dropped.

        Args:
            series: Series (measurement) name
            tags: Raw tag keys seen for the series
            fields: Raw field keys seen for the series

        Returns:
            The spec that was pushed

        Raises:
            ReconciliationError: if the export could not be created or updated
        """
        self._ensure_series(series)

        spec = self.build_spec(series, tags, fields)
        name = export_name(series)

        try:
            self.pipeline.create_export(self.repo, name, spec)
        except BackendError as e:
            if e.code is not ErrorCode.EXPORT_EXISTS:
                self.stats.record_reconciliation('create_export', False)
                raise ReconciliationError(f"create export {name} failed: {e}") from e
        except ForwarderError as e:
            self.stats.record_reconciliation('create_export', False)
            raise ReconciliationError(f"create export {name} failed: {e}") from e
        else:
            LOG.info(f"Created export {name} in repo {self.repo}")
            self.stats.record_reconciliation('create_export', True)
            return spec

        LOG.info(f"Export {name} already exists, updating")
        try:
            self.pipeline.update_export(self.repo, name, spec)
        except ForwarderError as e:
            self.stats.record_reconciliation('update_export', False)
            raise ReconciliationError(f"update export {name} failed: {e}") from e
        self.stats.record_reconciliation('update_export', True)
        return spec

    def reconcile(self, metrics: Sequence[Metric]) -> Dict[str, ReconciliationError]:
        """Reconcile the export of every series in ``metrics``.

        A failing series is logged and does not stop the others.

        Returns:
            Series name -> error, for the series that failed
        """
        failures = {}
        for series, keys in extract_schema(metrics).per_series.items():
            try:
                self.create_or_update_export(series, keys.tags, keys.fields)
            except ReconciliationError as e:
                LOG.error(f"Export reconciliation for series {series} failed: {e}")
                failures[series] = e
        return failures
