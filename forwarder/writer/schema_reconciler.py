"""Additive reconciliation of the pipeline repo schema.

Existing schema entries are never removed or retyped; only keys missing from
the repo are appended.
"""

import logging
from typing import List, Optional, Sequence

from ..client.codes import ErrorCode
from ..client.pipeline_client import PipelineClient
from ..client.tsdb_client import TSDBClient
from ..core.errors import BackendError, ForwarderError, ReconciliationError
from ..schema.extractor import extract_schema
from ..schema.models import LONG, STRING, TIMESTAMP_KEY, ExtractedSchema, Metric, RepoSchema, SchemaEntry
from .export_reconciler import ExportReconciler
from .stats import WriteStats

LOG = logging.getLogger(__name__)


def schema_delta(fetched: RepoSchema, extracted: ExtractedSchema) -> List[SchemaEntry]:
    """Entries to append to ``fetched`` so it covers ``extracted``.

    Tag keys come first (always "string"), then field keys with their
    inferred type, then ``timestamp`` (long). Keys already in the fetched
    schema are never repeated.
    """
    existing = {entry.key: entry.value_type for entry in fetched}

    working = dict(existing)
    for tag in extracted.tag_keys:
        working.setdefault(tag, STRING)
    for key, value_type in extracted.field_types.items():
        working.setdefault(key, value_type)
    working.setdefault(TIMESTAMP_KEY, LONG)

    for key in existing:
        del working[key]

    return [SchemaEntry(key=key, value_type=value_type) for key, value_type in working.items()]


class SchemaReconciler:
    """
    Brings the pipeline repo schema in line with a batch, creating the repo
    (and its TSDB twin) when it does not exist yet.

    Args:
        pipeline: Pipeline backend client
        tsdb: TSDB backend client
        repo: Repo name, shared by the pipeline and TSDB sides
        region: Region used when creating repos
        exports: Export reconciler run after every schema change
        stats: Optional stats sink
    """

    def __init__(self, pipeline: PipelineClient, tsdb: TSDBClient, repo: str, region: str,
                 exports: ExportReconciler, stats: Optional[WriteStats] = None):
        self.pipeline = pipeline
        self.tsdb = tsdb
        self.repo = repo
        self.region = region
        self.exports = exports
        self.stats = stats or WriteStats()

    def reconcile(self, metrics: Sequence[Metric]) -> None:
        """Reconcile the repo schema with ``metrics``.

        Raises:
            ReconciliationError: only when the TSDB repo could not be created
                while bootstrapping a missing repo
        """
        extracted = extract_schema(metrics)

        create_repo = False
        try:
            fetched = self.pipeline.get_repo(self.repo)
        except BackendError as e:
            if e.code is not ErrorCode.REPO_NOT_FOUND:
                LOG.error(f"Fetching schema of repo {self.repo} failed, skipping schema update: {e}")
                return
            LOG.info(f"Repo {self.repo} does not exist, it will be created")
            create_repo = True
            fetched = []
        except ForwarderError as e:
            LOG.error(f"Fetching schema of repo {self.repo} failed, skipping schema update: {e}")
            return

        delta = schema_delta(fetched, extracted)
        if create_repo:
            self._bootstrap(fetched + delta, metrics)
        else:
            self._update(fetched, delta, metrics)

    def _bootstrap(self, schema: RepoSchema, metrics: Sequence[Metric]) -> None:
        try:
            self.pipeline.create_repo(self.repo, self.region, schema)
        except ForwarderError as e:
            LOG.error(f"Create pipeline repo {self.repo} failed: {e}")
            self.stats.record_reconciliation('create_repo', False)
            return
        LOG.info(f"Created pipeline repo {self.repo} with {len(schema)} schema entries")
        self.stats.record_reconciliation('create_repo', True)

        try:
            self.tsdb.create_repo(self.repo, self.region)
        except ForwarderError as e:
            LOG.error(f"Create tsdb repo {self.repo} failed: {e}")
            self.stats.record_reconciliation('create_tsdb_repo', False)
            # The TSDB repo may already exist, route the series anyway
            self.exports.reconcile(metrics)
            raise ReconciliationError(f"create tsdb repo {self.repo} failed: {e}") from e
        LOG.info(f"Created tsdb repo {self.repo}")
        self.stats.record_reconciliation('create_tsdb_repo', True)

        self.exports.reconcile(metrics)

    def _update(self, fetched: RepoSchema, delta: List[SchemaEntry], metrics: Sequence[Metric]) -> None:
        if not delta:
            LOG.info(f"Schema of repo {self.repo} already covers this batch")
        else:
            LOG.info(f"Adding {[entry.key for entry in delta]} to schema of repo {self.repo}")
            try:
                self.pipeline.update_repo(self.repo, list(fetched) + delta)
            except ForwarderError as e:
                LOG.error(f"Update schema of repo {self.repo} failed: {e}")
                self.stats.record_reconciliation('update_repo', False)
            else:
                self.stats.record_reconciliation('update_repo', True)

        self.exports.reconcile(metrics)
