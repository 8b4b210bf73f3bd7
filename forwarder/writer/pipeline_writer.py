"""
Pandora pipeline adapter.

Writes metrics into a pipeline repo and, when allowed, provisions the repo,
its schema and the per-series exports into the TSDB.
"""

import logging
from typing import List, Sequence, Tuple

from ..client.pipeline_client import PipelineClient
from ..client.tsdb_client import TSDBClient
from ..core.config import AdapterConfig, validate_url
from ..schema.models import Metric, WriteOutcome
from .base import Writer
from .encoder import encode_pipeline
from .export_reconciler import ExportReconciler
from .schema_reconciler import SchemaReconciler
from .submitter import WriteSubmitter

LOG = logging.getLogger(__name__)

SAMPLE_CONFIG = """\
# Configuration for Pandora Pipeline server to send metrics to
output: pipeline
url: "https://pipeline.qiniu.com"   # required
## The target repo for metrics
repo: "monitor"                     # required
## Create the repo and extend its schema with new fields automatically
auto_create_repo: false
## Write timeout, formatted as a duration string.
## Defaults to 5s. 0s means no timeout (not recommended).
timeout: "5s"
## Refresh the exports after every Nth successful write, 0 disables
export_refresh_every: 5
ak: "ACCESS_KEY"
sk: "SECRET_KEY"
"""


class ExportRefreshSchedule:
    """
    Counter based sampling of successful writes.

    ``due()`` is true on every ``every``-th call, so a value of 5 refreshes
    exports after 20% of the writes. Zero disables the refresh.
    """

    def __init__(self, every: int):
        self.every = every
        self.count = 0

    def due(self) -> bool:
        if self.every <= 0:
            return False
        self.count += 1
        if self.count >= self.every:
            self.count = 0
            return True
        return False


class PipelineWriter(Writer):
    """Adapter for the Pandora pipeline backend."""

    name = 'pipeline'
    DESCRIPTION = 'Configuration for Pipeline server to send metrics to'
    SAMPLE_CONFIG = SAMPLE_CONFIG

    RECOVERABLE = frozenset({WriteOutcome.MISSING_REPO, WriteOutcome.SCHEMA_MISMATCH})

    def __init__(self, config: AdapterConfig):
        super().__init__(config)
        self.pipeline = None
        self.tsdb = None
        self.submitter = None
        self.exports = None
        self.schema = None
        self.refresh_schedule = ExportRefreshSchedule(config.export_refresh_every)

    def _create_clients(self) -> Tuple[PipelineClient, TSDBClient]:
        validate_url(self.config.tsdb_url, 'tsdb_url')
        timeout = self.config.timeout_seconds
        if timeout is None:
            LOG.warning("Timeout is 0s: backend calls have no deadline")

        pipeline = PipelineClient(self.config.url, self.config.ak, self.config.sk, timeout)
        tsdb = TSDBClient(self.config.tsdb_url, self.config.ak, self.config.sk, timeout)
        return pipeline, tsdb

    def _build_clients(self) -> None:
        pipeline, tsdb = self._create_clients()
        exports = ExportReconciler(pipeline, tsdb, self.config.repo, self.stats)

        self.pipeline = pipeline
        self.tsdb = tsdb
        self.exports = exports
        self.schema = SchemaReconciler(pipeline, tsdb, self.config.repo, self.config.region, exports, self.stats)
        self.submitter = WriteSubmitter(pipeline.write, self.RECOVERABLE)

    def _clients(self) -> List:
        return [c for c in (self.pipeline, self.tsdb) if c is not None]

    def _write(self, metrics: Sequence[Metric]) -> None:
        buffer = encode_pipeline(metrics)
        LOG.debug(f"Posting {len(metrics)} points ({len(buffer)} bytes) to repo {self.config.repo}")

        result = self.submitter.submit(self.config.repo, buffer)
        self.stats.record_write(result, len(metrics))

        if result.outcome is WriteOutcome.FATAL:
            raise result.error

        if result.outcome in self.RECOVERABLE:
            if not self.config.auto_create_repo:
                # Not retried: the upstream buffer would back up forever
                LOG.warning(f"auto_create_repo is disabled, dropping batch for repo {self.config.repo}")
                return
            LOG.info(f"Reconciling schema of repo {self.config.repo} ({result.outcome.value})")
            self.schema.reconcile(metrics)
            return

        # Only clean writes count, not a conflict drop
        if result.error is None and self.refresh_schedule.due():
            LOG.debug("Running periodic export refresh")
            self.exports.reconcile(metrics)
