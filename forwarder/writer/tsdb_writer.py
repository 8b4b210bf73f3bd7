"""
Pandora TSDB adapter.

Writes line protocol straight into a TSDB repo, creating missing series when
``auto_create_series`` is set.
"""

import logging
from typing import Dict, List, Sequence

from ..client.tsdb_client import TSDBClient
from ..core.config import AdapterConfig
from ..core.errors import ForwarderError
from ..schema.extractor import series_from_line_protocol
from ..schema.models import Metric, WriteOutcome
from .base import Writer
from .encoder import encode_line_protocol
from .submitter import WriteSubmitter

LOG = logging.getLogger(__name__)

SAMPLE_CONFIG = """\
# Configuration for PandoraTSDB server to send metrics to
output: pandora
url: "http://localhost:8086"   # required
## The target repo for metrics
repo: "telegraf"               # required
## Create missing series automatically
auto_create_series: false
## Retention of created series, between 1d and 30d
retention_policy: ""
## Write timeout, formatted as a duration string.
## Defaults to 5s. 0s means no timeout (not recommended).
timeout: "5s"
ak: "ACCESS_KEY"
sk: "SECRET_KEY"
"""


class TSDBWriter(Writer):
    """Adapter for the Pandora TSDB backend."""

    name = 'pandora'
    DESCRIPTION = 'Configuration for PandoraTSDB server to send metrics to'
    SAMPLE_CONFIG = SAMPLE_CONFIG

    RECOVERABLE = frozenset({WriteOutcome.MISSING_SERIES})

    def __init__(self, config: AdapterConfig):
        super().__init__(config)
        self.client = None
        self.submitter = None

    def _create_client(self) -> TSDBClient:
        timeout = self.config.timeout_seconds
        if timeout is None:
            LOG.warning("Timeout is 0s: backend calls have no deadline")
        return TSDBClient(self.config.url, self.config.ak, self.config.sk, timeout)

    def _build_clients(self) -> None:
        client = self._create_client()
        self.client = client
        self.submitter = WriteSubmitter(client.write, self.RECOVERABLE)

    def _clients(self) -> List:
        return [self.client] if self.client is not None else []

    def _write(self, metrics: Sequence[Metric]) -> None:
        buffer = encode_line_protocol(metrics)
        if not buffer:
            LOG.warning("No writable points in batch")
            return

        result = self.submitter.submit(self.config.repo, buffer)
        self.stats.record_write(result, len(metrics))

        if result.outcome is WriteOutcome.FATAL:
            raise result.error

        if result.outcome is WriteOutcome.MISSING_SERIES:
            if not self.config.auto_create_series:
                LOG.warning(f"auto_create_series is disabled, dropping batch for repo {self.config.repo}")
                return
            LOG.info("Series does not exist, start to create series")
            self.create_series(buffer)

    def create_series(self, buffer: bytes) -> Dict[str, Exception]:
        """
        Create every series named in ``buffer`` with the configured retention.

        Failures are logged per series and returned, never raised.
        """
        failures = {}
        for series in series_from_line_protocol(buffer):
            LOG.info(f"Create series: {series}, retention: {self.config.retention_policy or 'default'} for repo: {self.config.repo}")
            try:
                self.client.create_series(self.config.repo, series, self.config.retention_policy)
            except ForwarderError as e:
                LOG.error(f"Create series {series} failed: {e}")
                self.stats.record_reconciliation('create_series', False)
                failures[series] = e
            else:
                self.stats.record_reconciliation('create_series', True)
        return failures
