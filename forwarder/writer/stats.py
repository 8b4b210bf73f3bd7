"""Self-metrics of an adapter, kept in a private prometheus registry."""

import logging
import time
from typing import Any, Dict

from prometheus_client import CollectorRegistry, Counter, start_http_server

from ..schema.models import WriteOutcome, WriteResult

LOG = logging.getLogger(__name__)

# Label used when a field type conflict made the backend drop points
DROPPED = 'dropped'


class WriteStats:
    """
    Tracks write outcomes and reconciliation actions of one adapter.

    Each instance owns its own CollectorRegistry so several adapters (and
    tests) can live in one process without clashing metric names.
    """

    def __init__(self, adapter: str = 'forwarder'):
        self.adapter = adapter
        self.registry = CollectorRegistry()
        self.start = time.time_ns()
        self.exporter_port = None

        self.writes = Counter(
            'forwarder_writes', 'Write attempts by outcome',
            ['adapter', 'outcome'], registry=self.registry,
        )
        self.points = Counter(
            'forwarder_points', 'Points submitted to the backend',
            ['adapter'], registry=self.registry,
        )
        self.reconciliations = Counter(
            'forwarder_reconciliations', 'Backend create/update calls by action and result',
            ['adapter', 'action', 'result'], registry=self.registry,
        )

    def record_write(self, result: WriteResult, points: int) -> None:
        label = result.outcome.value
        if result.outcome is WriteOutcome.OK and result.error is not None:
            label = DROPPED
        self.writes.labels(adapter=self.adapter, outcome=label).inc()
        self.points.labels(adapter=self.adapter).inc(points)

    def record_reconciliation(self, action: str, success: bool) -> None:
        result = 'success' if success else 'failure'
        self.reconciliations.labels(adapter=self.adapter, action=action, result=result).inc()

    def _sample(self, name: str, **labels) -> float:
        value = self.registry.get_sample_value(name, dict(adapter=self.adapter, **labels))
        return value or 0.0

    def writes_for(self, outcome: str) -> int:
        return int(self._sample('forwarder_writes_total', outcome=outcome))

    def reconciliations_for(self, action: str, success: bool = True) -> int:
        result = 'success' if success else 'failure'
        return int(self._sample('forwarder_reconciliations_total', action=action, result=result))

    def elapsed_ms(self) -> int:
        """Get elapsed time since creation in milliseconds."""
        return (time.time_ns() - self.start) // 1_000_000

    def get_stats(self) -> Dict[str, Any]:
        """Get write statistics as a plain dictionary."""
        outcomes = [outcome.value for outcome in WriteOutcome] + [DROPPED]
        return {
            'writes': {outcome: self.writes_for(outcome) for outcome in outcomes},
            'points': int(self._sample('forwarder_points_total')),
            'elapsed_ms': self.elapsed_ms(),
        }

    def start_exporter(self, port: int) -> None:
        """Expose the registry over HTTP on ``port``."""
        if self.exporter_port is not None:
            return
        start_http_server(port, registry=self.registry)
        self.exporter_port = port
        LOG.info(f"Prometheus self-metrics for {self.adapter} available on port {port}")
