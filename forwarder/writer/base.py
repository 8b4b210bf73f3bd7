"""
Base writer interface shared by the Pandora adapters.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Sequence

from ..core.config import AdapterConfig
from ..core.errors import ConfigError, NotConnectedError
from ..schema.models import AdapterState, Metric
from .stats import WriteStats

# Initialize logger
LOG = logging.getLogger(__name__)


class Writer(ABC):
    """
    Base class for all adapters.

    Lifecycle is UNCONNECTED -> CONNECTED -> CLOSED. An instance is not safe
    for concurrent ``write`` calls; the hosting framework must serialize them.
    """

    # Registry name of the adapter
    name = ''

    DESCRIPTION = ''
    SAMPLE_CONFIG = ''

    def __init__(self, config: AdapterConfig):
        self.config = config
        self.state = AdapterState.UNCONNECTED
        self.stats = WriteStats(self.name)

    def connect(self) -> None:
        """
        Validate the configuration and build the backend clients.

        On failure the adapter stays UNCONNECTED and the error is raised.

        Raises:
            ConfigError: if the configuration is invalid or the metrics
                port cannot be bound
        """
        if self.state is AdapterState.CONNECTED:
            return

        self.config.validate()
        self._build_clients()

        if self.config.metrics_port:
            try:
                self.stats.start_exporter(self.config.metrics_port)
            except OSError as e:
                for client in self._clients():
                    client.close()
                raise ConfigError(f"cannot serve metrics on port {self.config.metrics_port}: {e}") from e

        self.state = AdapterState.CONNECTED
        LOG.info(f"{type(self).__name__} connected: {self.config.url} -> {self.config.repo}")

    @abstractmethod
    def _build_clients(self) -> None:
        """Create backend clients; must not leave partial state on failure."""

    def write(self, metrics: Sequence[Metric]) -> None:
        """
        Forward one batch of metrics.

        Args:
            metrics: Points to write

        Raises:
            NotConnectedError: if called before connect() or after close()
            BackendTransportError, BackendError, EncodingError: on fatal failures
        """
        if self.state is not AdapterState.CONNECTED:
            raise NotConnectedError(f"{type(self).__name__} is {self.state.value}, cannot write")
        if not metrics:
            LOG.debug("Empty batch, nothing to write")
            return
        self._write(metrics)

    @abstractmethod
    def _write(self, metrics: Sequence[Metric]) -> None:
        pass

    def _clients(self) -> List:
        return []

    def close(self) -> None:
        """
        Close the adapter. Nothing is flushed: writes are synchronous.
        """
        for client in self._clients():
            client.close()
        self.state = AdapterState.CLOSED

    def sample_config(self) -> str:
        return self.SAMPLE_CONFIG

    def description(self) -> str:
        return self.DESCRIPTION
