"""
Writer registry: maps adapter names to constructors.

The table is built explicitly and handed to the hosting process; nothing is
registered at import time.
"""

import logging
from typing import Callable, Dict, List

from ..core.config import AdapterConfig
from .base import Writer
from .pipeline_writer import PipelineWriter
from .tsdb_writer import TSDBWriter

# Initialize logger
LOG = logging.getLogger(__name__)

WriterConstructor = Callable[[AdapterConfig], Writer]


class WriterRegistry:
    """
    Name -> constructor table for adapters.
    """

    def __init__(self):
        self._constructors: Dict[str, WriterConstructor] = {}

    def register(self, name: str, constructor: WriterConstructor) -> None:
        if name in self._constructors:
            raise ValueError(f"Writer already registered: {name}")
        self._constructors[name] = constructor

    def names(self) -> List[str]:
        return sorted(self._constructors)

    def get(self, name: str) -> WriterConstructor:
        try:
            return self._constructors[name]
        except KeyError:
            raise ValueError(f"Unsupported output: {name} (known: {', '.join(self.names())})") from None

    def create(self, name: str, config: AdapterConfig) -> Writer:
        """
        Create an unconnected writer.

        Args:
            name: Registered adapter name
            config: Adapter configuration

        Returns:
            Writer instance, not yet connected
        """
        constructor = self.get(name)
        LOG.info(f"Creating {name} writer for repo {config.repo}")
        return constructor(config)


def default_registry() -> WriterRegistry:
    """Registry with the built-in ``pipeline`` and ``pandora`` adapters."""
    registry = WriterRegistry()
    registry.register(PipelineWriter.name, PipelineWriter)
    registry.register(TSDBWriter.name, TSDBWriter)
    return registry
