"""Core configuration, logging and error types."""

from .config import AdapterConfig, load_settings, parse_duration
from .errors import (
    BackendError, BackendTransportError, ConfigError, EncodingError,
    ForwarderError, NotConnectedError, ReconciliationError,
)
from .logging_config import LoggingConfigurator

__all__ = [
    'AdapterConfig', 'load_settings', 'parse_duration',
    'BackendError', 'BackendTransportError', 'ConfigError', 'EncodingError',
    'ForwarderError', 'NotConnectedError', 'ReconciliationError',
    'LoggingConfigurator',
]
