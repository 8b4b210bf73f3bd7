"""Configuration for the forwarder adapters.

Settings can come from a YAML/JSON file, environment variables and command
line arguments, in increasing order of precedence.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import yaml

from .errors import ConfigError

LOG = logging.getLogger(__name__)

DEFAULT_TIMEOUT = '5s'
DEFAULT_REGION = 'nb'
DEFAULT_TSDB_URL = 'https://tsdb.qiniu.com'
DEFAULT_EXPORT_REFRESH_EVERY = 5

# Retention accepted by the TSDB backend: 1d .. 30d
RETENTION_PATTERN = re.compile(r'^([1-9]|[12][0-9]|30)d$')

_DURATION_PATTERN = re.compile(r'^(\d+(?:\.\d+)?)(ms|s|m|h)?$')
_DURATION_UNITS = {'ms': 0.001, 's': 1.0, 'm': 60.0, 'h': 3600.0}

# Environment variable -> config key
ENV_VARIABLES = {
    'PANDORA_URL': 'url',
    'PANDORA_REPO': 'repo',
    'PANDORA_AK': 'ak',
    'PANDORA_SK': 'sk',
    'PANDORA_TSDB_URL': 'tsdb_url',
}


def parse_duration(value: Any) -> Optional[float]:
    """Parse a duration such as "5s", "500ms" or "1m" into seconds.

    Bare numbers are taken as seconds. A zero duration returns None, which
    means "no deadline" for the HTTP client.

    Raises:
        ConfigError: if the value cannot be parsed
    """
    if isinstance(value, bool):
        raise ConfigError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        match = _DURATION_PATTERN.match(str(value).strip())
        if not match:
            raise ConfigError(f"invalid duration: {value!r}")
        seconds = float(match.group(1)) * _DURATION_UNITS[match.group(2) or 's']

    if seconds < 0:
        raise ConfigError(f"duration must not be negative: {value!r}")
    return seconds or None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)


@dataclass
class AdapterConfig:
    """Configuration of one adapter instance.

    Immutable once the adapter is connected. A timeout of "0s" disables the
    request deadline entirely, so a hung backend blocks the writer forever.
    """

    url: str = ''
    repo: str = ''
    ak: str = ''
    sk: str = ''

    auto_create_repo: bool = False     # pipeline variant
    auto_create_series: bool = False   # tsdb variant
    retention_policy: str = ''         # [1-30]d, used when creating series

    timeout: str = DEFAULT_TIMEOUT
    region: str = DEFAULT_REGION
    tsdb_url: str = DEFAULT_TSDB_URL

    # Run the export refresh after every Nth successful write, 0 disables
    export_refresh_every: int = DEFAULT_EXPORT_REFRESH_EVERY

    # Port for the prometheus self-metrics endpoint, 0 disables
    metrics_port: int = 0

    def __post_init__(self):
        self.auto_create_repo = _as_bool(self.auto_create_repo)
        self.auto_create_series = _as_bool(self.auto_create_series)
        self.timeout = str(self.timeout) if self.timeout is not None else DEFAULT_TIMEOUT
        self.retention_policy = self.retention_policy or ''

    @property
    def timeout_seconds(self) -> Optional[float]:
        """Request timeout in seconds, None when disabled."""
        return parse_duration(self.timeout)

    def validate(self) -> None:
        """Validate the configuration before connecting.

        Raises:
            ConfigError: on the first invalid setting found
        """
        validate_url(self.url, 'url')

        for name in ('repo', 'ak', 'sk'):
            if not getattr(self, name):
                raise ConfigError(f"{name} is required")

        if self.retention_policy and not RETENTION_PATTERN.match(self.retention_policy):
            raise ConfigError(f"retention_policy must be between 1d and 30d, got {self.retention_policy!r}")

        # Raises ConfigError on garbage
        parse_duration(self.timeout)

        if self.export_refresh_every < 0:
            raise ConfigError("export_refresh_every must not be negative")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AdapterConfig':
        """Build a config from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            LOG.warning(f"Ignoring unknown configuration keys: {unknown}")
        return cls(**{k: v for k, v in data.items() if k in known and v is not None})

    @classmethod
    def from_args(cls, args, settings: Optional[Dict[str, Any]] = None) -> 'AdapterConfig':
        """Create configuration from parsed command line arguments.

        Arguments that were given override values loaded from file/env.
        """
        merged: Dict[str, Any] = dict(settings or {})
        overrides = {
            'url': getattr(args, 'url', None),
            'repo': getattr(args, 'repo', None),
            'ak': getattr(args, 'ak', None),
            'sk': getattr(args, 'sk', None),
            'retention_policy': getattr(args, 'retention_policy', None),
            'timeout': getattr(args, 'timeout', None),
            'tsdb_url': getattr(args, 'tsdb_url', None),
            'metrics_port': getattr(args, 'metrics_port', None),
        }
        if getattr(args, 'auto_create', False):
            overrides['auto_create_repo'] = True
            overrides['auto_create_series'] = True
        merged.update({k: v for k, v in overrides.items() if v is not None})
        return cls.from_dict(merged)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a dictionary with credentials redacted, for logging."""
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data['sk'] = '[REDACTED]' if self.sk else ''
        return data


def validate_url(url: str, name: str = 'url') -> None:
    """Check that ``url`` parses and uses the http(s) scheme."""
    try:
        parsed = urlparse(url)
    except ValueError as e:
        raise ConfigError(f"error parsing config.{name}: {e}")
    if parsed.scheme not in ('http', 'https'):
        raise ConfigError(f"config.{name} scheme must be http(s), got {parsed.scheme!r}")
    if not parsed.netloc:
        raise ConfigError(f"config.{name} has no host: {url!r}")


def load_settings(config_file: Optional[str] = None, from_env: bool = True) -> Dict[str, Any]:
    """Load adapter settings from a YAML or JSON file and the environment.

    Environment variables win over the file.

    Args:
        config_file: Path to a .yaml/.yml/.json file
        from_env: Whether to read PANDORA_* environment variables

    Returns:
        Dictionary of raw settings suitable for AdapterConfig.from_dict()
    """
    settings: Dict[str, Any] = {}

    if config_file:
        settings.update(_load_file(config_file))

    if from_env:
        for env_name, key in ENV_VARIABLES.items():
            value = os.getenv(env_name)
            if value:
                settings[key] = value

    return settings


def _load_file(config_file: str) -> Dict[str, Any]:
    if not os.path.exists(config_file):
        raise ConfigError(f"Config file not found: {config_file}")

    with open(config_file, 'r', encoding='utf-8') as f:
        lowered = config_file.lower()
        try:
            if lowered.endswith('.yaml') or lowered.endswith('.yml'):
                config = yaml.safe_load(f)
            elif lowered.endswith('.json'):
                config = json.load(f)
            else:
                raise ConfigError(f"Unsupported config file format: {config_file}")
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigError(f"Failed to parse {config_file}: {e}")

    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ConfigError(f"{config_file} must contain a mapping at the top level")

    LOG.info(f"Loaded configuration from {config_file}")
    return config
