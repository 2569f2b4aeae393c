"""
Configuration management for scionlat.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import toml

from .errors import ConfigError


@dataclass
class ProbeConfig:
    """Measurement loop settings."""
    samples: int = 5
    max_attempts: int = 20
    timeout: float = 1.0  # seconds per attempt, 0 blocks forever

    @property
    def receive_timeout(self) -> Optional[float]:
        return self.timeout if self.timeout > 0 else None


@dataclass
class TransportConfig:
    """Datagram session settings."""
    recv_buffer: int = 2500
    mtu: int = 1280


@dataclass
class LoggingConfig:
    """Logging configuration settings."""
    level: str = "WARNING"
    file: str = ""
    max_size: int = 10
    backup_count: int = 5


@dataclass
class InfluxDBConfig:
    """InfluxDB export settings."""
    enabled: bool = False
    url: str = ""
    organization: str = ""
    token: str = ""
    bucket: str = ""


@dataclass
class Config:
    """Main configuration class."""
    probe: ProbeConfig = field(default_factory=ProbeConfig)
    transport: TransportConfig = field(default_factory=TransportConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    influxdb: InfluxDBConfig = field(default_factory=InfluxDBConfig)

    @classmethod
    def default(cls) -> 'Config':
        return cls()

    @classmethod
    def from_file(cls, config_path: Path) -> 'Config':
        """Load configuration from TOML file."""
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigError(f"Configuration file {config_path} not found")

        try:
            config_data = toml.load(config_path)
        except (toml.TomlDecodeError, OSError) as e:
            raise ConfigError(f"Failed to load configuration: {e}")

        return cls.from_dict(config_data)

    @classmethod
    def from_dict(cls, config_data: Dict[str, Any]) -> 'Config':
        """Build a configuration from parsed TOML data, filling in defaults."""
        probe = _section(config_data, 'probe', ProbeConfig, {
            'samples': int,
            'max_attempts': int,
            'timeout': (int, float),
        })
        transport = _section(config_data, 'transport', TransportConfig, {
            'recv_buffer': int,
            'mtu': int,
        })
        logging_config = _section(config_data, 'logging', LoggingConfig, {
            'level': str,
            'file': str,
            'max_size': int,
            'backup_count': int,
        })
        influxdb = _section(config_data, 'influxdb', InfluxDBConfig, {
            'enabled': bool,
            'url': str,
            'organization': str,
            'token': str,
            'bucket': str,
        })

        return cls(
            probe=probe,
            transport=transport,
            logging=logging_config,
            influxdb=influxdb
        )

    def validate(self) -> bool:
        """Validate configuration values."""
        if self.probe.samples < 1:
            raise ConfigError("probe.samples must be at least 1")

        if self.probe.max_attempts < self.probe.samples:
            raise ConfigError(
                f"probe.max_attempts ({self.probe.max_attempts}) must not be less "
                f"than probe.samples ({self.probe.samples})"
            )

        if self.probe.timeout < 0:
            raise ConfigError("probe.timeout must not be negative")

        if self.transport.recv_buffer < self.transport.mtu:
            raise ConfigError("transport.recv_buffer must hold at least one MTU")

        if self.influxdb.enabled and not (self.influxdb.url and self.influxdb.bucket):
            raise ConfigError("influxdb.url and influxdb.bucket are required when export is enabled")

        if self.logging.level.upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ConfigError(f"Unknown logging.level {self.logging.level!r}")

        return True


def _section(config_data: Dict[str, Any], name: str, section_cls, types: Dict[str, Any]):
    raw = config_data.get(name, {})
    if not isinstance(raw, dict):
        raise ConfigError(f"[{name}] must be a table")

    values = {}
    for key, value in raw.items():
        if key not in types:
            raise ConfigError(f"Unknown configuration key: {name}.{key}")
        expected = types[key]
        # bool is an int subclass; only accept it where a bool is expected
        if isinstance(value, bool) and expected is not bool:
            raise ConfigError(f"{name}.{key} has invalid type bool")
        if not isinstance(value, expected):
            raise ConfigError(f"{name}.{key} has invalid type {type(value).__name__}")
        values[key] = value

    return section_cls(**values)
