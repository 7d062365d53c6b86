"""
Centralized configuration for the netbuf hotplug helper.

Supports loading from a YAML file, environment variables, and defaults.
Environment variables win over values read from the file.
"""

from dataclasses import dataclass, field
from enum import Enum
import logging
import os
from typing import Any, Dict, Optional

import yaml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def _env_flag(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).lower() == 'true'


class LogLevel(Enum):
    """Log levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass
class PoolConfig:
    """Buffering device pool and store layout."""
    device_prefix: str = "ifb"
    domain_root: str = "/local/domain"
    netbuf_root_template: str = "/libxl/{domid}/remus/netbuf"

    @classmethod
    def from_env(cls, base: Optional['PoolConfig'] = None) -> 'PoolConfig':
        """Load pool config from environment variables."""
        base = base or cls()
        return cls(
            device_prefix=os.getenv('NETBUF_DEVICE_PREFIX', base.device_prefix),
            domain_root=os.getenv('NETBUF_DOMAIN_ROOT', base.domain_root),
            netbuf_root_template=os.getenv('NETBUF_ROOT_TEMPLATE', base.netbuf_root_template),
        )


@dataclass
class LockConfig:
    """Host lock guarding device selection."""
    lock_dir: str = "/var/run/xen-hotplug"
    lock_name: str = "pickifb"
    timeout: float = 60.0
    poll_interval: float = 0.1

    @classmethod
    def from_env(cls, base: Optional['LockConfig'] = None) -> 'LockConfig':
        """Load lock config from environment variables."""
        base = base or cls()
        return cls(
            lock_dir=os.getenv('NETBUF_LOCK_DIR', base.lock_dir),
            lock_name=os.getenv('NETBUF_LOCK_NAME', base.lock_name),
            timeout=float(os.getenv('NETBUF_LOCK_TIMEOUT', base.timeout)),
            poll_interval=float(os.getenv('NETBUF_LOCK_POLL_INTERVAL', base.poll_interval)),
        )


@dataclass
class QueueConfig:
    """Plug qdisc and redirect filter settings."""
    capacity_bytes: int = 10000000
    filter_priority: int = 10

    @classmethod
    def from_env(cls, base: Optional['QueueConfig'] = None) -> 'QueueConfig':
        """Load queue config from environment variables."""
        base = base or cls()
        return cls(
            capacity_bytes=int(os.getenv('NETBUF_QUEUE_CAPACITY', base.capacity_bytes)),
            filter_priority=int(os.getenv('NETBUF_FILTER_PRIORITY', base.filter_priority)),
        )


@dataclass
class CommandConfig:
    """External command execution."""
    timeout: float = 30.0
    check_environment: bool = True

    @classmethod
    def from_env(cls, base: Optional['CommandConfig'] = None) -> 'CommandConfig':
        """Load command config from environment variables."""
        base = base or cls()
        return cls(
            timeout=float(os.getenv('NETBUF_COMMAND_TIMEOUT', base.timeout)),
            check_environment=_env_flag('NETBUF_CHECK_ENVIRONMENT', base.check_environment),
        )


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: LogLevel = LogLevel.INFO
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_path: Optional[str] = None
    max_file_size_mb: int = 100
    backup_count: int = 5

    @classmethod
    def from_env(cls, base: Optional['LoggingConfig'] = None) -> 'LoggingConfig':
        """Load logging config from environment variables."""
        base = base or cls()
        return cls(
            level=LogLevel(os.getenv('NETBUF_LOG_LEVEL', base.level.value).lower()),
            format=os.getenv('NETBUF_LOG_FORMAT', base.format),
            file_path=os.getenv('NETBUF_LOG_FILE', base.file_path),
            max_file_size_mb=int(os.getenv('NETBUF_LOG_MAX_SIZE_MB', base.max_file_size_mb)),
            backup_count=int(os.getenv('NETBUF_LOG_BACKUP_COUNT', base.backup_count)),
        )


@dataclass
class NetbufConfig:
    """Main configuration class."""
    pool: PoolConfig = field(default_factory=PoolConfig)
    lock: LockConfig = field(default_factory=LockConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    command: CommandConfig = field(default_factory=CommandConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    config_file: Optional[str] = None

    @classmethod
    def load(cls, path: Optional[str] = None) -> 'NetbufConfig':
        """
        Load configuration from YAML file and/or environment variables.

        Args:
            path: Path to YAML config file (optional)

        Returns:
            NetbufConfig instance with loaded settings
        """
        config = cls()

        if path and os.path.exists(path):
            try:
                with open(path, 'r') as f:
                    yaml_data = yaml.safe_load(f)
            except (OSError, yaml.YAMLError) as e:
                raise ConfigurationError(f"Failed to load config from {path}: {e}") from e

            if yaml_data:
                config = cls._from_dict(yaml_data)
            config.config_file = path
        elif path:
            logger.warning(f"Config file {path} not found, using defaults and environment")

        try:
            config.pool = PoolConfig.from_env(config.pool)
            config.lock = LockConfig.from_env(config.lock)
            config.queue = QueueConfig.from_env(config.queue)
            config.command = CommandConfig.from_env(config.command)
            config.logging = LoggingConfig.from_env(config.logging)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment override: {e}") from e

        return config

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> 'NetbufConfig':
        """Create config from dictionary (YAML data)."""
        try:
            logging_data = dict(data.get('logging') or {})
            if 'level' in logging_data:
                logging_data['level'] = LogLevel(str(logging_data['level']).lower())

            return cls(
                pool=PoolConfig(**(data.get('pool') or {})),
                lock=LockConfig(**(data.get('lock') or {})),
                queue=QueueConfig(**(data.get('queue') or {})),
                command=CommandConfig(**(data.get('command') or {})),
                logging=LoggingConfig(**logging_data),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary for serialization."""
        return {
            'pool': {
                'device_prefix': self.pool.device_prefix,
                'domain_root': self.pool.domain_root,
                'netbuf_root_template': self.pool.netbuf_root_template,
            },
            'lock': {
                'lock_dir': self.lock.lock_dir,
                'lock_name': self.lock.lock_name,
                'timeout': self.lock.timeout,
                'poll_interval': self.lock.poll_interval,
            },
            'queue': {
                'capacity_bytes': self.queue.capacity_bytes,
                'filter_priority': self.queue.filter_priority,
            },
            'command': {
                'timeout': self.command.timeout,
                'check_environment': self.command.check_environment,
            },
            'logging': {
                'level': self.logging.level.value,
                'format': self.logging.format,
                'file_path': self.logging.file_path,
                'max_file_size_mb': self.logging.max_file_size_mb,
                'backup_count': self.logging.backup_count,
            },
        }

    def save(self, path: str) -> None:
        """Save configuration to YAML file."""
        with open(path, 'w') as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)


# Global configuration instance
_config: Optional[NetbufConfig] = None


def get_config() -> NetbufConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = NetbufConfig.load(os.getenv('NETBUF_CONFIG'))
    return _config


def set_config(config: Optional[NetbufConfig]) -> None:
    """Set the global configuration instance (None resets it)."""
    global _config
    _config = config
