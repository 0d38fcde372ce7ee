"""
Configuration Management

Handles loading configuration from a JSON file and environment variables.

Role selection:
    An empty `server` means this process is the server; any other value
    is the address of the server to upload to.
"""

import os
import json
import hashlib
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional, Tuple

from dotenv import load_dotenv, find_dotenv

from .file.storage import CHUNK_SIZE

logger = logging.getLogger(__name__)

DEFAULT_PORT = ':8469'

# Config field -> environment variable
ENV_VARS = {
    'server': 'FILESYNC_SERVER',
    'port': 'FILESYNC_PORT',
    'save_path': 'FILESYNC_SAVE_PATH',
    'create_dirs': 'FILESYNC_CREATE_DIRS',
    'log_level': 'FILESYNC_LOG_LEVEL',
}


class ConfigError(Exception):
    """Configuration could not be read or is invalid."""


def parse_port(port: str) -> Tuple[Optional[str], int]:
    """
    Split a port setting into (host, port).

    Accepts "8469", ":8469" and "host:8469".

    Raises:
        ConfigError: if no valid port number is present
    """
    text = str(port).strip()
    host, sep, number = text.rpartition(':')
    if not sep:
        host = ''

    try:
        value = int(number)
    except ValueError:
        raise ConfigError(f"invalid port {port!r}") from None

    if not 0 <= value <= 65535:
        raise ConfigError(f"port out of range: {value}")

    return (host or None), value


def parse_bool(value) -> bool:
    """
    Read a JSON or environment flag.

    Raises:
        ConfigError: if `value` is not a recognisable boolean
    """
    if isinstance(value, bool):
        return value

    text = str(value).strip().lower()
    if text in ('true', '1', 'yes', 'on'):
        return True
    if text in ('false', '0', 'no', 'off', ''):
        return False
    raise ConfigError(f"invalid boolean {value!r}")


@dataclass
class Config:
    """
    File sync configuration.

    Configuration priority (highest to lowest):
    1. Environment variables (FILESYNC_*)
    2. Config file (JSON)
    3. Default values
    """
    # Role / network
    server: str = ''
    port: str = DEFAULT_PORT

    # Storage
    save_path: Path = field(default_factory=lambda: Path('.'))
    create_dirs: bool = False

    # Verification
    verify_delay: float = 1.0
    checksum_algorithm: str = 'sha256'

    # Performance
    chunk_size: int = CHUNK_SIZE

    # Logging
    log_level: str = 'INFO'

    @property
    def is_server(self) -> bool:
        return self.server == ''

    @property
    def port_number(self) -> int:
        return parse_port(self.port)[1]

    @property
    def listen_host(self) -> str:
        """Interface to bind in server role."""
        return parse_port(self.port)[0] or '0.0.0.0'

    @classmethod
    def from_dict(cls, data: dict) -> 'Config':
        """Build a config from parsed JSON, accepting camelCase keys."""
        if not isinstance(data, dict):
            raise ConfigError("config must be a JSON object")

        config = cls()

        # Network
        config.server = str(data.get('server', config.server) or '')
        config.port = str(data.get('port', config.port))

        # Storage
        save_path = data.get('savePath', data.get('save_path'))
        if save_path:
            config.save_path = Path(save_path)
        config.create_dirs = parse_bool(
            data.get('createDirs', data.get('create_dirs', config.create_dirs))
        )

        # Verification
        try:
            config.verify_delay = float(data.get('verify_delay', config.verify_delay))
            config.chunk_size = int(data.get('chunk_size', config.chunk_size))
        except (TypeError, ValueError) as e:
            raise ConfigError(f"invalid numeric setting: {e}") from e
        config.checksum_algorithm = str(data.get('checksum_algorithm', config.checksum_algorithm))

        # Logging
        config.log_level = data.get('log_level', config.log_level)

        config.validate()
        return config

    @classmethod
    def from_file(cls, path: Path) -> 'Config':
        """
        Load configuration from a JSON file.

        Raises:
            ConfigError: if the file cannot be read or parsed
        """
        try:
            with open(path) as f:
                data = json.load(f)
        except OSError as e:
            logger.error(f"open {path} file error {e}")
            raise ConfigError(f"cannot read config file {path}: {e}") from e
        except json.JSONDecodeError as e:
            logger.error(f"unmarshal json file error {e}")
            raise ConfigError(f"cannot parse config file {path}: {e}") from e

        return cls.from_dict(data)

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        load_dotenv(find_dotenv(usecwd=True))

        config = cls()

        config.server = os.getenv('FILESYNC_SERVER', config.server)
        config.port = os.getenv('FILESYNC_PORT', config.port)

        save_path = os.getenv('FILESYNC_SAVE_PATH')
        if save_path:
            config.save_path = Path(save_path)

        config.create_dirs = parse_bool(os.getenv('FILESYNC_CREATE_DIRS', 'false'))
        config.log_level = os.getenv('FILESYNC_LOG_LEVEL', config.log_level)

        return config

    def validate(self):
        """
        Check settings that would otherwise fail later.

        Raises:
            ConfigError: on the first invalid setting
        """
        parse_port(self.port)
        if self.chunk_size <= 0:
            raise ConfigError(f"chunk_size must be positive: {self.chunk_size}")
        if self.verify_delay < 0:
            raise ConfigError(f"verify_delay must not be negative: {self.verify_delay}")
        if self.checksum_algorithm not in hashlib.algorithms_available:
            raise ConfigError(f"unknown checksum algorithm: {self.checksum_algorithm}")
        if not isinstance(logging.getLevelName(str(self.log_level).upper()), int):
            raise ConfigError(f"unknown log level: {self.log_level}")

    def to_dict(self) -> dict:
        """Convert to dictionary (file format keys)."""
        return {
            'server': self.server,
            'port': self.port,
            'savePath': str(self.save_path),
            'createDirs': self.create_dirs,
            'verify_delay': self.verify_delay,
            'checksum_algorithm': self.checksum_algorithm,
            'chunk_size': self.chunk_size,
            'log_level': self.log_level,
        }

    def save(self, path: Path):
        """Save configuration to a JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from file and environment.

    Environment variables override file settings.

    Raises:
        ConfigError: if `config_path` is given but unreadable or invalid
    """
    # Start with defaults
    config = Config()

    if config_path:
        config = Config.from_file(Path(config_path))

    # Override with environment variables that are actually set
    env_config = Config.from_env()

    for key, var in ENV_VARS.items():
        if os.getenv(var):
            setattr(config, key, getattr(env_config, key))

    config.validate()
    return config


# Example config file template
EXAMPLE_CONFIG = """
{
  "server": "",
  "port": ":8469",
  "savePath": "./received",
  "createDirs": false,
  "verify_delay": 1.0,
  "checksum_algorithm": "sha256",
  "log_level": "INFO"
}
"""
