"""
Configuration for the findings query service.

Values come from environment variables, optionally loaded from a .env file
in the working directory. Every setting has a default.

Example:
    config = load_config()
    service = QueryService(store, directory, config=config)
"""

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


DEFAULT_MAX_RESULTS = 50
DEFAULT_MAX_EXECUTION_MS = 500
DEFAULT_CACHE_TTL_SECONDS = 300.0
DEFAULT_LOG_LEVEL = 'INFO'

LOG_FORMAT = '[%(asctime)s] [%(levelname)s] %(name)s - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

_TRUE_VALUES = ('true', '1', 'yes', 'on')
_FALSE_VALUES = ('false', '0', 'no', 'off')


class ConfigError(ValueError):
    """Raised when a configuration value is missing or invalid."""


@dataclass
class QueryConfig:
    # Feature flag, disabled means every query falls back
    enabled: bool = True

    max_results: int = DEFAULT_MAX_RESULTS
    max_execution_ms: int = DEFAULT_MAX_EXECUTION_MS

    cache_enabled: bool = True
    cache_ttl: float = DEFAULT_CACHE_TTL_SECONDS

    # Monitoring
    monitoring: bool = True
    log_matches: bool = True
    log_execution_time: bool = True
    log_fallbacks: bool = True

    log_level: str = DEFAULT_LOG_LEVEL
    data_file: Optional[Path] = None

    def validate(self) -> None:
        """
        Raises:
            ConfigError: If any value is out of range
        """
        errors = []
        if self.max_execution_ms <= 0:
            errors.append('max_execution_ms must be greater than 0')
        if self.max_results <= 0:
            errors.append('max_results must be greater than 0')
        if self.cache_ttl < 0:
            errors.append('cache_ttl must be non-negative')
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            errors.append(f'unknown log level: {self.log_level}')
        if errors:
            raise ConfigError(f'Invalid configuration: {", ".join(errors)}')


def _get_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None or value.strip() == '':
        return default
    value = value.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigError(f'{key} must be a boolean, got {value!r}')


def _get_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value.strip() == '':
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f'{key} must be an integer, got {value!r}') from None


def _get_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None or value.strip() == '':
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigError(f'{key} must be a number, got {value!r}') from None


def load_config(env_file: Optional[Path] = None) -> QueryConfig:
    """
    Load configuration from the environment.

    Args:
        env_file: Optional .env path. Defaults to .env in the working
            directory if present. Existing environment variables win.

    Raises:
        ConfigError: If a value cannot be parsed or fails validation
    """
    env_path = env_file or Path.cwd() / '.env'
    if env_path.exists():
        load_dotenv(dotenv_path=env_path)

    data_file = os.getenv('FINDINGS_DATA_FILE')

    config = QueryConfig(
        enabled=_get_bool('FINDINGS_QUERY_ENABLED', True),
        max_results=_get_int('FINDINGS_QUERY_MAX_RESULTS', DEFAULT_MAX_RESULTS),
        max_execution_ms=_get_int('FINDINGS_QUERY_MAX_EXECUTION_MS', DEFAULT_MAX_EXECUTION_MS),
        cache_enabled=_get_bool('FINDINGS_QUERY_CACHE_ENABLED', True),
        cache_ttl=_get_float('FINDINGS_QUERY_CACHE_TTL', DEFAULT_CACHE_TTL_SECONDS),
        monitoring=_get_bool('FINDINGS_QUERY_MONITORING', True),
        log_matches=_get_bool('FINDINGS_QUERY_LOG_MATCHES', True),
        log_execution_time=_get_bool('FINDINGS_QUERY_LOG_EXECUTION_TIME', True),
        log_fallbacks=_get_bool('FINDINGS_QUERY_LOG_FALLBACKS', True),
        log_level=os.getenv('FINDINGS_QUERY_LOG_LEVEL', DEFAULT_LOG_LEVEL),
        data_file=Path(data_file) if data_file else None,
    )
    config.validate()
    return config


def setup_logging(level: str = DEFAULT_LOG_LEVEL) -> None:
    """
    Send log output to stderr.

    stdout is reserved for the MCP stdio transport.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    root_logger.addHandler(handler)
