"""Proxy Core Configuration - Simple Configuration Management"""

import json
import logging
import os
from dataclasses import dataclass, fields
from typing import Dict, Any, Optional

import yaml

from .constants import (
    DEFAULT_PORT, DEFAULT_SCAN_TIMEOUT_MS, DEFAULT_TEST_URL, DEFAULT_TEST_TIMEOUT,
    DEFAULT_MAX_CONCURRENT_VALIDATIONS, DEFAULT_GEO_ENDPOINT, DEFAULT_GEO_TIMEOUT,
    DEFAULT_MAX_CONCURRENT_LOOKUPS, DEFAULT_GEO_RATE_LIMIT, DEFAULT_GEO_BURST,
    DEFAULT_MAX_RETRIES, DEFAULT_RETRY_DELAY, DEFAULT_MAX_RETRY_DELAY,
    DEFAULT_QUEUE_SIZE, DEFAULT_USER_AGENT
)
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


# ===============================================================================
# CONFIGURATION DATA CLASS
# ===============================================================================

@dataclass
class ScanConfig:
    """Main configuration settings"""

    # Port scanning
    port: int = DEFAULT_PORT
    scan_timeout_ms: int = DEFAULT_SCAN_TIMEOUT_MS
    scan_workers: Optional[int] = None  # None -> os.cpu_count()

    # Proxy validation
    test_url: str = DEFAULT_TEST_URL
    test_timeout: float = DEFAULT_TEST_TIMEOUT
    max_concurrent_validations: int = DEFAULT_MAX_CONCURRENT_VALIDATIONS
    verify_ssl: bool = True
    user_agent: str = DEFAULT_USER_AGENT

    # Geolocation
    enable_geolocation: bool = True
    geo_endpoint: str = DEFAULT_GEO_ENDPOINT
    geoip_db_path: Optional[str] = None
    geo_timeout: float = DEFAULT_GEO_TIMEOUT
    max_concurrent_lookups: int = DEFAULT_MAX_CONCURRENT_LOOKUPS
    geo_rate_limit: float = DEFAULT_GEO_RATE_LIMIT
    geo_burst: int = DEFAULT_GEO_BURST
    geo_max_retries: int = DEFAULT_MAX_RETRIES
    geo_retry_delay: float = DEFAULT_RETRY_DELAY
    geo_max_retry_delay: float = DEFAULT_MAX_RETRY_DELAY

    # Stage hand-off
    queue_size: int = DEFAULT_QUEUE_SIZE

    @property
    def effective_scan_workers(self) -> int:
        return self.scan_workers or os.cpu_count() or 1

    @property
    def scan_timeout(self) -> float:
        """Port scan timeout in seconds"""
        return self.scan_timeout_ms / 1000.0

    def validate(self) -> None:
        """Reject values no stage can run with"""
        if not 1 <= self.port <= 65535:
            raise ConfigurationError(f"Port must be between 1 and 65535, got {self.port}")
        if self.scan_timeout_ms <= 0:
            raise ConfigurationError("scan_timeout_ms must be positive")
        if self.scan_workers is not None and self.scan_workers < 1:
            raise ConfigurationError("scan_workers must be at least 1")
        if self.test_timeout <= 0:
            raise ConfigurationError("test_timeout must be positive")
        if self.max_concurrent_validations < 1:
            raise ConfigurationError("max_concurrent_validations must be at least 1")
        if self.max_concurrent_lookups < 1:
            raise ConfigurationError("max_concurrent_lookups must be at least 1")
        if self.geo_rate_limit < 0:
            raise ConfigurationError("geo_rate_limit cannot be negative")
        if self.geo_max_retries < 0:
            raise ConfigurationError("geo_max_retries cannot be negative")
        if self.queue_size < 1:
            raise ConfigurationError("queue_size must be at least 1")


# ===============================================================================
# CONFIGURATION MANAGER
# ===============================================================================

class ConfigManager:
    """Loads an optional YAML/JSON file and applies CLI overrides on top"""

    def __init__(self, config_path: Optional[str] = None, cli_overrides: Optional[Dict[str, Any]] = None):
        self.config_path = config_path
        self.config = ScanConfig()
        self.cli_overrides = cli_overrides or {}
        self._load_config()

    def _load_config(self):
        """Load configuration from file and apply CLI overrides"""
        if self.config_path:
            data = self._read_config_file(self.config_path)
            self._apply(data, source=self.config_path)

        # CLI overrides have the highest priority
        self._apply({k: v for k, v in self.cli_overrides.items() if v is not None}, source="command line")
        self.config.validate()

    def _read_config_file(self, path: str) -> Dict[str, Any]:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                if path.endswith('.json'):
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigurationError(f"Cannot read config file {path}: {e}") from e
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Invalid config file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")

        logger.debug(f"Loaded {len(data)} settings from {path}")
        return data

    def _apply(self, data: Dict[str, Any], source: str):
        known = {f.name for f in fields(ScanConfig)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys in {source}: {', '.join(unknown)}")

        for key, value in data.items():
            setattr(self.config, key, value)

    def get_config(self) -> ScanConfig:
        return self.config
