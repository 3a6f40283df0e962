"""
Configuration Management

Unified configuration for the clinic analytics service. Settings are grouped
into dataclass sections, loaded from an optional .config.json file and
overridden by environment variables.

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

import os
import json
import logging
import logging.handlers
from pathlib import Path
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Environment(Enum):
    """Supported environments"""
    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"


class LogLevel(Enum):
    """Supported log levels"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class StoreConfig:
    """Row store connection settings"""
    # Backend type: 'rest' (PostgREST / Supabase) or 'memory' (JSON fixture)
    backend: str = "rest"

    # REST settings
    base_url: str = ""
    api_key: str = ""
    schema: str = "public"
    timeout_seconds: int = 30

    # Rows per page when reading large result sets
    page_size: int = 1000
    # Values per IN (...) filter before the request is split
    max_in_values: int = 500
    # Threads used for independent sub-fetches within one report
    max_workers: int = 4

    # Memory backend settings
    fixture_path: Optional[Path] = None

    @property
    def is_configured(self) -> bool:
        if self.backend == "memory":
            return True
        return bool(self.base_url and self.api_key)


@dataclass
class ReportsConfig:
    """Report defaults"""
    # Timezone used for month/day bucketing
    timezone: str = "UTC"
    default_limits: Dict[str, int] = field(default_factory=lambda: {
        'pharmacy-medications': 20,
        'audit-logs': 100,
    })


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: LogLevel = LogLevel.INFO
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    logs_dir: Path = field(default_factory=lambda: Path("data/logs"))
    file_rotation_size: int = 10 * 1024 * 1024  # 10MB
    file_retention_count: int = 5
    enable_console: bool = True
    enable_file: bool = False


@dataclass
class WebConfig:
    """Web interface configuration"""
    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False
    log_level: str = "info"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])


class UnifiedConfig:
    """
    Central configuration management system
    Implements singleton pattern and environment-aware configuration
    Loads from .config.json file with environment variable overrides
    """

    _instance: Optional['UnifiedConfig'] = None
    _initialized: bool = False
    _config_file = Path(".config.json")
    _json_config: Optional[Dict[str, Any]] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._initialized:
            return
        self.load()
        self._initialized = True

    def load(self):
        """(Re)load every section from the config file and environment"""
        self._load_json_config()

        env_mode = self._get_config_value('environment', 'mode', default='development')
        if not env_mode or not isinstance(env_mode, str):
            env_mode = 'development'
        env_var = os.getenv('ANALYTICS_ENVIRONMENT')
        if env_var:
            env_mode = env_var
        self.environment = Environment(env_mode)

        self.store = self._load_store_config()
        self.reports = self._load_reports_config()
        self.logging = self._load_logging_config()
        self.web = self._load_web_config()

    def _load_json_config(self):
        """Load configuration from .config.json file"""
        if self._config_file.exists():
            try:
                with open(self._config_file, 'r', encoding='utf-8') as f:
                    self._json_config = json.load(f)
                logging.getLogger(__name__).info(f"Loaded configuration from {self._config_file}")
            except (json.JSONDecodeError, IOError) as e:
                logging.getLogger(__name__).warning(f"Error loading {self._config_file}: {e}. Using defaults.")
                self._json_config = None
        else:
            logging.getLogger(__name__).debug(f"Config file {self._config_file} not found. Using defaults.")
            self._json_config = None

    def _get_config_value(self, *keys, default=None):
        """
        Get a value from JSON config using nested keys
        Example: _get_config_value('store', 'rest', 'base_url', default='')
        """
        if not self._json_config:
            return default

        value = self._json_config
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        # Skip documentation keys (keys starting with _)
        if isinstance(value, dict):
            return {k: v for k, v in value.items() if not k.startswith('_')} if value else default

        return value if value is not None else default

    def _load_store_config(self) -> StoreConfig:
        """Load row store configuration from JSON and environment overrides"""
        store_config = self._get_config_value('store', default={})
        config = StoreConfig()

        config.backend = os.getenv('ANALYTICS_STORE_BACKEND', store_config.get('backend', 'rest'))

        rest_config = store_config.get('rest', {})
        config.base_url = (
            os.getenv('ANALYTICS_STORE_URL')
            or os.getenv('SUPABASE_URL')
            or os.getenv('NEXT_PUBLIC_SUPABASE_URL')
            or rest_config.get('base_url', '')
        ).rstrip('/')
        # Service key from environment only
        config.api_key = os.getenv('SUPABASE_SERVICE_ROLE_KEY') or os.getenv('SUPABASE_KEY') or ''
        config.schema = rest_config.get('schema', 'public')
        config.timeout_seconds = int(os.getenv('ANALYTICS_STORE_TIMEOUT', str(rest_config.get('timeout_seconds', 30))))

        config.page_size = int(os.getenv('ANALYTICS_PAGE_SIZE', str(store_config.get('page_size', 1000))))
        config.max_in_values = int(store_config.get('max_in_values', 500))
        config.max_workers = int(os.getenv('ANALYTICS_MAX_WORKERS', str(store_config.get('max_workers', 4))))

        fixture_path = os.getenv('ANALYTICS_FIXTURE_PATH', store_config.get('fixture_path'))
        config.fixture_path = Path(fixture_path) if fixture_path else None

        return config

    def _load_reports_config(self) -> ReportsConfig:
        """Load report defaults from JSON and environment overrides"""
        reports_config = self._get_config_value('reports', default={})
        config = ReportsConfig()

        config.timezone = os.getenv('ANALYTICS_TIMEZONE', reports_config.get('timezone', 'UTC'))
        limits = reports_config.get('default_limits', {})
        if limits and isinstance(limits, dict):
            config.default_limits.update({k: int(v) for k, v in limits.items()})

        return config

    def _load_logging_config(self) -> LoggingConfig:
        """Load logging configuration from JSON and environment overrides"""
        log_config = self._get_config_value('logging', default={})
        config = LoggingConfig()

        log_level = os.getenv('ANALYTICS_LOG_LEVEL', log_config.get('level', 'INFO'))
        try:
            config.level = LogLevel(log_level.upper())
        except ValueError:
            config.level = LogLevel.INFO

        config.format = os.getenv('ANALYTICS_LOG_FORMAT', log_config.get('format', config.format))
        config.date_format = log_config.get('date_format', config.date_format)
        config.logs_dir = Path(os.getenv('ANALYTICS_LOGS_DIR', log_config.get('logs_dir', 'data/logs')))
        config.file_rotation_size = log_config.get('file_rotation_size', config.file_rotation_size)
        config.file_retention_count = log_config.get('file_retention_count', config.file_retention_count)
        config.enable_console = log_config.get('enable_console', True)
        config.enable_file = log_config.get('enable_file', False)

        if self.is_development() and 'level' not in log_config \
                and not os.getenv('ANALYTICS_LOG_LEVEL'):
            config.level = LogLevel.DEBUG

        return config

    def _load_web_config(self) -> WebConfig:
        """Load web configuration from JSON and environment overrides"""
        web_config = self._get_config_value('web', default={})
        config = WebConfig()

        config.host = os.getenv('WEB_HOST', web_config.get('host', '0.0.0.0'))
        config.port = int(os.getenv('WEB_PORT', str(web_config.get('port', 8000))))
        config.reload = web_config.get('reload', False)
        config.log_level = os.getenv('WEB_LOG_LEVEL', web_config.get('log_level', 'info'))
        config.cors_origins = web_config.get('cors_origins', ['*'])

        if self.is_development():
            config.reload = True
            config.log_level = "debug"

        return config

    def is_development(self) -> bool:
        """Check if running in development mode"""
        return self.environment == Environment.DEVELOPMENT

    def is_production(self) -> bool:
        """Check if running in production mode"""
        return self.environment == Environment.PRODUCTION

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for serialization (secrets masked)"""
        return {
            'environment': self.environment.value,
            'store': {
                'backend': self.store.backend,
                'base_url': self.store.base_url,
                'api_key': '***' if self.store.api_key else '',
                'timeout_seconds': self.store.timeout_seconds,
                'page_size': self.store.page_size,
                'max_in_values': self.store.max_in_values,
                'max_workers': self.store.max_workers
            },
            'reports': {
                'timezone': self.reports.timezone,
                'default_limits': dict(self.reports.default_limits)
            },
            'logging': {
                'level': self.logging.level.value,
                'enable_console': self.logging.enable_console,
                'enable_file': self.logging.enable_file
            },
            'web': {
                'host': self.web.host,
                'port': self.web.port,
                'reload': self.web.reload
            }
        }


# Global configuration instance (singleton)
config = UnifiedConfig()


def setup_logging():
    """Setup logging configuration based on current config"""
    log_config = config.logging
    root_logger = logging.getLogger()

    logging.basicConfig(
        level=getattr(logging, log_config.level.value),
        format=log_config.format,
        datefmt=log_config.date_format,
        force=True
    )

    if log_config.enable_file:
        log_config.logs_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_config.logs_dir / f"analytics_{datetime.now().strftime('%Y%m%d')}.log"

        # Only add handler if it doesn't already exist
        existing = [
            h for h in root_logger.handlers
            if isinstance(h, logging.handlers.RotatingFileHandler) and h.baseFilename == str(log_file.absolute())
        ]
        if not existing:
            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=log_config.file_rotation_size,
                backupCount=log_config.file_retention_count
            )
            file_handler.setFormatter(logging.Formatter(log_config.format, log_config.date_format))
            root_logger.addHandler(file_handler)

    # Disable console logging in production if configured
    if not log_config.enable_console and config.is_production():
        root_logger.handlers = [h for h in root_logger.handlers
                                if isinstance(h, logging.FileHandler)
                                or not isinstance(h, logging.StreamHandler)]
