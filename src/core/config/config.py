"""
Static configuration management for Questline.

Purpose
-------
Provides centralized static configuration loaded from environment variables
with sensible defaults, type validation, and bounds checking. This module
handles non-dynamic configuration that is fixed at process startup.

Responsibilities
----------------
- Load configuration from environment variables with .env support
- Provide type-safe access to all static configuration values
- Validate critical settings on startup
- Create required directories (logs)
- Track which values came from the environment versus defaults

Non-Responsibilities
--------------------
- Tunable configuration (handled by ConfigManager, YAML-backed)
- Runtime configuration changes (except safe reload)
- Secrets management (use environment variables)

Architecture Notes
------------------
- Singleton pattern via class methods (no instantiation)
- Auto-loads on module import via Config.validate()
- Directory paths relative to project root for portability

Configuration Categories
------------------------
1. Environment: environment type, debug mode, logging
2. Storage: document store backend selection
3. Database: SQL connection and pool settings (sql backend)
4. Redis: connection settings for the progress display cache
5. Circuit Breaker: failure thresholds and recovery

Environment Variables
---------------------
Optional (with defaults):
- ENVIRONMENT: Environment type (default: development)
- LOG_LEVEL: Logging level (default: INFO)
- LOG_JSON: Force JSON console logs (default: production only)
- STORE_BACKEND: ``sql`` or ``memory`` (default: sql)
- DATABASE_URL: SQLAlchemy async URL (default: local SQLite file)
- REDIS_URL: Redis connection string (default: localhost)
- CACHE_ENABLED: Enable the Redis progress cache (default: False)
- CONFIG_DIR: Directory holding YAML tunables (default: ./config)
"""

import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

load_dotenv()


# ============================================================================
# Enums and Constants
# ============================================================================


class Environment(Enum):
    """Deployment environment types."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"

    @classmethod
    def from_string(cls, value: str) -> "Environment":
        """
        Parse environment string safely with fallback.

        Example
        -------
        >>> Environment.from_string("production") == Environment.PRODUCTION
        True
        >>> Environment.from_string("invalid") == Environment.DEVELOPMENT
        True
        """
        try:
            return cls(value.lower())
        except ValueError:
            import logging
            logging.warning(
                f"Unknown environment '{value}', defaulting to development"
            )
            return cls.DEVELOPMENT


class StoreBackend(Enum):
    """Document store implementations selectable at startup."""

    MEMORY = "memory"
    SQL = "sql"


# ============================================================================
# Configuration Load Tracker
# ============================================================================


class _ConfigLoadMetrics:
    """
    Tracks which configuration values came from environment variables
    versus defaults, and any validation errors encountered.
    """

    def __init__(self):
        self.env_vars_loaded: Dict[str, bool] = {}
        self.validation_errors: Dict[str, str] = {}
        self.defaults_used: Dict[str, Any] = {}

    def record_env_load(self, key: str, from_env: bool, default: Any):
        self.env_vars_loaded[key] = from_env
        if not from_env:
            self.defaults_used[key] = default

    def record_validation_error(self, key: str, error: str):
        self.validation_errors[key] = error

    def get_summary(self) -> Dict[str, Any]:
        return {
            "total_configs": len(self.env_vars_loaded),
            "from_environment": sum(1 for v in self.env_vars_loaded.values() if v),
            "from_defaults": sum(1 for v in self.env_vars_loaded.values() if not v),
            "validation_errors": len(self.validation_errors),
            "defaults_used": list(self.defaults_used.keys()),
        }


# ============================================================================
# Main Configuration Class
# ============================================================================


class Config:
    """
    Centralized static configuration for the Questline service.

    Usage
    -----
    >>> backend = Config.STORE_BACKEND
    >>> if Config.is_production():
    ...     logger.info("Running in production mode")
    >>> summary = Config.get_config_summary()
    """

    _metrics: Optional[_ConfigLoadMetrics] = None
    _validated: bool = False

    # =========================================================================
    # Environment Configuration
    # =========================================================================

    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: Optional[bool] = None
    LOG_COLORS: bool = True

    # =========================================================================
    # Directory Configuration
    # =========================================================================

    PROJECT_ROOT = Path(__file__).resolve().parents[3]
    LOGS_DIR = PROJECT_ROOT / "logs"
    CONFIG_DIR = PROJECT_ROOT / "config"

    # =========================================================================
    # Storage Configuration
    # =========================================================================

    STORE_BACKEND: str = StoreBackend.SQL.value

    DATABASE_URL: str = ""
    DATABASE_POOL_SIZE: int = 5
    DATABASE_MAX_OVERFLOW: int = 10
    DATABASE_ECHO: bool = False
    DATABASE_POOL_RECYCLE: int = 1800
    DATABASE_POOL_TIMEOUT: int = 30
    DATABASE_STATEMENT_TIMEOUT_MS: int = 30_000
    DATABASE_CREATE_SCHEMA: bool = True

    # =========================================================================
    # Redis Configuration
    # =========================================================================

    CACHE_ENABLED: bool = False
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_MAX_CONNECTIONS: int = 20
    REDIS_SOCKET_TIMEOUT: int = 5

    # =========================================================================
    # Circuit Breaker
    # =========================================================================

    CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = 5
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT: int = 60
    CIRCUIT_BREAKER_HALF_OPEN_MAX_REQUESTS: int = 3

    # =========================================================================
    # Helper Methods
    # =========================================================================

    @classmethod
    def _init_metrics(cls):
        if cls._metrics is None:
            cls._metrics = _ConfigLoadMetrics()

    @classmethod
    def _safe_int(
        cls,
        key: str,
        default: int,
        min_val: Optional[int] = None,
        max_val: Optional[int] = None,
    ) -> int:
        """
        Safely parse integer from environment with validation.

        Out-of-range or unparsable values fall back to ``default`` and are
        recorded as validation errors.

        Example
        -------
        >>> Config._safe_int("DATABASE_POOL_SIZE", 5, min_val=1, max_val=200)
        5
        """
        cls._init_metrics()

        raw_value = os.getenv(key)

        if raw_value is None:
            cls._metrics.record_env_load(key, False, default)
            return default

        import logging

        try:
            value = int(raw_value)
        except ValueError:
            error = f"{key}='{raw_value}' is not a valid integer, using default {default}"
            logging.warning(error)
            cls._metrics.record_validation_error(key, error)
            return default

        if min_val is not None and value < min_val:
            error = f"{key}={value} is below minimum {min_val}, using default {default}"
            logging.warning(error)
            cls._metrics.record_validation_error(key, error)
            return default

        if max_val is not None and value > max_val:
            error = f"{key}={value} exceeds maximum {max_val}, using default {default}"
            logging.warning(error)
            cls._metrics.record_validation_error(key, error)
            return default

        cls._metrics.record_env_load(key, True, default)
        return value

    @classmethod
    def _safe_bool(cls, key: str, default: bool) -> bool:
        """
        Safely parse boolean from environment.

        Recognizes: true/false, yes/no, 1/0, on/off (case-insensitive).
        """
        cls._init_metrics()

        raw_value = os.getenv(key)
        if raw_value is None:
            cls._metrics.record_env_load(key, False, default)
            return default

        normalized = raw_value.lower().strip()
        if normalized in {"true", "yes", "1", "on"}:
            value = True
        elif normalized in {"false", "no", "0", "off"}:
            value = False
        else:
            error = f"{key}='{raw_value}' is not a valid boolean, using default {default}"
            import logging
            logging.warning(error)
            cls._metrics.record_validation_error(key, error)
            return default

        cls._metrics.record_env_load(key, True, default)
        return value

    @classmethod
    def _safe_optional_bool(cls, key: str) -> Optional[bool]:
        if os.getenv(key) is None:
            return None
        return cls._safe_bool(key, False)

    @classmethod
    def _safe_str(cls, key: str, default: str) -> str:
        cls._init_metrics()
        value = os.getenv(key, default)
        cls._metrics.record_env_load(key, key in os.environ, default)
        return value

    # =========================================================================
    # Configuration Loading
    # =========================================================================

    @classmethod
    def load(cls) -> None:
        """
        Load all configuration from environment variables with validation.

        Called automatically on module import; may be called again to
        re-read the environment (tests do this after monkeypatching).
        """
        cls._init_metrics()

        # Environment
        cls.ENVIRONMENT = cls._safe_str("ENVIRONMENT", "development")
        cls.DEBUG = cls._safe_bool("DEBUG", False)
        cls.LOG_LEVEL = cls._safe_str("LOG_LEVEL", "INFO")
        cls.LOG_JSON = cls._safe_optional_bool("LOG_JSON")
        cls.LOG_COLORS = cls._safe_bool("LOG_COLORS", True)

        # Directories
        cls.LOGS_DIR = Path(cls._safe_str("LOGS_DIR", str(cls.PROJECT_ROOT / "logs")))
        cls.CONFIG_DIR = Path(
            cls._safe_str("CONFIG_DIR", str(cls.PROJECT_ROOT / "config"))
        )

        # Storage
        cls.STORE_BACKEND = cls._safe_str(
            "STORE_BACKEND", StoreBackend.SQL.value
        ).lower()
        cls.DATABASE_URL = cls._safe_str(
            "DATABASE_URL", "sqlite+aiosqlite:///./questline.db"
        )
        cls.DATABASE_POOL_SIZE = cls._safe_int(
            "DATABASE_POOL_SIZE", 5, min_val=1, max_val=200
        )
        cls.DATABASE_MAX_OVERFLOW = cls._safe_int(
            "DATABASE_MAX_OVERFLOW", 10, min_val=0, max_val=200
        )
        cls.DATABASE_ECHO = cls._safe_bool("DATABASE_ECHO", False)
        cls.DATABASE_POOL_RECYCLE = cls._safe_int(
            "DATABASE_POOL_RECYCLE", 1800, min_val=60
        )
        cls.DATABASE_POOL_TIMEOUT = cls._safe_int(
            "DATABASE_POOL_TIMEOUT", 30, min_val=1
        )
        cls.DATABASE_STATEMENT_TIMEOUT_MS = cls._safe_int(
            "DATABASE_STATEMENT_TIMEOUT_MS", 30_000, min_val=100
        )
        cls.DATABASE_CREATE_SCHEMA = cls._safe_bool("DATABASE_CREATE_SCHEMA", True)

        # Redis
        cls.CACHE_ENABLED = cls._safe_bool("CACHE_ENABLED", False)
        cls.REDIS_URL = cls._safe_str("REDIS_URL", "redis://localhost:6379/0")
        cls.REDIS_MAX_CONNECTIONS = cls._safe_int(
            "REDIS_MAX_CONNECTIONS", 20, min_val=1, max_val=500
        )
        cls.REDIS_SOCKET_TIMEOUT = cls._safe_int(
            "REDIS_SOCKET_TIMEOUT", 5, min_val=1, max_val=60
        )

        # Circuit Breaker
        cls.CIRCUIT_BREAKER_FAILURE_THRESHOLD = cls._safe_int(
            "CIRCUIT_BREAKER_FAILURE_THRESHOLD", 5, min_val=1, max_val=100
        )
        cls.CIRCUIT_BREAKER_RECOVERY_TIMEOUT = cls._safe_int(
            "CIRCUIT_BREAKER_RECOVERY_TIMEOUT", 60, min_val=1
        )
        cls.CIRCUIT_BREAKER_HALF_OPEN_MAX_REQUESTS = cls._safe_int(
            "CIRCUIT_BREAKER_HALF_OPEN_MAX_REQUESTS", 3, min_val=1, max_val=50
        )

    @classmethod
    def validate(cls) -> None:
        """
        Validate critical configuration values on startup.

        Raises
        ------
        ValueError:
            If the configuration is unusable in production.
        """
        if cls._validated:
            return

        import logging
        logger = logging.getLogger(__name__)

        try:
            cls.load()

            valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
            if cls.LOG_LEVEL.upper() not in valid_log_levels:
                logger.warning(f"Invalid LOG_LEVEL '{cls.LOG_LEVEL}', using INFO")
                cls.LOG_LEVEL = "INFO"

            valid_backends = {b.value for b in StoreBackend}
            if cls.STORE_BACKEND not in valid_backends:
                raise ValueError(
                    f"STORE_BACKEND must be one of {sorted(valid_backends)}, "
                    f"got '{cls.STORE_BACKEND}'"
                )

            if cls.STORE_BACKEND == StoreBackend.SQL.value and not cls.DATABASE_URL:
                raise ValueError("DATABASE_URL is required when STORE_BACKEND=sql")

            if cls.is_production() and cls.STORE_BACKEND == StoreBackend.MEMORY.value:
                logger.warning(
                    "Production environment using the in-memory store - "
                    "progression will not survive a restart"
                )

            cls.LOGS_DIR.mkdir(parents=True, exist_ok=True)

            cls._validated = True

            if cls._metrics:
                logger.info(f"Configuration loaded: {cls._metrics.get_summary()}")
                if cls._metrics.validation_errors:
                    logger.warning(
                        f"Configuration warnings: {cls._metrics.validation_errors}"
                    )

        except Exception as e:
            logger.warning(f"Config validation warning (safe for tests): {e}")
            if cls.is_production():
                raise

    @classmethod
    def reset(cls) -> None:
        """Forget validation state so the next validate() re-reads the env."""
        cls._validated = False
        cls._metrics = None

    # =========================================================================
    # Environment Checks
    # =========================================================================

    @classmethod
    def is_production(cls) -> bool:
        return cls.ENVIRONMENT.lower() == "production"

    @classmethod
    def is_development(cls) -> bool:
        return cls.ENVIRONMENT.lower() == "development"

    @classmethod
    def is_testing(cls) -> bool:
        return cls.ENVIRONMENT.lower() in ("testing", "test")

    # =========================================================================
    # Summary
    # =========================================================================

    @classmethod
    def get_config_summary(cls) -> Dict[str, Any]:
        """
        Get non-sensitive configuration summary for debugging.

        Example
        -------
        >>> Config.get_config_summary()["store_backend"]
        'sql'
        """
        return {
            "environment": cls.ENVIRONMENT,
            "debug": cls.DEBUG,
            "log_level": cls.LOG_LEVEL,
            "store_backend": cls.STORE_BACKEND,
            "database_url_scheme": cls.DATABASE_URL.split(":", 1)[0]
            if cls.DATABASE_URL
            else None,
            "database_pool_size": cls.DATABASE_POOL_SIZE,
            "cache_enabled": cls.CACHE_ENABLED,
            "config_dir": str(cls.CONFIG_DIR),
        }


# Auto-validate on import
Config.validate()
