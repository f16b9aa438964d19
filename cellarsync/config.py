"""
Configuration management for Cellar Sync.

All configuration is done via environment variables. This module provides
typed configuration classes with validation.

Invariants:
    - An unset STORE_BACKEND means "not configured"; the sync engine must
      refuse to start rather than guess a backend
    - All other settings have sensible defaults for local development
    - Paths and secrets are never included in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep from_env() and validate() in sync when adding enum-valued settings
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

from .models import SEED_ROOM_COUNT

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class StoreBackend(Enum):
    """Supported document store backends."""

    MEMORY = "memory"
    SQLITE = "sqlite"


class AclPolicyName(Enum):
    """Selectable role policies."""

    OBSERVED = "observed"
    ADMIN_ONLY = "admin_only"


@dataclass(frozen=True)
class StoreConfig:
    """Document store configuration.

    Attributes:
        backend: Which backend to use, or None when not configured
        sqlite_path: Database file for the sqlite backend
        busy_timeout_ms: SQLite busy timeout in milliseconds
    """

    backend: StoreBackend | None = None
    sqlite_path: str | None = None
    busy_timeout_ms: int = 5000

    @property
    def is_configured(self) -> bool:
        """Whether enough settings are present to reach a store."""
        if self.backend is None:
            return False
        if self.backend == StoreBackend.SQLITE:
            return bool(self.sqlite_path)
        return True

    @classmethod
    def from_env(cls) -> StoreConfig:
        """Load configuration from environment variables."""
        backend_str = os.getenv("STORE_BACKEND", "").strip().lower()
        backend = None
        if backend_str:
            try:
                backend = StoreBackend(backend_str)
            except ValueError:
                raise ValueError(
                    f"Invalid STORE_BACKEND '{backend_str}'. Must be one of: memory, sqlite"
                )
        return cls(
            backend=backend,
            sqlite_path=os.getenv("SQLITE_PATH") or None,
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
        )


@dataclass(frozen=True)
class SyncConfig:
    """Synchronization engine configuration.

    Attributes:
        seed_on_start: Run the idempotent seed when activating
        seed_room_count: Number of rooms created by the seed
    """

    seed_on_start: bool = True
    seed_room_count: int = SEED_ROOM_COUNT

    @classmethod
    def from_env(cls) -> SyncConfig:
        return cls(
            seed_on_start=_env_bool("SEED_ON_START", "true"),
            seed_room_count=int(os.getenv("SEED_ROOM_COUNT", str(SEED_ROOM_COUNT))),
        )


@dataclass(frozen=True)
class AclConfig:
    """Access control configuration."""

    policy: AclPolicyName = AclPolicyName.OBSERVED

    @classmethod
    def from_env(cls) -> AclConfig:
        policy_str = os.getenv("ACL_POLICY", "observed").strip().lower()
        try:
            policy = AclPolicyName(policy_str)
        except ValueError:
            raise ValueError(
                f"Invalid ACL_POLICY '{policy_str}'. Must be one of: observed, admin_only"
            )
        return cls(policy=policy)


@dataclass(frozen=True)
class HttpConfig:
    """HTTP API configuration.

    Attributes:
        host: Address to bind
        port: Port to listen on
        cors_origins: Allowed CORS origins
    """

    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: tuple[str, ...] = ("*",)

    @classmethod
    def from_env(cls) -> HttpConfig:
        origins = os.getenv("HTTP_CORS_ORIGINS", "*")
        return cls(
            host=os.getenv("HTTP_HOST", "0.0.0.0"),
            port=int(os.getenv("HTTP_PORT", "8080")),
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class AppConfig:
    """Complete application configuration.

    Attributes:
        store: Document store configuration
        sync: Synchronization engine configuration
        acl: Access control configuration
        http: HTTP API configuration
        observability: Logging configuration
    """

    store: StoreConfig = field(default_factory=StoreConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    acl: AclConfig = field(default_factory=AclConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> AppConfig:
        """Load complete configuration from environment variables.

        Returns:
            AppConfig with all sections populated from environment.

        Raises:
            ValueError: If a setting is present but invalid.
        """
        config = cls(
            store=StoreConfig.from_env(),
            sync=SyncConfig.from_env(),
            acl=AclConfig.from_env(),
            http=HttpConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    @property
    def is_configured(self) -> bool:
        return self.store.is_configured

    def validate(self) -> None:
        """Validate configuration consistency.

        A missing store backend is not an error here: it is reported through
        is_configured so the application can show a setup notice.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.sync.seed_room_count < 0:
            raise ValueError("SEED_ROOM_COUNT cannot be negative")

        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be json or text"
            )

        if self.store.backend == StoreBackend.SQLITE and not self.store.sqlite_path:
            logger.warning("STORE_BACKEND=sqlite but SQLITE_PATH is unset; store is unconfigured")

    def log_config(self) -> None:
        """Log configuration (without paths)."""
        logger.info(
            "Configuration loaded",
            extra={
                "store_backend": self.store.backend.value if self.store.backend else None,
                "store_configured": self.store.is_configured,
                "seed_on_start": self.sync.seed_on_start,
                "seed_room_count": self.sync.seed_room_count,
                "acl_policy": self.acl.policy.value,
                "http_bind": f"{self.http.host}:{self.http.port}",
                "log_level": self.observability.log_level,
            },
        )
