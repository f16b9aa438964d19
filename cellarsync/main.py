"""
Cellar Sync - Main entry point.

This module wires the components together:
- Document store (from configuration)
- SyncEngine (store -> local mirror)
- AccessGate + MutationService (role-gated writes with audit)
- RoomViews (derived views over the mirror)
- HTTP API served by uvicorn

Usage:
    python -m cellarsync.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - An unconfigured store leaves the server up in CONFIG_ERROR state so
      the API can present a setup notice; nothing subscribes
    - Shutdown closes both subscriptions before closing the store
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

import json_log_formatter
import uvicorn

from .apply import AccessGate, MutationService, policy_for
from .config import AppConfig
from .errors import ConfigurationError
from .store import RoomStore, create_store
from .sync import SyncEngine, SyncStatus
from .views import RoomViews

logger = logging.getLogger(__name__)


def setup_logging(config: AppConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Application configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


class Server:
    """Cellar Sync orchestrator.

    Manages the lifecycle of the store connection and the sync engine, and
    exposes the mutation service and views to the API layer.

    Attributes:
        config: Application configuration
        store: Document store
        engine: Synchronization engine owning the mirror
        gate: Access gate
        service: Mutation service
        views: Derived views over the mirror

    Example:
        >>> server = Server(config)
        >>> await server.start()
        >>> server.views.stats()
        >>> await server.stop()
    """

    def __init__(
        self, config: Optional[AppConfig] = None, store: Optional[RoomStore] = None
    ) -> None:
        """Initialize the server.

        Args:
            config: Optional configuration (loaded from env if not provided)
            store: Optional pre-built store (created from config if not provided)
        """
        self.config = config or AppConfig.from_env()
        self.store: RoomStore = store if store is not None else create_store(self.config)
        self.engine = SyncEngine(self.store, seed_on_start=self.config.sync.seed_on_start)
        self.gate = AccessGate(policy_for(self.config.acl.policy.value))
        self.service = MutationService(self.store, self.engine, self.gate)
        self.views = RoomViews(self.engine)
        self._running = False

    @property
    def status(self) -> SyncStatus:
        return self.engine.status

    async def start(self) -> None:
        """Connect the store and activate synchronization."""
        if self._running:
            logger.warning("Server already running")
            return

        logger.info("Starting Cellar Sync")
        self.config.log_config()

        if not self.store.is_configured():
            try:
                await self.engine.activate()
            except ConfigurationError as e:
                logger.error(f"Synchronization disabled: {e.message}")
            self._running = True
            return

        try:
            await self.store.connect()
            await self.engine.activate()
            await self.store.settle()
        except Exception as e:
            logger.error(f"Startup failed: {e}", exc_info=True)
            await self.stop()
            raise

        self._running = True
        logger.info("Cellar Sync started", extra={"rooms": len(self.engine.state.rooms)})

    async def stop(self) -> None:
        """Deactivate synchronization and close the store."""
        await self.engine.deactivate()
        if self.store.is_configured():
            await self.store.close()
        self._running = False
        logger.info("Cellar Sync stopped")


def main() -> None:
    """Main entry point."""
    try:
        config = AppConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    from .api import create_app

    app = create_app(config=config)
    uvicorn.run(app, host=config.http.host, port=config.http.port, log_config=None)


if __name__ == "__main__":
    main()
