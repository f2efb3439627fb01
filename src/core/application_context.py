"""
Application Context: startup and shutdown wiring for Apex.

Builds the infrastructure and the progression services in dependency
order and tears them down in reverse.

Initialization order:
    1. Logging (`setup_logging`)
    2. ConfigManager (YAML balance tables) and ProgressionTables
    3. DatabaseService (engine; optionally the schema)
    4. EventBus
    5. SqlAlchemyProgressionStore, ProgressionService, SubmissionRewardService
    6. Default breakthrough rules (optional, idempotent)

Shutdown order:
    1. EventBus.drain() (background listeners)
    2. DatabaseService.shutdown()
    3. shutdown_logging()

Usage:
    context = ApplicationContext()
    await context.initialize()
    result = await context.progression.award_xp(athlete_id, domain_id, 50, XPSource.ADMIN)
    await context.shutdown()
"""

from __future__ import annotations

import time
from typing import Optional

from src.core.config.config import Config
from src.core.config.manager import ConfigManager
from src.core.database.service import DatabaseService
from src.core.event.bus import EventBus
from src.core.logging.logger import get_logger, setup_logging, shutdown_logging
from src.modules.progression.constants import ProgressionTables
from src.modules.progression.repository import SqlAlchemyProgressionStore
from src.modules.progression.reward_service import SubmissionRewardService
from src.modules.progression.service import ProgressionService

logger = get_logger(__name__)


def _ms_since(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


class ApplicationContext:
    """
    Owns every long-lived object of a running Apex process.

    `database` and `config_manager` may be injected (tests pass a
    DatabaseService pointed at a throwaway container); otherwise they are
    built from `Config`.
    """

    def __init__(
        self,
        *,
        database: Optional[DatabaseService] = None,
        config_manager: Optional[ConfigManager] = None,
        create_schema: bool = False,
        seed_breakthrough_rules: bool = True,
    ) -> None:
        self._database = database
        self._config_manager = config_manager
        self._create_schema = create_schema
        self._seed_rules = seed_breakthrough_rules

        self._event_bus: Optional[EventBus] = None
        self._progression: Optional[ProgressionService] = None
        self._rewards: Optional[SubmissionRewardService] = None
        self._initialized = False

    # ========================================================================
    # INITIALIZATION
    # ========================================================================

    async def initialize(self) -> None:
        """
        Raises:
            RuntimeError: already initialized, or a step failed (the cause is
                chained and anything already started is shut down)
        """
        if self._initialized:
            raise RuntimeError("ApplicationContext already initialized")

        setup_logging()
        start = time.perf_counter()
        logger.info("Application context starting", extra=Config.get_config_summary())

        try:
            if self._config_manager is None:
                self._config_manager = ConfigManager.from_config()
            self._config_manager.load()
            tables = ProgressionTables.from_config_manager(self._config_manager)

            if self._database is None:
                self._database = DatabaseService.from_config()
            await self._database.initialize()
            if self._create_schema:
                await self._database.create_schema()

            self._event_bus = EventBus()
            self._progression = ProgressionService(
                SqlAlchemyProgressionStore(self._database),
                tables,
                self._config_manager,
                self._event_bus,
            )
            self._rewards = SubmissionRewardService(
                self._progression, self._config_manager, self._event_bus
            )

            if self._seed_rules:
                created = await self._progression.seed_default_breakthrough_rules()
                logger.info("Breakthrough rules seeded", extra={"rules_created": len(created)})
        except Exception as exc:
            logger.critical(
                "Application context initialization failed",
                extra={"error_type": type(exc).__name__},
                exc_info=True,
            )
            await self._release()
            raise RuntimeError("Failed to initialize application context") from exc

        self._initialized = True
        logger.info("Application context ready", extra={"duration_ms": _ms_since(start)})

    # ========================================================================
    # SHUTDOWN
    # ========================================================================

    async def shutdown(self) -> None:
        if not self._initialized:
            logger.warning("ApplicationContext not initialized, nothing to shut down")
            return

        start = time.perf_counter()
        await self._release()
        self._initialized = False
        logger.info("Application context stopped", extra={"duration_ms": _ms_since(start)})
        shutdown_logging()

    async def _release(self) -> None:
        if self._event_bus is not None:
            try:
                await self._event_bus.drain()
            except Exception:
                logger.error("Error draining event bus", exc_info=True)

        if self._database is not None:
            try:
                await self._database.shutdown()
            except Exception:
                logger.error("Error shutting down database", exc_info=True)

    # ========================================================================
    # PROPERTIES
    # ========================================================================

    def _require(self, value, name: str):
        if not self._initialized or value is None:
            raise RuntimeError(f"{name} not available: ApplicationContext not initialized")
        return value

    @property
    def config_manager(self) -> ConfigManager:
        return self._require(self._config_manager, "ConfigManager")

    @property
    def database(self) -> DatabaseService:
        return self._require(self._database, "DatabaseService")

    @property
    def event_bus(self) -> EventBus:
        return self._require(self._event_bus, "EventBus")

    @property
    def progression(self) -> ProgressionService:
        return self._require(self._progression, "ProgressionService")

    @property
    def rewards(self) -> SubmissionRewardService:
        return self._require(self._rewards, "SubmissionRewardService")

    @property
    def is_initialized(self) -> bool:
        return self._initialized


__all__ = ["ApplicationContext"]
