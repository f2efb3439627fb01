"""
Pytest Configuration and Fixtures for Apex Progression Tests
============================================================

Purpose
-------
Shared fixtures for the test suite: progression tables, the in-memory store,
mocked event bus, wired services and a PostgreSQL testcontainer for
integration tests.

Architecture Notes
------------------
- Unit tests use the in-memory store (tests/fakes.py) and a mocked EventBus
- Integration tests use testcontainers (real PostgreSQL) and are skipped
  when Docker is not available
- The environment is switched to testing before anything under `src` is
  imported, so Config and logging pick it up
"""

from __future__ import annotations

import os

os.environ.setdefault("APEX_ENV", "testing")
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from datetime import datetime, timezone  # noqa: E402

import pytest  # noqa: E402

from src.core.config.manager import ConfigManager  # noqa: E402
from src.core.database.retry_policy import RetryConfig, TransactionRetryPolicy  # noqa: E402
from src.modules.progression.constants import ProgressionTables  # noqa: E402
from src.modules.progression.reward_service import SubmissionRewardService  # noqa: E402
from src.modules.progression.service import ProgressionService  # noqa: E402
from src.modules.shared.exceptions import (  # noqa: E402
    ConcurrencyConflictError,
    TransientProgressionError,
)
from tests.fakes import (  # noqa: E402
    ATHLETE_ID,
    DIVISION_ATHLETE_ID,
    DIVISION_ID,
    ENDURANCE,
    MOBILITY,
    STRENGTH,
    InMemoryProgressionStore,
)

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


# ============================================================================
# CORE FIXTURES
# ============================================================================


@pytest.fixture
def tables() -> ProgressionTables:
    return ProgressionTables.default()


@pytest.fixture
def config_manager() -> ConfigManager:
    """ConfigManager with coded defaults only (no YAML directory)."""
    return ConfigManager(config_dir=None).load()


@pytest.fixture
def mock_event_bus(mocker):
    """
    Mock EventBus for unit tests.

    Scope: function
    Uses: Service tests asserting on published events
    """
    mock_bus = mocker.MagicMock()
    mock_bus.publish = mocker.AsyncMock(return_value=[])
    mock_bus.subscribe = mocker.MagicMock()
    return mock_bus


async def _no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture
def retry_policy() -> TransactionRetryPolicy:
    """Three attempts, no backoff."""
    return TransactionRetryPolicy(
        RetryConfig(max_attempts=3, initial_backoff_ms=0, jitter_ms=0).with_retriable(
            ConcurrencyConflictError
        ),
        on_exhausted=lambda op, attempts, exc: TransientProgressionError(op, attempts),
        sleep=_no_sleep,
    )


# ============================================================================
# SERVICE FIXTURES
# ============================================================================


@pytest.fixture
def store() -> InMemoryProgressionStore:
    """In-memory store with two athletes (one in a division) and three domains."""
    store = InMemoryProgressionStore()
    store.add_athlete(ATHLETE_ID)
    store.add_athlete(DIVISION_ATHLETE_ID, division_id=DIVISION_ID)
    store.domains.update({STRENGTH, ENDURANCE, MOBILITY})
    return store


@pytest.fixture
def progression_service(
    store, tables, config_manager, mock_event_bus, retry_policy
) -> ProgressionService:
    return ProgressionService(
        store,
        tables,
        config_manager,
        mock_event_bus,
        retry_policy=retry_policy,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def reward_service(progression_service, config_manager, mock_event_bus) -> SubmissionRewardService:
    return SubmissionRewardService(progression_service, config_manager, mock_event_bus)


# ============================================================================
# INTEGRATION FIXTURES
# ============================================================================


@pytest.fixture(scope="session")
def postgres_container():
    """
    PostgreSQL container for integration tests.

    Scope: session (one container per run)
    Skips the requesting tests when Docker is unavailable.
    """
    testcontainers_postgres = pytest.importorskip("testcontainers.postgres")
    container = testcontainers_postgres.PostgresContainer(
        image="postgres:17-alpine", driver="asyncpg"
    )
    try:
        container.start()
    except Exception as exc:
        pytest.skip(f"Docker not available for integration tests: {exc}")

    try:
        yield container
    finally:
        container.stop()


@pytest.fixture
def postgres_url(postgres_container) -> str:
    return postgres_container.get_connection_url()


# ============================================================================
# TEST HELPERS
# ============================================================================


def assert_domain_event_emitted(entity, event_name: str) -> None:
    """Assert that an aggregate has a pending domain event with this name."""
    events = entity.get_pending_events()
    event_names = [e.event_name for e in events]
    assert event_name in event_names, (
        f"Expected event '{event_name}' not found. Events: {event_names}"
    )


def get_domain_event_payload(entity, event_name: str) -> dict:
    """Payload of the first pending domain event with this name."""
    for event in entity.get_pending_events():
        if event.event_name == event_name:
            return event.payload
    raise AssertionError(f"Event '{event_name}' not found")
