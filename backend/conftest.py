"""Root conftest: test environment, structlog wiring and the fixtures shared by bot and encounter tests."""

from pathlib import Path

import pytest
import structlog
from dotenv import load_dotenv

from encounter.session.timer_manager import TimerManager
from encounter.tests.mocks import MockChannelGateway
from shared.storage import GuildResourceStorage

load_dotenv(Path(__file__).resolve().parent.parent / ".env.tests")

# Route structlog through stdlib logging so caplog sees the bot's events.
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ],
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=False,
)


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Guild and command bindings must not leak between tests."""
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def storage(tmp_path):
    return GuildResourceStorage(tmp_path)


@pytest.fixture
def gateway():
    return MockChannelGateway()


@pytest.fixture
async def timers():
    # Ticks are driven by hand with timer.tick(); the background loop never fires.
    manager = TimerManager(tick_seconds=3600)
    yield manager
    manager.cancel_all()
