"""
pytest configuration for webhook job tests.

Adds src directory to Python path for imports and provides shared fixtures.
"""

import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))

from config.config import reset_config  # noqa: E402
from core.logging.context import clear_log_context  # noqa: E402


class FakeClock:
    """Manually advanced UTC clock for queue tests."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2026, 1, 5, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> datetime:
        self.current = self.current + timedelta(seconds=seconds)
        return self.current


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(autouse=True)
def reset_global_state():
    """Keep log context and config singleton from leaking between tests."""
    clear_log_context()
    reset_config()
    yield
    clear_log_context()
    reset_config()
