"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone

import pytest

from thumbforge.config import BudgetConfig, ContextSettings, StorageConfig, WindowConfig
from thumbforge.context import ContextManager


class StepClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self) -> datetime:
        now = self.current
        self.current = now + timedelta(seconds=1)
        return now


@pytest.fixture
def clock():
    """Create a stepping clock."""
    return StepClock()


@pytest.fixture
def make_manager(clock):
    """Factory for fresh context managers."""

    def _make(window_size: int = 10, **kwargs) -> ContextManager:
        return ContextManager.create("project_1", "user_1", window_size=window_size, clock=clock, **kwargs)

    return _make


@pytest.fixture
def sample_settings(tmp_path):
    """Create sample settings backed by a temporary directory."""
    return ContextSettings(
        window=WindowConfig(window_size=4),
        budget=BudgetConfig(display_max_tokens=8000, generation_max_tokens=3000),
        storage=StorageConfig(backend="json", path=str(tmp_path / "conversations")),
    )
