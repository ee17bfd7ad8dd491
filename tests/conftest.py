"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


@pytest.fixture(autouse=True)
def reset_settings():
    """Drop cached settings so env overrides in one test don't leak."""
    from src.settings import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def virtual_clock():
    from src.alert_engine.clock import VirtualClock

    return VirtualClock()


@pytest.fixture
def manager(virtual_clock):
    """AlertManager on a virtual clock with the built-in default policy."""
    from src.alert_engine.manager import AlertManager

    mgr = AlertManager(clock=virtual_clock)
    yield mgr
    mgr.stop()
