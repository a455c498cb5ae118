"""Unit test fixtures with mocked dependencies."""

import pytest

from infrastructure.settings import (
    get_access_settings,
    get_database_settings,
    get_settings,
)


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Reload settings from the environment in every test."""
    for getter in (get_settings, get_database_settings, get_access_settings):
        getter.cache_clear()
    yield
    for getter in (get_settings, get_database_settings, get_access_settings):
        getter.cache_clear()

