"""Shared pytest configuration and fixtures.

This module provides global fixtures and configuration that are available
to all tests in the test suite.

Fixtures defined here are automatically available to all tests without explicit
import statements. Keep fixtures small, composable, and focused on setup/teardown.
Do NOT put business logic in fixtures.
"""

# pylint: disable=redefined-outer-name

import pytest

from reconciler.config import get_settings


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Reset the cached settings so env patches in one test never leak."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
