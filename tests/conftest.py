"""Pytest configuration and shared fixtures."""

import pytest

# The smartdash testing plugin is registered via a ``pytest11`` entry
# point (pyproject.toml) for external consumers.  In our own test
# suite we disable it (``-p no:smartdash``) and re-export its fixtures
# here instead, so the smartdash import chain happens after
# ``pytest-cov`` starts tracing.
from smartdash.testing._plugin import fake_clock, memory_store, mock_mqtt  # noqa: F401


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (may require external services)"
    )
