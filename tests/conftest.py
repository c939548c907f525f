"""Pytest configuration and shared fixtures."""

import pytest

# The showerguard testing plugin is registered via a ``pytest11`` entry
# point for external consumers.  Our own suite disables it
# (``-p no:showerguard``) and loads it here instead, after ``pytest-cov``
# has started tracing.
pytest_plugins = ["showerguard.testing._plugin"]


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: Full application lifecycle tests"
    )
