"""Shared test configuration for icsfeed_lite."""

from typing import Any


def pytest_configure(config: Any) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "fast: Tests that run in milliseconds")
    config.addinivalue_line("markers", "integration: End-to-end expansion tests")
