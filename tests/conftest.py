"""Pytest configuration and fixtures."""

import pytest

from services.controller_manager.src.config import Config, default_health_checks
from services.controller_manager.src.testing.fixtures import (  # noqa: F401
    controller_manager_flags,
    controller_manager_server,
)


# Add pytest markers
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")


@pytest.fixture
def plain_config() -> Config:
    """Config with secure serving disabled."""
    return Config(
        service_name="controller-manager",
        loopback_token="test-token",
        health_checks=default_health_checks(),
    )
