"""Pytest fixtures for tests that need a running controller manager.

Enable with ``pytest_plugins = ["services.controller_manager.src.testing.fixtures"]``.
Override ``controller_manager_flags`` to pass extra flags.
"""

from collections.abc import Iterator

import pytest

from .testserver import TestServer, start_test_server_or_die


@pytest.fixture
def controller_manager_flags() -> list[str]:
    """Flags for the controller manager under test."""
    return []


@pytest.fixture
def controller_manager_server(controller_manager_flags: list[str]) -> Iterator[TestServer]:
    """A healthy controller manager, torn down after the test."""
    server = start_test_server_or_die(controller_manager_flags)
    yield server
    server.tear_down()
