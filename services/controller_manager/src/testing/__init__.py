"""In-process test server for the controller manager."""

from .readiness import POLL_INTERVAL, READINESS_TIMEOUT, wait_ready
from .resources import allocate_port, allocate_temp_dir, remove_temp_dir
from .runner import ServiceHandle, start_service
from .teardown import Teardown
from .testserver import (
    TearDownFunc,
    TestServer,
    running_test_server,
    start_test_server,
    start_test_server_or_die,
)

__all__ = [
    "POLL_INTERVAL",
    "READINESS_TIMEOUT",
    "ServiceHandle",
    "TearDownFunc",
    "Teardown",
    "TestServer",
    "allocate_port",
    "allocate_temp_dir",
    "remove_temp_dir",
    "running_test_server",
    "start_service",
    "start_test_server",
    "start_test_server_or_die",
    "wait_ready",
]
