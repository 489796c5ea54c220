"""
Unit tests for the controller manager serving loop.

uvicorn is replaced by a scripted fake so that stop handling and the
failure modes of ``serve`` can be driven directly.
"""

import asyncio
import socket
import threading
from pathlib import Path

import pytest

from services.controller_manager.src import server
from services.controller_manager.src.config import Config, SecureServingInfo
from services.controller_manager.src.exceptions import ServiceRunError


class FakeServer:
    """Stand-in for uvicorn.Server with a scripted serve()."""

    instances: list["FakeServer"] = []
    behavior = "serve_forever"

    def __init__(self, config):
        self.config = config
        self.started = False
        self.should_exit = False
        self.sockets = None
        FakeServer.instances.append(self)

    async def serve(self, sockets=None):
        self.sockets = sockets
        if self.behavior == "exit_before_startup":
            return
        if self.behavior == "system_exit":
            raise SystemExit(1)

        self.started = True
        if self.behavior == "exit_after_startup":
            return
        while not self.should_exit:
            await asyncio.sleep(0.01)


@pytest.fixture
def fake_server(monkeypatch):
    """Patch uvicorn.Server with FakeServer."""
    FakeServer.instances = []
    FakeServer.behavior = "serve_forever"
    monkeypatch.setattr(server.uvicorn, "Server", FakeServer)
    return FakeServer


@pytest.fixture
def serving_config(plain_config: Config, tmp_path: Path):
    """Config with secure serving on a pre-bound listener."""
    listener = socket.create_server(("127.0.0.1", 0))
    plain_config.secure_serving = SecureServingInfo(
        bind_address="127.0.0.1",
        port=listener.getsockname()[1],
        cert_file=str(tmp_path / "tls.crt"),
        key_file=str(tmp_path / "tls.key"),
        listener=listener,
    )
    yield plain_config
    listener.close()


class TestUvicornConfig:
    """Test suite for the uvicorn configuration."""

    def test_uvicorn_config(self, serving_config):
        """Test that serving settings carry over to uvicorn."""
        serving_config.log_level = "DEBUG"
        serving_config.shutdown_grace_period = 2.5

        uv_config = server._uvicorn_config(serving_config.complete())

        assert uv_config.host == "127.0.0.1"
        assert uv_config.port == serving_config.secure_serving.port
        assert uv_config.ssl_certfile == serving_config.secure_serving.cert_file
        assert uv_config.ssl_keyfile == serving_config.secure_serving.key_file
        assert uv_config.log_level == "debug"
        assert uv_config.access_log is False
        assert uv_config.timeout_graceful_shutdown == 2

    def test_requires_secure_serving(self, plain_config):
        """Test that building a uvicorn config without serving info raises."""
        with pytest.raises(ServiceRunError, match="secure serving is not configured"):
            server._uvicorn_config(plain_config.complete())

    def test_zero_grace_period(self, serving_config):
        """Test that a zero grace period leaves uvicorn's default in place."""
        serving_config.shutdown_grace_period = 0

        assert server._uvicorn_config(serving_config.complete()).timeout_graceful_shutdown is None


class TestServe:
    """Test suite for serve()."""

    @pytest.mark.asyncio
    async def test_serving_disabled_idles_until_stop(self, plain_config):
        """Test that with serving disabled serve() waits for the stop event."""
        stop_event = threading.Event()
        asyncio.get_running_loop().call_later(0.05, stop_event.set)

        await asyncio.wait_for(server.serve(plain_config.complete(), stop_event), timeout=5)

        assert stop_event.is_set()

    @pytest.mark.asyncio
    async def test_stop_request(self, fake_server, serving_config):
        """Test that a stop request shuts the server down and closes the listener."""
        stop_event = threading.Event()
        listener = serving_config.secure_serving.listener
        asyncio.get_running_loop().call_later(0.05, stop_event.set)

        await asyncio.wait_for(server.serve(serving_config.complete(), stop_event), timeout=5)

        fake = fake_server.instances[0]
        assert fake.sockets == [listener]
        assert fake.should_exit is True
        assert listener.fileno() == -1

    @pytest.mark.asyncio
    async def test_exit_before_startup(self, fake_server, serving_config):
        """Test that a server that never started is reported."""
        fake_server.behavior = "exit_before_startup"

        with pytest.raises(ServiceRunError, match="before startup completed"):
            await server.serve(serving_config.complete(), threading.Event())

        assert serving_config.secure_serving.listener.fileno() == -1

    @pytest.mark.asyncio
    async def test_exit_without_stop_request(self, fake_server, serving_config):
        """Test that a server stopping on its own is reported."""
        fake_server.behavior = "exit_after_startup"

        with pytest.raises(ServiceRunError, match="without a stop request") as exc_info:
            await server.serve(serving_config.complete(), threading.Event())

        assert exc_info.value.service_name == "controller-manager"


class TestRun:
    """Test suite for run()."""

    def test_run_serving_disabled(self, plain_config):
        """Test that run() returns once stop is requested."""
        stop_event = threading.Event()
        stop_event.set()

        server.run(plain_config.complete(), stop_event)

    def test_run_converts_system_exit(self, fake_server, serving_config):
        """Test that uvicorn exiting the interpreter becomes ServiceRunError."""
        fake_server.behavior = "system_exit"

        with pytest.raises(ServiceRunError, match="exited with status 1"):
            server.run(serving_config.complete(), threading.Event())

        assert serving_config.secure_serving.listener.fileno() == -1
