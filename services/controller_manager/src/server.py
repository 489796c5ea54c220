"""
Blocking entry point of the controller manager.

``run`` serves the API over HTTPS until the stop event is set, and is the
call both the standalone process and the in-process test server use.
"""

import asyncio
import logging
import threading

import structlog
import uvicorn

from .app import create_app
from .config import CompletedConfig
from .exceptions import ServiceRunError

logger = structlog.get_logger(__name__)

# How often the serving loop checks the stop event.
STOP_POLL_INTERVAL = 0.1


def setup_logging(log_level: str = "INFO", json_logs: bool = False) -> None:
    """Configure structured logging for the service."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper()),
    )


def _uvicorn_config(config: CompletedConfig) -> uvicorn.Config:
    serving = config.secure_serving
    if serving is None:
        raise ServiceRunError("secure serving is not configured", service_name=config.service_name)

    return uvicorn.Config(
        create_app(config),
        host=serving.bind_address,
        port=serving.port,
        ssl_certfile=serving.cert_file,
        ssl_keyfile=serving.key_file,
        log_level=config.log_level.lower(),
        log_config=None,
        access_log=False,
        timeout_graceful_shutdown=int(config.shutdown_grace_period) or None,
    )


async def serve(config: CompletedConfig, stop_event: threading.Event) -> None:
    """Serve until ``stop_event`` is set.

    Raises:
        ServiceRunError: If the server stops on its own, or never finishes
            starting up
    """
    log = logger.bind(service=config.service_name)

    if config.secure_serving is None:
        log.warning("Secure serving is disabled, no API will be served")
        while not stop_event.is_set():
            await asyncio.sleep(STOP_POLL_INTERVAL)
        return

    listener = config.secure_serving.listener
    server = uvicorn.Server(_uvicorn_config(config))
    try:
        serve_task = asyncio.create_task(server.serve(sockets=[listener] if listener is not None else None))

        while not stop_event.is_set() and not serve_task.done():
            await asyncio.wait({serve_task}, timeout=STOP_POLL_INTERVAL)

        stop_requested = stop_event.is_set()
        if stop_requested:
            log.info("Stop requested, shutting down server")
        server.should_exit = True
        await serve_task
    finally:
        # uvicorn skips its shutdown when told to exit mid-startup
        if listener is not None:
            listener.close()

    if not server.started:
        raise ServiceRunError("server exited before startup completed", service_name=config.service_name)
    if not stop_requested:
        raise ServiceRunError("server exited without a stop request", service_name=config.service_name)


def run(config: CompletedConfig, stop_event: threading.Event) -> None:
    """Run the controller manager until ``stop_event`` is set.

    Blocks the calling thread on a private event loop.

    Args:
        config: Completed runtime configuration
        stop_event: Set to request a full shutdown

    Raises:
        ServiceRunError: If serving fails or ends without a stop request
    """
    serving = config.secure_serving
    logger.info(
        "Starting controller manager",
        service=config.service_name,
        secure_port=serving.port if serving else 0,
    )

    try:
        asyncio.run(serve(config, stop_event))
    except SystemExit as e:
        # uvicorn exits the interpreter when it cannot start listening
        raise ServiceRunError(f"server exited with status {e.code}", service_name=config.service_name) from e

    logger.info("Controller manager stopped", service=config.service_name)
