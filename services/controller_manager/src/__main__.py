"""Main entry point for the controller manager service."""

import signal
import sys
import threading
from typing import Any

import structlog
from dotenv import load_dotenv

from .exceptions import ConfigurationError, ServiceRunError
from .options import ControllerManagerOptions
from .server import run, setup_logging

load_dotenv()

logger = structlog.get_logger(__name__)


def main(argv: list[str] | None = None) -> None:
    """Parse flags and run the controller manager until signalled."""
    options = ControllerManagerOptions.from_env()
    args = sys.argv[1:] if argv is None else argv

    if "-h" in args or "--help" in args:
        options.flags(add_help=True).print_help()
        sys.exit(0)

    try:
        options.parse_flags(args)
        config = options.config()
    except ConfigurationError as e:
        setup_logging()
        logger.error("Configuration validation failed", error=e.message, errors=e.errors)
        sys.exit(1)

    setup_logging(config.log_level, config.json_logs)

    stop_event = threading.Event()

    def handle_shutdown(signum: int, frame: Any) -> None:
        logger.info("Received shutdown signal", signal=signal.Signals(signum).name)
        stop_event.set()

    signal.signal(signal.SIGINT, handle_shutdown)
    signal.signal(signal.SIGTERM, handle_shutdown)

    try:
        run(config.complete(), stop_event)
    except ServiceRunError as e:
        logger.error("Controller manager failed", error=e.message)
        sys.exit(1)


if __name__ == "__main__":
    main()
