"""Controller manager service and its in-process test server."""

__version__ = "0.1.0"
