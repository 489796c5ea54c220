"""
Custom exceptions for the controller manager service and its test server.

Provides specific exception types for configuration, serving and the
launch stages of the in-process test server.
"""

from typing import Any


class ControllerManagerError(Exception):
    """Base exception for all controller manager errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Error message
            error_code: Optional error code for categorization
            details: Optional additional error details
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}


class ConfigurationError(ControllerManagerError):
    """Raised when options cannot be parsed or turned into a runtime config."""

    def __init__(
        self,
        message: str,
        config_key: str | None = None,
        errors: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize configuration error.

        Args:
            message: Error message
            config_key: Configuration key or flag that is invalid
            errors: Validation messages collected from the options
            details: Additional error details
        """
        error_details = details or {}
        if config_key:
            error_details["config_key"] = config_key
        if errors:
            error_details["errors"] = list(errors)

        super().__init__(message, "CONFIGURATION_ERROR", error_details)
        self.config_key = config_key
        self.errors = list(errors or [])


class FlagParseError(ConfigurationError):
    """Raised when command-line style overrides fail to parse."""

    def __init__(self, message: str, args: list[str] | None = None) -> None:
        """Initialize flag parse error.

        Args:
            message: Parser error message
            args: The flag tokens that were being parsed
        """
        details = {}
        if args is not None:
            details["args"] = list(args)

        super().__init__(message, details=details)
        self.error_code = "FLAG_PARSE_ERROR"
        self.args_parsed = list(args or [])


class CertificateError(ConfigurationError):
    """Raised when serving certificates cannot be loaded or generated."""

    def __init__(self, message: str, path: str | None = None) -> None:
        """Initialize certificate error.

        Args:
            message: Error message
            path: Certificate or key path involved
        """
        super().__init__(message, config_key="server_cert", details={"path": path} if path else None)
        self.error_code = "CERTIFICATE_ERROR"
        self.path = path


class ClientConstructionError(ControllerManagerError):
    """Raised when a client for the service API cannot be built."""

    def __init__(self, message: str, host: str | None = None) -> None:
        """Initialize client construction error.

        Args:
            message: Error message
            host: Host the client was meant to reach
        """
        super().__init__(message, "CLIENT_CONSTRUCTION_ERROR", {"host": host} if host else None)
        self.host = host


class ServiceRunError(ControllerManagerError):
    """Raised by the service run loop when it fails on its own."""

    def __init__(self, message: str, service_name: str | None = None) -> None:
        """Initialize service run error.

        Args:
            message: Error message
            service_name: Name of the service that failed
        """
        super().__init__(message, "SERVICE_RUN_ERROR", {"service_name": service_name} if service_name else None)
        self.service_name = service_name


class TestServerError(ControllerManagerError):
    """Base exception for failures while launching a test server."""

    __test__ = False

    def __init__(
        self,
        message: str,
        stage: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize test server error.

        Args:
            message: Error message
            stage: Launch stage that failed (allocating, configuring, starting, probing)
            error_code: Optional error code for categorization
            details: Additional error details
        """
        error_details = details or {}
        error_details["stage"] = stage

        super().__init__(message, error_code, error_details)
        self.stage = stage


class FilesystemError(TestServerError):
    """Raised when the temporary directory cannot be created."""

    def __init__(self, message: str, path: str | None = None) -> None:
        """Initialize filesystem error.

        Args:
            message: Error message
            path: Path involved in the failure
        """
        super().__init__(message, "allocating", "FILESYSTEM_ERROR", {"path": path} if path else None)
        self.path = path


class ResourceExhaustionError(TestServerError):
    """Raised when no free port can be bound."""

    def __init__(self, message: str) -> None:
        """Initialize resource exhaustion error.

        Args:
            message: Error message
        """
        super().__init__(message, "allocating", "RESOURCE_EXHAUSTION")


class ServiceStartFailedError(TestServerError):
    """Raised when the service exits before it ever became ready."""

    def __init__(self, message: str, elapsed: float | None = None) -> None:
        """Initialize service start failure.

        Args:
            message: Error message
            elapsed: Seconds spent probing before the exit was observed
        """
        super().__init__(
            message,
            "probing",
            "SERVICE_START_FAILED",
            {"elapsed_seconds": round(elapsed, 3)} if elapsed is not None else None,
        )
        self.elapsed = elapsed


class ReadinessTimeoutError(TestServerError):
    """Raised when the liveness endpoint never reported healthy in time."""

    def __init__(self, message: str, timeout: float, last_status: int | None = None) -> None:
        """Initialize readiness timeout error.

        Args:
            message: Error message
            timeout: The readiness deadline in seconds
            last_status: Last HTTP status observed, if any request completed
        """
        details: dict[str, Any] = {"timeout_seconds": timeout}
        if last_status is not None:
            details["last_status"] = last_status

        super().__init__(message, "probing", "READINESS_TIMEOUT", details)
        self.timeout = timeout
        self.last_status = last_status
