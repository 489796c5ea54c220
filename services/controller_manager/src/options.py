"""
Command-line options for the controller manager.

Options start from defaults (optionally overridden by environment
variables), are refined by flag tokens, and are finally turned into a
runtime ``Config``.
"""

from __future__ import annotations

import argparse
import ipaddress
import logging
import os
import secrets
import socket
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import NoReturn

from .certs import maybe_default_with_self_signed_certs
from .config import ClientConfig, Config, SecureServingInfo
from .exceptions import ConfigurationError, FlagParseError

DEFAULT_SECURE_PORT = 10257
DEFAULT_CERT_DIRECTORY = "controller-manager.local.config/certificates"

# flag dest -> (options section, attribute)
_FLAG_TARGETS: dict[str, tuple[str, str]] = {
    "bind_address": ("secure_serving", "bind_address"),
    "secure_port": ("secure_serving", "bind_port"),
    "cert_dir": ("server_cert", "cert_directory"),
    "tls_cert_file": ("server_cert", "cert_file"),
    "tls_private_key_file": ("server_cert", "key_file"),
    "tls_pair_name": ("server_cert", "pair_name"),
    "service_name": ("generic", "service_name"),
    "shutdown_grace_period": ("generic", "shutdown_grace_period"),
    "log_level": ("logging", "log_level"),
    "json_logs": ("logging", "json_logs"),
}


def _env_bool(val: str) -> bool:
    return val.lower() in ("true", "1", "yes")


class FlagParser(argparse.ArgumentParser):
    """Argument parser that raises instead of exiting the interpreter."""

    def __init__(self, *args: object, args_in_flight: Sequence[str] | None = None, **kwargs: object) -> None:
        super().__init__(*args, **kwargs)  # type: ignore[arg-type]
        self.args_in_flight = list(args_in_flight or [])

    def error(self, message: str) -> NoReturn:
        raise FlagParseError(f"failed to parse flags: {message}", self.args_in_flight)


@dataclass
class CertOptions:
    """Where the serving certificate comes from."""

    cert_directory: str = DEFAULT_CERT_DIRECTORY
    pair_name: str = "controller-manager"
    cert_file: str = ""
    key_file: str = ""


@dataclass
class SecureServingOptions:
    """HTTPS serving options. A ``bind_port`` of 0 disables secure serving."""

    bind_address: str = "0.0.0.0"
    bind_port: int = DEFAULT_SECURE_PORT
    listener: socket.socket | None = None
    server_cert: CertOptions = field(default_factory=CertOptions)

    def enabled(self) -> bool:
        return self.bind_port != 0


@dataclass
class GenericOptions:
    """Service-level options."""

    service_name: str = "controller-manager"
    shutdown_grace_period: float = 5.0


@dataclass
class LoggingOptions:
    """Logging options."""

    log_level: str = "INFO"
    json_logs: bool = False


@dataclass
class ControllerManagerOptions:
    """All options accepted by the controller manager."""

    secure_serving: SecureServingOptions = field(default_factory=SecureServingOptions)
    generic: GenericOptions = field(default_factory=GenericOptions)
    logging: LoggingOptions = field(default_factory=LoggingOptions)

    @classmethod
    def from_env(cls) -> ControllerManagerOptions:
        """Create options from environment variables.

        Environment variables follow the pattern:
        CONTROLLER_MANAGER_<SECTION>_<SETTING>

        Examples:
        - CONTROLLER_MANAGER_SECURE_SERVING_BIND_PORT=0
        - CONTROLLER_MANAGER_LOGGING_LOG_LEVEL=DEBUG
        """
        options = cls()
        serving = options.secure_serving

        serving.bind_address = os.getenv("CONTROLLER_MANAGER_SECURE_SERVING_BIND_ADDRESS", serving.bind_address)
        if val := os.getenv("CONTROLLER_MANAGER_SECURE_SERVING_BIND_PORT"):
            serving.bind_port = int(val)
        serving.server_cert.cert_directory = os.getenv(
            "CONTROLLER_MANAGER_SECURE_SERVING_CERT_DIR", serving.server_cert.cert_directory
        )
        serving.server_cert.cert_file = os.getenv(
            "CONTROLLER_MANAGER_SECURE_SERVING_TLS_CERT_FILE", serving.server_cert.cert_file
        )
        serving.server_cert.key_file = os.getenv(
            "CONTROLLER_MANAGER_SECURE_SERVING_TLS_PRIVATE_KEY_FILE", serving.server_cert.key_file
        )

        options.generic.service_name = os.getenv("CONTROLLER_MANAGER_GENERIC_SERVICE_NAME", options.generic.service_name)
        if val := os.getenv("CONTROLLER_MANAGER_GENERIC_SHUTDOWN_GRACE_PERIOD"):
            options.generic.shutdown_grace_period = float(val)

        options.logging.log_level = os.getenv("CONTROLLER_MANAGER_LOGGING_LOG_LEVEL", options.logging.log_level)
        if val := os.getenv("CONTROLLER_MANAGER_LOGGING_JSON_LOGS"):
            options.logging.json_logs = _env_bool(val)

        return options

    def flags(self, *, add_help: bool = False, args: Sequence[str] | None = None) -> FlagParser:
        """Build the flag parser, one argument group per options section.

        Only flags that are actually passed end up in the parsed namespace,
        so unset flags never clobber the current option values.
        """
        parser = FlagParser(
            prog="controller-manager",
            add_help=add_help,
            allow_abbrev=False,
            argument_default=argparse.SUPPRESS,
            args_in_flight=args,
        )
        serving = self.secure_serving

        group = parser.add_argument_group("secure serving")
        group.add_argument(
            "--bind-address",
            help=f"IP address to listen on for --secure-port (default: {serving.bind_address})",
        )
        group.add_argument(
            "--secure-port",
            type=int,
            help=f"Port to serve HTTPS on; 0 disables secure serving (default: {serving.bind_port})",
        )
        group.add_argument(
            "--cert-dir",
            help=f"Directory holding the generated serving certificate (default: {serving.server_cert.cert_directory})",
        )
        group.add_argument("--tls-cert-file", help="File containing the serving certificate chain")
        group.add_argument("--tls-private-key-file", help="File containing the serving private key")
        group.add_argument(
            "--tls-pair-name",
            help=f"Base file name of the generated cert/key pair (default: {serving.server_cert.pair_name})",
        )

        group = parser.add_argument_group("generic")
        group.add_argument("--service-name", help=f"Service name (default: {self.generic.service_name})")
        group.add_argument(
            "--shutdown-grace-period",
            type=float,
            help=f"Seconds to wait for in-flight requests on shutdown (default: {self.generic.shutdown_grace_period})",
        )

        group = parser.add_argument_group("logging")
        group.add_argument("--log-level", help=f"Log level (default: {self.logging.log_level})")
        group.add_argument(
            "--json-logs",
            action=argparse.BooleanOptionalAction,
            help="Render logs as JSON",
        )

        return parser

    def parse_flags(self, args: Sequence[str]) -> None:
        """Apply flag tokens to these options.

        Raises:
            FlagParseError: If any token is unknown or malformed
        """
        args = list(args)
        namespace = self.flags(args=args).parse_args(args)

        sections = {
            "secure_serving": self.secure_serving,
            "server_cert": self.secure_serving.server_cert,
            "generic": self.generic,
            "logging": self.logging,
        }
        for dest, value in vars(namespace).items():
            section, attr = _FLAG_TARGETS[dest]
            setattr(sections[section], attr, value)

    def validate(self) -> list[str]:
        """Validate options and return any errors.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []
        serving = self.secure_serving

        if not 0 <= serving.bind_port <= 65535:
            errors.append(f"--secure-port {serving.bind_port} must be between 0 and 65535")
        try:
            ipaddress.ip_address(serving.bind_address)
        except ValueError:
            errors.append(f"--bind-address {serving.bind_address!r} is not a valid IP address")

        cert = serving.server_cert
        if bool(cert.cert_file) != bool(cert.key_file):
            errors.append("--tls-cert-file and --tls-private-key-file must be given together")
        if serving.enabled() and not (cert.cert_file or cert.cert_directory):
            errors.append("--cert-dir is required when no serving certificate is given")
        if not cert.pair_name:
            errors.append("--tls-pair-name must not be empty")

        if not self.generic.service_name:
            errors.append("--service-name must not be empty")
        if self.generic.shutdown_grace_period < 0:
            errors.append("--shutdown-grace-period must be non-negative")

        if not isinstance(logging.getLevelName(self.logging.log_level.upper()), int):
            errors.append(f"--log-level {self.logging.log_level!r} is not a known level")

        return errors

    def config(self) -> Config:
        """Derive the runtime configuration from these options.

        Raises:
            ConfigurationError: If validation fails or the serving certificate
                cannot be resolved
        """
        errors = self.validate()
        if errors:
            raise ConfigurationError("invalid controller manager options", errors=errors)

        token = secrets.token_urlsafe(32)
        config = Config(
            service_name=self.generic.service_name,
            loopback_token=token,
            log_level=self.logging.log_level.upper(),
            json_logs=self.logging.json_logs,
            shutdown_grace_period=self.generic.shutdown_grace_period,
        )

        serving = self.secure_serving
        if not serving.enabled():
            return config

        host = loopback_host(serving.bind_address)
        cert_file, key_file = maybe_default_with_self_signed_certs(serving.server_cert, host.strip("[]"))
        config.secure_serving = SecureServingInfo(
            bind_address=serving.bind_address,
            port=serving.bind_port,
            cert_file=cert_file,
            key_file=key_file,
            listener=serving.listener,
        )
        config.loopback_client_config = ClientConfig(
            host=f"https://{host}:{serving.bind_port}",
            ca_file=cert_file,
            bearer_token=token,
        )
        return config


def loopback_host(bind_address: str) -> str:
    """Address a local client should dial to reach ``bind_address``."""
    ip = ipaddress.ip_address(bind_address)
    if ip.is_unspecified or ip.is_loopback:
        return "127.0.0.1" if ip.version == 4 else "[::1]"
    return str(ip) if ip.version == 4 else f"[{ip}]"
