"""
Runtime configuration for the controller manager.

A ``Config`` is derived from ``ControllerManagerOptions`` and holds
everything the server needs to run, including the loopback client
configuration used to reach the service's own API.
"""

from __future__ import annotations

import socket
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Any

HealthCheck = Callable[[], bool]


def ping() -> bool:
    """Health check that always passes."""
    return True


def default_health_checks() -> dict[str, HealthCheck]:
    """Return the health checks every controller manager registers."""
    return {"ping": ping}


@dataclass(frozen=True)
class ClientConfig:
    """Configuration for a client talking to the service API."""

    host: str
    ca_file: str | None = None
    bearer_token: str | None = None
    timeout: float = 5.0

    def __repr__(self) -> str:
        token = "<redacted>" if self.bearer_token else None
        return f"ClientConfig(host={self.host!r}, ca_file={self.ca_file!r}, bearer_token={token!r}, timeout={self.timeout!r})"


@dataclass
class SecureServingInfo:
    """Resolved HTTPS serving settings."""

    bind_address: str
    port: int
    cert_file: str
    key_file: str
    listener: socket.socket | None = None


@dataclass
class Config:
    """Main runtime configuration for the controller manager."""

    service_name: str
    loopback_token: str
    secure_serving: SecureServingInfo | None = None
    loopback_client_config: ClientConfig | None = None
    log_level: str = "INFO"
    json_logs: bool = False
    shutdown_grace_period: float = 5.0
    health_checks: dict[str, HealthCheck] = field(default_factory=default_health_checks)

    def complete(self) -> CompletedConfig:
        """Freeze the configuration for handing to the server."""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values["health_checks"] = MappingProxyType(dict(self.health_checks))
        return CompletedConfig(**values)


@dataclass(frozen=True)
class CompletedConfig:
    """Immutable view of a ``Config`` consumed by ``server.run``."""

    service_name: str
    loopback_token: str
    secure_serving: SecureServingInfo | None
    loopback_client_config: ClientConfig | None
    log_level: str
    json_logs: bool
    shutdown_grace_period: float
    health_checks: Mapping[str, HealthCheck]

    def to_dict(self) -> dict[str, Any]:
        """Non-secret view of the configuration, as served on ``/configz``."""
        serving: dict[str, Any] | None = None
        if self.secure_serving is not None:
            serving = {
                "bind_address": self.secure_serving.bind_address,
                "port": self.secure_serving.port,
                "cert_file": self.secure_serving.cert_file,
                "key_file": self.secure_serving.key_file,
            }

        return {
            "service_name": self.service_name,
            "secure_serving": serving,
            "log_level": self.log_level,
            "json_logs": self.json_logs,
            "shutdown_grace_period": self.shutdown_grace_period,
            "health_checks": sorted(self.health_checks),
        }
