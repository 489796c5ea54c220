"""
HTTP API for the controller manager.

Serves the health endpoints used by probes and test harnesses, and the
``/configz`` debug endpoint restricted to loopback clients.
"""

import secrets
from collections.abc import Mapping
from typing import Any

import structlog
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import PlainTextResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from . import __version__
from .config import CompletedConfig, HealthCheck

logger = structlog.get_logger(__name__)

_bearer = HTTPBearer(auto_error=False)


class ConfigzResponse(BaseModel):
    """Response body of ``/configz``."""

    version: str
    config: dict[str, Any]


def _run_checks(checks: Mapping[str, HealthCheck]) -> dict[str, bool]:
    results = {}
    for name, check in checks.items():
        try:
            results[name] = bool(check())
        except Exception as e:
            logger.warning("Health check raised", check=name, error=str(e))
            results[name] = False
    return results


def create_app(config: CompletedConfig) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Controller Manager",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.config = config

    def require_loopback_token(
        credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    ) -> None:
        if credentials is None or not secrets.compare_digest(credentials.credentials, config.loopback_token):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    @app.get("/healthz", response_class=PlainTextResponse)
    async def healthz(request: Request, verbose: bool = False) -> PlainTextResponse:
        """Aggregate health of every registered check."""
        results = _run_checks(request.app.state.config.health_checks)
        failed = sorted(name for name, ok in results.items() if not ok)

        if failed:
            logger.info("Health check failed", failed=failed)
            body = "\n".join(
                f"[+]{name} ok" if ok else f"[-]{name} failed" for name, ok in sorted(results.items())
            )
            return PlainTextResponse(f"{body}\nhealthz check failed\n", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

        if verbose:
            body = "\n".join(f"[+]{name} ok" for name in sorted(results))
            return PlainTextResponse(f"{body}\nhealthz check passed\n")
        return PlainTextResponse("ok")

    @app.get("/healthz/{name}", response_class=PlainTextResponse)
    async def healthz_check(name: str, request: Request) -> PlainTextResponse:
        """Result of a single named check."""
        checks = request.app.state.config.health_checks
        if name not in checks:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"no such health check: {name}")
        if not _run_checks({name: checks[name]})[name]:
            return PlainTextResponse(f"{name} failed\n", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
        return PlainTextResponse("ok")

    @app.get("/configz", dependencies=[Depends(require_loopback_token)])
    async def configz(request: Request) -> ConfigzResponse:
        """Resolved, non-secret configuration."""
        return ConfigzResponse(version=__version__, config=request.app.state.config.to_dict())

    return app
