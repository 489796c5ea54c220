"""HTTP client for the controller manager API."""

from __future__ import annotations

import ssl

import httpx

from .config import ClientConfig
from .exceptions import ClientConstructionError

USER_AGENT = "controller-manager-client/1.0"


def build_client(client_config: ClientConfig | None) -> httpx.Client:
    """Build an httpx client for the given client configuration.

    Args:
        client_config: Loopback (or external) client configuration

    Returns:
        Client bound to ``client_config.host`` that trusts ``ca_file`` and
        authenticates with the bearer token

    Raises:
        ClientConstructionError: If there is no configuration or the CA
            bundle cannot be loaded
    """
    if client_config is None:
        raise ClientConstructionError("no client configuration; secure serving is disabled")
    if not client_config.host:
        raise ClientConstructionError("client configuration has no host")

    verify: ssl.SSLContext | bool = True
    if client_config.ca_file:
        try:
            verify = ssl.create_default_context(cafile=client_config.ca_file)
        except (OSError, ssl.SSLError) as e:
            raise ClientConstructionError(
                f"unable to load CA bundle {client_config.ca_file}: {e}", host=client_config.host
            ) from e

    headers = {"User-Agent": USER_AGENT}
    if client_config.bearer_token:
        headers["Authorization"] = f"Bearer {client_config.bearer_token}"

    return httpx.Client(
        base_url=client_config.host,
        verify=verify,
        headers=headers,
        timeout=httpx.Timeout(client_config.timeout),
    )
