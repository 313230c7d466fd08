"""
Broker and Provider Metadata Discovery

Two levels of server advertised JSON documents drive the OAuth 2.0 flow:

1. The broker management API ``/api/auth`` tells whether OAuth 2.0 is enabled,
   which resource servers exist and which client id / scopes to use.
2. The chosen resource server's provider publishes
   ``/.well-known/openid-configuration`` with the authorization and token
   endpoints.
"""

import logging
from typing import Any, TypeVar
from urllib.parse import urlsplit

import httpx
from pydantic import BaseModel, ValidationError

from coyote.auth.oauth_models import OAuthConfig, OpenIDMetadata, ResourceServer
from coyote.auth.prompts import Prompter
from coyote.errors import AuthDiscoveryError

logger = logging.getLogger(__name__)

AUTH_CONFIG_PATH = "/api/auth"
OPENID_CONFIGURATION_PATH = "/.well-known/openid-configuration"
NONE_CHOICE = "none"

ModelT = TypeVar("ModelT", bound=BaseModel)


def auth_config_url(broker_url: str) -> str:
    """
    Derive the management API auth endpoint from a broker URI.

    ``amqps`` maps to ``https``, anything else to ``http``. Host and port are
    kept, credentials are dropped.
    """
    parts = urlsplit(broker_url)
    api_scheme = "https" if parts.scheme == "amqps" else "http"
    host = parts.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    if parts.port:
        host = f"{host}:{parts.port}"
    return f"{api_scheme}://{host}{AUTH_CONFIG_PATH}"


def openid_configuration_url(provider_url: str) -> str:
    return provider_url.rstrip("/") + OPENID_CONFIGURATION_PATH


class OAuthDiscovery:
    """
    Fetches the broker auth configuration and the provider OpenID metadata.

    Every failure is reported as AuthDiscoveryError carrying the original cause.
    Nothing is retried.
    """

    def __init__(self, prompter: Prompter, timeout: float = 15.0):
        self.prompter = prompter
        self.timeout = timeout

    async def fetch_auth_config(self, broker_url: str) -> OAuthConfig:
        """
        Fetch ``<base>/api/auth`` for the broker.

        Raises:
            AuthDiscoveryError: On network error, non-200 status, empty or
                malformed body, or when OAuth 2.0 is disabled on the server
        """
        url = auth_config_url(broker_url)
        config = await self._fetch(url, OAuthConfig, "auth config")
        if not config.oauth_enabled:
            raise AuthDiscoveryError("OAuth 2.0 is not enabled on the server")
        logger.debug(
            f"Auth config: {len(config.oauth_resource_servers)} resource servers, "
            f"client_id={config.oauth_client_id}"
        )
        return config

    async def fetch_openid_configuration(self, provider_url: str) -> OpenIDMetadata:
        """
        Fetch ``<provider>/.well-known/openid-configuration``.

        Raises:
            AuthDiscoveryError: On network error, non-200 status, empty or
                malformed body
        """
        url = openid_configuration_url(provider_url)
        metadata = await self._fetch(url, OpenIDMetadata, "openid configuration")
        logger.debug(
            f"Discovered authorization_endpoint={metadata.authorization_endpoint}, "
            f"token_endpoint={metadata.token_endpoint}"
        )
        return metadata

    async def select_resource_server(self, config: OAuthConfig) -> ResourceServer:
        """
        Ask the operator which resource server to authenticate against.

        A synthetic "none" choice is always offered and aborts the flow.

        Raises:
            AuthDiscoveryError: If "none" is chosen or the prompt is cancelled
        """
        choices = [
            (server_id, server.oauth_provider_url)
            for server_id, server in sorted(config.oauth_resource_servers.items())
        ]
        choices.append((NONE_CHOICE, "Quits the program"))

        choice = await self.prompter.choose("Choose an OAuth 2.0 resource server:", choices)
        if choice is None or choice == NONE_CHOICE:
            raise AuthDiscoveryError("no resource server chosen")
        server = config.oauth_resource_servers.get(choice)
        if server is None:
            raise AuthDiscoveryError(f"unknown resource server: {choice}")
        logger.info(f"🔑 Chosen resource server: {server.id}")
        return server

    async def _fetch(self, url: str, model: type[ModelT], what: str) -> ModelT:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            raise AuthDiscoveryError(f"failure while connecting to {url}") from e

        if response.status_code != 200:
            raise AuthDiscoveryError(
                f"failed to fetch {what}, status code: {response.status_code}"
            )
        if not response.content:
            raise AuthDiscoveryError(f"received empty {what}")

        try:
            data: Any = response.json()
        except ValueError as e:
            raise AuthDiscoveryError(f"failed to decode {what}") from e
        if data is None:
            raise AuthDiscoveryError(f"received empty {what}")

        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise AuthDiscoveryError(f"failed to decode {what}") from e
