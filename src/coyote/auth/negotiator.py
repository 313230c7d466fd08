"""
Credential negotiation.

Turns the broker URI given on the command line into an Endpoint with usable
credentials, either basic ones or an OAuth 2.0 access token.
"""

import logging

from rich.console import Console

from coyote.auth.basic import resolve_basic_credentials
from coyote.auth.callback_listener import parse_redirect_url
from coyote.auth.oauth_client import PKCEExchanger
from coyote.auth.prompts import Prompter
from coyote.auth.server_metadata import OAuthDiscovery
from coyote.errors import ConfigurationError
from coyote.models import Endpoint

logger = logging.getLogger(__name__)


class AuthNegotiator:
    def __init__(
        self,
        prompter: Prompter,
        discovery: OAuthDiscovery | None = None,
        exchanger: PKCEExchanger | None = None,
        http_timeout: float = 15.0,
        console: Console | None = None,
    ):
        self.prompter = prompter
        self.discovery = discovery or OAuthDiscovery(prompter, timeout=http_timeout)
        self.exchanger = exchanger or PKCEExchanger(timeout=http_timeout, console=console)

    async def resolve(
        self, url: str, oauth: bool = False, redirect_url: str | None = None
    ) -> Endpoint:
        """
        Resolve credentials for ``url``.

        With OAuth 2.0 the username becomes the client id and the password the
        access token.

        Raises:
            ConfigurationError: On an invalid broker URI, or a missing or
                invalid redirect URL when OAuth 2.0 is requested
            CredentialsError: If a basic credential prompt is aborted
            AuthDiscoveryError: If discovery fails or is aborted
            CallbackError: If the redirect was rejected or the code exchange failed
            CallbackTimeoutError: If the redirect never arrived
        """
        endpoint = Endpoint.parse(url)

        if not oauth:
            logger.info("🔑 Using basic authentication")
            return await resolve_basic_credentials(endpoint, self.prompter)

        if not redirect_url:
            raise ConfigurationError("a redirect url is required when OAuth 2.0 is enabled")
        parse_redirect_url(redirect_url)

        logger.info("🔑 Using OAuth 2.0 authentication")
        config = await self.discovery.fetch_auth_config(endpoint.url)
        server = await self.discovery.select_resource_server(config)
        metadata = await self.discovery.fetch_openid_configuration(server.oauth_provider_url)
        token = await self.exchanger.authorize(config, server, metadata, redirect_url)
        return endpoint.with_credentials(config.oauth_client_id, token.access_token)
