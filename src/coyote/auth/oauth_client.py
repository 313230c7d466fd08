"""
OAuth 2.0 Client Implementation

Runs the authorization code flow with PKCE against the provider discovered for
the chosen resource server.

Key Features:
- Consent page URL generation with PKCE, audience and resource parameters
- Authorization code exchange for an access token
- Ephemeral callback listener bound to the redirect URL
"""

import asyncio
import logging
import webbrowser
from collections.abc import Callable
from functools import partial
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError
from rich.console import Console

from coyote.auth.callback_listener import CALLBACK_TIMEOUT, CallbackListener
from coyote.auth.oauth_models import (
    AuthorizationRequest,
    OAuthConfig,
    OpenIDMetadata,
    ResourceServer,
    TokenRequest,
    TokenResponse,
)
from coyote.auth.oauth_session import PKCESession
from coyote.errors import TokenExchangeError

logger = logging.getLogger(__name__)

BrowserOpener = Callable[[str], bool]


class PKCEExchanger:
    """
    OAuth 2.0 authorization code + PKCE client.

    One call to ``authorize`` is one authorization attempt: a fresh PKCE
    session, a fresh callback listener and at most one token exchange.
    """

    def __init__(
        self,
        timeout: float = 15.0,
        callback_timeout: float = CALLBACK_TIMEOUT,
        browser_opener: BrowserOpener | None = None,
        console: Console | None = None,
    ):
        """
        Initialize OAuth client.

        Args:
            timeout: HTTP request timeout in seconds for the token endpoint
            callback_timeout: Seconds to wait for the redirect once the consent
                URL has been offered
            browser_opener: Opens the consent URL, ``webbrowser.open`` by default
            console: Console the consent URL is printed to
        """
        self.timeout = timeout
        self.callback_timeout = callback_timeout
        self.browser_opener = browser_opener or webbrowser.open
        self.console = console or Console(stderr=True)

    @staticmethod
    def build_authorization_url(request: AuthorizationRequest) -> str:
        """
        Build the consent page URL.

        The discovered authorization endpoint is used verbatim, parameters are
        appended to any query string it already carries.
        """
        params = {
            "response_type": request.response_type,
            "client_id": request.client_id,
            "redirect_uri": request.redirect_uri,
            "scope": " ".join(request.scopes),
            "state": request.state,
            "code_challenge": request.code_challenge,
            "code_challenge_method": request.code_challenge_method,
            "audience": request.resource,
            "resource": request.resource,
            "response_mode": request.response_mode,
        }
        separator = "&" if "?" in request.authorization_endpoint else "?"
        auth_url = f"{request.authorization_endpoint}{separator}{urlencode(params)}"
        logger.debug(f"Built authorization URL for resource={request.resource}")
        return auth_url

    async def exchange_code_for_tokens(self, token_request: TokenRequest) -> TokenResponse:
        """
        Exchange authorization code for access token.

        Raises:
            TokenExchangeError: On network error, non-200 status or a response
                without an access token
        """
        body = {
            "grant_type": token_request.grant_type,
            "client_id": token_request.client_id,
            "code": token_request.code,
            "redirect_uri": token_request.redirect_uri,
            "code_verifier": token_request.code_verifier,
        }
        logger.debug(f"Exchanging code for tokens: endpoint={token_request.token_endpoint}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    token_request.token_endpoint,
                    data=body,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        except httpx.HTTPError as e:
            raise TokenExchangeError("Failed to exchange token") from e

        if response.status_code != 200:
            error_data = {}
            if response.headers.get("content-type", "").startswith("application/json"):
                try:
                    error_data = response.json()
                except ValueError:
                    error_data = {}
            logger.error(f"Token request failed: status={response.status_code}, error={error_data}")
            raise TokenExchangeError(
                f"Failed to exchange token: {error_data.get('error', 'unknown_error')}"
            )

        try:
            token_response = TokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise TokenExchangeError("Failed to exchange token: malformed token response") from e

        logger.debug(f"Obtained {token_response.token_type} token, expires_in={token_response.expires_in}")
        return token_response

    async def authorize(
        self,
        config: OAuthConfig,
        resource_server: ResourceServer,
        metadata: OpenIDMetadata,
        redirect_url: str,
    ) -> TokenResponse:
        """
        Run one interactive authorization attempt.

        Starts the callback listener, offers the consent URL (printed and, when
        possible, opened in a browser) and waits for the single redirect.

        Raises:
            ConfigurationError: If the redirect address can not be bound
            CallbackError: If the redirect was rejected
            TokenExchangeError: If the code could not be exchanged
            CallbackTimeoutError: If no redirect arrived in time
        """
        session = PKCESession.new()
        request = AuthorizationRequest(
            authorization_endpoint=metadata.authorization_endpoint,
            client_id=config.oauth_client_id,
            redirect_uri=redirect_url,
            resource=resource_server.id,
            scopes=config.scopes,
            state=session.state,
            code_challenge=session.challenge,
        )
        consent_url = self.build_authorization_url(request)
        redeem = partial(self._redeem, metadata.token_endpoint, redirect_url, session, config.oauth_client_id)

        async with CallbackListener(redirect_url, session, redeem) as listener:
            loop = asyncio.get_running_loop()
            offered_at = loop.time()
            self.console.print("Open the following URL to authenticate:", style="bold")
            self.console.print(consent_url, style="cyan", soft_wrap=True, markup=False, highlight=False)
            await self._open_browser(consent_url)
            remaining = self.callback_timeout - (loop.time() - offered_at)
            token = await listener.wait(remaining)

        logger.info("✅ Authentication successful!")
        return token

    async def _redeem(
        self, token_endpoint: str, redirect_url: str, session: PKCESession, client_id: str, code: str
    ) -> TokenResponse:
        return await self.exchange_code_for_tokens(
            TokenRequest(
                token_endpoint=token_endpoint,
                code=code,
                redirect_uri=redirect_url,
                code_verifier=session.verifier,
                client_id=client_id,
            )
        )

    async def _open_browser(self, url: str) -> None:
        try:
            opened = await asyncio.to_thread(self.browser_opener, url)
        except Exception as e:
            logger.warning(f"Failed to open browser, open the URL above manually: {e}")
            return
        if not opened:
            logger.warning("Failed to open browser, open the URL above manually")
