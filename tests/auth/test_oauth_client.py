"""
Tests for the authorization code + PKCE client.
"""

import io
import webbrowser
from unittest.mock import AsyncMock, Mock, patch
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
from rich.console import Console

from coyote.auth.oauth_client import PKCEExchanger
from coyote.auth.oauth_models import (
    AuthorizationRequest,
    OAuthConfig,
    OpenIDMetadata,
    ResourceServer,
    TokenRequest,
    TokenResponse,
)
from coyote.auth.oauth_pkce import generate_code_challenge
from coyote.errors import CallbackTimeoutError, TokenExchangeError

AUTH_ENDPOINT = "https://idp.example.com/realms/prod/protocol/openid-connect/auth"
TOKEN_ENDPOINT = "https://idp.example.com/realms/prod/protocol/openid-connect/token"
REDIRECT_URL = "http://localhost:8080/callback"


def authorization_request(**overrides) -> AuthorizationRequest:
    values = {
        "authorization_endpoint": AUTH_ENDPOINT,
        "client_id": "coyote-cli",
        "redirect_uri": REDIRECT_URL,
        "resource": "rabbit_prod",
        "scopes": ["openid", "rabbitmq.read:*/*"],
        "state": "state-123",
        "code_challenge": "challenge-abc",
    }
    values.update(overrides)
    return AuthorizationRequest(**values)


def token_request() -> TokenRequest:
    return TokenRequest(
        token_endpoint=TOKEN_ENDPOINT,
        code="code-xyz",
        redirect_uri=REDIRECT_URL,
        code_verifier="verifier-123",
        client_id="coyote-cli",
    )


def mock_post(status_code=200, json_data=None, headers=None, post_side_effect=None):
    mock_response = Mock()
    mock_response.status_code = status_code
    mock_response.headers = headers or {"content-type": "application/json"}
    mock_response.json.return_value = json_data

    mock_client = Mock()
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    mock_client.post = AsyncMock(return_value=mock_response, side_effect=post_side_effect)
    return mock_client


class TestBuildAuthorizationUrl:
    """Test consent page URL generation."""

    def test_endpoint_is_embedded_verbatim(self):
        url = PKCEExchanger.build_authorization_url(authorization_request())
        assert url.startswith(AUTH_ENDPOINT + "?")

    def test_parameters(self):
        url = PKCEExchanger.build_authorization_url(authorization_request())
        params = {key: values[0] for key, values in parse_qs(urlsplit(url).query).items()}

        assert params == {
            "response_type": "code",
            "client_id": "coyote-cli",
            "redirect_uri": REDIRECT_URL,
            "scope": "openid rabbitmq.read:*/*",
            "state": "state-123",
            "code_challenge": "challenge-abc",
            "code_challenge_method": "S256",
            "audience": "rabbit_prod",
            "resource": "rabbit_prod",
            "response_mode": "query",
        }

    def test_existing_query_is_kept(self):
        url = PKCEExchanger.build_authorization_url(
            authorization_request(authorization_endpoint="https://idp.example.com/authorize?tenant=acme")
        )
        assert url.startswith("https://idp.example.com/authorize?tenant=acme&")
        assert parse_qs(urlsplit(url).query)["tenant"] == ["acme"]


class TestExchangeCodeForTokens:
    """Test authorization code exchange."""

    @pytest.mark.asyncio
    async def test_success(self):
        mock_client = mock_post(
            json_data={"access_token": "jwt-token", "token_type": "Bearer", "expires_in": 300}
        )
        with patch("httpx.AsyncClient", return_value=mock_client):
            token = await PKCEExchanger().exchange_code_for_tokens(token_request())

        assert token.access_token == "jwt-token"
        assert token.expires_in == 300
        assert mock_client.post.call_args.args[0] == TOKEN_ENDPOINT
        assert mock_client.post.call_args.kwargs["data"] == {
            "grant_type": "authorization_code",
            "client_id": "coyote-cli",
            "code": "code-xyz",
            "redirect_uri": REDIRECT_URL,
            "code_verifier": "verifier-123",
        }

    @pytest.mark.asyncio
    async def test_error_response(self):
        mock_client = mock_post(status_code=400, json_data={"error": "invalid_grant"})
        with patch("httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(TokenExchangeError, match="invalid_grant") as exc_info:
                await PKCEExchanger().exchange_code_for_tokens(token_request())
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_error_response_without_json(self):
        mock_client = mock_post(status_code=502, headers={"content-type": "text/html"})
        with patch("httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(TokenExchangeError, match="unknown_error"):
                await PKCEExchanger().exchange_code_for_tokens(token_request())

    @pytest.mark.asyncio
    async def test_network_error(self):
        mock_client = mock_post(post_side_effect=httpx.ConnectTimeout("timed out"))
        with patch("httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(TokenExchangeError) as exc_info:
                await PKCEExchanger().exchange_code_for_tokens(token_request())
        assert isinstance(exc_info.value.__cause__, httpx.ConnectTimeout)

    @pytest.mark.asyncio
    async def test_missing_access_token(self):
        mock_client = mock_post(json_data={"token_type": "Bearer"})
        with patch("httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(TokenExchangeError, match="malformed"):
                await PKCEExchanger().exchange_code_for_tokens(token_request())


class FakeListener:
    """Records what the exchanger hands to the callback listener."""

    instances: list["FakeListener"] = []
    outcome: object = TokenResponse(access_token="jwt-token")

    def __init__(self, redirect_url, session, exchange):
        self.redirect_url = redirect_url
        self.session = session
        self.exchange = exchange
        self.exited = False
        self.timeout = None
        FakeListener.instances.append(self)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.exited = True

    async def wait(self, timeout):
        self.timeout = timeout
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return self.outcome


class TestAuthorize:
    """Test the interactive authorization attempt."""

    @pytest.fixture(autouse=True)
    def fake_listener(self):
        FakeListener.instances = []
        FakeListener.outcome = TokenResponse(access_token="jwt-token")
        with patch("coyote.auth.oauth_client.CallbackListener", FakeListener):
            yield FakeListener

    @pytest.fixture
    def console_output(self):
        return io.StringIO()

    def exchanger(self, browser_opener, console_output):
        return PKCEExchanger(
            browser_opener=browser_opener,
            console=Console(file=console_output, width=500),
        )

    async def authorize(self, exchanger):
        return await exchanger.authorize(
            OAuthConfig(oauth_enabled=True, oauth_client_id="coyote-cli", oauth_scopes="openid"),
            ResourceServer(id="rabbit_prod", oauth_provider_url="https://idp.example.com/realms/prod"),
            OpenIDMetadata(authorization_endpoint=AUTH_ENDPOINT, token_endpoint=TOKEN_ENDPOINT),
            REDIRECT_URL,
        )

    @pytest.mark.asyncio
    async def test_success(self, console_output):
        browser = Mock(return_value=True)
        token = await self.authorize(self.exchanger(browser, console_output))

        assert token.access_token == "jwt-token"
        listener = FakeListener.instances[0]
        assert listener.redirect_url == REDIRECT_URL
        assert listener.exited

        consent_url = browser.call_args.args[0]
        params = parse_qs(urlsplit(consent_url).query)
        assert consent_url.startswith(AUTH_ENDPOINT + "?")
        assert params["state"] == [listener.session.state]
        assert params["code_challenge"] == [generate_code_challenge(listener.session.verifier)]
        assert params["audience"] == ["rabbit_prod"]
        assert consent_url in console_output.getvalue()

    @pytest.mark.asyncio
    async def test_wait_is_bounded(self, console_output):
        await self.authorize(self.exchanger(Mock(return_value=True), console_output))
        assert 0 < FakeListener.instances[0].timeout <= 60

    @pytest.mark.asyncio
    async def test_browser_failure_is_not_fatal(self, console_output):
        browser = Mock(side_effect=webbrowser.Error("no browser"))
        token = await self.authorize(self.exchanger(browser, console_output))
        assert token.access_token == "jwt-token"
        assert "http" in console_output.getvalue()

    @pytest.mark.asyncio
    async def test_browser_launcher_error_is_not_fatal(self, console_output):
        browser = Mock(side_effect=OSError("xdg-open missing"))
        token = await self.authorize(self.exchanger(browser, console_output))
        assert token.access_token == "jwt-token"
        assert AUTH_ENDPOINT in console_output.getvalue()
        assert FakeListener.instances[0].exited

    @pytest.mark.asyncio
    async def test_no_browser_available(self, console_output):
        token = await self.authorize(self.exchanger(Mock(return_value=False), console_output))
        assert token.access_token == "jwt-token"

    @pytest.mark.asyncio
    async def test_timeout_propagates_and_tears_down(self, console_output):
        FakeListener.outcome = CallbackTimeoutError("timeout waiting for OAuth 2.0 callback")
        with pytest.raises(CallbackTimeoutError):
            await self.authorize(self.exchanger(Mock(return_value=True), console_output))
        assert FakeListener.instances[0].exited

    @pytest.mark.asyncio
    async def test_exchange_uses_session_verifier(self, console_output):
        exchanger = self.exchanger(Mock(return_value=True), console_output)
        await self.authorize(exchanger)
        listener = FakeListener.instances[0]

        with patch.object(
            exchanger, "exchange_code_for_tokens", AsyncMock(return_value=TokenResponse(access_token="t"))
        ) as exchange:
            await listener.exchange("code-xyz")

        request = exchange.call_args.args[0]
        assert request.code == "code-xyz"
        assert request.code_verifier == listener.session.verifier
        assert request.token_endpoint == TOKEN_ENDPOINT
        assert request.redirect_uri == REDIRECT_URL
        assert request.client_id == "coyote-cli"
