"""
OAuth 2.0 Request and Response Models

Models for the broker advertised auth configuration, the provider OpenID
metadata and the authorization code + PKCE flow.
"""

from typing import Literal

from pydantic import BaseModel, Field

from coyote.auth.oauth_pkce import CODE_CHALLENGE_METHOD


class ResourceServer(BaseModel):
    """OAuth 2.0 resource server advertised by the broker."""

    id: str = Field(..., description="Resource server id, used as audience and resource")
    oauth_provider_url: str = Field(..., description="OAuth 2.0 provider base URL")


class OAuthConfig(BaseModel):
    """
    Broker auth configuration.

    Served by the management API at ``/api/auth``.
    """

    oauth_enabled: bool = Field(default=False, description="Whether OAuth 2.0 is enabled")
    oauth_resource_servers: dict[str, ResourceServer] = Field(
        default_factory=dict, description="Resource servers by id"
    )
    oauth_disable_basic_auth: bool = Field(
        default=False, description="Whether basic authentication is disabled"
    )
    oauth_client_id: str = Field(default="", description="OAuth client ID")
    oauth_scopes: str = Field(default="", description="Space delimited scopes")

    @property
    def scopes(self) -> list[str]:
        return self.oauth_scopes.split()


class OpenIDMetadata(BaseModel):
    """
    Provider endpoints.

    Discovered from {provider}/.well-known/openid-configuration
    """

    authorization_endpoint: str = Field(..., min_length=1)
    token_endpoint: str = Field(..., min_length=1)


class AuthorizationRequest(BaseModel):
    """
    OAuth 2.0 Authorization Request

    Used to construct the consent page URL. The chosen resource server id is
    sent both as ``audience`` and as ``resource``.
    """

    authorization_endpoint: str = Field(..., description="Discovered authorization endpoint")
    client_id: str = Field(..., description="OAuth client ID")
    redirect_uri: str = Field(..., description="OAuth callback URL")
    resource: str = Field(..., description="Resource server id (audience)")
    scopes: list[str] = Field(default_factory=list, description="Requested OAuth scopes")
    state: str = Field(..., description="CSRF protection state parameter")
    code_challenge: str = Field(..., description="PKCE code challenge (S256)")
    code_challenge_method: Literal["S256"] = Field(
        default=CODE_CHALLENGE_METHOD, description="PKCE challenge method (must be S256)"
    )
    response_type: Literal["code"] = Field(
        default="code", description="OAuth response type (authorization code flow)"
    )
    response_mode: Literal["query"] = Field(
        default="query", description="Deliver the code in the redirect query string"
    )


class TokenRequest(BaseModel):
    """
    OAuth 2.0 Token Request

    Used to exchange the authorization code for an access token.
    """

    token_endpoint: str = Field(..., description="Token endpoint URL")
    code: str = Field(..., description="Authorization code")
    redirect_uri: str = Field(..., description="OAuth callback URL (must match)")
    code_verifier: str = Field(..., description="PKCE code verifier")
    client_id: str = Field(..., description="OAuth client ID")
    grant_type: Literal["authorization_code"] = "authorization_code"


class TokenResponse(BaseModel):
    """Token endpoint response."""

    access_token: str = Field(..., min_length=1, description="OAuth access token")
    token_type: str = Field(default="Bearer", description="Token type (usually 'Bearer')")
    expires_in: int | None = Field(None, description="Token lifetime in seconds")
    refresh_token: str | None = Field(None, description="Refresh token (optional)")
    scope: str | None = Field(None, description="Granted scopes (space-separated)")
