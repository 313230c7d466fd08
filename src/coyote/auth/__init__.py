"""
Broker Authentication Components

Credentials for the broker come either from the operator (basic auth) or from
an OAuth 2.0 authorization code flow with PKCE against the provider that the
broker advertises.

Components:
- negotiator: Chooses the auth method and returns an Endpoint with credentials
- basic: Username/password resolution from the URI or a prompt
- server_metadata: Broker auth config and OpenID provider discovery
- oauth_client: Consent URL, token exchange and the interactive flow
- callback_listener: Ephemeral redirect endpoint
- oauth_pkce: PKCE generation and validation
- oauth_session: State and PKCE verifier of a single attempt
- oauth_models: Request/response models for the OAuth 2.0 flow
"""

__all__ = [
    "AuthNegotiator",
    "PKCEExchanger",
    "OAuthDiscovery",
    "CallbackListener",
    "PKCESession",
    "TerminalPrompter",
    "AuthorizationRequest",
    "TokenRequest",
    "TokenResponse",
]


# Lazy imports so importing the package does not pull in the web stack
def __getattr__(name: str):
    if name == "AuthNegotiator":
        from coyote.auth.negotiator import AuthNegotiator
        return AuthNegotiator
    elif name == "PKCEExchanger":
        from coyote.auth.oauth_client import PKCEExchanger
        return PKCEExchanger
    elif name == "OAuthDiscovery":
        from coyote.auth.server_metadata import OAuthDiscovery
        return OAuthDiscovery
    elif name == "CallbackListener":
        from coyote.auth.callback_listener import CallbackListener
        return CallbackListener
    elif name == "PKCESession":
        from coyote.auth.oauth_session import PKCESession
        return PKCESession
    elif name == "TerminalPrompter":
        from coyote.auth.prompts import TerminalPrompter
        return TerminalPrompter
    elif name in ("AuthorizationRequest", "TokenRequest", "TokenResponse"):
        from coyote.auth import oauth_models
        return getattr(oauth_models, name)

    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
