"""
Coyote error hierarchy.

Every error raised by coyote derives from CoyoteError. Errors that wrap a lower
level failure are raised with ``raise ... from exc`` so the original cause stays
available for diagnostics.
"""


class CoyoteError(Exception):
    """Base exception for all coyote errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConfigurationError(CoyoteError):
    """Raised when the provided configuration can not be used (never retried)."""


class CredentialsError(CoyoteError):
    """Raised when broker credentials could not be obtained from the operator."""


class AuthDiscoveryError(CoyoteError):
    """Raised when OAuth 2.0 metadata discovery fails or is aborted."""


class CallbackError(CoyoteError):
    """
    Raised when the OAuth 2.0 redirect is rejected.

    Covers state mismatch, provider reported errors and a missing code. The
    browser receives ``status_code`` and the operator receives this error.
    """

    status_code = 400


class TokenExchangeError(CallbackError):
    """Raised when the token endpoint refuses to exchange the authorization code."""

    status_code = 500


class CallbackTimeoutError(CoyoteError):
    """Raised when no OAuth 2.0 redirect arrived before the deadline."""


class BrokerConnectionError(CoyoteError):
    """Base class for broker connection failures."""

    fatal = False


class FatalConnectionError(BrokerConnectionError):
    """Broker refused access. The consumer stops and never retries."""

    fatal = True


class RetryableConnectionError(BrokerConnectionError):
    """Any connection failure that is worth retrying with backoff."""


class ChannelSetupError(RetryableConnectionError):
    """Raised when the channel, queue or bindings could not be set up."""


class NotConnectedError(CoyoteError):
    """Raised when deliveries are requested but the supervisor has stopped."""

    def __init__(self, message: str = "not connected to a server"):
        super().__init__(message)


class InvalidStateTransition(CoyoteError):
    """Raised when the connection state machine is driven along an unknown edge."""
