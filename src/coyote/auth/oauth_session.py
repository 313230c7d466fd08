"""
PKCE Session

Holds the state parameter and PKCE verifier of a single authorization attempt.
A session is created right before the consent URL is built, handed read-only to
the callback listener and discarded once the attempt succeeds, fails or times
out.
"""

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone

from coyote.auth.oauth_pkce import generate_pkce_pair


def generate_state() -> str:
    """
    Generate cryptographically random state parameter.

    Returns:
        str: Random state string (URL-safe, 32 bytes)
    """
    return secrets.token_urlsafe(32)


@dataclass(frozen=True)
class PKCESession:
    state: str
    verifier: str
    challenge: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def new(cls) -> "PKCESession":
        """Create a session with a fresh state and verifier/challenge pair."""
        verifier, challenge = generate_pkce_pair()
        return cls(state=generate_state(), verifier=verifier, challenge=challenge)

    def matches(self, state: str | None) -> bool:
        """Constant time comparison of a callback state against this session."""
        if not state:
            return False
        return secrets.compare_digest(state.encode("utf-8"), self.state.encode("utf-8"))

