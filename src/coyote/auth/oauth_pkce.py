"""
PKCE (Proof Key for Code Exchange) Implementation

PKCE binds the authorization code to the client that requested it, so an
intercepted redirect can not be redeemed by anyone else.

References:
- RFC 7636: Proof Key for Code Exchange
"""

import base64
import hashlib
import secrets

CODE_CHALLENGE_METHOD = "S256"


def generate_code_verifier() -> str:
    """
    Generate cryptographically random code verifier.

    Per RFC 7636, code verifier must be:
    - 43-128 characters long
    - Use characters [A-Z] / [a-z] / [0-9] / "-" / "." / "_" / "~"

    Returns:
        str: Base64url-encoded random verifier (43 chars)
    """
    # 32 random bytes give 43 base64url characters
    random_bytes = secrets.token_bytes(32)
    return base64.urlsafe_b64encode(random_bytes).decode("utf-8").rstrip("=")


def generate_code_challenge(verifier: str) -> str:
    """
    Generate PKCE code challenge from verifier using S256 method.

    challenge = BASE64URL(SHA256(verifier))

    Args:
        verifier: Code verifier from generate_code_verifier()

    Returns:
        str: Base64url-encoded SHA256 hash of verifier
    """
    sha256_hash = hashlib.sha256(verifier.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(sha256_hash).decode("utf-8").rstrip("=")


def generate_pkce_pair() -> tuple[str, str]:
    """
    Generate PKCE verifier and challenge pair.

    Returns:
        tuple: (verifier, challenge)
    """
    verifier = generate_code_verifier()
    return verifier, generate_code_challenge(verifier)
