"""PKCE (:rfc:`7636`) verifier/challenge generation and login state tokens.

Both values are bound to a single login attempt and never persisted.
"""

from __future__ import annotations

import base64
import hashlib
import secrets

from nsql.models import PKCEPair


def compute_code_challenge(code_verifier: str) -> str:
    """Return the S256 challenge: base64url(SHA-256(verifier)) without padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_pkce_pair() -> PKCEPair:
    """Generate a fresh PKCE code_verifier and code_challenge (S256).

    Returns:
        A :class:`~nsql.models.PKCEPair` whose verifier is 43-128
        characters from the unreserved URL-safe alphabet.
    """
    # 64 random bytes encode to 86 URL-safe characters
    code_verifier = secrets.token_urlsafe(64)[:128]
    return PKCEPair(
        code_verifier=code_verifier,
        code_challenge=compute_code_challenge(code_verifier),
    )


def generate_state() -> str:
    """Return a random opaque ``state`` value for one authorization request."""
    return secrets.token_hex(16)
