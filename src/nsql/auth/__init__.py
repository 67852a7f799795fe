"""Credential broker for nsql.

This package owns everything between "the user has an integration record"
and "the caller holds ready-to-use credentials":

- :class:`SecretStore` -- machine-local encryption of persisted secrets.
- :class:`ProfileStore` -- named profiles in one JSON document.
- :class:`CallbackListener` -- single-use loopback redirect receiver.
- :class:`TokenClient` -- authorization URL and token-endpoint exchanges.
- :class:`LoginOrchestrator` -- the browser login (Authorization Code + PKCE).
- :class:`CredentialResolver` -- environment/profile precedence, plus
  :func:`ensure_fresh_token` for refresh-before-use.

Typical usage::

    from nsql.auth import CredentialResolver, ProfileStore, ensure_fresh_token
    from nsql.config import LegacyEnvironment

    store = ProfileStore()
    resolved = CredentialResolver(store, LegacyEnvironment.from_environ()).resolve("prod")
    profile = ensure_fresh_token("prod", resolved.credentials, store)
    headers = profile.bearer_headers()
"""

from nsql.auth.callback import CallbackListener
from nsql.auth.login import LoginOrchestrator
from nsql.auth.pkce import generate_pkce_pair, generate_state
from nsql.auth.profile_store import ProfileStore
from nsql.auth.resolver import CredentialResolver, ensure_fresh_token, is_token_expired
from nsql.auth.secret_store import SecretStore
from nsql.auth.token_client import TokenClient, build_authorization_url, get_token_endpoint

__all__ = [
    "CallbackListener",
    "CredentialResolver",
    "LoginOrchestrator",
    "ProfileStore",
    "SecretStore",
    "TokenClient",
    "build_authorization_url",
    "ensure_fresh_token",
    "generate_pkce_pair",
    "generate_state",
    "get_token_endpoint",
    "is_token_expired",
]
