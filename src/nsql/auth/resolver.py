"""Credential resolution and refresh-before-use.

Precedence, evaluated on every authenticated operation:

1. A complete set of ``NSQL_*`` environment credentials (source
   ``environment``), regardless of stored profiles.
2. The named stored profile (source ``profile``). Delegated profiles come
   back with ``client_secret`` and ``refresh_token`` decrypted.
3. Nothing: the result carries the configured profile names instead.

:meth:`CredentialResolver.resolve` never checks token freshness. Callers
about to use a delegated access token go through :func:`ensure_fresh_token`
first.
"""

from __future__ import annotations

from typing import Optional

from nsql.auth.profile_store import ProfileStore
from nsql.auth.token_client import TokenClient, now_ms as _now_ms
from nsql.config import TOKEN_EXPIRY_BUFFER_MS, LegacyEnvironment
from nsql.exceptions import AuthenticationRequiredError, TokenRefreshError
from nsql.models import (
    CredentialSource,
    DelegatedProfile,
    LoginResult,
    ResolvedCredentials,
)
from nsql.output import OutputManager, get_output, mask_token


class CredentialResolver:
    """Decide which credentials a profile name resolves to.

    Args:
        store: Profile store to read from.
        env: Environment override snapshot. ``None`` disables the override.
        output: Diagnostics sink; defaults to the global manager.
    """

    def __init__(
        self,
        store: ProfileStore,
        env: Optional[LegacyEnvironment] = None,
        output: Optional[OutputManager] = None,
    ) -> None:
        self._store = store
        self._env = env
        self._output = output or get_output()

    def resolve(self, profile_name: str) -> ResolvedCredentials:
        """Resolve credentials for *profile_name*.

        Raises:
            ConfigurationError: If the stored profile or its encrypted fields
                are malformed.
        """
        env_credentials = self._env.credentials() if self._env is not None else None
        if env_credentials is not None:
            self._output.debug("Using credentials from NSQL_* environment variables")
            return ResolvedCredentials(
                profile_name=profile_name,
                credentials=env_credentials,
                source=CredentialSource.ENVIRONMENT,
            )

        profile = self._store.get(profile_name)
        if profile is None:
            available = self._store.list_names()
            self._output.debug(f"Profile '{profile_name}' not found; available: {available}")
            return ResolvedCredentials(profile_name=profile_name, available_profiles=available)

        if isinstance(profile, DelegatedProfile):
            profile = self._store.decrypt(profile)
        self._output.debug(f"Using profile '{profile_name}' ({profile.auth_type})")
        return ResolvedCredentials(
            profile_name=profile_name,
            credentials=profile,
            source=CredentialSource.PROFILE,
        )


def is_token_expired(profile: DelegatedProfile, now_ms: Optional[int] = None) -> bool:
    """True if the access token is missing or expires within five minutes."""
    if not profile.access_token or profile.token_expiry is None:
        return True
    if now_ms is None:
        now_ms = _now_ms()
    return profile.token_expiry - now_ms < TOKEN_EXPIRY_BUFFER_MS


def ensure_fresh_token(
    profile_name: str,
    profile: DelegatedProfile,
    store: ProfileStore,
    token_client: Optional[TokenClient] = None,
    output: Optional[OutputManager] = None,
    now_ms: Optional[int] = None,
) -> DelegatedProfile:
    """Return *profile* with a usable access token, refreshing it if needed.

    *profile* must be decrypted (as returned by the resolver). A refreshed
    token sub-record is persisted before returning. The refresh token is
    rotated only when the server returns a new one.

    Raises:
        AuthenticationRequiredError: The profile has never logged in.
        TokenRefreshError: The refresh was rejected; the user must log in again.
    """
    out = output or get_output()
    if not profile.refresh_token:
        raise AuthenticationRequiredError(
            f"Profile '{profile_name}' is not authenticated",
            hint=f"Run 'nsql login --profile {profile_name}' to authenticate.",
        )

    if now_ms is None:
        now_ms = _now_ms()
    if not is_token_expired(profile, now_ms):
        out.debug("Access token still valid")
        return profile

    out.debug("Access token expired or expiring soon, refreshing")
    client = token_client or TokenClient(
        profile.account_id, profile.client_id, profile.client_secret, output=out
    )
    try:
        tokens = client.refresh(profile.refresh_token)
    except TokenRefreshError as exc:
        exc.hint = f"Run 'nsql login --profile {profile_name}' to re-authenticate."
        raise

    result = LoginResult(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token or profile.refresh_token,
        expires_in=tokens.expires_in,
        token_expiry=now_ms + tokens.expires_in * 1000,
    )
    store.save_tokens(profile_name, result)
    out.debug(f"New access token: {mask_token(result.access_token)}")
    return profile.model_copy(
        update={
            "access_token": result.access_token,
            "refresh_token": result.refresh_token,
            "token_expiry": result.token_expiry,
        }
    )


def describe_source(resolved: ResolvedCredentials) -> str:
    """Human label for where resolved credentials came from."""
    if resolved.source == CredentialSource.ENVIRONMENT:
        return "environment variables"
    if resolved.source == CredentialSource.PROFILE:
        return f"profile '{resolved.profile_name}'"
    return "none"

