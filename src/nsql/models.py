"""Canonical Pydantic models shared across all nsql modules.

**Profile models** -- serialised as JSON in the profile file:
    :class:`LegacyProfile` and :class:`DelegatedProfile`, discriminated by
    the ``authType`` tag into the :data:`Profile` union.

**Flow models** -- transient values passed between auth components:
    :class:`PKCEPair`, :class:`CallbackResult`, :class:`TokenResponse`,
    :class:`LoginResult`, and :class:`ResolvedCredentials`.

On disk every key is camelCase (``accountId``, ``tokenExpiry``) so the
file stays compatible with hand edits and older installs. Python code uses
the snake_case attribute names; :func:`dump_profile` writes the aliases.
"""

from __future__ import annotations

import enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class AuthType(str, enum.Enum):
    """Discriminator values for stored profiles."""

    LEGACY = "oauth1"
    DELEGATED = "oauth2"


_PROFILE_CONFIG = ConfigDict(populate_by_name=True, extra="ignore")


# --- Profiles ---


class LegacyProfile(BaseModel):
    """Token-based (OAuth 1.0 request signing) credentials.

    All five secrets are opaque to this package; they are handed as-is to
    the external request-signing client via :meth:`to_client_config`.
    """

    model_config = _PROFILE_CONFIG

    auth_type: Literal["oauth1"] = Field(default="oauth1", alias="authType")
    consumer_key: str = Field(alias="consumerKey", min_length=1)
    consumer_secret: str = Field(alias="consumerSecret", min_length=1)
    token: str = Field(min_length=1)
    token_secret: str = Field(alias="tokenSecret", min_length=1)
    realm: str = Field(min_length=1)
    base_url: Optional[str] = Field(default=None, alias="baseUrl")

    def to_client_config(self) -> dict[str, str]:
        """Return the configuration mapping consumed by the request-signing client."""
        config = {
            "consumer_key": self.consumer_key,
            "consumer_secret_key": self.consumer_secret,
            "token": self.token,
            "token_secret": self.token_secret,
            "realm": self.realm,
        }
        if self.base_url:
            config["base_url"] = self.base_url
        return config


class DelegatedProfile(BaseModel):
    """OAuth 2.0 (Authorization Code + PKCE) credentials for one account.

    ``client_secret`` and ``refresh_token`` hold ``iv:cipher`` values while
    stored and plaintext once decrypted by the profile store. The token
    fields are all ``None`` until the first successful login.

    Attributes:
        account_id: NetSuite account id; determines the API hostnames.
        client_id: Public client identifier of the integration record.
        client_secret: Confidential client secret.
        access_token: Short-lived bearer token, stored in plaintext.
        refresh_token: Long-lived refresh token.
        token_expiry: Absolute access-token expiry in epoch milliseconds.
    """

    model_config = _PROFILE_CONFIG

    auth_type: Literal["oauth2"] = Field(default="oauth2", alias="authType")
    account_id: str = Field(alias="accountId", min_length=1)
    client_id: str = Field(alias="clientId", min_length=1)
    client_secret: str = Field(alias="clientSecret", min_length=1)
    access_token: Optional[str] = Field(default=None, alias="accessToken")
    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")
    token_expiry: Optional[int] = Field(default=None, alias="tokenExpiry")

    @property
    def has_tokens(self) -> bool:
        """Whether a login has completed for this profile."""
        return bool(self.access_token and self.refresh_token)

    def bearer_headers(self) -> dict[str, str]:
        """Return the ``Authorization`` header for the current access token."""
        return {"Authorization": f"Bearer {self.access_token}"}


Profile = Annotated[Union[LegacyProfile, DelegatedProfile], Field(discriminator="auth_type")]

_profile_adapter: TypeAdapter[Any] = TypeAdapter(Profile)


def parse_profile(data: dict[str, Any]) -> LegacyProfile | DelegatedProfile:
    """Validate a raw stored record into the matching profile variant.

    Records without an ``authType`` predate delegated auth and are read
    as legacy profiles.

    Raises:
        pydantic.ValidationError: If the record does not match its variant.
    """
    if "authType" not in data and "auth_type" not in data:
        data = {**data, "authType": AuthType.LEGACY.value}
    return _profile_adapter.validate_python(data)


def dump_profile(profile: LegacyProfile | DelegatedProfile) -> dict[str, Any]:
    """Serialise a profile to its on-disk JSON shape (camelCase, no nulls)."""
    return profile.model_dump(mode="json", by_alias=True, exclude_none=True)


# --- Flow models ---


class PKCEPair(BaseModel):
    """One-time PKCE verifier and its S256 challenge. Never persisted."""

    code_verifier: str
    code_challenge: str


class CallbackResult(BaseModel):
    """Authorization code and state captured by the callback listener."""

    code: str
    state: Optional[str] = None


class TokenResponse(BaseModel):
    """Successful token-endpoint response.

    ``refresh_token`` is ``None`` when a refresh response does not rotate
    the refresh token; callers keep the previous one.
    """

    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: int = 3600
    token_type: str = "Bearer"


class LoginResult(BaseModel):
    """Tokens produced by a completed login, as persisted to the profile."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: int
    token_expiry: int


class CredentialSource(str, enum.Enum):
    """Where resolved credentials came from."""

    ENVIRONMENT = "environment"
    PROFILE = "profile"


class ResolvedCredentials(BaseModel):
    """Outcome of resolving credentials for a profile name.

    ``credentials`` is ``None`` when nothing matched; ``available_profiles``
    then lists the configured profile names for user guidance.
    """

    profile_name: str
    credentials: Optional[Union[LegacyProfile, DelegatedProfile]] = None
    source: Optional[CredentialSource] = None
    available_profiles: list[str] = Field(default_factory=list)

    @property
    def auth_type(self) -> Optional[str]:
        """The auth type of the resolved credentials, if any."""
        return self.credentials.auth_type if self.credentials is not None else None
