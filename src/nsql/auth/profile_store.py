"""Persistent profile store backed by a single JSON document.

Every profile lives in ``<config_dir>/config.json`` as one entry of a JSON
object keyed by profile name::

    {
      "default": {"authType": "oauth1", "consumerKey": "...", ...},
      "prod": {"authType": "oauth2", "accountId": "1234567",
               "clientId": "...", "clientSecret": "<iv>:<cipher>",
               "accessToken": "...", "refreshToken": "<iv>:<cipher>",
               "tokenExpiry": 1767225600000}
    }

``clientSecret`` and ``refreshToken`` are always encrypted through the
:class:`~nsql.auth.secret_store.SecretStore`; the access token is stored in
plaintext because it cannot mint new tokens on its own.

Each mutation re-reads the whole document, changes one entry and writes
the document back atomically with ``0o600`` permissions. There is no file
locking: two invocations writing at the same time race and the last
writer wins.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from nsql.auth.secret_store import SecretStore
from nsql.config import atomic_write, get_profiles_path
from nsql.exceptions import ConfigurationError
from nsql.models import (
    DelegatedProfile,
    LegacyProfile,
    LoginResult,
    dump_profile,
    parse_profile,
)
from nsql.output import OutputManager, get_output

StoredProfile = LegacyProfile | DelegatedProfile


class ProfileStore:
    """Read and write named credential profiles.

    Args:
        path: Location of the profile document. Defaults to
            :func:`~nsql.config.get_profiles_path`, resolved lazily.
        secrets: Encryption primitive for the confidential fields.
        output: Diagnostics sink; defaults to the global manager.

    Example::

        store = ProfileStore()
        store.save_delegated("prod", account_id="1234567",
                             client_id="abc", client_secret="s3cret")
        profile = store.get("prod")          # clientSecret still encrypted
        plain = store.decrypt(profile)       # clientSecret == "s3cret"
    """

    def __init__(
        self,
        path: Optional[Path] = None,
        secrets: Optional[SecretStore] = None,
        output: Optional[OutputManager] = None,
    ) -> None:
        self._path = path
        self._output = output or get_output()
        self._secrets = secrets or SecretStore(output=self._output)

    @property
    def path(self) -> Path:
        """The filesystem path of the profile document."""
        if self._path is None:
            self._path = get_profiles_path()
        return self._path

    @property
    def secrets(self) -> SecretStore:
        """The secret store used for the encrypted fields."""
        return self._secrets

    # ------------------------------------------------------------------ #
    # Whole-document access
    # ------------------------------------------------------------------ #

    def read_all(self) -> dict[str, Any]:
        """Return the raw profile document, or ``{}`` if it does not exist yet.

        Raises:
            ConfigurationError: If the file exists but is not a JSON object.
        """
        path = self.path
        if not path.is_file():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigurationError(
                f"Failed to read config file {path}: {exc}",
                hint=f"Fix or delete {path}, then run 'nsql configure'.",
            ) from exc
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Config file {path} must contain a JSON object of profiles",
                hint=f"Fix or delete {path}, then run 'nsql configure'.",
            )
        return data

    def write_all(self, data: dict[str, Any]) -> None:
        """Persist the whole profile document atomically."""
        atomic_write(self.path, json.dumps(data, indent=2) + "\n")

    # ------------------------------------------------------------------ #
    # Profiles
    # ------------------------------------------------------------------ #

    def list_names(self) -> list[str]:
        """Return all configured profile names in file order."""
        return list(self.read_all())

    def exists(self, name: str) -> bool:
        """Check whether a profile with *name* is configured."""
        return name in self.read_all()

    def get(self, name: str) -> Optional[StoredProfile]:
        """Load a profile as stored (secrets still encrypted).

        Returns:
            The matching profile variant, or ``None`` if *name* is not
            configured.

        Raises:
            ConfigurationError: If the stored record is malformed.
        """
        record = self.read_all().get(name)
        if record is None:
            return None
        if not isinstance(record, dict):
            raise ConfigurationError(f"Profile '{name}' in {self.path} is not a JSON object")
        try:
            return parse_profile(record)
        except ValidationError as exc:
            raise ConfigurationError(
                f"Profile '{name}' is invalid: {_summarise(exc)}",
                hint=f"Run 'nsql configure --profile {name}' to fix it.",
            ) from exc

    def save(self, name: str, profile: StoredProfile) -> None:
        """Store *profile* under *name* exactly as given, replacing any previous entry.

        Delegated profiles must already carry encrypted secrets; use
        :meth:`save_delegated` and :meth:`save_tokens` to encrypt on the way in.
        """
        data = self.read_all()
        data[name] = dump_profile(profile)
        self.write_all(data)
        self._output.debug(f"Saved profile '{name}' to {self.path}")

    def save_legacy(
        self,
        name: str,
        *,
        consumer_key: str,
        consumer_secret: str,
        token: str,
        token_secret: str,
        realm: str,
        base_url: Optional[str] = None,
    ) -> LegacyProfile:
        """Validate and store a legacy profile.

        Raises:
            ConfigurationError: If any of the five fields is empty.
        """
        try:
            profile = LegacyProfile(
                consumer_key=consumer_key,
                consumer_secret=consumer_secret,
                token=token,
                token_secret=token_secret,
                realm=realm,
                base_url=base_url or None,
            )
        except ValidationError as exc:
            raise ConfigurationError(
                f"Invalid profile data, all fields are required: {_summarise(exc)}"
            ) from exc
        self.save(name, profile)
        return profile

    def save_delegated(
        self,
        name: str,
        *,
        account_id: str,
        client_id: str,
        client_secret: str,
        keep_tokens: bool = False,
    ) -> DelegatedProfile:
        """Store a delegated profile's static configuration, encrypting the secret.

        Args:
            name: Profile name.
            account_id: NetSuite account id.
            client_id: Integration client id.
            client_secret: Plaintext client secret.
            keep_tokens: Carry over tokens from an existing delegated
                profile of the same name. Otherwise the profile starts
                unauthenticated.

        Raises:
            ConfigurationError: If any field is empty.
        """
        existing = self.get(name) if keep_tokens else None
        tokens: dict[str, Any] = {}
        if isinstance(existing, DelegatedProfile):
            tokens = {
                "access_token": existing.access_token,
                "refresh_token": existing.refresh_token,
                "token_expiry": existing.token_expiry,
            }
        try:
            profile = DelegatedProfile(
                account_id=account_id,
                client_id=client_id,
                client_secret=client_secret,
                **tokens,
            )
        except ValidationError as exc:
            raise ConfigurationError(
                f"Invalid OAuth 2.0 profile, accountId, clientId and clientSecret "
                f"are required: {_summarise(exc)}"
            ) from exc
        profile.client_secret = self._secrets.encrypt(client_secret) or client_secret
        self.save(name, profile)
        return profile

    def save_tokens(self, name: str, result: LoginResult) -> DelegatedProfile:
        """Write a delegated profile's token sub-record, encrypting the refresh token.

        Raises:
            ConfigurationError: If the profile does not exist or is not a
                delegated profile.
        """
        profile = self.get(name)
        if profile is None:
            raise ConfigurationError(
                f"Profile '{name}' not found",
                hint=f"Run 'nsql configure --profile {name} --auth-type oauth2' first.",
            )
        if not isinstance(profile, DelegatedProfile):
            raise ConfigurationError(
                f"Profile '{name}' does not use OAuth 2.0",
                hint=f"Run 'nsql configure --profile {name} --auth-type oauth2' first.",
            )
        profile.access_token = result.access_token
        profile.refresh_token = self._secrets.encrypt(result.refresh_token)
        profile.token_expiry = result.token_expiry
        self.save(name, profile)
        return profile

    def clear_tokens(self, name: str) -> bool:
        """Remove the token sub-record from a delegated profile.

        Returns:
            ``True`` if tokens were removed, ``False`` if there were none.
        """
        profile = self.get(name)
        if not isinstance(profile, DelegatedProfile) or not (
            profile.access_token or profile.refresh_token
        ):
            return False
        profile.access_token = None
        profile.refresh_token = None
        profile.token_expiry = None
        self.save(name, profile)
        return True

    def delete(self, name: str) -> None:
        """Remove a profile.

        Raises:
            ConfigurationError: If the profile does not exist.
        """
        data = self.read_all()
        if name not in data:
            raise ConfigurationError(
                f"Profile '{name}' not found", hint="List profiles with 'nsql auth list'."
            )
        del data[name]
        self.write_all(data)

    def decrypt(self, profile: DelegatedProfile) -> DelegatedProfile:
        """Return a copy of *profile* with ``client_secret`` and ``refresh_token`` decrypted."""
        return profile.model_copy(
            update={
                "client_secret": self._secrets.decrypt(profile.client_secret),
                "refresh_token": self._secrets.decrypt(profile.refresh_token),
            }
        )


def _summarise(exc: ValidationError) -> str:
    """Collapse a pydantic error into ``field: message`` pairs."""
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)
