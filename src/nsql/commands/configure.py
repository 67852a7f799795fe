"""Configure command -- create or edit a credential profile interactively.

Existing values are shown masked and kept when the user presses Enter.
The auth type comes from ``--auth-type``, else from the existing profile,
else from a prompt.

Examples::

    nsql configure                               # "default" profile
    nsql configure --profile prod --auth-type oauth2
"""

from __future__ import annotations

from typing import Optional

import typer

from nsql.auth.profile_store import ProfileStore
from nsql.commands import fail
from nsql.config import DEFAULT_PROFILE
from nsql.exceptions import ConfigurationError, InvalidUsageError, NsqlError
from nsql.models import AuthType, DelegatedProfile, LegacyProfile
from nsql.output import info, mask_value, success, suggest, warning


def configure_command(
    profile_name: str = typer.Option(
        DEFAULT_PROFILE, "--profile", "-p", help="Profile name to configure."
    ),
    auth_type: Optional[AuthType] = typer.Option(
        None,
        "--auth-type",
        help="oauth1 (token-based) or oauth2 (browser login).",
        case_sensitive=False,
    ),
) -> None:
    """Create or update a credential profile."""
    store = ProfileStore()
    try:
        existing = store.get(profile_name)
        chosen = auth_type or _existing_auth_type(existing) or _prompt_auth_type()

        if existing is not None:
            info(f"Editing existing profile: {profile_name}")
            info("Enter new values (press Enter to keep the current value).")
        else:
            info(f"Creating new profile: {profile_name}")

        if chosen == AuthType.DELEGATED:
            _configure_delegated(store, profile_name, existing)
        else:
            _configure_legacy(store, profile_name, existing)
    except NsqlError as exc:
        fail(exc)

    success(f"Profile '{profile_name}' saved successfully!")
    if chosen == AuthType.DELEGATED:
        suggest(f"Authenticate: nsql login --profile {profile_name}")


def _existing_auth_type(
    existing: Optional[LegacyProfile | DelegatedProfile],
) -> Optional[AuthType]:
    return AuthType(existing.auth_type) if existing is not None else None


def _prompt_auth_type() -> AuthType:
    value = typer.prompt("Authentication type (oauth1/oauth2)", default=AuthType.LEGACY.value)
    try:
        return AuthType(value.strip().lower())
    except ValueError:
        raise InvalidUsageError(
            f"Unknown authentication type '{value}'", hint="Choose oauth1 or oauth2."
        ) from None


def _ask(label: str, current: Optional[str] = None, secret: bool = True) -> str:
    """Prompt for a required value, keeping *current* on empty input."""
    prompt = label
    if current:
        prompt += f" [{mask_value(current) if secret else current}]"
    while True:
        value = typer.prompt(prompt, default="", show_default=False).strip()
        if value:
            return value
        if current:
            return current
        info(f"{label} is required")


def _configure_legacy(
    store: ProfileStore,
    name: str,
    existing: Optional[LegacyProfile | DelegatedProfile],
) -> None:
    current = existing if isinstance(existing, LegacyProfile) else None
    store.save_legacy(
        name,
        consumer_key=_ask("Consumer Key", current.consumer_key if current else None),
        consumer_secret=_ask("Consumer Secret", current.consumer_secret if current else None),
        token=_ask("Token", current.token if current else None),
        token_secret=_ask("Token Secret", current.token_secret if current else None),
        realm=_ask("Realm", current.realm if current else None, secret=False),
        base_url=current.base_url if current else None,
    )


def _configure_delegated(
    store: ProfileStore,
    name: str,
    existing: Optional[LegacyProfile | DelegatedProfile],
) -> None:
    current = existing if isinstance(existing, DelegatedProfile) else None
    current_secret: Optional[str] = None
    readable = current is not None
    if current is not None:
        try:
            current_secret = store.decrypt(current).client_secret
        except ConfigurationError as exc:
            # Lost or replaced machine key: keep the public fields, re-ask the secret.
            readable = False
            warning(str(exc))
            info("The stored client secret is unreadable; enter it again.")

    account_id = _ask("Account ID", current.account_id if current else None, secret=False)
    client_id = _ask("Client ID", current.client_id if current else None)
    client_secret = _ask("Client Secret", current_secret)

    keep_tokens = (
        current is not None
        and readable
        and current.account_id == account_id
        and current.client_id == client_id
    )
    if current is not None and current.has_tokens and not keep_tokens:
        reason = "Account or client changed" if readable else "Secrets were re-entered"
        info(f"{reason}; stored tokens were discarded.")

    store.save_delegated(
        name,
        account_id=account_id,
        client_id=client_id,
        client_secret=client_secret,
        keep_tokens=keep_tokens,
    )
