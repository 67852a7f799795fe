"""Auth commands -- inspect, use, and remove stored credentials.

Provides the ``nsql auth`` sub-command group. Credentials are resolved
with the same precedence every command uses: a complete set of
``NSQL_*`` environment variables first, then the named profile.

Typical workflow::

    nsql auth list                      # what is configured
    nsql auth show --profile prod       # where credentials come from
    TOKEN=$(nsql auth token -p prod)    # refreshed bearer token on stdout
    nsql auth logout --profile prod     # forget tokens, keep the profile
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

import typer

from nsql.auth.profile_store import ProfileStore
from nsql.auth.resolver import (
    CredentialResolver,
    describe_source,
    ensure_fresh_token,
    is_token_expired,
)
from nsql.commands import fail, is_forced
from nsql.config import DEFAULT_PROFILE, LegacyEnvironment
from nsql.exceptions import ConfigurationError, NsqlError
from nsql.models import DelegatedProfile, LegacyProfile, ResolvedCredentials
from nsql.output import get_output, info, mask_secret, mask_token, success, suggest


auth_app = typer.Typer(no_args_is_help=True)

_PROFILE_OPTION = typer.Option(DEFAULT_PROFILE, "--profile", "-p", help="Profile name.")


def token_status(profile: LegacyProfile | DelegatedProfile) -> str:
    """Short token state label for a stored profile."""
    if isinstance(profile, LegacyProfile):
        return "-"
    if not profile.has_tokens:
        return "not logged in"
    return "expired" if is_token_expired(profile) else "valid"


def _format_expiry(token_expiry: Optional[int]) -> str:
    if token_expiry is None:
        return "-"
    return datetime.fromtimestamp(token_expiry / 1000).isoformat(timespec="seconds")


def _resolve(profile_name: str) -> tuple[ProfileStore, ResolvedCredentials]:
    """Resolve credentials or raise ConfigurationError listing the alternatives."""
    output = get_output()
    store = ProfileStore(output=output)
    resolver = CredentialResolver(store, LegacyEnvironment.from_environ(), output=output)
    resolved = resolver.resolve(profile_name)
    if resolved.credentials is None:
        hint = f"Run 'nsql configure --profile {profile_name}' to create it."
        if resolved.available_profiles:
            hint = f"Available profiles: {', '.join(resolved.available_profiles)}. " + hint
        raise ConfigurationError(f"Profile '{profile_name}' not found", hint=hint)
    return store, resolved


@auth_app.command("list")
def auth_list() -> None:
    """List all configured profiles with auth type and token status.

    Example::

        nsql auth list
    """
    store = ProfileStore()
    try:
        names = store.list_names()
    except NsqlError as exc:
        fail(exc)

    if not names:
        info("No profiles configured.")
        suggest("Create one: nsql configure")
        return

    headers = ["Profile", "Auth Type", "Account", "Token"]
    rows: list[list[str]] = []
    for name in names:
        try:
            profile = store.get(name)
        except ConfigurationError:
            rows.append([name, "error", "-", "-"])
            continue
        if profile is None:
            continue
        account = profile.realm if isinstance(profile, LegacyProfile) else profile.account_id
        rows.append([name, profile.auth_type, account, token_status(profile)])

    get_output().print_table(headers, rows, title="Configured Profiles")


@auth_app.command("show")
def auth_show(profile_name: str = _PROFILE_OPTION) -> None:
    """Report which credentials a command would use, with secrets masked.

    Example::

        nsql auth show --profile prod
    """
    try:
        _, resolved = _resolve(profile_name)
    except NsqlError as exc:
        fail(exc)

    creds = resolved.credentials
    report: dict[str, Any] = {
        "profile": profile_name,
        "source": describe_source(resolved),
        "auth_type": resolved.auth_type,
    }
    if isinstance(creds, LegacyProfile):
        report.update(
            realm=creds.realm,
            consumer_key=mask_secret(creds.consumer_key),
            token=mask_secret(creds.token),
        )
        if creds.base_url:
            report["base_url"] = creds.base_url
    elif isinstance(creds, DelegatedProfile):
        report.update(
            account_id=creds.account_id,
            client_id=mask_secret(creds.client_id),
            access_token=mask_token(creds.access_token) if creds.access_token else None,
            token_expiry=_format_expiry(creds.token_expiry),
            token_status=token_status(creds),
        )
    get_output().format_response(report)


@auth_app.command("token")
def auth_token(profile_name: str = _PROFILE_OPTION) -> None:
    """Print ready-to-use credentials on stdout.

    OAuth 2.0 profiles print the access token, refreshed first when it
    expires within five minutes. OAuth 1.0 credentials print the
    request-signing client configuration.

    Example::

        curl -H "Authorization: Bearer $(nsql auth token -p prod)" ...
    """
    output = get_output()
    try:
        store, resolved = _resolve(profile_name)
        creds = resolved.credentials
        if isinstance(creds, DelegatedProfile):
            fresh = ensure_fresh_token(profile_name, creds, store, output=output)
            output.print_data(fresh.access_token or "")
        elif isinstance(creds, LegacyProfile):
            output.format_response(creds.to_client_config())
    except NsqlError as exc:
        fail(exc)


@auth_app.command("logout")
def auth_logout(profile_name: str = _PROFILE_OPTION) -> None:
    """Forget the stored tokens of an OAuth 2.0 profile.

    The profile's account and client configuration are kept, so
    ``nsql login`` works again straight away.
    """
    store = ProfileStore()
    try:
        profile = store.get(profile_name)
        if profile is None:
            raise ConfigurationError(
                f"Profile '{profile_name}' not found",
                hint="List profiles with 'nsql auth list'.",
            )
        removed = store.clear_tokens(profile_name)
    except NsqlError as exc:
        fail(exc)

    if removed:
        success(f"Logged out of profile '{profile_name}'.")
    else:
        info(f"Profile '{profile_name}' has no stored tokens.")


@auth_app.command("remove")
def auth_remove(
    ctx: typer.Context,
    profile_name: str = typer.Argument(help="Profile name to remove."),
    force: bool = typer.Option(False, "--force", help="Skip the confirmation prompt."),
) -> None:
    """Delete a profile and its stored credentials.

    Prompts for confirmation unless ``--force`` is given here or globally.

    Example::

        nsql auth remove staging --force
    """
    store = ProfileStore()
    try:
        if not store.exists(profile_name):
            raise ConfigurationError(
                f"Profile '{profile_name}' not found",
                hint="List profiles with 'nsql auth list'.",
            )
        if not (force or is_forced(ctx)):
            confirmed = typer.confirm(f"Remove profile '{profile_name}'?")
            if not confirmed:
                info("Cancelled.")
                raise typer.Exit()
        store.delete(profile_name)
    except NsqlError as exc:
        fail(exc)

    success(f"Profile '{profile_name}' removed.")
