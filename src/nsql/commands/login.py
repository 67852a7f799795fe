"""Login command -- browser sign-in for an OAuth 2.0 profile.

Examples::

    nsql login --profile prod
    nsql login --profile prod --port 8765 --no-browser
"""

from __future__ import annotations

from datetime import datetime

import typer

from nsql.auth.login import LoginOrchestrator
from nsql.auth.profile_store import ProfileStore
from nsql.commands import fail
from nsql.config import DEFAULT_CALLBACK_PORT, DEFAULT_PROFILE
from nsql.exceptions import NsqlError
from nsql.output import get_output, success


def login_command(
    profile_name: str = typer.Option(
        DEFAULT_PROFILE, "--profile", "-p", help="OAuth 2.0 profile to log in."
    ),
    port: int = typer.Option(
        DEFAULT_CALLBACK_PORT,
        "--port",
        min=1,
        max=65535,
        help="Local callback port registered as the integration's redirect URI.",
    ),
    no_browser: bool = typer.Option(
        False, "--no-browser", help="Print the sign-in URL without opening a browser."
    ),
) -> None:
    """Sign in through the browser and store the resulting tokens."""
    output = get_output()
    orchestrator = LoginOrchestrator(
        ProfileStore(output=output),
        port=port,
        open_browser=not no_browser,
        output=output,
    )
    try:
        result = orchestrator.run(profile_name)
    except NsqlError as exc:
        fail(exc)

    expires = datetime.fromtimestamp(result.token_expiry / 1000).isoformat(timespec="seconds")
    success(f"Logged in to profile '{profile_name}'. Access token valid until {expires}.")
