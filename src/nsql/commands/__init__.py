"""Built-in CLI sub-commands for nsql.

* :mod:`~nsql.commands.configure` -- interactive profile setup.
* :mod:`~nsql.commands.login` -- browser login for OAuth 2.0 profiles.
* :mod:`~nsql.commands.auth` -- inspect, use, and remove stored credentials.

Single commands export a plain callback registered on the root app;
``auth`` exports a :class:`typer.Typer` sub-application.
"""

from __future__ import annotations

from typing import NoReturn

import typer

from nsql.exceptions import NsqlError
from nsql.output import error, suggest


def fail(exc: NsqlError) -> NoReturn:
    """Report *exc* on stderr with its hint and exit with its code."""
    error(str(exc))
    if exc.hint:
        suggest(exc.hint)
    raise typer.Exit(code=exc.exit_code)


def is_forced(ctx: typer.Context) -> bool:
    """Whether the global ``--force`` flag is active."""
    root = ctx.find_root()
    return bool(root.obj.get("force", False)) if root.obj else False
