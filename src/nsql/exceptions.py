"""Exception hierarchy for nsql.

All exceptions inherit from :class:`NsqlError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`nsql.exit_codes`
and an optional ``hint`` naming the next step the user should take.
Commands report ``NsqlError`` through :func:`nsql.commands.fail`, while
unexpected exceptions produce a crash log in :func:`nsql.app.main`.

None of these errors are retried internally.

Subclass hierarchy::

    NsqlError (exit 1)
    +-- InvalidUsageError               (exit 2)
    +-- ConfigurationError              (exit 1)
    +-- AuthError                       (exit 3)
    |   +-- AuthenticationRequiredError
    |   +-- AuthorizationDeniedError
    |   +-- MissingCodeError
    |   +-- CallbackTimeoutError
    |   +-- StateMismatchError
    |   +-- AuthExchangeError
    |       +-- TokenExchangeError
    |       +-- TokenRefreshError
    +-- BindError                       (exit 6)
"""

from __future__ import annotations

from typing import Optional

from nsql.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
)


class NsqlError(Exception):
    """Base exception for all nsql errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`nsql.exit_codes`.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
        hint: Optional actionable next step, printed as a suggestion.
    """

    exit_code: int = EXIT_GENERIC_FAILURE
    hint: Optional[str] = None

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        hint: str | None = None,
    ):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code
        if hint is not None:
            self.hint = hint


class InvalidUsageError(NsqlError):
    """Raised for invalid CLI arguments or option combinations."""

    exit_code = EXIT_INVALID_USAGE


class ConfigurationError(NsqlError):
    """Raised when a profile is missing or malformed, or the config file is unreadable."""

    exit_code = EXIT_GENERIC_FAILURE
    hint = "Run 'nsql configure' to set up the profile."


class AuthError(NsqlError):
    """Raised when authentication or authorisation fails."""

    exit_code = EXIT_AUTH_FAILURE


class AuthenticationRequiredError(AuthError):
    """A delegated profile is configured but has never completed a login."""


class AuthorizationDeniedError(AuthError):
    """The user (or the provider) declined the authorization request in the browser.

    Args:
        error_code: The ``error`` query parameter sent back by the provider
            (e.g. ``"access_denied"``).
    """

    hint = "Run 'nsql login' again and approve the request."

    def __init__(self, error_code: str, description: str | None = None):
        message = f"Authorization denied: {error_code}"
        if description:
            message += f" ({description})"
        super().__init__(message)
        self.error_code = error_code


class MissingCodeError(AuthError):
    """The redirect reached the callback path without an authorization code."""

    hint = "Run 'nsql login' again."


class CallbackTimeoutError(AuthError):
    """No redirect reached the callback listener before its deadline."""

    hint = "Run 'nsql login' again and finish signing in within the time limit."


class StateMismatchError(AuthError):
    """The ``state`` returned with the code differs from the one sent (possible CSRF)."""

    hint = "Run 'nsql login' again. Close any other sign-in tabs first."


class AuthExchangeError(AuthError):
    """The token endpoint rejected a request or could not be reached.

    Args:
        message: Human-readable description.
        status_code: HTTP status of the rejection, ``None`` for transport
            failures.
        detail: Best-effort explanation extracted from the response body.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        detail: str | None = None,
        hint: str | None = None,
    ):
        super().__init__(message, hint=hint)
        self.status_code = status_code
        self.detail = detail


class TokenExchangeError(AuthExchangeError):
    """Exchanging an authorization code for tokens failed."""

    hint = "Check the client id and secret with 'nsql configure', then run 'nsql login'."


class TokenRefreshError(AuthExchangeError):
    """Refreshing an access token failed; the user must log in again."""


class BindError(NsqlError):
    """The local callback listener could not bind its port.

    Args:
        port: The TCP port that was requested.
        reason: The underlying OS error text.
    """

    exit_code = EXIT_CONNECTION_ERROR

    def __init__(self, port: int, reason: str):
        super().__init__(
            f"Failed to start callback server on port {port}: {reason}",
            hint=(
                "Free the port or pass --port with another port registered "
                "as a redirect URI for the integration."
            ),
        )
        self.port = port
