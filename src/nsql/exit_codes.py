"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~nsql.exceptions.NsqlError` subclass.
Shell wrappers can inspect the exit code to tell a missing profile from a
rejected login without parsing stderr.

Example::

    $ nsql auth token --profile prod
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- refresh token was rejected, run `nsql login`
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred, or the profile configuration is unusable."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_AUTH_FAILURE = 3
"""Authentication or authorisation failed."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred, including a local callback port that cannot be bound."""
