"""nsql -- local credential broker for the SuiteQL command-line client.

This package owns everything the CLI needs to authenticate against a
NetSuite account: named credential *profiles* stored on disk, the
browser-based OAuth 2.0 Authorization Code + PKCE login, and automatic
access-token refresh before each authenticated call.

Typical workflow::

    nsql configure --auth-type oauth2   # store account id and client app
    nsql login                          # browser sign-in, tokens saved
    nsql auth token                     # ready-to-use bearer token

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models for profiles and token responses.
    config: Config directory layout, atomic writes, environment overrides.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
    auth: PKCE, secret store, profile store, callback listener, token
        client, login orchestration and credential resolution.
"""

__version__ = "1.0.0"
