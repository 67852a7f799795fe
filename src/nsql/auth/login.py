"""Interactive OAuth 2.0 login (Authorization Code + PKCE).

:class:`LoginOrchestrator` runs one attempt end to end:

1. Load the delegated profile (it must already be configured).
2. Generate the PKCE pair and ``state``.
3. Bind the callback listener, print the authorization URL and open it in
   the browser from a daemon thread.
4. Wait for the redirect, verify ``state``, exchange the code.
5. Persist the tokens into the profile.

There are no retries at this level; every failure propagates as an
:class:`~nsql.exceptions.NsqlError` subclass.
"""

from __future__ import annotations

import threading
import webbrowser
from typing import Callable, Optional

from nsql.auth.callback import CallbackListener
from nsql.auth.pkce import generate_pkce_pair, generate_state
from nsql.auth.profile_store import ProfileStore
from nsql.auth.token_client import TokenClient, build_authorization_url, now_ms
from nsql.config import CALLBACK_PATH, CALLBACK_TIMEOUT_SECONDS, DEFAULT_CALLBACK_PORT
from nsql.exceptions import ConfigurationError, StateMismatchError
from nsql.models import DelegatedProfile, LoginResult
from nsql.output import OutputManager, get_output, mask_secret, mask_token

TokenClientFactory = Callable[[DelegatedProfile], TokenClient]


def build_redirect_uri(port: int, path: str = CALLBACK_PATH) -> str:
    """Return the redirect URI registered for *port*."""
    return f"http://localhost:{port}{path}"


class LoginOrchestrator:
    """Sequence one browser login for a delegated profile.

    Args:
        store: Profile store holding the profile's static configuration.
        port: Callback port; must match a redirect URI registered on the
            integration record.
        open_browser: Launch the system browser. When ``False`` the URL is
            only printed.
        timeout: Seconds to wait for the redirect.
        token_client_factory: Builds the token client from the decrypted
            profile. Overridden in tests.
        output: Diagnostics sink; defaults to the global manager.
    """

    def __init__(
        self,
        store: ProfileStore,
        port: int = DEFAULT_CALLBACK_PORT,
        open_browser: bool = True,
        timeout: float = CALLBACK_TIMEOUT_SECONDS,
        token_client_factory: Optional[TokenClientFactory] = None,
        output: Optional[OutputManager] = None,
    ) -> None:
        self._store = store
        self._port = port
        self._open_browser = open_browser
        self._timeout = timeout
        self._output = output or get_output()
        self._token_client_factory = token_client_factory or self._default_token_client

    def _default_token_client(self, profile: DelegatedProfile) -> TokenClient:
        return TokenClient(
            profile.account_id,
            profile.client_id,
            profile.client_secret,
            output=self._output,
        )

    def run(self, profile_name: str) -> LoginResult:
        """Log in *profile_name* and store its tokens.

        Raises:
            ConfigurationError: The profile is missing or not OAuth 2.0.
            BindError: The callback port is unavailable.
            AuthorizationDeniedError, MissingCodeError, CallbackTimeoutError:
                The redirect did not deliver a code.
            StateMismatchError: The returned ``state`` differs from the one sent.
            TokenExchangeError: The token endpoint rejected the code.
        """
        profile = self._load_profile(profile_name)
        out = self._output

        out.debug(f"Profile: {profile_name}")
        out.debug(f"Account ID: {profile.account_id}")
        out.debug(f"Client ID: {profile.client_id}")
        out.debug(f"Client secret: {mask_secret(profile.client_secret)}")

        pkce = generate_pkce_pair()
        state = generate_state()

        with CallbackListener(port=self._port, timeout=self._timeout, output=out) as listener:
            redirect_uri = build_redirect_uri(listener.port)
            auth_url = build_authorization_url(
                profile.account_id,
                profile.client_id,
                redirect_uri,
                state,
                pkce.code_challenge,
            )
            out.debug(f"Redirect URI: {redirect_uri}")

            out.info("Open this URL in your browser to sign in:")
            out.info(auth_url)
            if self._open_browser:
                self._launch_browser(auth_url)
            out.info("Waiting for authorization...")

            callback = listener.wait()

        if callback.state != state:
            raise StateMismatchError("State mismatch: possible CSRF attack. Please try again.")

        client = self._token_client_factory(profile)
        tokens = client.exchange_code(callback.code, redirect_uri, pkce.code_verifier)
        out.debug(f"Access token: {mask_token(tokens.access_token)}")
        out.debug(f"Expires in: {tokens.expires_in}s")

        result = LoginResult(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_in=tokens.expires_in,
            token_expiry=now_ms() + tokens.expires_in * 1000,
        )
        self._store.save_tokens(profile_name, result)
        return result

    def _load_profile(self, profile_name: str) -> DelegatedProfile:
        profile = self._store.get(profile_name)
        if profile is None:
            raise ConfigurationError(
                f"Profile '{profile_name}' not found",
                hint=f"Run 'nsql configure --profile {profile_name} --auth-type oauth2' first.",
            )
        if not isinstance(profile, DelegatedProfile):
            raise ConfigurationError(
                f"Profile '{profile_name}' uses OAuth 1.0 and does not need a login",
                hint=f"Run 'nsql configure --profile {profile_name} --auth-type oauth2' "
                "to switch it to OAuth 2.0.",
            )
        return self._store.decrypt(profile)

    def _launch_browser(self, url: str) -> None:
        """Open *url* without blocking; failures leave the printed URL usable."""
        out = self._output

        def open_browser() -> None:
            try:
                if not webbrowser.open(url):
                    out.warning("Could not open a browser. Open the URL above manually.")
            except webbrowser.Error as exc:
                out.warning(f"Could not open a browser ({exc}). Open the URL above manually.")

        browser_thread = threading.Thread(target=open_browser, daemon=True)
        browser_thread.start()
