"""OAuth 2.0 client for the NetSuite authorization and token endpoints.

Covers the three pieces of the Authorization Code grant that talk to (or
point at) the account's servers:

1. :func:`build_authorization_url` -- the browser URL carrying the PKCE
   challenge and ``state``.
2. :meth:`TokenClient.exchange_code` -- ``authorization_code`` grant.
3. :meth:`TokenClient.refresh` -- ``refresh_token`` grant.

Both token requests are form-encoded POSTs authenticated with HTTP Basic
``client_id:client_secret``. Hostnames are derived from the account id by
:func:`normalize_account_id`; no other validation of the account id is
performed here.
"""

from __future__ import annotations

import base64
import json
import time
from typing import Any, Optional
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from nsql.config import HTTP_TIMEOUT_SECONDS
from nsql.exceptions import AuthExchangeError, TokenExchangeError, TokenRefreshError
from nsql.models import TokenResponse
from nsql.output import OutputManager, get_output, mask_token

SCOPE = "rest_webservices"
AUTHORIZE_PATH = "/app/login/oauth2/authorize.nl"
TOKEN_PATH = "/services/rest/auth/oauth2/v1/token"


def now_ms() -> int:
    """Current time in epoch milliseconds, the unit of stored token expiry."""
    return int(time.time() * 1000)


def normalize_account_id(account_id: str) -> str:
    """Map an account id to its hostname label (``1234567_SB1`` -> ``1234567-sb1``)."""
    return account_id.lower().replace("_", "-")


def build_authorization_url(
    account_id: str,
    client_id: str,
    redirect_uri: str,
    state: str,
    code_challenge: str,
) -> str:
    """Build the browser authorization URL for *account_id*.

    Returns:
        ``https://<account>.app.netsuite.com/app/login/oauth2/authorize.nl``
        with ``response_type``, ``client_id``, ``redirect_uri``, ``scope``,
        ``state``, ``code_challenge`` and ``code_challenge_method=S256``.
    """
    params = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scope": SCOPE,
        "state": state,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
    }
    host = f"{normalize_account_id(account_id)}.app.netsuite.com"
    return f"https://{host}{AUTHORIZE_PATH}?{urlencode(params)}"


def get_token_endpoint(account_id: str) -> str:
    """Return the token endpoint URL for *account_id*."""
    host = f"{normalize_account_id(account_id)}.suitetalk.api.netsuite.com"
    return f"https://{host}{TOKEN_PATH}"


def extract_error_detail(response: httpx.Response) -> str:
    """Pull a human-readable explanation out of an error response body.

    Prefers ``error_description``, then ``error`` from a JSON body, and
    falls back to the raw body text.
    """
    text = response.text
    try:
        body = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return text
    if isinstance(body, dict):
        return body.get("error_description") or body.get("error") or text
    return text


class TokenClient:
    """Perform the token-endpoint exchanges for one integration.

    Args:
        account_id: NetSuite account id; selects the token host.
        client_id: Integration client id.
        client_secret: Plaintext integration client secret.
        timeout: HTTP timeout in seconds.
        output: Diagnostics sink; defaults to the global manager.

    Example::

        client = TokenClient("TSTDRV1", "cid", "secret")
        tokens = client.exchange_code(code, redirect_uri, pkce.code_verifier)
        later = client.refresh(tokens.refresh_token)
    """

    def __init__(
        self,
        account_id: str,
        client_id: str,
        client_secret: str,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        output: Optional[OutputManager] = None,
    ) -> None:
        self._account_id = account_id
        self._client_id = client_id
        self._client_secret = client_secret
        self._timeout = timeout
        self._output = output or get_output()

    @property
    def token_endpoint(self) -> str:
        """The token endpoint URL for this client's account."""
        return get_token_endpoint(self._account_id)

    def exchange_code(self, code: str, redirect_uri: str, code_verifier: str) -> TokenResponse:
        """Exchange an authorization code for access and refresh tokens.

        Args:
            code: Authorization code captured by the callback listener.
            redirect_uri: The redirect URI sent in the authorization request.
            code_verifier: The PKCE verifier matching the challenge that was sent.

        Raises:
            TokenExchangeError: On a non-2xx response, a transport failure,
                or a response without ``access_token``.
        """
        self._output.debug("Grant type: authorization_code")
        return self._request_token(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "code_verifier": code_verifier,
            },
            TokenExchangeError,
            "Token exchange failed",
        )

    def refresh(self, refresh_token: str) -> TokenResponse:
        """Mint a new access token from *refresh_token*.

        The returned ``refresh_token`` is ``None`` unless the server
        rotated it.

        Raises:
            TokenRefreshError: On a non-2xx response, a transport failure,
                or a response without ``access_token``.
        """
        self._output.debug("Grant type: refresh_token")
        self._output.debug(f"Refresh token: {mask_token(refresh_token)}")
        tokens = self._request_token(
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
            TokenRefreshError,
            "Token refresh failed",
        )
        self._output.debug(
            f"Refresh response contains new refresh_token: {tokens.refresh_token is not None}"
        )
        return tokens

    def _basic_auth(self) -> str:
        raw = f"{self._client_id}:{self._client_secret}".encode("utf-8")
        return "Basic " + base64.b64encode(raw).decode("ascii")

    def _request_token(
        self,
        data: dict[str, str],
        error_cls: type[AuthExchangeError],
        label: str,
    ) -> TokenResponse:
        """POST a grant to the token endpoint and parse the token response."""
        endpoint = self.token_endpoint
        self._output.debug(f"Token endpoint: {endpoint}")

        try:
            response = httpx.post(
                endpoint,
                data=data,
                headers={
                    "Authorization": self._basic_auth(),
                    "Accept": "application/json",
                },
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            raise error_cls(f"{label}: {exc}") from exc

        self._output.debug(f"Token response status: {response.status_code}")

        if not 200 <= response.status_code < 300:
            detail = extract_error_detail(response)
            self._output.debug(f"Token error body: {response.text}")
            raise error_cls(
                f"{label} ({response.status_code}): {detail}",
                status_code=response.status_code,
                detail=detail,
            )

        try:
            token_data: Any = response.json()
        except (json.JSONDecodeError, ValueError) as exc:
            raise error_cls(f"{label}: response is not JSON") from exc

        if not isinstance(token_data, dict) or "access_token" not in token_data:
            raise error_cls(f"{label}: response missing 'access_token' field")

        try:
            return TokenResponse.model_validate(token_data)
        except ValidationError as exc:
            raise error_cls(f"{label}: malformed token response: {exc}") from exc
