"""CLI tests for configure, login, and the auth command group."""

from __future__ import annotations

import json
import time
from pathlib import Path
from unittest.mock import MagicMock, patch

import httpx
import pytest

from nsql import __version__
from nsql.app import app
from nsql.auth.profile_store import ProfileStore
from nsql.exceptions import BindError, CallbackTimeoutError
from nsql.models import DelegatedProfile, LegacyProfile, LoginResult


FULL_ENV = {
    "NSQL_CONSUMER_KEY": "env-ck",
    "NSQL_CONSUMER_SECRET": "env-cs",
    "NSQL_TOKEN": "env-tk",
    "NSQL_TOKEN_SECRET": "env-ts",
    "NSQL_REALM": "env-realm",
}


def _now_ms() -> int:
    return int(time.time() * 1000)


@pytest.fixture
def store(isolated_config: Path) -> ProfileStore:
    return ProfileStore()


@pytest.fixture
def seeded(store: ProfileStore) -> ProfileStore:
    store.save_legacy(
        "default",
        consumer_key="consumer-key-1234",
        consumer_secret="cs",
        token="token-abcd",
        token_secret="ts",
        realm="123_SB1",
    )
    store.save_delegated("prod", account_id="TSTDRV1", client_id="client-1", client_secret="s")
    store.save_tokens(
        "prod",
        LoginResult(
            access_token="valid-access-token",
            refresh_token="stored-refresh",
            expires_in=3600,
            token_expiry=_now_ms() + 3600 * 1000,
        ),
    )
    return store


def _refresh_response(body: dict) -> MagicMock:
    mock_response = MagicMock(spec=httpx.Response)
    mock_response.status_code = 200
    mock_response.json.return_value = body
    mock_response.text = json.dumps(body)
    return mock_response


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


class TestRoot:
    def test_version(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"nsql {__version__}" in result.output

    def test_no_args_shows_help(self, cli_runner) -> None:
        result = cli_runner.invoke(app, [])
        assert "configure" in result.output
        assert "login" in result.output


# ---------------------------------------------------------------------------
# configure
# ---------------------------------------------------------------------------


class TestConfigure:
    def test_new_legacy_profile(self, cli_runner, store: ProfileStore) -> None:
        result = cli_runner.invoke(
            app,
            ["--no-color", "configure", "--auth-type", "oauth1"],
            input="ck\ncs\ntk\nts\n123\n",
        )
        assert result.exit_code == 0, result.output
        assert "Profile 'default' saved successfully!" in result.output

        profile = store.get("default")
        assert isinstance(profile, LegacyProfile)
        assert profile.to_client_config()["consumer_secret_key"] == "cs"

    def test_prompts_for_auth_type(self, cli_runner, store: ProfileStore) -> None:
        result = cli_runner.invoke(
            app,
            ["--no-color", "configure", "--profile", "prod"],
            input="oauth2\nTSTDRV1\nc\ns\n",
        )
        assert result.exit_code == 0, result.output
        assert isinstance(store.get("prod"), DelegatedProfile)
        assert "nsql login --profile prod" in result.output

    def test_unknown_auth_type(self, cli_runner, store: ProfileStore) -> None:
        result = cli_runner.invoke(app, ["--no-color", "configure"], input="kerberos\n")
        assert result.exit_code == 2
        assert "Unknown authentication type" in result.output

    def test_delegated_secret_encrypted(self, cli_runner, store: ProfileStore) -> None:
        result = cli_runner.invoke(
            app,
            ["--no-color", "configure", "-p", "prod", "--auth-type", "oauth2"],
            input="TSTDRV1\nc\nplain-secret\n",
        )
        assert result.exit_code == 0, result.output

        raw = json.loads(store.path.read_text())["prod"]
        assert raw["clientSecret"] != "plain-secret"
        assert store.decrypt(store.get("prod")).client_secret == "plain-secret"

    def test_enter_keeps_existing_values(self, cli_runner, seeded: ProfileStore) -> None:
        result = cli_runner.invoke(
            app, ["--no-color", "configure"], input="new-key\n\n\n\n\n"
        )
        assert result.exit_code == 0, result.output
        assert "Editing existing profile: default" in result.output
        # Existing secrets are shown masked, never in full.
        assert "****1234" in result.output
        assert "consumer-key-1234" not in result.output

        profile = seeded.get("default")
        assert profile.consumer_key == "new-key"
        assert profile.token == "token-abcd"
        assert profile.realm == "123_SB1"

    def test_required_value_reprompted(self, cli_runner, store: ProfileStore) -> None:
        result = cli_runner.invoke(
            app,
            ["--no-color", "configure", "--auth-type", "oauth1"],
            input="\nck\ncs\ntk\nts\n123\n",
        )
        assert result.exit_code == 0, result.output
        assert "Consumer Key is required" in result.output

    def test_same_client_keeps_tokens(self, cli_runner, seeded: ProfileStore) -> None:
        result = cli_runner.invoke(
            app, ["--no-color", "configure", "-p", "prod"], input="\n\nnew-secret\n"
        )
        assert result.exit_code == 0, result.output
        profile = seeded.decrypt(seeded.get("prod"))
        assert profile.client_secret == "new-secret"
        assert profile.access_token == "valid-access-token"

    def test_changed_account_drops_tokens(self, cli_runner, seeded: ProfileStore) -> None:
        result = cli_runner.invoke(
            app, ["--no-color", "configure", "-p", "prod"], input="OTHER1\n\n\n"
        )
        assert result.exit_code == 0, result.output
        assert "stored tokens were discarded" in result.output
        assert seeded.get("prod").has_tokens is False

    def test_lost_key_reconfigure_recovers(self, cli_runner, seeded: ProfileStore) -> None:
        seeded.secrets.key_path.unlink()

        result = cli_runner.invoke(
            app,
            ["--no-color", "configure", "-p", "prod", "--auth-type", "oauth2"],
            input="\n\nnew-secret\n",
        )
        assert result.exit_code == 0, result.output
        assert "Encryption key not found" in result.output
        assert "enter it again" in result.output
        assert "Profile 'prod' saved successfully!" in result.output

        fresh = ProfileStore()
        profile = fresh.decrypt(fresh.get("prod"))
        assert profile.account_id == "TSTDRV1"
        assert profile.client_id == "client-1"
        assert profile.client_secret == "new-secret"
        assert profile.has_tokens is False


# ---------------------------------------------------------------------------
# login
# ---------------------------------------------------------------------------


class TestLogin:
    def test_success(self, cli_runner, seeded: ProfileStore) -> None:
        result_obj = LoginResult(
            access_token="a", refresh_token="r", expires_in=3600, token_expiry=_now_ms()
        )
        with patch("nsql.commands.login.LoginOrchestrator") as orchestrator_cls:
            orchestrator_cls.return_value.run.return_value = result_obj
            result = cli_runner.invoke(
                app, ["--no-color", "login", "-p", "prod", "--port", "8765", "--no-browser"]
            )

        assert result.exit_code == 0, result.output
        assert "Logged in to profile 'prod'" in result.output
        kwargs = orchestrator_cls.call_args.kwargs
        assert kwargs["port"] == 8765
        assert kwargs["open_browser"] is False
        orchestrator_cls.return_value.run.assert_called_once_with("prod")

    def test_bind_error_exit_code_and_hint(self, cli_runner, seeded: ProfileStore) -> None:
        with patch("nsql.commands.login.LoginOrchestrator") as orchestrator_cls:
            orchestrator_cls.return_value.run.side_effect = BindError(9749, "Address in use")
            result = cli_runner.invoke(app, ["--no-color", "login", "-p", "prod"])

        assert result.exit_code == 6
        assert "Failed to start callback server on port 9749" in result.output
        assert "--port" in result.output

    def test_timeout_exit_code(self, cli_runner, seeded: ProfileStore) -> None:
        with patch("nsql.commands.login.LoginOrchestrator") as orchestrator_cls:
            orchestrator_cls.return_value.run.side_effect = CallbackTimeoutError(
                "Authentication timed out. No callback received within 2 minutes."
            )
            result = cli_runner.invoke(app, ["--no-color", "login", "-p", "prod"])

        assert result.exit_code == 3
        assert "timed out" in result.output

    def test_legacy_profile_rejected(self, cli_runner, seeded: ProfileStore) -> None:
        result = cli_runner.invoke(app, ["--no-color", "login"])
        assert result.exit_code == 1
        assert "OAuth 1.0" in result.output

    def test_invalid_port(self, cli_runner, seeded: ProfileStore) -> None:
        result = cli_runner.invoke(app, ["login", "--port", "70000"])
        assert result.exit_code == 2


# ---------------------------------------------------------------------------
# auth list / show
# ---------------------------------------------------------------------------


class TestAuthList:
    def test_empty(self, cli_runner, store: ProfileStore) -> None:
        result = cli_runner.invoke(app, ["--no-color", "auth", "list"])
        assert result.exit_code == 0
        assert "No profiles configured." in result.output

    def test_json_table(self, cli_runner, seeded: ProfileStore) -> None:
        result = cli_runner.invoke(app, ["--json", "auth", "list"])
        assert result.exit_code == 0, result.output
        rows = json.loads(result.stdout)
        assert rows == [
            {"Profile": "default", "Auth Type": "oauth1", "Account": "123_SB1", "Token": "-"},
            {"Profile": "prod", "Auth Type": "oauth2", "Account": "TSTDRV1", "Token": "valid"},
        ]


class TestAuthShow:
    def test_delegated_profile_masked(self, cli_runner, seeded: ProfileStore) -> None:
        result = cli_runner.invoke(app, ["--json", "auth", "show", "-p", "prod"])
        assert result.exit_code == 0, result.output
        report = json.loads(result.stdout)
        assert report["source"] == "profile 'prod'"
        assert report["auth_type"] == "oauth2"
        assert report["account_id"] == "TSTDRV1"
        assert report["token_status"] == "valid"
        assert "valid-access-token" not in result.output
        assert "stored-refresh" not in result.output

    def test_environment_source(self, cli_runner, seeded: ProfileStore) -> None:
        result = cli_runner.invoke(app, ["--json", "auth", "show"], env=FULL_ENV)
        assert result.exit_code == 0, result.output
        report = json.loads(result.stdout)
        assert report["source"] == "environment variables"
        assert report["realm"] == "env-realm"
        assert "env-ck" not in result.output

    def test_unknown_profile(self, cli_runner, seeded: ProfileStore) -> None:
        result = cli_runner.invoke(app, ["--no-color", "auth", "show", "-p", "ghost"])
        assert result.exit_code == 1
        assert "Profile 'ghost' not found" in result.output
        assert "Available profiles: default, prod" in result.output


# ---------------------------------------------------------------------------
# auth token
# ---------------------------------------------------------------------------


class TestAuthToken:
    def test_valid_token_printed(self, cli_runner, seeded: ProfileStore) -> None:
        with patch("nsql.auth.token_client.httpx.post") as mock_post:
            result = cli_runner.invoke(app, ["--no-color", "auth", "token", "-p", "prod"])
        assert result.exit_code == 0, result.output
        assert "valid-access-token" in result.stdout
        mock_post.assert_not_called()

    def test_expired_token_refreshed_first(self, cli_runner, seeded: ProfileStore) -> None:
        seeded.save_tokens(
            "prod",
            LoginResult(
                access_token="old", refresh_token="stored-refresh", expires_in=1, token_expiry=0
            ),
        )
        response = _refresh_response({"access_token": "fresh-access", "expires_in": 3600})
        with patch("nsql.auth.token_client.httpx.post", return_value=response) as mock_post:
            result = cli_runner.invoke(app, ["--no-color", "auth", "token", "-p", "prod"])

        assert result.exit_code == 0, result.output
        assert "fresh-access" in result.stdout
        assert mock_post.call_args.kwargs["data"]["refresh_token"] == "stored-refresh"

        saved = seeded.decrypt(seeded.get("prod"))
        assert saved.access_token == "fresh-access"
        assert saved.refresh_token == "stored-refresh"

    def test_refresh_failure_tells_user_to_login(self, cli_runner, seeded: ProfileStore) -> None:
        seeded.save_tokens(
            "prod",
            LoginResult(access_token="old", refresh_token="r", expires_in=1, token_expiry=0),
        )
        response = MagicMock(spec=httpx.Response)
        response.status_code = 400
        response.text = json.dumps({"error": "invalid_grant"})
        with patch("nsql.auth.token_client.httpx.post", return_value=response):
            result = cli_runner.invoke(app, ["--no-color", "auth", "token", "-p", "prod"])

        assert result.exit_code == 3
        assert "Token refresh failed (400): invalid_grant" in result.output
        assert "nsql login --profile prod" in result.output

    def test_not_logged_in(self, cli_runner, store: ProfileStore) -> None:
        store.save_delegated("prod", account_id="A", client_id="c", client_secret="s")
        result = cli_runner.invoke(app, ["--no-color", "auth", "token", "-p", "prod"])
        assert result.exit_code == 3
        assert "not authenticated" in result.output

    def test_legacy_prints_client_config(self, cli_runner, seeded: ProfileStore) -> None:
        result = cli_runner.invoke(app, ["--json", "auth", "token"])
        assert result.exit_code == 0, result.output
        config = json.loads(result.stdout)
        assert config["consumer_key"] == "consumer-key-1234"
        assert config["consumer_secret_key"] == "cs"
        assert config["realm"] == "123_SB1"


# ---------------------------------------------------------------------------
# auth logout / remove
# ---------------------------------------------------------------------------


class TestAuthLogoutRemove:
    def test_logout_clears_tokens(self, cli_runner, seeded: ProfileStore) -> None:
        result = cli_runner.invoke(app, ["--no-color", "auth", "logout", "-p", "prod"])
        assert result.exit_code == 0, result.output
        assert "Logged out of profile 'prod'" in result.output
        profile = seeded.get("prod")
        assert profile.has_tokens is False
        assert profile.client_id == "client-1"

    def test_logout_without_tokens(self, cli_runner, seeded: ProfileStore) -> None:
        result = cli_runner.invoke(app, ["--no-color", "auth", "logout"])
        assert result.exit_code == 0
        assert "has no stored tokens" in result.output

    def test_remove_with_force(self, cli_runner, seeded: ProfileStore) -> None:
        result = cli_runner.invoke(app, ["--no-color", "auth", "remove", "prod", "--force"])
        assert result.exit_code == 0, result.output
        assert seeded.list_names() == ["default"]

    def test_remove_with_global_force(self, cli_runner, seeded: ProfileStore) -> None:
        result = cli_runner.invoke(app, ["--no-color", "-f", "auth", "remove", "prod"])
        assert result.exit_code == 0, result.output
        assert not seeded.exists("prod")

    def test_remove_confirm_declined(self, cli_runner, seeded: ProfileStore) -> None:
        result = cli_runner.invoke(app, ["--no-color", "auth", "remove", "prod"], input="n\n")
        assert result.exit_code == 0
        assert "Cancelled." in result.output
        assert seeded.exists("prod")

    def test_remove_missing(self, cli_runner, seeded: ProfileStore) -> None:
        result = cli_runner.invoke(app, ["--no-color", "auth", "remove", "ghost", "--force"])
        assert result.exit_code == 1
        assert "Profile 'ghost' not found" in result.output
