"""Configuration layout, atomic writes, and the environment override channel.

This module handles everything nsql reads from the machine rather than
from the user's profiles:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.nsql-cli/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`. The profile file and the machine encryption key
  both live in the config directory.
* **Atomic writes** -- :func:`atomic_write` writes through a temp file and
  ``os.replace`` so a crash never leaves a truncated profile file.
* **Environment override** -- :class:`LegacyEnvironment` captures the five
  ``NSQL_*`` variables once, as a value the credential resolver receives
  instead of reading ``os.environ`` itself.
"""

from __future__ import annotations

import os
import platform
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from nsql.models import LegacyProfile

_APP_NAME = "nsql-cli"
PROFILES_FILENAME = "config.json"
KEY_FILENAME = ".encryption-key"

DEFAULT_PROFILE = "default"
DEFAULT_CALLBACK_PORT = 9749
CALLBACK_PATH = "/callback"
CALLBACK_TIMEOUT_SECONDS = 120.0
TOKEN_EXPIRY_BUFFER_MS = 5 * 60 * 1000
HTTP_TIMEOUT_SECONDS = 30.0

ENV_CONSUMER_KEY = "NSQL_CONSUMER_KEY"
ENV_CONSUMER_SECRET = "NSQL_CONSUMER_SECRET"
ENV_TOKEN = "NSQL_TOKEN"
ENV_TOKEN_SECRET = "NSQL_TOKEN_SECRET"
ENV_REALM = "NSQL_REALM"

LEGACY_ENV_VARS = (
    ENV_CONSUMER_KEY,
    ENV_CONSUMER_SECRET,
    ENV_TOKEN,
    ENV_TOKEN_SECRET,
    ENV_REALM,
)


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports the XDG Base Directory layout (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/nsql-cli/`` (default ``~/.config/nsql-cli/``).
    On macOS/Windows: ``~/.nsql-cli/``.

    The directory is created with ``0o700`` permissions because it holds
    the machine encryption key.

    Returns:
        Absolute path to the configuration directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        base = _xdg_base("XDG_CONFIG_HOME", (".config",))
        path = base / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(mode=0o700, parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/nsql-cli/`` (default ``~/.local/share/nsql-cli/``).
    On macOS/Windows: ``~/.nsql-cli/`` (shared with the config directory).
    """
    if _is_xdg_platform():
        base = _xdg_base("XDG_DATA_HOME", (".local", "share"))
        path = base / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_profiles_path() -> Path:
    """Path to the JSON document holding every profile."""
    return get_config_dir() / PROFILES_FILENAME


def get_key_path() -> Path:
    """Path to the machine-local encryption key."""
    return get_config_dir() / KEY_FILENAME


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: int = 0o600, exclusive: bool = False) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is guaranteed to be an atomic rename on POSIX systems.
    Permissions are applied before any content is written. On any failure
    the temp file is cleaned up.

    Concurrent writers are not serialised: the last rename wins. With
    *exclusive* the finished temp file is hard-linked into place instead,
    so the first writer wins and later ones get :class:`FileExistsError`;
    readers never see a partially written file either way.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close below
        if exclusive:
            os.link(tmp_path, path)
            os.unlink(tmp_path)
        else:
            os.replace(tmp_path, path)
    except BaseException:
        # Clean up the temp file on any error (including KeyboardInterrupt).
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Environment override ---


@dataclass(frozen=True)
class LegacyEnvironment:
    """Snapshot of the legacy-credential environment variables.

    Build it once at the edge of the program with :meth:`from_environ` and
    hand it to :class:`~nsql.auth.resolver.CredentialResolver`. Tests pass
    a plain dict instead of patching the process environment.

    Example::

        env = LegacyEnvironment.from_environ({"NSQL_REALM": "123"})
        assert env.credentials() is None   # incomplete set is ignored
    """

    consumer_key: str = ""
    consumer_secret: str = ""
    token: str = ""
    token_secret: str = ""
    realm: str = ""

    @classmethod
    def from_environ(cls, environ: Optional[Mapping[str, str]] = None) -> "LegacyEnvironment":
        """Capture the ``NSQL_*`` variables from *environ* (default ``os.environ``)."""
        if environ is None:
            environ = os.environ
        return cls(
            consumer_key=environ.get(ENV_CONSUMER_KEY, ""),
            consumer_secret=environ.get(ENV_CONSUMER_SECRET, ""),
            token=environ.get(ENV_TOKEN, ""),
            token_secret=environ.get(ENV_TOKEN_SECRET, ""),
            realm=environ.get(ENV_REALM, ""),
        )

    @property
    def is_complete(self) -> bool:
        """True only when all five variables are set and non-empty."""
        return all(
            (self.consumer_key, self.consumer_secret, self.token, self.token_secret, self.realm)
        )

    def credentials(self) -> Optional[LegacyProfile]:
        """Return the environment credentials, or ``None`` unless the set is complete."""
        if not self.is_complete:
            return None
        return LegacyProfile(
            consumer_key=self.consumer_key,
            consumer_secret=self.consumer_secret,
            token=self.token,
            token_secret=self.token_secret,
            realm=self.realm,
        )
