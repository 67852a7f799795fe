"""Machine-local symmetric encryption for secrets persisted in profiles.

Values are encrypted with AES-256-CBC (PKCS#7 padding) under a key that
is generated on the first encryption ever performed on the machine and
kept in ``<config_dir>/.encryption-key`` with ``0o600`` permissions. The
key is shared by every profile; deleting it makes all encrypted fields
unrecoverable.

Encrypted values are stored as ``<ivHex>:<cipherHex>`` with a fresh random
16-byte IV per call.

Values without the ``:`` separator are returned unchanged by
:meth:`SecretStore.decrypt`. Profiles written before encryption existed
keep working this way; the leniency is deliberate and reported at debug
level.
"""

from __future__ import annotations

import secrets
from pathlib import Path
from typing import Optional

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from nsql.config import atomic_write, get_key_path
from nsql.exceptions import ConfigurationError
from nsql.output import OutputManager, get_output

IV_LENGTH = 16
KEY_LENGTH = 32
_SEPARATOR = ":"


class SecretStore:
    """Encrypt and decrypt profile secrets with the machine key.

    Args:
        key_path: Location of the key file. Defaults to
            :func:`~nsql.config.get_key_path`, resolved lazily on first use.
        output: Diagnostics sink; defaults to the global manager.

    Example::

        store = SecretStore()
        token = store.encrypt("s3cret")      # "9f0c...:a1b2..."
        assert store.decrypt(token) == "s3cret"
    """

    def __init__(
        self,
        key_path: Optional[Path] = None,
        output: Optional[OutputManager] = None,
    ) -> None:
        self._key_path = key_path
        self._output = output or get_output()
        self._key: Optional[bytes] = None

    @property
    def key_path(self) -> Path:
        """The filesystem path of the machine key."""
        if self._key_path is None:
            self._key_path = get_key_path()
        return self._key_path

    def encrypt(self, plaintext: Optional[str]) -> Optional[str]:
        """Encrypt *plaintext* into ``iv:cipher`` hex form.

        Empty or ``None`` input is returned unchanged.
        """
        if not plaintext:
            return plaintext
        iv = secrets.token_bytes(IV_LENGTH)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = self._cipher(iv, create_key=True).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return f"{iv.hex()}{_SEPARATOR}{ciphertext.hex()}"

    def decrypt(self, token: Optional[str]) -> Optional[str]:
        """Decrypt an ``iv:cipher`` value produced by :meth:`encrypt`.

        Empty or ``None`` input is returned unchanged, as is any value
        without the separator (treated as not yet encrypted).

        Raises:
            ConfigurationError: If the value looks encrypted but cannot be
                decrypted with the machine key.
        """
        if not token:
            return token
        if _SEPARATOR not in token:
            self._output.debug("Stored value is not encrypted; using it as plaintext")
            return token
        iv_hex, _, cipher_hex = token.partition(_SEPARATOR)
        try:
            iv = bytes.fromhex(iv_hex)
            ciphertext = bytes.fromhex(cipher_hex)
            decryptor = self._cipher(iv, create_key=False).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return plaintext.decode("utf-8")
        except ValueError as exc:
            raise ConfigurationError(
                f"Cannot decrypt a stored secret with the key at {self.key_path}: {exc}",
                hint="The encryption key may have changed. Re-enter secrets with 'nsql configure'.",
            ) from exc

    def _cipher(self, iv: bytes, create_key: bool) -> Cipher:
        return Cipher(algorithms.AES(self._load_key(create_key)), modes.CBC(iv))

    def _load_key(self, create: bool) -> bytes:
        """Return the machine key, creating and persisting it if *create* is set.

        Raises:
            ConfigurationError: If the key is missing and *create* is not
                set, or if the key file is unreadable.
        """
        if self._key is not None:
            return self._key

        path = self.key_path
        if not path.is_file():
            if not create:
                raise ConfigurationError(
                    f"Encryption key not found at {path}; stored secrets cannot be decrypted",
                    hint="Re-enter secrets with 'nsql configure'.",
                )
            self._create_key(path)

        try:
            key = bytes.fromhex(path.read_text(encoding="utf-8").strip())
        except (OSError, ValueError) as exc:
            raise ConfigurationError(f"Unreadable encryption key at {path}: {exc}") from exc
        if len(key) != KEY_LENGTH:
            raise ConfigurationError(
                f"Encryption key at {path} must be {KEY_LENGTH} bytes, found {len(key)}"
            )
        self._key = key
        return key

    def _create_key(self, path: Path) -> None:
        path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        try:
            atomic_write(path, secrets.token_bytes(KEY_LENGTH).hex(), exclusive=True)
        except FileExistsError:
            # Another process linked a complete key into place first; use theirs.
            return
        self._output.debug(f"Created encryption key at {path}")
