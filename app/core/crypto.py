from __future__ import annotations

import os
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken

from app.core.config.settings import get_settings


class TokenDecryptionError(ValueError):
    pass


def _load_or_create_key(path: Path) -> bytes:
    if path.is_file():
        return path.read_bytes().strip()
    path.parent.mkdir(parents=True, exist_ok=True)
    key = Fernet.generate_key()
    path.write_bytes(key)
    try:
        os.chmod(path, 0o600)
    except OSError:
        pass
    return key


class TokenEncryptor:
    def __init__(self, key: bytes | None = None) -> None:
        if key is None:
            key = _load_or_create_key(get_settings().encryption_key_file)
        self._fernet = Fernet(key)

    def encrypt(self, value: str) -> bytes:
        return self._fernet.encrypt(value.encode("utf-8"))

    def decrypt(self, token: bytes) -> str:
        try:
            return self._fernet.decrypt(token).decode("utf-8")
        except InvalidToken as exc:
            raise TokenDecryptionError("Stored secret cannot be decrypted with the current key") from exc
