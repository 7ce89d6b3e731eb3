from __future__ import annotations

import os
from pathlib import Path

from app.cli import main as run
from app.core.config.settings import BASE_DIR


def _find_tls_pair() -> tuple[Path, Path] | None:
    for directory in (Path(__file__).resolve().parent, BASE_DIR):
        cert_path = directory / "cert.pem"
        key_path = directory / "key.pem"
        if cert_path.is_file() and key_path.is_file():
            return cert_path, key_path
    return None


def _maybe_set_ssl_env() -> None:
    if os.getenv("SSL_CERTFILE") or os.getenv("SSL_KEYFILE"):
        return
    pair = _find_tls_pair()
    if pair is None:
        return
    os.environ["SSL_CERTFILE"] = str(pair[0])
    os.environ["SSL_KEYFILE"] = str(pair[1])


if __name__ == "__main__":
    _maybe_set_ssl_env()
    run()
