from __future__ import annotations

import argparse
import os

import uvicorn

from app.core.config.settings import get_settings


def _parse_args() -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Run the keymeter usage dashboard.")
    parser.add_argument("--host", default=settings.host, help="Bind host (default: %(default)s)")
    parser.add_argument("--port", type=int, default=settings.port, help="Bind port (default: %(default)s)")
    parser.add_argument("--ssl-certfile", default=os.getenv("SSL_CERTFILE"), help="TLS certificate file")
    parser.add_argument("--ssl-keyfile", default=os.getenv("SSL_KEYFILE"), help="TLS private key file")
    return parser.parse_args()


def main() -> None:
    args = _parse_args()
    if args.ssl_keyfile and not args.ssl_certfile:
        raise SystemExit("--ssl-keyfile requires --ssl-certfile.")

    uvicorn.run(
        "app.main:app",
        host=args.host,
        port=args.port,
        ssl_certfile=args.ssl_certfile,
        ssl_keyfile=args.ssl_keyfile,
    )


if __name__ == "__main__":
    main()
