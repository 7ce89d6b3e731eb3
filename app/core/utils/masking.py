from __future__ import annotations

_VISIBLE_CHARS = 4
_SEPARATOR = "..."


def mask_secret(secret: str) -> str:
    """Return the display form of a secret: first 4 and last 4 characters.

    Secrets shorter than 8 characters show ``len // 4`` characters on each
    side, so nothing under 4 characters is ever revealed.
    """
    length = len(secret)
    visible = _VISIBLE_CHARS if length >= 2 * _VISIBLE_CHARS else length // 4
    if visible == 0:
        return _SEPARATOR
    return f"{secret[:visible]}{_SEPARATOR}{secret[-visible:]}"
