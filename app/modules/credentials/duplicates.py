from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from app.core.usage.types import CredentialLike
from app.core.utils.masking import mask_secret


@dataclass(frozen=True, slots=True)
class DuplicateGroup:
    masked_key: str
    ids: tuple[str, ...]
    secret: str = field(repr=False, compare=False)

    @property
    def count(self) -> int:
        return len(self.ids)

    @property
    def canonical_id(self) -> str:
        return self.ids[0]

    @property
    def redundant_ids(self) -> tuple[str, ...]:
        return self.ids[1:]


def find_duplicates(credentials: Iterable[CredentialLike]) -> list[DuplicateGroup]:
    """Group credentials by exact secret, keeping store order inside each group.

    Only groups with two or more members are returned. The first member of a
    group is the one that survives ``resolve_duplicates``.
    """
    by_secret: dict[str, list[str]] = {}
    for credential in credentials:
        by_secret.setdefault(credential.secret, []).append(credential.id)
    return [
        DuplicateGroup(masked_key=mask_secret(secret), ids=tuple(ids), secret=secret)
        for secret, ids in by_secret.items()
        if len(ids) > 1
    ]


def redundant_ids(groups: Sequence[DuplicateGroup]) -> list[str]:
    return [credential_id for group in groups for credential_id in group.redundant_ids]
