from __future__ import annotations

from collections.abc import Iterable

from app.core.usage.types import AggregateView, CredentialClass, UsageSnapshot


def classify(snapshot: UsageSnapshot) -> CredentialClass:
    usage = snapshot.usage
    if usage is None:
        return CredentialClass.INVALID
    if usage.remaining > 0:
        return CredentialClass.VALID
    return CredentialClass.ZERO_BALANCE


def partition(view: AggregateView) -> dict[CredentialClass, list[UsageSnapshot]]:
    groups: dict[CredentialClass, list[UsageSnapshot]] = {cls: [] for cls in CredentialClass}
    for snapshot in view.snapshots:
        groups[classify(snapshot)].append(snapshot)
    return groups


def ids_in_classes(view: AggregateView, classes: Iterable[CredentialClass]) -> list[str]:
    wanted = frozenset(classes)
    return [snapshot.id for snapshot in view.snapshots if classify(snapshot) in wanted]
