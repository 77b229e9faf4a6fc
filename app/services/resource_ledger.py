from __future__ import annotations

from dataclasses import dataclass

from app.models.provisioning import ResourceKind


# Edges (membership, attachment) before their endpoints; keys before their user.
CLEANUP_ORDER: tuple[ResourceKind, ...] = (
    ResourceKind.MEMBERSHIP,
    ResourceKind.ACCESS_KEY,
    ResourceKind.USER,
    ResourceKind.GROUP_POLICY,
    ResourceKind.GROUP,
)


@dataclass(frozen=True)
class LedgerEntry:
    kind: ResourceKind
    name: str
    # True when the resource pre-existed and the run took it over instead of creating it.
    adopted: bool = False


class ResourceLedger:
    """Ordered record of what one provisioning run created, used to drive teardown."""

    def __init__(self) -> None:
        self._entries: list[LedgerEntry] = []

    def record(self, kind: ResourceKind, name: str, *, adopted: bool = False) -> LedgerEntry:
        entry = LedgerEntry(kind=kind, name=name, adopted=adopted)
        self._entries.append(entry)
        return entry

    def release(self, entry: LedgerEntry) -> None:
        self._entries.remove(entry)

    def in_cleanup_order(self) -> list[LedgerEntry]:
        """Entries sorted by `CLEANUP_ORDER`, newest first within a kind."""

        rank = {kind: i for i, kind in enumerate(CLEANUP_ORDER)}
        return sorted(reversed(self._entries), key=lambda e: rank[e.kind])

    def __len__(self) -> int:
        return len(self._entries)
