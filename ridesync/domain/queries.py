"""Read-only projections over the ride table for the feed and history views."""

from __future__ import annotations

from typing import Iterable, Optional

from .entities import RideRecord, Snapshot, same_identity
from .enums import RideStatus
from .ledger import LedgerAdapter, Unsubscribe


def open_feed(snapshot: Iterable[RideRecord]) -> list[RideRecord]:
    """Rides still waiting for a provider, newest first."""
    return sorted(
        (r for r in snapshot if r.status is RideStatus.CREATED),
        key=lambda r: r.id,
        reverse=True,
    )


def history_for(snapshot: Iterable[RideRecord], identity: str) -> list[RideRecord]:
    """Every ride *identity* requested or provided, newest first."""
    return sorted(
        (r for r in snapshot if r.involves(identity)),
        key=lambda r: r.id,
        reverse=True,
    )


class QueryService:
    """Projections computed on demand from the latest published snapshot."""

    def __init__(self, adapter: LedgerAdapter):
        self.adapter = adapter
        self._snapshot: Snapshot = ()
        self._unsubscribe: Optional[Unsubscribe] = None

    def attach(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.adapter.subscribe(self._on_snapshot)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_snapshot(self, snapshot: Snapshot) -> None:
        self._snapshot = snapshot

    def feed(self) -> list[RideRecord]:
        return open_feed(self._snapshot)

    def feed_for_provider(self, identity: str) -> list[RideRecord]:
        """Open offers minus the provider's own requests."""
        return [
            r
            for r in open_feed(self._snapshot)
            if not same_identity(r.requester_id, identity)
        ]

    def history(self, identity: str) -> list[RideRecord]:
        return history_for(self._snapshot, identity)
