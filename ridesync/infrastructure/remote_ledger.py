"""
Remote ledger backend.

The ledger itself sits behind ``LedgerClient``: a bounded list query,
a single-record lookup, six mutating calls that return only once the
change is final, and a stream of six named change notifications.

``RemoteLedgerAdapter`` uses coarse-grained invalidation: on *any*
notification (or poll tick) it re-fetches the newest ``window`` records
and re-publishes them.  Nothing is patched incrementally, so a dropped
notification is healed by the next refresh.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import AsyncIterator, Callable

from ridesync.domain.entities import (
    EscrowEntry,
    Location,
    MutationIntent,
    RideRecord,
    Snapshot,
)
from ridesync.domain.enums import RideAction
from ridesync.domain.errors import InvalidTransition, NotFound, RideError, Unknown
from ridesync.domain.ledger import DEFAULT_LIST_LIMIT, LedgerAdapter, Observer
from ridesync.workers.watcher import LedgerWatcher

from .event_bus import EventBus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerEvent:
    name: str
    ride_id: int


class LedgerClient(ABC):
    """Boundary to the external ledger.  Caller identity is passed explicitly."""

    @abstractmethod
    async def ride_count(self) -> int: ...

    @abstractmethod
    async def get_ride_details(self, ride_id: int) -> RideRecord: ...

    @abstractmethod
    async def request_ride(
        self, caller: str, pickup: Location, dropoff: Location, amount: Decimal
    ) -> RideRecord: ...

    @abstractmethod
    async def accept_ride(self, caller: str, ride_id: int) -> RideRecord: ...

    @abstractmethod
    async def start_ride(self, caller: str, ride_id: int) -> RideRecord: ...

    @abstractmethod
    async def complete_ride(self, caller: str, ride_id: int) -> RideRecord: ...

    @abstractmethod
    async def cancel_ride(self, caller: str, ride_id: int) -> RideRecord: ...

    @abstractmethod
    async def rate_provider(
        self, caller: str, ride_id: int, rating: int
    ) -> RideRecord: ...

    @abstractmethod
    async def escrow_entries(self, ride_id: int) -> list[EscrowEntry]: ...

    @abstractmethod
    def events(self) -> AsyncIterator[LedgerEvent]:
        """Async iterator over change notifications until the stream drops."""


class RemoteLedgerAdapter(LedgerAdapter):
    backend = "remote"

    def __init__(
        self,
        client: LedgerClient,
        window: int = DEFAULT_LIST_LIMIT,
        poll_interval: float = 15.0,
        reconnect_backoff: float = 5.0,
    ):
        self.client = client
        self.window = window
        self.bus = EventBus()
        self._snapshot: Snapshot = ()
        self._refresh_lock = asyncio.Lock()
        self.watcher = LedgerWatcher(self, poll_interval, reconnect_backoff)

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    # ── Lifecycle ─────────────────────────────────────────────────────

    async def start(self) -> None:
        try:
            await self.refresh()
        except Exception:
            logger.exception("Initial ledger refresh failed; watcher will retry")
        await self.watcher.start()

    async def stop(self) -> None:
        await self.watcher.stop()

    # ── Reads ─────────────────────────────────────────────────────────

    async def list_records(self, limit: int = DEFAULT_LIST_LIMIT) -> Snapshot:
        count = await self.client.ride_count()
        oldest = max(1, count - limit + 1)
        records = []
        for ride_id in range(count, oldest - 1, -1):
            try:
                records.append(await self.client.get_ride_details(ride_id))
            except NotFound:
                logger.debug("Ride id %d missing from ledger window", ride_id)
        return tuple(records)

    async def get_record(self, ride_id: int) -> RideRecord:
        return await self.client.get_ride_details(ride_id)

    async def escrow_entries(self, ride_id: int) -> list[EscrowEntry]:
        return await self.client.escrow_entries(ride_id)

    async def refresh(self) -> Snapshot:
        """Re-fetch the bounded window and publish it to every observer."""
        async with self._refresh_lock:
            records = await self.list_records(self.window)
            self._snapshot = records
            self.bus.publish(records)
            return records

    # ── Mutations ─────────────────────────────────────────────────────

    def _call_for(self, intent: MutationIntent):
        client = self.client
        calls: dict[RideAction, Callable] = {
            RideAction.CREATE: lambda: client.request_ride(
                intent.caller, intent.pickup, intent.dropoff, intent.amount
            ),
            RideAction.ACCEPT: lambda: client.accept_ride(intent.caller, intent.ride_id),
            RideAction.START: lambda: client.start_ride(intent.caller, intent.ride_id),
            RideAction.COMPLETE: lambda: client.complete_ride(
                intent.caller, intent.ride_id
            ),
            RideAction.CANCEL: lambda: client.cancel_ride(intent.caller, intent.ride_id),
            RideAction.RATE: lambda: client.rate_provider(
                intent.caller, intent.ride_id, intent.rating
            ),
        }
        try:
            return calls[intent.action]
        except KeyError:
            raise InvalidTransition(intent.action, "UNKNOWN") from None

    async def submit(self, intent: MutationIntent) -> RideRecord:
        call = self._call_for(intent)
        try:
            record = await call()
        except RideError:
            raise
        except (ConnectionError, OSError, asyncio.TimeoutError) as exc:
            raise Unknown(
                f"Lost contact with the ledger during {intent.action.value}: {exc}"
            ) from exc

        # Our own change reaches observers through the same refresh path
        # a remote observer uses.
        try:
            await self.refresh()
        except Exception:
            logger.exception(
                "Refresh after %s on ride %d failed", intent.action.value, record.id
            )
        return record

    # ── Subscription ──────────────────────────────────────────────────

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        dispose = self.bus.register(observer)
        self.bus.deliver(observer, self._snapshot)
        return dispose
