"""
In-memory ride ledger used for simulation and deterministic tests.

``LocalLedger`` is the synchronous table (create / accept / update status
/ active-ride lookup); ``LocalLedgerAdapter`` exposes it through the same
async ``LedgerAdapter`` contract as the remote backend.  Each instance is
fully isolated, so tests can run several side by side.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional

from ridesync.domain.entities import (
    EscrowEntry,
    Location,
    MutationIntent,
    RideRecord,
    Snapshot,
)
from ridesync.domain.enums import RideAction, RideStatus
from ridesync.domain.errors import InvalidTransition, NotFound
from ridesync.domain.ledger import DEFAULT_LIST_LIMIT, LedgerAdapter, Observer
from ridesync.domain.reconciliation import select_active
from ridesync.domain.transitions import apply_transition, build_record, escrow_for

from .event_bus import EventBus

logger = logging.getLogger(__name__)

# Target status -> action that reaches it, for ``update_status``.
STATUS_ACTIONS: dict[RideStatus, RideAction] = {
    RideStatus.ACCEPTED: RideAction.ACCEPT,
    RideStatus.ONGOING: RideAction.START,
    RideStatus.COMPLETED: RideAction.COMPLETE,
    RideStatus.CANCELLED: RideAction.CANCEL,
}


class LocalLedger:
    def __init__(
        self,
        bus: Optional[EventBus] = None,
        first_id: int = 1,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.bus = bus or EventBus()
        self._rides: dict[int, RideRecord] = {}
        self._escrow: list[EscrowEntry] = []
        self._next_id = first_id
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.RLock()

    # ── Reads ─────────────────────────────────────────────────────────

    def list_rides(self) -> Snapshot:
        with self._lock:
            return tuple(
                sorted(self._rides.values(), key=lambda r: r.id, reverse=True)
            )

    def get_ride(self, ride_id: int) -> RideRecord:
        with self._lock:
            try:
                return self._rides[ride_id]
            except KeyError:
                raise NotFound(ride_id) from None

    def get_active_ride_for_user(self, identity: str) -> Optional[RideRecord]:
        return select_active(self.list_rides(), identity)

    def escrow_entries(self, ride_id: Optional[int] = None) -> list[EscrowEntry]:
        with self._lock:
            return [e for e in self._escrow if ride_id is None or e.ride_id == ride_id]

    # ── Mutations ─────────────────────────────────────────────────────

    def apply(self, intent: MutationIntent) -> RideRecord:
        """Single mutation path: validate, store, record escrow, publish."""
        with self._lock:
            if intent.action is RideAction.CREATE:
                record = build_record(self._next_id, intent, self._clock())
                self._next_id += 1
            else:
                record = apply_transition(self.get_ride(intent.ride_id), intent)

            self._rides[record.id] = record
            entry = escrow_for(record, intent.action)
            if entry is not None:
                self._escrow.append(entry)

            logger.debug(
                "Ride %d %s by %s -> %s",
                record.id,
                intent.action.value,
                intent.caller,
                record.status.value,
            )
            # Published under the lock so snapshots go out in mutation order.
            self.bus.publish(self.list_rides())
            return record

    def create_ride(
        self,
        requester_id: str,
        pickup: Location,
        dropoff: Location,
        amount: Decimal,
    ) -> RideRecord:
        return self.apply(MutationIntent.create(requester_id, pickup, dropoff, amount))

    def accept_ride(self, ride_id: int, provider_id: str) -> RideRecord:
        return self.apply(MutationIntent.accept(provider_id, ride_id))

    def update_status(
        self, ride_id: int, new_status: RideStatus, caller: str
    ) -> RideRecord:
        action = STATUS_ACTIONS.get(RideStatus(new_status))
        if action is None:
            raise InvalidTransition(
                f"SET_{RideStatus(new_status).value}",
                self.get_ride(ride_id).status,
            )
        return self.apply(MutationIntent(action, caller, ride_id))

    def rate_ride(self, ride_id: int, caller: str, rating: int) -> RideRecord:
        return self.apply(MutationIntent.rate(caller, ride_id, rating))

    # ── Subscription ──────────────────────────────────────────────────

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        with self._lock:
            dispose = self.bus.register(observer)
            self.bus.deliver(observer, self.list_rides())
        return dispose


class LocalLedgerAdapter(LedgerAdapter):
    """Direct-call backend: ``submit`` returns as soon as the table changed."""

    backend = "local"

    def __init__(self, ledger: Optional[LocalLedger] = None):
        self.ledger = ledger or LocalLedger()

    @property
    def snapshot(self) -> Snapshot:
        return self.ledger.list_rides()

    async def list_records(self, limit: int = DEFAULT_LIST_LIMIT) -> Snapshot:
        # The in-memory table is cheap to read in full.
        return self.ledger.list_rides()

    async def get_record(self, ride_id: int) -> RideRecord:
        return self.ledger.get_ride(ride_id)

    async def submit(self, intent: MutationIntent) -> RideRecord:
        return self.ledger.apply(intent)

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        return self.ledger.subscribe(observer)

    async def escrow_entries(self, ride_id: int) -> list[EscrowEntry]:
        self.ledger.get_ride(ride_id)
        return self.ledger.escrow_entries(ride_id)
