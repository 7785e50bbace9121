"""
Reconciliation Engine
=====================

Turns the full, unordered ride table into a single "current step" for one
identity.  The phase is always re-derived from scratch on every snapshot
(no incremental patching), which is what lets a client recover from a
missed notification: the next full listing produces the right answer.

Phase table
-----------
=============================  ======================  ====================
Active ride status             requester               provider
=============================  ======================  ====================
CREATED                        WAITING_FOR_PROVIDER    IDLE (open feed)
ACCEPTED                       PROVIDER_EN_ROUTE       PROVIDER_EN_ROUTE
ONGOING                        IN_TRIP                 IN_TRIP
COMPLETED, unrated             RATING                  IDLE
none                           IDLE                    IDLE
=============================  ======================  ====================
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Iterable, Optional

from .entities import (
    Location,
    MutationIntent,
    RideRecord,
    Snapshot,
    same_identity,
)
from .enums import (
    ACTIVE_STATUSES,
    BROWSING_PHASES,
    RESETTABLE_PHASES,
    Phase,
    RideAction,
    RideStatus,
    Role,
)
from .errors import AlreadyTaken, InvalidTransition
from .ledger import LedgerAdapter, TransitionGate, Unsubscribe, submit_with_timeout

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reconciliation:
    phase: Phase
    record: Optional[RideRecord]


@dataclass(frozen=True)
class PhaseChange:
    previous: Phase
    phase: Phase
    record: Optional[RideRecord]
    reset: bool = False


PhaseListener = Callable[[PhaseChange], None]


# ── Pure derivation ───────────────────────────────────────────────────


def candidates(snapshot: Iterable[RideRecord], identity: str) -> list[RideRecord]:
    return [r for r in snapshot if r.involves(identity)]


def select_active(
    snapshot: Iterable[RideRecord], identity: str
) -> Optional[RideRecord]:
    """Highest-id non-terminal ride involving *identity*."""
    active = [r for r in candidates(snapshot, identity) if r.status in ACTIVE_STATUSES]
    return max(active, key=lambda r: r.id, default=None)


def select_unrated(
    snapshot: Iterable[RideRecord],
    identity: str,
    exclude: Iterable[int] = (),
) -> Optional[RideRecord]:
    """Highest-id completed, unrated ride that *identity* requested."""
    skipped = set(exclude)
    unrated = [
        r
        for r in snapshot
        if same_identity(r.requester_id, identity)
        and r.status is RideStatus.COMPLETED
        and not r.is_rated
        and r.id not in skipped
    ]
    return max(unrated, key=lambda r: r.id, default=None)


def derive_phase(record: Optional[RideRecord], role: Role) -> Phase:
    if record is None:
        return Phase.IDLE
    if record.status is RideStatus.CREATED:
        return Phase.WAITING_FOR_PROVIDER if role is Role.REQUESTER else Phase.IDLE
    if record.status is RideStatus.ACCEPTED:
        return Phase.PROVIDER_EN_ROUTE
    if record.status is RideStatus.ONGOING:
        return Phase.IN_TRIP
    if (
        record.status is RideStatus.COMPLETED
        and not record.is_rated
        and role is Role.REQUESTER
    ):
        return Phase.RATING
    return Phase.IDLE


def reconcile(
    snapshot: Snapshot,
    identity: str,
    role: Role,
    dismissed: Iterable[int] = (),
) -> Reconciliation:
    active = select_active(snapshot, identity)
    if active is None and role is Role.REQUESTER:
        active = select_unrated(snapshot, identity, exclude=dismissed)

    phase = derive_phase(active, role)
    return Reconciliation(phase, active if phase is not Phase.IDLE else None)


# ── Stateful engine ───────────────────────────────────────────────────


class ReconciliationEngine:
    """
    Client-side view of one identity's rides.

    Subscribes to a ``LedgerAdapter`` and keeps ``phase`` / ``record`` in
    step with every published snapshot.  Mutations go through a
    ``TransitionGate``; the engine never patches its own state after a
    submit, it waits for the resulting snapshot like any other observer.
    """

    def __init__(
        self,
        adapter: LedgerAdapter,
        identity: str,
        role: Role = Role.REQUESTER,
        submit_timeout: Optional[float] = None,
    ):
        self.adapter = adapter
        self.gate = TransitionGate(adapter)
        self.identity = identity
        self.role = role
        self.submit_timeout = submit_timeout

        self.phase: Phase = Phase.IDLE
        self.record: Optional[RideRecord] = None
        self._snapshot: Snapshot = ()
        self._dismissed: set[int] = set()
        self._listeners: list[PhaseListener] = []
        self._unsubscribe: Optional[Unsubscribe] = None

    # lifecycle

    def attach(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.adapter.subscribe(self.on_snapshot)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def add_listener(self, listener: PhaseListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    # reconciliation

    def on_snapshot(self, snapshot: Snapshot) -> None:
        self._snapshot = snapshot
        previous_phase, previous_record = self.phase, self.record
        tracked = self._find(self.record.id) if self.record is not None else None
        reset = False

        if (
            self.phase in RESETTABLE_PHASES
            and tracked is not None
            and tracked.status is RideStatus.CANCELLED
        ):
            logger.info(
                "Ride %d cancelled while %s; resetting %s",
                tracked.id,
                self.phase.value,
                self.identity,
            )
            self.phase, self.record = Phase.IDLE, None
            reset = True

        if self.phase is Phase.RATING:
            if tracked is not None and not tracked.is_rated:
                self.record = tracked
                self._emit(previous_phase, previous_record, reset)
                return
            self.phase, self.record = Phase.IDLE, None

        if self.phase is Phase.HISTORY:
            return

        result = reconcile(snapshot, self.identity, self.role, self._dismissed)
        self.phase, self.record = result.phase, result.record
        self._emit(previous_phase, previous_record, reset)

    def _find(self, ride_id: int) -> Optional[RideRecord]:
        for record in self._snapshot:
            if record.id == ride_id:
                return record
        return None

    def _emit(
        self,
        previous_phase: Phase,
        previous_record: Optional[RideRecord],
        reset: bool,
    ) -> None:
        if not reset and self.phase is previous_phase and self.record == previous_record:
            return
        change = PhaseChange(previous_phase, self.phase, self.record, reset)
        for listener in list(self._listeners):
            listener(change)

    # explicit navigation

    @property
    def browsing(self) -> bool:
        return self.phase in BROWSING_PHASES

    def open_history(self) -> None:
        previous_phase, previous_record = self.phase, self.record
        self.phase, self.record = Phase.HISTORY, None
        self._emit(previous_phase, previous_record, False)

    def close_history(self) -> None:
        if self.phase is Phase.HISTORY:
            self.phase = Phase.IDLE
        self.on_snapshot(self._snapshot)

    def dismiss_rating(self) -> None:
        """Abandon the pending rating; the ride will not be offered again."""
        if self.phase is not Phase.RATING or self.record is None:
            return
        self._dismissed.add(self.record.id)
        self.phase = Phase.IDLE
        self.on_snapshot(self._snapshot)

    def switch_role(self, role: Role) -> None:
        self.role = role
        if self.phase is not Phase.HISTORY:
            self.phase = Phase.IDLE
        self.on_snapshot(self._snapshot)

    # intents

    async def _submit(self, intent: MutationIntent) -> RideRecord:
        return await submit_with_timeout(self.gate, intent, self.submit_timeout)

    def _current_id(self, action: RideAction, ride_id: Optional[int]) -> int:
        if ride_id is not None:
            return ride_id
        if self.record is None:
            raise InvalidTransition(action, "NONE", "no current ride")
        return self.record.id

    async def request_ride(
        self, pickup: Location, dropoff: Location, amount: Decimal
    ) -> RideRecord:
        return await self._submit(
            MutationIntent.create(self.identity, pickup, dropoff, amount)
        )

    async def accept(self, ride_id: int) -> Optional[RideRecord]:
        """Accept an open offer; ``None`` when another provider won it."""
        try:
            return await self._submit(MutationIntent.accept(self.identity, ride_id))
        except AlreadyTaken as exc:
            logger.warning("Offer no longer available: %s", exc)
            return None

    async def start(self, ride_id: Optional[int] = None) -> RideRecord:
        ride_id = self._current_id(RideAction.START, ride_id)
        return await self._submit(MutationIntent.start(self.identity, ride_id))

    async def complete(self, ride_id: Optional[int] = None) -> RideRecord:
        ride_id = self._current_id(RideAction.COMPLETE, ride_id)
        return await self._submit(MutationIntent.complete(self.identity, ride_id))

    async def cancel(self, ride_id: Optional[int] = None) -> RideRecord:
        ride_id = self._current_id(RideAction.CANCEL, ride_id)
        return await self._submit(MutationIntent.cancel(self.identity, ride_id))

    async def rate(self, stars: int, ride_id: Optional[int] = None) -> RideRecord:
        """
        Rate the provider of the ride under review.

        A failed submission leaves the phase on RATING so the user can
        retry or ``dismiss_rating()``; the error is re-raised.
        """
        ride_id = self._current_id(RideAction.RATE, ride_id)
        try:
            return await self._submit(
                MutationIntent.rate(self.identity, ride_id, stars)
            )
        except Exception:
            logger.warning("Rating ride %d failed; staying in %s", ride_id, self.phase.value)
            raise
