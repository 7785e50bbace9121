"""
Ride state machine.

Every legal edge is listed in ``TRANSITIONS`` together with the roles
allowed to take it; anything missing from the table is rejected.  Both
ledger backends call ``apply_transition`` while holding their own
serialisation, so the first confirmed writer wins a race.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from .entities import (
    EscrowEntry,
    MutationIntent,
    RideRecord,
    normalize_identity,
    same_identity,
)
from .enums import EscrowDisposition, RideAction, RideStatus, Role
from .errors import AlreadyRated, AlreadyTaken, InvalidRating, InvalidTransition

MIN_RATING = 1
MAX_RATING = 5

# Statuses in which a losing accept reports the winner rather than the status
TAKEN_STATUSES = frozenset({RideStatus.ACCEPTED, RideStatus.ONGOING})


@dataclass(frozen=True)
class Edge:
    target: RideStatus
    roles: frozenset[Role]


# State machine: (current status, action) -> target status + allowed roles
TRANSITIONS: dict[tuple[RideStatus, RideAction], Edge] = {
    (RideStatus.CREATED, RideAction.ACCEPT): Edge(
        RideStatus.ACCEPTED, frozenset({Role.PROVIDER})
    ),
    (RideStatus.CREATED, RideAction.CANCEL): Edge(
        RideStatus.CANCELLED, frozenset({Role.REQUESTER})
    ),
    (RideStatus.ACCEPTED, RideAction.START): Edge(
        RideStatus.ONGOING, frozenset({Role.PROVIDER})
    ),
    (RideStatus.ACCEPTED, RideAction.CANCEL): Edge(
        RideStatus.CANCELLED, frozenset({Role.REQUESTER, Role.PROVIDER})
    ),
    (RideStatus.ONGOING, RideAction.COMPLETE): Edge(
        RideStatus.COMPLETED, frozenset({Role.REQUESTER})
    ),
    (RideStatus.COMPLETED, RideAction.RATE): Edge(
        RideStatus.COMPLETED, frozenset({Role.REQUESTER})
    ),
}


def role_of(record: RideRecord, caller: str) -> Optional[Role]:
    """Role *caller* holds on *record*, or ``None`` for a bystander."""
    if same_identity(caller, record.requester_id):
        return Role.REQUESTER
    if same_identity(caller, record.provider_id):
        return Role.PROVIDER
    return None


def _acting_role(record: RideRecord, intent: MutationIntent) -> Optional[Role]:
    if intent.action is RideAction.ACCEPT:
        # Anyone but the requester may take an open ride.
        if same_identity(intent.caller, record.requester_id):
            return None
        return Role.PROVIDER
    return role_of(record, intent.caller)


def validate_create(intent: MutationIntent) -> None:
    if intent.action is not RideAction.CREATE:
        raise InvalidTransition(intent.action, "NEW", "only CREATE starts a ride")
    if intent.pickup is None or intent.dropoff is None:
        raise InvalidTransition(
            intent.action, "NEW", "pickup and dropoff are both required"
        )
    if intent.amount is None or Decimal(intent.amount) < 0:
        raise InvalidTransition(
            intent.action, "NEW", "amount must be a non-negative value"
        )


def check_transition(record: RideRecord, intent: MutationIntent) -> RideStatus:
    """Return the target status for *intent* or raise why it is illegal."""
    if intent.action is RideAction.CREATE:
        raise InvalidTransition(intent.action, record.status, "ride already exists")

    if intent.action is RideAction.RATE and not (
        isinstance(intent.rating, int) and MIN_RATING <= intent.rating <= MAX_RATING
    ):
        raise InvalidRating(
            intent.action,
            record.status,
            f"rating must be between {MIN_RATING} and {MAX_RATING}",
        )

    edge = TRANSITIONS.get((record.status, intent.action))
    if edge is None:
        if (
            intent.action is RideAction.ACCEPT
            and record.status in TAKEN_STATUSES
            and not same_identity(record.provider_id, intent.caller)
        ):
            raise AlreadyTaken(record.id, record.provider_id)
        raise InvalidTransition(intent.action, record.status)

    if intent.action is RideAction.RATE and record.is_rated:
        raise AlreadyRated(record.id)

    role = _acting_role(record, intent)
    if role not in edge.roles:
        allowed = " or ".join(sorted(r.value.lower() for r in edge.roles))
        raise InvalidTransition(
            intent.action,
            record.status,
            f"{intent.caller} is not the ride's {allowed}",
        )
    return edge.target


def apply_transition(record: RideRecord, intent: MutationIntent) -> RideRecord:
    """Validate *intent* against *record* and return the mutated copy."""
    target = check_transition(record, intent)
    if intent.action is RideAction.ACCEPT:
        return replace(
            record, status=target, provider_id=normalize_identity(intent.caller)
        )
    if intent.action is RideAction.RATE:
        return replace(record, status=target, is_rated=True, rating=intent.rating)
    return replace(record, status=target)


def build_record(
    ride_id: int, intent: MutationIntent, created_at: Optional[datetime] = None
) -> RideRecord:
    validate_create(intent)
    return RideRecord(
        id=ride_id,
        requester_id=normalize_identity(intent.caller),
        pickup=intent.pickup,
        dropoff=intent.dropoff,
        amount=Decimal(intent.amount),
        created_at=created_at or datetime.now(timezone.utc),
    )


def escrow_for(record: RideRecord, action: RideAction) -> Optional[EscrowEntry]:
    """Escrow side effect that accompanies *action* on *record*, if any."""
    if action is RideAction.CREATE:
        return EscrowEntry(
            record.id, EscrowDisposition.HELD, record.amount, record.requester_id
        )
    if action is RideAction.COMPLETE:
        return EscrowEntry(
            record.id, EscrowDisposition.RELEASED, record.amount, record.provider_id
        )
    if action is RideAction.CANCEL:
        return EscrowEntry(
            record.id, EscrowDisposition.REFUNDED, record.amount, record.requester_id
        )
    return None
