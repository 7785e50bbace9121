"""Domain enumerations and the client-visible phase labels."""

import enum


class RideStatus(str, enum.Enum):
    CREATED = "CREATED"
    ACCEPTED = "ACCEPTED"
    ONGOING = "ONGOING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (RideStatus.COMPLETED, RideStatus.CANCELLED)


ACTIVE_STATUSES = frozenset(
    {RideStatus.CREATED, RideStatus.ACCEPTED, RideStatus.ONGOING}
)


class RideAction(str, enum.Enum):
    CREATE = "CREATE"
    ACCEPT = "ACCEPT"
    START = "START"
    COMPLETE = "COMPLETE"
    CANCEL = "CANCEL"
    RATE = "RATE"


class Role(str, enum.Enum):
    REQUESTER = "REQUESTER"
    PROVIDER = "PROVIDER"


class Phase(str, enum.Enum):
    IDLE = "IDLE"
    WAITING_FOR_PROVIDER = "WAITING_FOR_PROVIDER"
    PROVIDER_EN_ROUTE = "PROVIDER_EN_ROUTE"
    IN_TRIP = "IN_TRIP"
    RATING = "RATING"
    HISTORY = "HISTORY"


# Phases in which the engine does not auto-navigate to a new active ride.
BROWSING_PHASES = frozenset({Phase.HISTORY, Phase.RATING})

# Phases that are reset to IDLE when the tracked ride gets cancelled.
RESETTABLE_PHASES = frozenset({Phase.WAITING_FOR_PROVIDER, Phase.PROVIDER_EN_ROUTE})


class EscrowDisposition(str, enum.Enum):
    HELD = "HELD"
    RELEASED = "RELEASED"
    REFUNDED = "REFUNDED"


# Ledger change notifications, one per mutating call.
class LedgerEventName(str, enum.Enum):
    RIDE_REQUESTED = "RideRequested"
    RIDE_ACCEPTED = "RideAccepted"
    RIDE_STARTED = "RideStarted"
    RIDE_COMPLETED = "RideCompleted"
    RIDE_CANCELLED = "RideCancelled"
    PROVIDER_RATED = "ProviderRated"


ACTION_EVENTS: dict[RideAction, LedgerEventName] = {
    RideAction.CREATE: LedgerEventName.RIDE_REQUESTED,
    RideAction.ACCEPT: LedgerEventName.RIDE_ACCEPTED,
    RideAction.START: LedgerEventName.RIDE_STARTED,
    RideAction.COMPLETE: LedgerEventName.RIDE_COMPLETED,
    RideAction.CANCEL: LedgerEventName.RIDE_CANCELLED,
    RideAction.RATE: LedgerEventName.PROVIDER_RATED,
}
