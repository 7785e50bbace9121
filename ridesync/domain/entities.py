"""
Domain entities.

Records are immutable: every transition produces a new ``RideRecord``
via ``dataclasses.replace`` so a snapshot handed to an observer can never
be mutated behind the store's back.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from .enums import EscrowDisposition, RideAction, RideStatus


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    name: str
    latitude: float
    longitude: float

    def encode(self) -> str:
        """Serialise to the JSON string stored on the ledger."""
        return json.dumps(
            {"name": self.name, "lat": self.latitude, "lng": self.longitude},
            ensure_ascii=False,
        )

    @classmethod
    def parse(
        cls, raw: str, default_lat: float = 25.0174, default_lng: float = 121.5397
    ) -> Location:
        """
        Decode a ledger location string.

        Older rides stored a bare place name instead of JSON; those keep
        the raw string as the name and fall back to the default coordinate.
        """
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            return cls(name=str(raw), latitude=default_lat, longitude=default_lng)
        if not isinstance(data, dict):
            return cls(name=str(raw), latitude=default_lat, longitude=default_lng)
        return cls(
            name=str(data.get("name", "")),
            latitude=_coordinate(data.get("lat"), default_lat),
            longitude=_coordinate(data.get("lng"), default_lng),
        )


def _coordinate(value, default: float) -> float:
    # null, missing or non-numeric coordinates fall back to the default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def normalize_identity(identity: Optional[str]) -> Optional[str]:
    """Wallet addresses compare case-insensitively (checksum casing varies)."""
    return identity.lower() if identity is not None else None


def same_identity(a: Optional[str], b: Optional[str]) -> bool:
    return a is not None and b is not None and a.lower() == b.lower()


# ── Entities ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RideRecord:
    id: int
    requester_id: str
    pickup: Location
    dropoff: Location
    amount: Decimal
    created_at: datetime
    status: RideStatus = RideStatus.CREATED
    provider_id: Optional[str] = None
    is_rated: bool = False
    rating: Optional[int] = None

    def involves(self, identity: str) -> bool:
        return same_identity(identity, self.requester_id) or same_identity(
            identity, self.provider_id
        )


Snapshot = tuple[RideRecord, ...]


@dataclass(frozen=True)
class MutationIntent:
    """One requested state transition, as submitted by ``caller``."""

    action: RideAction
    caller: str
    ride_id: Optional[int] = None
    pickup: Optional[Location] = None
    dropoff: Optional[Location] = None
    amount: Optional[Decimal] = None
    rating: Optional[int] = None

    @classmethod
    def create(
        cls, caller: str, pickup: Location, dropoff: Location, amount: Decimal
    ) -> MutationIntent:
        return cls(
            RideAction.CREATE, caller, pickup=pickup, dropoff=dropoff, amount=amount
        )

    @classmethod
    def accept(cls, caller: str, ride_id: int) -> MutationIntent:
        return cls(RideAction.ACCEPT, caller, ride_id)

    @classmethod
    def start(cls, caller: str, ride_id: int) -> MutationIntent:
        return cls(RideAction.START, caller, ride_id)

    @classmethod
    def complete(cls, caller: str, ride_id: int) -> MutationIntent:
        return cls(RideAction.COMPLETE, caller, ride_id)

    @classmethod
    def cancel(cls, caller: str, ride_id: int) -> MutationIntent:
        return cls(RideAction.CANCEL, caller, ride_id)

    @classmethod
    def rate(cls, caller: str, ride_id: int, rating: int) -> MutationIntent:
        return cls(RideAction.RATE, caller, ride_id, rating=rating)


@dataclass(frozen=True)
class EscrowEntry:
    """Disposition of a ride's escrowed amount, written with the mutation."""

    ride_id: int
    disposition: EscrowDisposition
    amount: Decimal
    beneficiary: str
    recorded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
