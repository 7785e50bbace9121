"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from ridesync.config import settings
from ridesync.domain.entities import Location
from ridesync.domain.enums import EscrowDisposition, Phase, RideStatus, Role


# ── Requests ──────────────────────────────────────────────────────────


class LocationIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    def to_domain(self) -> Location:
        return Location(self.name, self.latitude, self.longitude)


class RideCreateRequest(BaseModel):
    pickup: LocationIn
    dropoff: LocationIn
    amount: Decimal = Field(
        Decimal(settings.default_amount),
        ge=0,
        description="Amount held in escrow until the ride completes or is cancelled.",
    )


class RateRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)


# ── Responses ─────────────────────────────────────────────────────────


class LocationOut(BaseModel):
    name: str
    latitude: float
    longitude: float

    model_config = {"from_attributes": True}


class RideResponse(BaseModel):
    id: int
    requester_id: str
    provider_id: Optional[str] = None
    pickup: LocationOut
    dropoff: LocationOut
    amount: Decimal
    status: RideStatus
    is_rated: bool
    rating: Optional[int] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class SessionResponse(BaseModel):
    identity: str
    role: Role
    phase: Phase
    ride: Optional[RideResponse] = None


class EscrowEntryResponse(BaseModel):
    ride_id: int
    disposition: EscrowDisposition
    amount: Decimal
    beneficiary: str
    recorded_at: datetime

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    status: str = "ok"
    backend: str
    rides_in_view: int = 0


class ErrorResponse(BaseModel):
    detail: str
    error: str
