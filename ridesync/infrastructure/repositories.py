"""
Repository Pattern -- keeps SQL out of the ledger client.

Each repository receives an ``AsyncSession`` (unit-of-work) and converts
between ORM rows and the immutable domain records.
"""

from __future__ import annotations

from datetime import timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import EscrowEntryModel, RideModel
from ridesync.domain.entities import EscrowEntry, Location, RideRecord
from ridesync.domain.enums import EscrowDisposition, RideStatus


def _aware(value):
    # SQLite hands back naive datetimes; the ledger always writes UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class RideRepository:
    def __init__(
        self,
        session: AsyncSession,
        default_lat: float = 25.0174,
        default_lng: float = 121.5397,
    ):
        self.session = session
        self.default_lat = default_lat
        self.default_lng = default_lng

    def to_record(self, model: RideModel) -> RideRecord:
        return RideRecord(
            id=model.id,
            requester_id=model.requester_id,
            provider_id=model.provider_id,
            pickup=Location.parse(
                model.pickup_location, self.default_lat, self.default_lng
            ),
            dropoff=Location.parse(
                model.dropoff_location, self.default_lat, self.default_lng
            ),
            amount=Decimal(model.amount),
            created_at=_aware(model.created_at),
            status=RideStatus(model.status),
            is_rated=bool(model.is_rated),
            rating=model.rating,
        )

    async def create(self, record: RideRecord) -> RideModel:
        """Insert *record*; its ``id`` is ignored and assigned by the database."""
        ride = RideModel(
            requester_id=record.requester_id,
            pickup_location=record.pickup.encode(),
            dropoff_location=record.dropoff.encode(),
            amount=record.amount,
            status=record.status,
            is_rated=record.is_rated,
            created_at=record.created_at,
        )
        self.session.add(ride)
        await self.session.flush()
        return ride

    @staticmethod
    def update(model: RideModel, record: RideRecord) -> None:
        """Copy the mutable fields of *record* onto *model*."""
        model.status = record.status
        model.provider_id = record.provider_id
        model.is_rated = record.is_rated
        model.rating = record.rating

    async def get_by_id(self, ride_id: int) -> Optional[RideModel]:
        return await self.session.get(RideModel, ride_id)

    async def get_for_update(self, ride_id: int) -> Optional[RideModel]:
        """SELECT ... FOR UPDATE so racing mutations are serialised."""
        result = await self.session.execute(
            select(RideModel).where(RideModel.id == ride_id).with_for_update()
        )
        return result.scalar_one_or_none()

    async def latest_id(self) -> int:
        result = await self.session.execute(select(func.max(RideModel.id)))
        return result.scalar() or 0


class EscrowRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, entry: EscrowEntry) -> EscrowEntryModel:
        model = EscrowEntryModel(
            ride_id=entry.ride_id,
            disposition=entry.disposition,
            amount=entry.amount,
            beneficiary=entry.beneficiary,
            recorded_at=entry.recorded_at,
        )
        self.session.add(model)
        await self.session.flush()
        return model

    async def list_for_ride(self, ride_id: int) -> list[EscrowEntry]:
        result = await self.session.execute(
            select(EscrowEntryModel)
            .where(EscrowEntryModel.ride_id == ride_id)
            .order_by(EscrowEntryModel.id)
        )
        return [
            EscrowEntry(
                ride_id=m.ride_id,
                disposition=EscrowDisposition(m.disposition),
                amount=Decimal(m.amount),
                beneficiary=m.beneficiary,
                recorded_at=_aware(m.recorded_at),
            )
            for m in result.scalars().all()
        ]
