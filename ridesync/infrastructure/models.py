"""
SQLAlchemy ORM models for the SQL-backed ledger.

Tables
------
* ``rides``           -- one row per ride; locations stored in the ledger's
  JSON string encoding (``{"name", "lat", "lng"}``)
* ``escrow_entries``  -- held / released / refunded dispositions, written in
  the same transaction as the ride mutation

Indexes
-------
* **B-Tree** on ``status``, ``requester_id``, ``provider_id`` for the feed
  and per-identity history look-ups, and on ``escrow_entries.ride_id``.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)

from .database import Base
from ridesync.domain.enums import EscrowDisposition, RideStatus


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    requester_id = Column(String(64), nullable=False)
    provider_id = Column(String(64), nullable=True)

    pickup_location = Column(Text, nullable=False)
    dropoff_location = Column(Text, nullable=False)

    amount = Column(Numeric(36, 18), nullable=False)
    status = Column(Enum(RideStatus), default=RideStatus.CREATED, nullable=False)
    is_rated = Column(Boolean, default=False, nullable=False)
    rating = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_rides_status", "status"),
        Index("idx_rides_requester", "requester_id"),
        Index("idx_rides_provider", "provider_id"),
    )


class EscrowEntryModel(Base):
    __tablename__ = "escrow_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ride_id = Column(Integer, ForeignKey("rides.id"), nullable=False)
    disposition = Column(Enum(EscrowDisposition), nullable=False)
    amount = Column(Numeric(36, 18), nullable=False)
    beneficiary = Column(String(64), nullable=False)
    recorded_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("idx_escrow_ride", "ride_id"),)
