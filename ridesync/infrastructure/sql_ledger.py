"""
SQL + Redis implementation of the ledger boundary.

Rides and escrow dispositions live in PostgreSQL; every committed mutation
is announced on a Redis pub/sub channel as ``{"event", "ride_id"}``.

Concurrency safety
------------------
* **SELECT ... FOR UPDATE** on the ride row serialises racing mutations;
  the transition is re-validated under the row lock, so of two racing
  ``accept`` calls the second sees ``ACCEPTED`` and gets ``AlreadyTaken``.
* Notifications are published only after commit.  A failed publish is
  logged; watchers still converge through their periodic poll.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import AsyncIterator, Optional

import redis.asyncio as aioredis
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ridesync.domain.entities import (
    EscrowEntry,
    Location,
    MutationIntent,
    RideRecord,
)
from ridesync.domain.enums import ACTION_EVENTS, RideAction
from ridesync.domain.errors import NotFound, RejectedByLedger, RideError
from ridesync.domain.transitions import apply_transition, build_record, escrow_for

from .remote_ledger import LedgerClient, LedgerEvent
from .repositories import EscrowRepository, RideRepository

logger = logging.getLogger(__name__)


class SqlLedgerClient(LedgerClient):
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        redis: Optional[aioredis.Redis] = None,
        channel: str = "ridesync:events",
        default_lat: float = 25.0174,
        default_lng: float = 121.5397,
    ):
        self.session_factory = session_factory
        self.redis = redis
        self.channel = channel
        self.default_lat = default_lat
        self.default_lng = default_lng

    def _rides(self, session: AsyncSession) -> RideRepository:
        return RideRepository(session, self.default_lat, self.default_lng)

    # ── Reads ─────────────────────────────────────────────────────────

    async def ride_count(self) -> int:
        async with self.session_factory() as session:
            return await self._rides(session).latest_id()

    async def get_ride_details(self, ride_id: int) -> RideRecord:
        async with self.session_factory() as session:
            repo = self._rides(session)
            model = await repo.get_by_id(ride_id)
            if model is None:
                raise NotFound(ride_id)
            return repo.to_record(model)

    async def escrow_entries(self, ride_id: int) -> list[EscrowEntry]:
        async with self.session_factory() as session:
            if await self._rides(session).get_by_id(ride_id) is None:
                raise NotFound(ride_id)
            return await EscrowRepository(session).list_for_ride(ride_id)

    # ── Mutations ─────────────────────────────────────────────────────

    async def request_ride(
        self, caller: str, pickup: Location, dropoff: Location, amount: Decimal
    ) -> RideRecord:
        intent = MutationIntent.create(caller, pickup, dropoff, amount)
        draft = build_record(0, intent, datetime.now(timezone.utc))

        async with self.session_factory() as session:
            try:
                repo = self._rides(session)
                model = await repo.create(draft)
                record = repo.to_record(model)
                await EscrowRepository(session).add(
                    escrow_for(record, RideAction.CREATE)
                )
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                raise RejectedByLedger(f"Ride request rejected: {exc}") from exc

        logger.info("Ride %d requested by %s (%s)", record.id, caller, record.amount)
        await self._notify(RideAction.CREATE, record.id)
        return record

    async def _mutate(self, intent: MutationIntent) -> RideRecord:
        async with self.session_factory() as session:
            try:
                repo = self._rides(session)
                model = await repo.get_for_update(intent.ride_id)
                if model is None:
                    raise NotFound(intent.ride_id)

                record = apply_transition(repo.to_record(model), intent)
                repo.update(model, record)
                entry = escrow_for(record, intent.action)
                if entry is not None:
                    await EscrowRepository(session).add(entry)
                await session.commit()
            except RideError:
                await session.rollback()
                raise
            except SQLAlchemyError as exc:
                await session.rollback()
                raise RejectedByLedger(
                    f"{intent.action.value} on ride {intent.ride_id} rejected: {exc}"
                ) from exc

        logger.info(
            "Ride %d %s by %s -> %s",
            record.id,
            intent.action.value,
            intent.caller,
            record.status.value,
        )
        await self._notify(intent.action, record.id)
        return record

    async def accept_ride(self, caller: str, ride_id: int) -> RideRecord:
        return await self._mutate(MutationIntent.accept(caller, ride_id))

    async def start_ride(self, caller: str, ride_id: int) -> RideRecord:
        return await self._mutate(MutationIntent.start(caller, ride_id))

    async def complete_ride(self, caller: str, ride_id: int) -> RideRecord:
        return await self._mutate(MutationIntent.complete(caller, ride_id))

    async def cancel_ride(self, caller: str, ride_id: int) -> RideRecord:
        return await self._mutate(MutationIntent.cancel(caller, ride_id))

    async def rate_provider(self, caller: str, ride_id: int, rating: int) -> RideRecord:
        return await self._mutate(MutationIntent.rate(caller, ride_id, rating))

    # ── Notifications ─────────────────────────────────────────────────

    async def _notify(self, action: RideAction, ride_id: int) -> None:
        if self.redis is None:
            return
        payload = json.dumps({"event": ACTION_EVENTS[action].value, "ride_id": ride_id})
        try:
            await self.redis.publish(self.channel, payload)
        except aioredis.RedisError:
            logger.exception("Could not publish %s for ride %d", action.value, ride_id)

    async def events(self) -> AsyncIterator[LedgerEvent]:
        if self.redis is None:
            raise RejectedByLedger("No notification channel configured")

        pubsub = self.redis.pubsub()
        await pubsub.subscribe(self.channel)
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    payload = json.loads(message["data"])
                    event = LedgerEvent(str(payload["event"]), int(payload["ride_id"]))
                except (KeyError, TypeError, ValueError):
                    logger.warning("Malformed ledger notification: %r", message)
                    continue
                yield event
        finally:
            await pubsub.unsubscribe(self.channel)
            await pubsub.aclose()
