"""
Ledger Adapter contract and the Transition Gate in front of it.

Both backends (``LocalLedgerAdapter`` and ``RemoteLedgerAdapter``)
implement ``LedgerAdapter``; the engine and query service only ever see
this interface, so they can be run against either one.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

from .entities import EscrowEntry, MutationIntent, RideRecord, Snapshot
from .enums import RideAction
from .errors import AlreadyTaken, Unknown
from .transitions import check_transition, validate_create

logger = logging.getLogger(__name__)

Observer = Callable[[Snapshot], None]
Unsubscribe = Callable[[], None]

DEFAULT_LIST_LIMIT = 20


class LedgerAdapter(ABC):
    """Uniform interface over the authoritative ride store."""

    # Name reported by the health endpoint
    backend: str = "unknown"

    @property
    @abstractmethod
    def snapshot(self) -> Snapshot:
        """Latest snapshot published on the adapter's event bus."""

    @abstractmethod
    async def list_records(self, limit: int = DEFAULT_LIST_LIMIT) -> Snapshot:
        """Records, most recently created first."""

    @abstractmethod
    async def get_record(self, ride_id: int) -> RideRecord:
        """Return the ride or raise ``NotFound``."""

    @abstractmethod
    async def submit(self, intent: MutationIntent) -> RideRecord:
        """Perform one transition; returns once the change is durable."""

    @abstractmethod
    def subscribe(self, observer: Observer) -> Unsubscribe:
        """Register *observer*; it receives the current snapshot immediately."""

    @abstractmethod
    async def escrow_entries(self, ride_id: int) -> list[EscrowEntry]:
        """Escrow dispositions recorded for *ride_id*, oldest first."""

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass


class TransitionGate:
    """Validates an intent against the current record before forwarding it."""

    def __init__(self, adapter: LedgerAdapter):
        self.adapter = adapter

    async def submit(self, intent: MutationIntent) -> RideRecord:
        if intent.action is RideAction.CREATE:
            validate_create(intent)
        else:
            record = await self.adapter.get_record(intent.ride_id)
            check_transition(record, intent)

        logger.info(
            "Forwarding %s on ride %s for %s",
            intent.action.value,
            intent.ride_id if intent.ride_id is not None else "<new>",
            intent.caller,
        )
        return await self.adapter.submit(intent)

    async def try_accept(self, caller: str, ride_id: int) -> Optional[RideRecord]:
        """Accept an open ride; ``None`` if another provider got there first."""
        try:
            return await self.submit(MutationIntent.accept(caller, ride_id))
        except AlreadyTaken as exc:
            logger.warning("Offer no longer available: %s", exc)
            return None


def _log_late_failure(task: asyncio.Future) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning("Submission finished after its timeout with %r", exc)


async def submit_with_timeout(submitter, intent: MutationIntent, timeout: Optional[float]):
    """
    Await ``submitter.submit(intent)`` for at most *timeout* seconds.

    On expiry ``Unknown`` is raised but the submission is *not* cancelled:
    once forwarded it may still land, and the next snapshot is authoritative.
    """
    if timeout is None:
        return await submitter.submit(intent)

    task = asyncio.ensure_future(submitter.submit(intent))
    try:
        return await asyncio.wait_for(asyncio.shield(task), timeout)
    except asyncio.TimeoutError as exc:
        task.add_done_callback(_log_late_failure)
        raise Unknown(
            f"{intent.action.value} on ride {intent.ride_id} not confirmed "
            f"within {timeout}s"
        ) from exc
