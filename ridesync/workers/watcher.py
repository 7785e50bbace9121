"""
Ledger Watcher
==============

Keeps a ``RemoteLedgerAdapter`` in step with the external ledger.

Two loops run side by side:

* **listen** -- consumes the ledger's change notifications; any of the six
  ride events triggers a full refresh of the bounded window.  When the
  stream fails or ends it is reopened after ``reconnect_backoff`` seconds,
  followed by a refresh to catch anything missed while disconnected.
* **poll** -- refreshes every ``poll_interval`` seconds regardless, so a
  silently dropped notification is healed by the next tick.
"""

from __future__ import annotations

import asyncio
import logging

from ridesync.domain.enums import LedgerEventName

logger = logging.getLogger(__name__)

WATCHED_EVENTS = frozenset(e.value for e in LedgerEventName)


class LedgerWatcher:
    def __init__(self, adapter, poll_interval: float = 15.0, reconnect_backoff: float = 5.0):
        self.adapter = adapter
        self.poll_interval = poll_interval
        self.reconnect_backoff = reconnect_backoff
        self._tasks: list[asyncio.Task] = []
        self._stop_event: asyncio.Event | None = None

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    # ── Public API ────────────────────────────────────────────────────

    async def start(self) -> None:
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._tasks = [
            asyncio.create_task(self._listen()),
            asyncio.create_task(self._poll()),
        ]
        logger.info(
            "Ledger watcher started (poll=%.1fs, backoff=%.1fs)",
            self.poll_interval,
            self.reconnect_backoff,
        )

    async def stop(self) -> None:
        if self._stop_event:
            self._stop_event.set()
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("Ledger watcher stopped")

    # ── Internals ─────────────────────────────────────────────────────

    async def _sleep(self, seconds: float) -> bool:
        """Wait *seconds*; True if stop was signalled meanwhile."""
        assert self._stop_event is not None
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False

    async def _refresh(self, reason: str) -> None:
        try:
            await self.adapter.refresh()
        except Exception:
            logger.exception("Ledger refresh after %s failed", reason)

    async def _listen(self) -> None:
        assert self._stop_event is not None
        while not self._stop_event.is_set():
            try:
                async for event in self.adapter.client.events():
                    if event.name not in WATCHED_EVENTS:
                        logger.debug("Ignoring ledger event %s", event.name)
                        continue
                    logger.debug("Ledger event %s on ride %d", event.name, event.ride_id)
                    await self._refresh(event.name)
                logger.warning("Ledger event stream ended; reconnecting")
            except Exception:
                logger.exception(
                    "Ledger event stream failed; reconnecting in %.1fs",
                    self.reconnect_backoff,
                )
            if await self._sleep(self.reconnect_backoff):
                break
            await self._refresh("reconnect")

    async def _poll(self) -> None:
        assert self._stop_event is not None
        while not self._stop_event.is_set():
            if await self._sleep(self.poll_interval):
                break
            await self._refresh("poll")
