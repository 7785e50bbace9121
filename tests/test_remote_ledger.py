"""
Remote adapter tests against ``FakeLedgerClient``.

Covers the bounded list window, refresh-on-event, reconnect after a
failed notification stream, and self-healing through the poll loop.
"""

from __future__ import annotations

import asyncio

import pytest

from ridesync.domain.entities import MutationIntent
from ridesync.domain.enums import Phase, RideStatus, Role
from ridesync.domain.errors import NotFound, RejectedByLedger, Unknown
from ridesync.domain.reconciliation import ReconciliationEngine
from tests.conftest import make_remote
from tests.fakes import AMOUNT, DROPOFF, PICKUP, eventually

REQUESTER, PROVIDER = "0xrequester", "0xprovider"


class TestBoundedWindow:
    @pytest.mark.asyncio
    async def test_list_records_is_newest_first_and_bounded(self, fake_client):
        for _ in range(25):
            fake_client.ledger.create_ride(REQUESTER, PICKUP, DROPOFF, AMOUNT)
        adapter = make_remote(fake_client)

        records = await adapter.list_records()
        assert [r.id for r in records] == list(range(25, 5, -1))
        assert [r.id for r in await adapter.list_records(limit=3)] == [25, 24, 23]

    @pytest.mark.asyncio
    async def test_empty_ledger(self, fake_client):
        assert await make_remote(fake_client).list_records() == ()

    @pytest.mark.asyncio
    async def test_refresh_uses_configured_window(self, fake_client):
        for _ in range(5):
            fake_client.ledger.create_ride(REQUESTER, PICKUP, DROPOFF, AMOUNT)
        adapter = make_remote(fake_client, window=2)
        snapshot = await adapter.refresh()
        assert [r.id for r in snapshot] == [5, 4]
        assert adapter.snapshot == snapshot

    @pytest.mark.asyncio
    async def test_get_unknown_record(self, remote_adapter):
        with pytest.raises(NotFound):
            await remote_adapter.get_record(12)


class TestSubscription:
    @pytest.mark.asyncio
    async def test_late_subscriber_gets_current_state(self, fake_client):
        fake_client.ledger.create_ride(REQUESTER, PICKUP, DROPOFF, AMOUNT)
        adapter = make_remote(fake_client)
        await adapter.start()
        try:
            received = []
            adapter.subscribe(received.append)
            assert len(received) == 1
            assert received[0][0].id == 1
        finally:
            await adapter.stop()

    @pytest.mark.asyncio
    async def test_own_submit_is_published_before_returning(self, remote_adapter):
        received = []
        remote_adapter.subscribe(received.append)
        ride = await remote_adapter.submit(
            MutationIntent.create(REQUESTER, PICKUP, DROPOFF, AMOUNT)
        )
        assert received[-1] == (ride,)

    @pytest.mark.asyncio
    async def test_external_mutation_reaches_observers(self, fake_client, remote_adapter):
        received = []
        remote_adapter.subscribe(received.append)

        # Another device writes straight to the ledger.
        await fake_client.request_ride(REQUESTER, PICKUP, DROPOFF, AMOUNT)

        await eventually(lambda: len(received[-1]) == 1)
        assert received[-1][0].status is RideStatus.CREATED


class TestResilience:
    @pytest.mark.asyncio
    async def test_stream_failure_reconnects_and_resyncs(self, fake_client, remote_adapter):
        await eventually(lambda: fake_client.listeners == 1)
        fake_client.break_streams(ConnectionError("socket closed"))

        # Written while disconnected: the event is lost with nobody listening.
        fake_client.ledger.create_ride(REQUESTER, PICKUP, DROPOFF, AMOUNT)

        await eventually(lambda: fake_client.streams_opened == 2)
        await eventually(lambda: len(remote_adapter.snapshot) == 1)

    @pytest.mark.asyncio
    async def test_dropped_notification_healed_by_poll(self, fake_client):
        adapter = make_remote(fake_client, poll_interval=0.02)
        await adapter.start()
        try:
            engine = ReconciliationEngine(adapter, REQUESTER, Role.REQUESTER)
            engine.attach()
            await adapter.submit(MutationIntent.create(REQUESTER, PICKUP, DROPOFF, AMOUNT))
            assert engine.phase is Phase.WAITING_FOR_PROVIDER

            fake_client.drop_events = True
            await fake_client.accept_ride(PROVIDER, 1)
            await fake_client.start_ride(PROVIDER, 1)

            await eventually(lambda: engine.phase is Phase.IN_TRIP)
        finally:
            await adapter.stop()

    @pytest.mark.asyncio
    async def test_unrelated_events_are_ignored(self, fake_client, remote_adapter):
        received = []
        remote_adapter.subscribe(received.append)
        await eventually(lambda: fake_client.listeners == 1)

        fake_client.emit("SomethingElse", 1)
        await asyncio.sleep(0.02)
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_stop_is_clean(self, fake_client):
        adapter = make_remote(fake_client)
        await adapter.start()
        assert adapter.watcher.running
        await adapter.stop()
        assert not adapter.watcher.running


class TestSubmitErrors:
    @pytest.mark.asyncio
    async def test_ledger_rejection_is_reported(self, fake_client, remote_adapter):
        fake_client.fail_next_call = RejectedByLedger("insufficient funds")
        with pytest.raises(RejectedByLedger):
            await remote_adapter.submit(
                MutationIntent.create(REQUESTER, PICKUP, DROPOFF, AMOUNT)
            )
        assert await remote_adapter.list_records() == ()

    @pytest.mark.asyncio
    async def test_lost_connection_is_unknown(self, fake_client, remote_adapter):
        fake_client.fail_next_call = ConnectionResetError("peer reset")
        with pytest.raises(Unknown):
            await remote_adapter.submit(
                MutationIntent.create(REQUESTER, PICKUP, DROPOFF, AMOUNT)
            )

    @pytest.mark.asyncio
    async def test_escrow_passthrough(self, remote_adapter):
        ride = await remote_adapter.submit(
            MutationIntent.create(REQUESTER, PICKUP, DROPOFF, AMOUNT)
        )
        entries = await remote_adapter.escrow_entries(ride.id)
        assert [e.amount for e in entries] == [AMOUNT]
