"""
Tests for the sync coordinator: optimistic writes, reloads, failures and teardown
"""
import asyncio
from datetime import date

import pytest

from modules.sync_coordinator import SessionState, SyncCoordinator
from tests.conftest import FakeScheduleStore, make_entries, settle
from utils.errors import LoadError, SessionStateError

TEAM = 1
START = date(2025, 7, 27)
END = date(2025, 8, 7)
DAY = date(2025, 7, 29)


@pytest.fixture
def store():
    return FakeScheduleStore({7: make_entries(7, {START: "1"})})


@pytest.fixture
def coordinator(store):
    return SyncCoordinator(store)


class TestOpen:

    @pytest.mark.asyncio
    async def test_open_loads_and_subscribes(self, coordinator, store):
        snapshot = await coordinator.open(TEAM, START, END)

        assert coordinator.state == SessionState.READY
        assert snapshot.get_value(7, START) == "1"
        assert store.fetch_calls == [(TEAM, START, END)]
        assert store.notifier.subscriber_count == 1

    @pytest.mark.asyncio
    async def test_failed_open_releases_subscription(self, coordinator, store):
        store.fetch_failures.append(LoadError("store unavailable"))

        with pytest.raises(LoadError):
            await coordinator.open(TEAM, START, END)

        assert coordinator.state == SessionState.CLOSED
        assert coordinator.snapshot is None
        assert isinstance(coordinator.last_error, LoadError)
        assert store.subscribe_calls == 1
        assert store.unsubscribe_calls == 1
        assert store.notifier.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_unexpected_store_error_is_reported_as_load_error(self, coordinator, store):
        store.fetch_failures.append(RuntimeError("socket closed"))

        with pytest.raises(LoadError) as exc_info:
            await coordinator.open(TEAM, START, END)

        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_failed_range_change_keeps_previous_snapshot(self, coordinator, store):
        first = await coordinator.open(TEAM, START, END)
        store.fetch_failures.append(LoadError("timeout"))

        with pytest.raises(LoadError):
            await coordinator.open(TEAM, date(2025, 8, 10), date(2025, 8, 21))

        assert coordinator.state == SessionState.READY
        assert coordinator.snapshot is first
        assert coordinator.last_error is not None
        assert coordinator.date_range == (START, END)
        assert store.notifier.subscriber_count == 1
        assert store.push_change(date(2025, 8, 12)) == 0

        assert store.push_change(DAY) == 1
        await settle()
        assert store.fetch_calls[-1] == (TEAM, START, END)
        assert coordinator.snapshot.start_date == START

    @pytest.mark.asyncio
    async def test_failed_subscribe_closes_session(self, coordinator, store):
        store.subscribe_failures.append(RuntimeError("channel refused"))

        with pytest.raises(LoadError):
            await coordinator.open(TEAM, START, END)

        assert coordinator.state == SessionState.CLOSED
        assert store.fetch_calls == []
        with pytest.raises(SessionStateError):
            coordinator.apply_local_write(7, DAY, "1")

    @pytest.mark.asyncio
    async def test_empty_store_is_not_an_error(self):
        coordinator = SyncCoordinator(FakeScheduleStore())
        snapshot = await coordinator.open(TEAM, START, END)
        assert len(snapshot) == 0
        assert coordinator.last_error is None

    @pytest.mark.asyncio
    async def test_superseded_load_is_discarded(self, coordinator, store):
        slow = asyncio.Event()
        store.fetch_gates.append(slow)
        stale_open = asyncio.create_task(coordinator.open(TEAM, START, END))
        await settle()

        newer_start, newer_end = date(2025, 8, 10), date(2025, 8, 21)
        await coordinator.open(TEAM, newer_start, newer_end)
        slow.set()
        result = await stale_open

        assert result is coordinator.snapshot
        assert coordinator.snapshot.start_date == newer_start
        assert store.notifier.subscriber_count == 1


class TestLocalWrites:

    @pytest.mark.asyncio
    async def test_write_visible_before_confirmation(self, coordinator, store):
        await coordinator.open(TEAM, START, END)
        store.write_gate = asyncio.Event()

        snapshot = coordinator.apply_local_write(7, DAY, "1")

        assert snapshot.get_value(7, DAY) == "1"
        assert store.writes == []

        store.write_gate.set()
        outcomes = await coordinator.flush_writes()
        assert [o.ok for o in outcomes] == [True]
        assert store.writes == [(7, DAY, "1", None)]

    @pytest.mark.asyncio
    async def test_scenario_d_last_write_wins(self, coordinator, store):
        await coordinator.open(TEAM, START, END)
        store.write_gate = asyncio.Event()

        coordinator.apply_local_write(7, DAY, "0.5", "Clinic")
        coordinator.apply_local_write(7, DAY, "X", "Sick")

        assert coordinator.snapshot.get_value(7, DAY) == "X"

        store.write_gate.set()
        await coordinator.flush_writes()
        assert [w[2] for w in store.writes] == ["0.5", "X"]
        assert store.entries[7]['2025-07-29'].value == "X"

    @pytest.mark.asyncio
    async def test_clearing_an_entry(self, coordinator, store):
        await coordinator.open(TEAM, START, END)
        coordinator.apply_local_write(7, START, None)

        assert coordinator.snapshot.get(7, START) is None
        await coordinator.flush_writes()
        assert '2025-07-27' not in store.entries[7]

    @pytest.mark.asyncio
    async def test_failed_write_is_not_rolled_back(self, coordinator, store):
        errors = []
        await coordinator.open(TEAM, START, END)
        coordinator.add_error_listener(errors.append)
        store.failing_writes.add("X")

        coordinator.apply_local_write(7, DAY, "X", "Leave")
        outcomes = await coordinator.flush_writes()

        assert not outcomes[0].ok
        assert "rejected" in outcomes[0].error
        assert coordinator.snapshot.get_value(7, DAY) == "X"
        assert len(errors) == 1

    @pytest.mark.asyncio
    async def test_writes_while_loading_are_replayed(self, coordinator, store):
        gate = asyncio.Event()
        store.fetch_gates.append(gate)
        opening = asyncio.create_task(coordinator.open(TEAM, START, END))
        await settle()

        assert coordinator.state == SessionState.LOADING
        coordinator.apply_local_write(7, DAY, "1")
        assert coordinator.pending_write_count == 1
        assert store.write_attempts == []

        gate.set()
        snapshot = await opening

        assert snapshot.get_value(7, DAY) == "1"
        assert coordinator.pending_write_count == 0
        outcomes = await coordinator.flush_writes()
        assert [o.ok for o in outcomes] == [True]

    @pytest.mark.asyncio
    async def test_fill_days_applies_in_order(self, coordinator, store, sprint_one_days):
        await coordinator.open(TEAM, START, END)

        snapshot = coordinator.fill_days(9, sprint_one_days, "1")

        assert all(snapshot.get_value(9, day) == "1" for day in sprint_one_days)
        outcomes = await coordinator.flush_writes()
        assert [o.date for o in outcomes] == sprint_one_days

    @pytest.mark.asyncio
    async def test_write_on_closed_session_raises(self, coordinator):
        with pytest.raises(SessionStateError):
            coordinator.apply_local_write(7, DAY, "1")

    @pytest.mark.asyncio
    async def test_snapshots_are_never_mutated(self, coordinator):
        before = await coordinator.open(TEAM, START, END)
        after = coordinator.apply_local_write(7, DAY, "1")

        assert after is not before
        assert before.get(7, DAY) is None
        await coordinator.flush_writes()


class TestRemoteChanges:

    @pytest.mark.asyncio
    async def test_remote_change_reloads_wholesale(self, coordinator, store):
        await coordinator.open(TEAM, START, END)
        store.entries[8] = make_entries(8, {DAY: "0.5"})

        store.push_change(DAY)
        await settle()

        assert coordinator.snapshot.get_value(8, DAY) == "0.5"
        assert len(store.fetch_calls) == 2

    @pytest.mark.asyncio
    async def test_reload_keeps_unconfirmed_writes(self, coordinator, store):
        await coordinator.open(TEAM, START, END)
        store.write_gate = asyncio.Event()
        coordinator.apply_local_write(7, DAY, "1")
        store.entries[8] = make_entries(8, {DAY: "0.5"})

        store.push_change(DAY)
        await settle()

        assert len(store.fetch_calls) == 2
        assert coordinator.snapshot.get_value(8, DAY) == "0.5"
        assert coordinator.snapshot.get_value(7, DAY) == "1"

        store.write_gate.set()
        await coordinator.flush_writes()
        assert coordinator.snapshot.get_value(7, DAY) == "1"

    @pytest.mark.asyncio
    async def test_write_finishing_during_reload_stays_visible(self, coordinator, store):
        await coordinator.open(TEAM, START, END)
        store.write_gate = asyncio.Event()
        fetch_gate = asyncio.Event()
        store.fetch_gates.append(fetch_gate)
        coordinator.apply_local_write(7, DAY, "X", "Leave")

        store.push_change(DAY)
        await settle()
        store.write_gate.set()
        await coordinator.flush_writes()
        fetch_gate.set()
        await settle()

        assert coordinator.state == SessionState.READY
        assert coordinator.snapshot.get_value(7, DAY) == "X"

    @pytest.mark.asyncio
    async def test_changes_outside_range_are_ignored(self, coordinator, store):
        await coordinator.open(TEAM, START, END)
        assert store.push_change(date(2025, 9, 1)) == 0

    @pytest.mark.asyncio
    async def test_burst_of_changes_is_coalesced(self, coordinator, store):
        await coordinator.open(TEAM, START, END)
        gate = asyncio.Event()
        store.fetch_gates.append(gate)

        store.push_change(DAY)
        await settle()
        for _ in range(3):
            store.push_change(DAY)
        gate.set()
        await settle()

        # open, the in-flight reload, one follow-up
        assert len(store.fetch_calls) == 3
        assert coordinator.state == SessionState.READY

    @pytest.mark.asyncio
    async def test_failed_reload_keeps_snapshot_and_reports(self, coordinator, store):
        errors = []
        snapshot = await coordinator.open(TEAM, START, END)
        coordinator.add_error_listener(errors.append)
        store.fetch_failures.append(LoadError("network"))

        store.push_change(DAY)
        await settle()

        assert coordinator.state == SessionState.READY
        assert coordinator.snapshot is snapshot
        assert isinstance(coordinator.last_error, LoadError)
        assert len(errors) == 1

    @pytest.mark.asyncio
    async def test_change_from_another_thread(self, coordinator, store):
        await coordinator.open(TEAM, START, END)

        await asyncio.to_thread(coordinator.on_remote_change)
        await settle()

        assert len(store.fetch_calls) == 2


class TestTeardown:

    @pytest.mark.asyncio
    async def test_close_releases_everything(self, coordinator, store):
        await coordinator.open(TEAM, START, END)
        await coordinator.close()

        assert coordinator.state == SessionState.CLOSED
        assert coordinator.snapshot is None
        assert store.notifier.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_close_cancels_reload_in_flight(self, coordinator, store):
        await coordinator.open(TEAM, START, END)
        store.fetch_gates.append(asyncio.Event())
        store.push_change(DAY)
        await settle()

        await coordinator.close()

        assert coordinator.state == SessionState.CLOSED
        assert store.unsubscribe_calls == 1

    @pytest.mark.asyncio
    async def test_session_context_closes_on_error(self, coordinator, store):
        with pytest.raises(KeyError):
            async with coordinator.session(TEAM, START, END) as session:
                assert session.is_ready
                raise KeyError("boom")

        assert coordinator.state == SessionState.CLOSED
        assert store.notifier.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_listeners_follow_snapshot_replacements(self, coordinator):
        seen = []
        unsubscribe = coordinator.add_listener(seen.append)

        await coordinator.open(TEAM, START, END)
        coordinator.apply_local_write(7, DAY, "1")
        unsubscribe()
        coordinator.apply_local_write(7, DAY, "X", "Leave")

        assert len(seen) == 2
        assert seen[-1].get_value(7, DAY) == "1"
        await coordinator.flush_writes()
