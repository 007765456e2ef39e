"""
Sync Coordinator Module
Owns the in-memory schedule snapshot of one (team, date range) session.

Local writes are applied optimistically and sent to the store in call
order without being awaited. Remote change notifications trigger a full
reload of the range; bursts of notifications collapse into at most one
follow-up reload.
"""
import asyncio
import logging
import datetime as dt
from contextlib import asynccontextmanager
from datetime import date
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from models.schedule import ScheduleSnapshot
from modules.schedule_store import ScheduleStore, StoreChange, Unsubscribe
from utils.errors import LoadError, SessionStateError

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[ScheduleSnapshot], None]
ErrorListener = Callable[[Exception], None]
PendingWrite = Tuple[int, date, Optional[str], Optional[str]]
InflightWrite = Tuple[Optional[int], int, date, Optional[str], Optional[str]]


class SessionState(str, Enum):
    CLOSED = 'closed'
    LOADING = 'loading'
    READY = 'ready'


class WriteOutcome(BaseModel):
    """Result of sending one optimistic write to the store"""
    model_config = ConfigDict(frozen=True)

    member_id: int
    date: dt.date
    value: Optional[str] = None
    ok: bool = True
    error: Optional[str] = None


class SyncCoordinator:
    """
    Session-scoped owner of a ScheduleSnapshot

    Lifecycle: CLOSED -> LOADING -> READY; READY -> LOADING on range
    change or remote change; any state -> CLOSED on close().
    Must be driven from a single event loop.
    """

    def __init__(self, store: ScheduleStore):
        self.store = store
        self.last_error: Optional[Exception] = None

        self._state = SessionState.CLOSED
        self._snapshot: Optional[ScheduleSnapshot] = None
        self._team_id: Optional[int] = None
        self._start_date: Optional[date] = None
        self._end_date: Optional[date] = None

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._generation = 0
        self._unsubscribe: Optional[Unsubscribe] = None

        self._pending_writes: List[PendingWrite] = []
        # sent but not yet finished, keyed by send sequence
        self._inflight_writes: Dict[int, InflightWrite] = {}
        self._write_sequence = 0
        self._last_write: Optional[asyncio.Task] = None
        self._write_tasks: List[asyncio.Task] = []
        self._outcomes: List[WriteOutcome] = []

        self._reload_task: Optional[asyncio.Task] = None
        self._reload_pending = False

        self._listeners: List[SnapshotListener] = []
        self._error_listeners: List[ErrorListener] = []

    # ------------------------------------------------------------------
    # Read view
    # ------------------------------------------------------------------
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def snapshot(self) -> Optional[ScheduleSnapshot]:
        return self._snapshot

    @property
    def is_ready(self) -> bool:
        return self._state == SessionState.READY

    @property
    def team_id(self) -> Optional[int]:
        return self._team_id

    @property
    def date_range(self) -> Tuple[Optional[date], Optional[date]]:
        return self._start_date, self._end_date

    @property
    def pending_write_count(self) -> int:
        return len(self._pending_writes)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------
    async def open(self, team_id: int, start_date: date, end_date: date) -> Optional[ScheduleSnapshot]:
        """
        Load a (team, range) and subscribe to its changes

        Opening a new range while a previous load is in flight supersedes
        it: the older result is discarded when it arrives.

        Args:
            team_id: Team identifier
            start_date: First date of the range
            end_date: Last date of the range (inclusive)

        Returns:
            The loaded snapshot (with any queued writes replayed), or the
            current snapshot if this load was itself superseded

        Raises:
            LoadError: If the store fails to load the range. A previous
                snapshot, if any, stays visible; otherwise the session
                returns to CLOSED.
        """
        if start_date > end_date:
            raise ValueError(f"Range start {start_date} is after end {end_date}")

        self._loop = asyncio.get_running_loop()
        self._cancel_reload()
        self._release_subscription()

        self._generation += 1
        generation = self._generation
        self._team_id, self._start_date, self._end_date = team_id, start_date, end_date
        self._state = SessionState.LOADING
        logger.info(f"Opening schedule session for team {team_id}: {start_date} to {end_date}")
        inflight = dict(self._inflight_writes)

        try:
            self._unsubscribe = self.store.subscribe(team_id, start_date, end_date, self.on_remote_change)
            entries = await self.store.fetch_entries(team_id, start_date, end_date)
        except asyncio.CancelledError:
            if generation == self._generation:
                self._abandon_open()
            raise
        except Exception as exc:
            error = exc if isinstance(exc, LoadError) else LoadError(f"Failed to load team {team_id}: {exc}")
            if generation == self._generation:
                self._handle_open_failure(error)
            if error is exc:
                raise
            raise error from exc

        if generation != self._generation:
            logger.debug(f"Discarding superseded load for team {team_id} {start_date} to {end_date}")
            return self._snapshot

        self._snapshot = self._overlay_inflight(ScheduleSnapshot(team_id, start_date, end_date, entries), inflight)
        self.last_error = None
        self._become_ready()
        logger.debug(f"Session ready with {len(self._snapshot)} entries")
        return self._snapshot

    async def close(self) -> None:
        """
        Tear down the session. The subscription is released on every path.
        Writes already sent keep running; collect them with flush_writes().
        """
        self._generation += 1
        reload_task, self._reload_task = self._reload_task, None
        self._reload_pending = False
        try:
            if reload_task is not None and not reload_task.done():
                reload_task.cancel()
                await asyncio.wait([reload_task])
        finally:
            self._release_subscription()
            self._drop_pending_writes("session closed")
            self._snapshot = None
            self._state = SessionState.CLOSED
            logger.info(f"Closed schedule session for team {self._team_id}")

    @asynccontextmanager
    async def session(self, team_id: int, start_date: date, end_date: date):
        """
        Async context manager around open()/close()

        Example:
            async with coordinator.session(1, start, end) as session:
                session.apply_local_write(7, start, "1")
        """
        try:
            await self.open(team_id, start_date, end_date)
            yield self
        finally:
            await self.close()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def apply_local_write(
        self,
        member_id: int,
        day: date,
        value: Optional[str],
        reason: Optional[str] = None
    ) -> Optional[ScheduleSnapshot]:
        """
        Optimistically set one entry and send it to the store

        The new snapshot is visible as soon as this returns; the store
        write runs in the background. While LOADING the write is queued
        and replayed once the load settles.

        Args:
            member_id: Team member identifier
            day: Entry date
            value: '1', '0.5', 'X', or None to clear
            reason: Optional reason text

        Returns:
            The current snapshot

        Raises:
            SessionStateError: If the session is closed
        """
        if self._state == SessionState.CLOSED:
            raise SessionStateError("Cannot write to a closed schedule session")

        if self._state == SessionState.LOADING:
            self._pending_writes.append((member_id, day, value, reason))
            logger.debug(f"Queued write for member {member_id} on {day} until load completes")
            return self._snapshot

        return self._apply(member_id, day, value, reason)

    def fill_days(
        self,
        member_id: int,
        days: Iterable[date],
        value: Optional[str],
        reason: Optional[str] = None
    ) -> Optional[ScheduleSnapshot]:
        """Apply the same value to several days, in order"""
        snapshot = self._snapshot
        for day in days:
            snapshot = self.apply_local_write(member_id, day, value, reason)
        return snapshot

    async def flush_writes(self) -> List[WriteOutcome]:
        """
        Wait for every write sent so far

        Returns:
            Outcomes collected since the previous flush, in send order
        """
        while self._write_tasks:
            tasks, self._write_tasks = self._write_tasks, []
            await asyncio.gather(*tasks, return_exceptions=True)
        outcomes, self._outcomes = self._outcomes, []
        return outcomes

    # ------------------------------------------------------------------
    # Remote changes
    # ------------------------------------------------------------------
    def on_remote_change(self, change: Optional[StoreChange] = None) -> None:
        """
        Subscription callback. Safe to call from any thread.
        """
        loop = self._loop
        if loop is None or loop.is_closed():
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            self._request_reload()
        else:
            loop.call_soon_threadsafe(self._request_reload)

    def _request_reload(self) -> None:
        if self._state == SessionState.CLOSED:
            return

        in_flight = self._reload_task is not None and not self._reload_task.done()
        if in_flight or self._state == SessionState.LOADING:
            self._reload_pending = True
            logger.debug("Reload already pending, coalescing remote change")
            return

        self._reload_task = self._loop.create_task(self._reload_loop())

    async def _reload_loop(self) -> None:
        while True:
            self._reload_pending = False
            await self._reload_once()
            if not self._reload_pending or self._state == SessionState.CLOSED:
                break
            logger.debug("Running follow-up reload for coalesced changes")

    async def _reload_once(self) -> None:
        generation = self._generation
        team_id, start_date, end_date = self._team_id, self._start_date, self._end_date
        self._state = SessionState.LOADING
        inflight = dict(self._inflight_writes)

        try:
            entries = await self.store.fetch_entries(team_id, start_date, end_date)
        except Exception as exc:
            if generation != self._generation:
                return
            error = exc if isinstance(exc, LoadError) else LoadError(f"Failed to reload team {team_id}: {exc}")
            logger.error(f"Reload for team {team_id} failed, keeping previous snapshot: {error}")
            self.last_error = error
            self._become_ready()
            self._notify_error(error)
            return

        if generation != self._generation:
            logger.debug(f"Discarding superseded reload for team {team_id}")
            return

        self._snapshot = self._overlay_inflight(ScheduleSnapshot(team_id, start_date, end_date, entries), inflight)
        self.last_error = None
        self._become_ready()
        logger.debug(f"Reloaded team {team_id}: {len(self._snapshot)} entries")

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------
    def add_listener(self, callback: SnapshotListener) -> Unsubscribe:
        """Call `callback(snapshot)` whenever the snapshot is replaced"""
        self._listeners.append(callback)
        return lambda: self._remove(self._listeners, callback)

    def add_error_listener(self, callback: ErrorListener) -> Unsubscribe:
        """Call `callback(error)` on failed background reloads and writes"""
        self._error_listeners.append(callback)
        return lambda: self._remove(self._error_listeners, callback)

    @staticmethod
    def _remove(callbacks: list, callback) -> None:
        if callback in callbacks:
            callbacks.remove(callback)

    def _notify_listeners(self) -> None:
        snapshot = self._snapshot
        if snapshot is None:
            return
        for callback in list(self._listeners):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Snapshot listener failed")

    def _notify_error(self, error: Exception) -> None:
        for callback in list(self._error_listeners):
            try:
                callback(error)
            except Exception:
                logger.exception("Error listener failed")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _apply(self, member_id: int, day: date, value: Optional[str], reason: Optional[str]) -> ScheduleSnapshot:
        self._snapshot = self._snapshot.with_entry(member_id, day, value, reason)
        self._send_write(member_id, day, value, reason)
        self._notify_listeners()
        return self._snapshot

    def _send_write(self, member_id: int, day: date, value: Optional[str], reason: Optional[str]) -> None:
        self._write_sequence += 1
        sequence = self._write_sequence
        self._inflight_writes[sequence] = (self._team_id, member_id, day, value, reason)
        previous = self._last_write
        task = self._loop.create_task(self._run_write(previous, sequence, member_id, day, value, reason))
        self._last_write = task
        self._write_tasks.append(task)

    async def _run_write(
        self,
        previous: Optional[asyncio.Task],
        sequence: int,
        member_id: int,
        day: date,
        value: Optional[str],
        reason: Optional[str]
    ) -> WriteOutcome:
        try:
            if previous is not None and not previous.done():
                await asyncio.wait([previous])

            try:
                await self.store.write_entry(member_id, day, value, reason)
            except Exception as exc:
                logger.error(f"Write for member {member_id} on {day} failed, keeping optimistic value: {exc}")
                outcome = WriteOutcome(member_id=member_id, date=day, value=value, ok=False, error=str(exc))
                self._outcomes.append(outcome)
                self._notify_error(exc)
                return outcome
        finally:
            self._inflight_writes.pop(sequence, None)

        outcome = WriteOutcome(member_id=member_id, date=day, value=value)
        self._outcomes.append(outcome)
        return outcome

    def _overlay_inflight(self, snapshot: ScheduleSnapshot, started: Dict[int, InflightWrite]) -> ScheduleSnapshot:
        """
        Re-apply writes that were unfinished when the fetch started or
        still are, in send order, so loaded state cannot hide them
        """
        writes = dict(started)
        writes.update(self._inflight_writes)
        for sequence in sorted(writes):
            team_id, member_id, day, value, reason = writes[sequence]
            if team_id == snapshot.team_id and snapshot.covers(day):
                snapshot = snapshot.with_entry(member_id, day, value, reason)
        return snapshot

    def _become_ready(self) -> None:
        self._state = SessionState.READY
        self._notify_listeners()

        pending, self._pending_writes = self._pending_writes, []
        for member_id, day, value, reason in pending:
            self._apply(member_id, day, value, reason)

        if self._reload_pending and (self._reload_task is None or self._reload_task.done()):
            self._request_reload()

    def _handle_open_failure(self, error: LoadError) -> None:
        self.last_error = error
        logger.error(f"Loading team {self._team_id} failed: {error}")
        if self._snapshot is None:
            self._abandon_open()
        else:
            self._restore_visible_range()
            self._become_ready()
        self._notify_error(error)

    def _abandon_open(self) -> None:
        self._release_subscription()
        self._drop_pending_writes("load failed")
        self._reload_pending = False
        if self._snapshot is None:
            self._state = SessionState.CLOSED
        else:
            self._restore_visible_range()
            self._state = SessionState.READY

    def _restore_visible_range(self) -> None:
        """Point the session (and its subscription) back at the snapshot still shown"""
        snapshot = self._snapshot
        self._release_subscription()
        self._team_id, self._start_date, self._end_date = snapshot.team_id, snapshot.start_date, snapshot.end_date
        logger.info(f"Keeping team {snapshot.team_id}: {snapshot.start_date} to {snapshot.end_date}")
        try:
            self._unsubscribe = self.store.subscribe(
                snapshot.team_id, snapshot.start_date, snapshot.end_date, self.on_remote_change
            )
        except Exception as exc:
            logger.error(f"Re-subscribing to team {snapshot.team_id} failed, remote changes will be missed: {exc}")
            self._notify_error(exc)

    def _drop_pending_writes(self, why: str) -> None:
        pending, self._pending_writes = self._pending_writes, []
        for member_id, day, value, _ in pending:
            logger.warning(f"Dropping queued write for member {member_id} on {day}: {why}")
            self._outcomes.append(WriteOutcome(member_id=member_id, date=day, value=value, ok=False, error=why))

    def _cancel_reload(self) -> None:
        reload_task, self._reload_task = self._reload_task, None
        self._reload_pending = False
        if reload_task is not None and not reload_task.done():
            reload_task.cancel()

    def _release_subscription(self) -> None:
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is None:
            return
        try:
            unsubscribe()
        except Exception:
            logger.exception("Releasing store subscription failed")
