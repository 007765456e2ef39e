"""
Schedule store contract and in-process change notification
"""
import itertools
import logging
import datetime as dt
from datetime import date
from typing import Callable, Dict, Optional, Protocol

from pydantic import BaseModel, ConfigDict

from models.schedule import ScheduleEntry

logger = logging.getLogger(__name__)

# member_id -> date key -> entry
EntryMap = Dict[int, Dict[str, ScheduleEntry]]


class StoreChange(BaseModel):
    """
    Coarse change notification. Carries no guarantee beyond
    "something in the subscribed range changed".
    """
    model_config = ConfigDict(frozen=True)

    team_id: Optional[int] = None
    member_id: Optional[int] = None
    date: Optional[dt.date] = None


ChangeCallback = Callable[[StoreChange], None]
Unsubscribe = Callable[[], None]


class ScheduleStore(Protocol):
    """
    External store the engine reads from and writes to.

    fetch_entries raises LoadError and write_entry raises WriteError on
    failure; an empty mapping from fetch_entries means "no entries".
    """

    async def fetch_entries(self, team_id: int, start_date: date, end_date: date) -> EntryMap:
        ...

    async def write_entry(
        self,
        member_id: int,
        day: date,
        value: Optional[str],
        reason: Optional[str] = None
    ) -> None:
        ...

    def subscribe(
        self,
        team_id: int,
        start_date: date,
        end_date: date,
        on_change: ChangeCallback
    ) -> Unsubscribe:
        ...


class ChangeNotifier:
    """
    Registry of (team, range) subscriptions. Delivery is at-least-once
    from the subscriber's point of view: every overlapping change fires.
    """

    def __init__(self):
        self._subscriptions: Dict[int, tuple] = {}
        self._ids = itertools.count(1)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(
        self,
        team_id: int,
        start_date: date,
        end_date: date,
        on_change: ChangeCallback
    ) -> Unsubscribe:
        subscription_id = next(self._ids)
        self._subscriptions[subscription_id] = (team_id, start_date, end_date, on_change)
        logger.debug(f"Subscription {subscription_id} opened for team {team_id} {start_date} to {end_date}")

        def unsubscribe():
            if self._subscriptions.pop(subscription_id, None) is not None:
                logger.debug(f"Subscription {subscription_id} closed")

        return unsubscribe

    def notify(self, team_id: Optional[int], day: date, member_id: Optional[int] = None) -> int:
        """
        Fire every subscription whose team and range cover the change.
        A None team matches every subscription.

        Returns:
            Number of subscribers notified
        """
        change = StoreChange(team_id=team_id, member_id=member_id, date=day)
        notified = 0
        for subscription_id, (sub_team, start, end, callback) in list(self._subscriptions.items()):
            if team_id is not None and sub_team != team_id:
                continue
            if not (start <= day <= end):
                continue
            try:
                callback(change)
            except Exception:
                logger.exception(f"Subscriber {subscription_id} failed handling change on {day}")
            notified += 1
        return notified
