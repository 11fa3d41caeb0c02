import logging
from datetime import datetime, timezone
from typing import Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from timeledger.db import TIME_ENTRIES, next_sequence
from timeledger.exceptions import InvalidHourlyRate, InvalidInterval, NoActiveSession, SessionAlreadyActive
from timeledger.models.time_entries import TimeEntry, derive_totals
from timeledger.schemas.time_entry import ActiveSession
from timeledger.utils.settings_utils import get_owner_settings
from timeledger.utils.timezone_utils import ensure_utc, to_storage

UTC = timezone.utc

logger = logging.getLogger(__name__)


def resolve_hourly_rate(hourly_rate: Optional[float], default_hourly_rate: Optional[float]) -> float:
    rate = hourly_rate if hourly_rate is not None else default_hourly_rate
    if rate is None or rate <= 0:
        raise InvalidHourlyRate()
    return rate


async def get_open_entry(database, owner_id: str) -> Optional[dict]:
    return await database[TIME_ENTRIES].find_one({"owner_id": owner_id, "end_time": None})


async def start_session(database, owner_id: str, hourly_rate: Optional[float] = None,
                        notes: Optional[str] = None, now: Optional[datetime] = None) -> TimeEntry:
    """
    Opens a new session for the owner.
    Args:
        database: Motor database handle
        owner_id (str): the owner starting the session
        hourly_rate (float): rate snapshot for this entry, defaults to the owner's default rate
        notes (str): optional free text
        now (datetime): start instant, defaults to the current time
    Returns:
        TimeEntry: the open entry
    Raises:
        SessionAlreadyActive: if the owner already has an open entry
        InvalidHourlyRate: if no positive rate is given or configured
    """
    now = ensure_utc(now or datetime.now(UTC))
    owner_settings = await get_owner_settings(database, owner_id)
    rate = resolve_hourly_rate(hourly_rate, owner_settings.default_hourly_rate)

    if await get_open_entry(database, owner_id):
        raise SessionAlreadyActive()

    entry_id = await next_sequence(database, TIME_ENTRIES)
    entry = TimeEntry.create(
        entry_id=entry_id,
        owner_id=owner_id,
        start_time=now,
        hourly_rate=rate,
        offset=owner_settings.timezone_offset,
        notes=notes,
        now=now,
    )

    # The unique `active_owner` index turns this insert into the conditional write.
    try:
        await database[TIME_ENTRIES].insert_one(entry.to_document())
    except DuplicateKeyError:
        raise SessionAlreadyActive()

    logger.info("Session %s started for owner %s on %s", entry.id, owner_id, entry.local_date)
    return entry


async def stop_session(database, owner_id: str, entry_id: int, now: Optional[datetime] = None) -> TimeEntry:
    """
    Closes the owner's open entry `entry_id` at `now` and derives its totals.
    `local_date` stays the day the session started on.
    """
    now = ensure_utc(now or datetime.now(UTC))
    open_filter = {"_id": entry_id, "owner_id": owner_id, "end_time": None}

    document = await database[TIME_ENTRIES].find_one(open_filter)
    if not document:
        raise NoActiveSession()

    entry = TimeEntry.from_document(document)
    if now <= entry.start_time:
        raise InvalidInterval("Session cannot end before it started")

    total_hours, total_earned = derive_totals(entry.start_time, now, entry.hourly_rate)
    updated = await database[TIME_ENTRIES].find_one_and_update(
        open_filter,
        {
            "$set": {
                "end_time": to_storage(now),
                "total_hours": total_hours,
                "total_earned": total_earned,
                "updated_at": to_storage(now),
            },
            "$unset": {"active_owner": ""},
        },
        return_document=ReturnDocument.AFTER,
    )
    # Another stop closed it between the read and the write.
    if updated is None:
        raise NoActiveSession()

    logger.info("Session %s stopped for owner %s after %.2f hours", entry_id, owner_id, total_hours)
    return TimeEntry.from_document(updated)


async def get_active_session(database, owner_id: str, now: Optional[datetime] = None) -> Optional[ActiveSession]:
    """Read-only view of the running session, safe to poll at any cadence."""
    document = await get_open_entry(database, owner_id)
    if not document:
        return None

    now = ensure_utc(now or datetime.now(UTC))
    entry = TimeEntry.from_document(document)
    elapsed_hours = max(0.0, (now - entry.start_time).total_seconds() / 3600)
    return ActiveSession(
        entry=entry,
        elapsed_hours=elapsed_hours,
        running_earned=elapsed_hours * entry.hourly_rate,
    )
