import logging
from datetime import date, datetime, timezone
from typing import Awaitable, Callable, Iterable, List, Optional

from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from timeledger.db import TIME_ENTRIES, next_sequence
from timeledger.exceptions import EntryNotFound, InvalidInterval, NotOwner
from timeledger.models.time_entries import PaymentStatus, TimeEntry
from timeledger.schemas.time_entry import BulkFailure, BulkResult, CreateTimeEntry, EditTimeEntry
from timeledger.utils.session_utils import resolve_hourly_rate
from timeledger.utils.settings_utils import get_owner_settings
from timeledger.utils.timezone_utils import ensure_utc, local_date_of, to_storage, to_utc

UTC = timezone.utc

MAX_EDIT_ATTEMPTS = 3

logger = logging.getLogger(__name__)


def build_entries_query(owner_id: str, start_date: Optional[date] = None, end_date: Optional[date] = None,
                        payment_status: Optional[PaymentStatus] = None, closed_only: bool = False) -> dict:
    query = {"owner_id": owner_id}

    # local_date is stored as YYYY-MM-DD so string comparison follows calendar order
    date_range = {}
    if start_date:
        date_range["$gte"] = start_date.isoformat()
    if end_date:
        date_range["$lte"] = end_date.isoformat()
    if date_range:
        query["local_date"] = date_range

    if payment_status:
        query["payment_status"] = PaymentStatus(payment_status).value
    if closed_only:
        query["end_time"] = {"$ne": None}
    return query


async def list_entries(database, owner_id: str, start_date: Optional[date] = None, end_date: Optional[date] = None,
                       payment_status: Optional[PaymentStatus] = None, closed_only: bool = False,
                       skip: int = 0, limit: int = 0) -> List[TimeEntry]:
    """Owner's entries filtered by local date range and payment status, newest first."""
    query = build_entries_query(owner_id, start_date, end_date, payment_status, closed_only)
    cursor = database[TIME_ENTRIES].find(query, sort=[("start_time", DESCENDING)], skip=skip, limit=limit)
    documents = await cursor.to_list(length=None)
    return [TimeEntry.from_document(document) for document in documents]


async def get_owned_entry(database, owner_id: str, entry_id: int) -> dict:
    document = await database[TIME_ENTRIES].find_one({"_id": entry_id})
    if not document:
        raise EntryNotFound()
    if document["owner_id"] != owner_id:
        raise NotOwner()
    return document


async def get_entry(database, owner_id: str, entry_id: int) -> TimeEntry:
    return TimeEntry.from_document(await get_owned_entry(database, owner_id, entry_id))


async def create_entry(database, owner_id: str, payload: CreateTimeEntry, now: Optional[datetime] = None) -> TimeEntry:
    """
    Records a closed, backfilled entry.
    Args:
        database: Motor database handle
        owner_id (str): owner of the new entry
        payload (CreateTimeEntry): naive times are read as wall-clock times in the owner's offset
    Returns:
        TimeEntry: the stored entry with local_date and totals derived
    Raises:
        InvalidInterval: if end_time is not after start_time
        InvalidHourlyRate: if no positive rate is given or configured
    """
    now = ensure_utc(now or datetime.now(UTC))
    owner_settings = await get_owner_settings(database, owner_id)
    offset = owner_settings.timezone_offset

    start_time = to_utc(payload.start_time, offset)
    end_time = to_utc(payload.end_time, offset)
    if end_time <= start_time:
        raise InvalidInterval()
    rate = resolve_hourly_rate(payload.hourly_rate, owner_settings.default_hourly_rate)

    entry_id = await next_sequence(database, TIME_ENTRIES)
    entry = TimeEntry.create(
        entry_id=entry_id,
        owner_id=owner_id,
        start_time=start_time,
        end_time=end_time,
        hourly_rate=rate,
        offset=offset,
        payment_status=payload.payment_status,
        notes=payload.notes,
        now=now,
    )
    await database[TIME_ENTRIES].insert_one(entry.to_document())
    return entry


async def update_entry(database, owner_id: str, entry_id: int, patch: EditTimeEntry,
                       now: Optional[datetime] = None) -> TimeEntry:
    """
    Applies `patch` in a single write, re-deriving totals. local_date only
    moves when the new start_time falls on a different local day. Setting
    end_time on an open entry closes it.

    Only the patched and derived fields are written, conditional on the
    end_time that was read; if a stop lands in between, the patch is
    re-applied to the stopped entry.
    """
    now = ensure_utc(now or datetime.now(UTC))
    changes = patch.model_dump(exclude_unset=True)
    owner_settings = await get_owner_settings(database, owner_id)
    offset = owner_settings.timezone_offset

    for _ in range(MAX_EDIT_ATTEMPTS):
        current = await get_entry(database, owner_id, entry_id)

        start_time = to_utc(changes["start_time"], offset) if "start_time" in changes else current.start_time
        end_time = to_utc(changes["end_time"], offset) if "end_time" in changes else current.end_time
        if end_time is not None and end_time <= start_time:
            raise InvalidInterval()

        local_date = current.local_date
        if "start_time" in changes:
            new_local_date = local_date_of(start_time, offset)
            if new_local_date != current.local_date:
                local_date = new_local_date

        updated = TimeEntry(**{
            **current.model_dump(),
            **changes,
            "start_time": start_time,
            "end_time": end_time,
            "local_date": local_date,
            "updated_at": now,
        })

        document = updated.to_document()
        written = set(changes) | {"local_date", "total_hours", "total_earned", "updated_at"}
        update = {"$set": {key: document[key] for key in written}}
        if current.is_active and not updated.is_active:
            update["$unset"] = {"active_owner": ""}

        result = await database[TIME_ENTRIES].update_one(
            {"_id": entry_id, "owner_id": owner_id, "end_time": to_storage(current.end_time)},
            update,
        )
        if result.matched_count:
            return updated
        logger.info("Entry %s changed while being edited, re-reading", entry_id)

    raise EntryNotFound("Time entry changed while it was being edited, please retry")


async def delete_entry(database, owner_id: str, entry_id: int):
    await get_owned_entry(database, owner_id, entry_id)
    result = await database[TIME_ENTRIES].delete_one({"_id": entry_id, "owner_id": owner_id})
    if result.deleted_count == 0:
        raise EntryNotFound()


async def apply_per_entry(entry_ids: Iterable[int], operation: Callable[[int], Awaitable[None]]) -> BulkResult:
    """Runs `operation` for each distinct id; failures are collected, never rolled back."""
    result = BulkResult()
    for entry_id in dict.fromkeys(entry_ids):
        try:
            await operation(entry_id)
            result.succeeded.append(entry_id)
        except (EntryNotFound, NotOwner) as e:
            result.failed.append(BulkFailure(entry_id=entry_id, error=type(e).__name__, detail=e.detail))
        except PyMongoError as e:
            logger.warning("Store error on entry %s during bulk operation: %s", entry_id, e)
            result.failed.append(BulkFailure(entry_id=entry_id, error="StoreError", detail=str(e)))
    return result


async def bulk_update_payment_status(database, owner_id: str, entry_ids: List[int], payment_status: PaymentStatus,
                                     now: Optional[datetime] = None) -> BulkResult:
    now = ensure_utc(now or datetime.now(UTC))
    status_value = PaymentStatus(payment_status).value

    async def update_status(entry_id: int):
        await get_owned_entry(database, owner_id, entry_id)
        update_result = await database[TIME_ENTRIES].update_one(
            {"_id": entry_id, "owner_id": owner_id},
            {"$set": {"payment_status": status_value, "updated_at": to_storage(now)}},
        )
        if update_result.matched_count == 0:
            raise EntryNotFound()

    result = await apply_per_entry(entry_ids, update_status)
    logger.info("Payment status %s: %d updated, %d failed for owner %s",
                status_value, len(result.succeeded), len(result.failed), owner_id)
    return result


async def bulk_delete_entries(database, owner_id: str, entry_ids: List[int]) -> BulkResult:
    async def delete(entry_id: int):
        await delete_entry(database, owner_id, entry_id)

    result = await apply_per_entry(entry_ids, delete)
    logger.info("Bulk delete: %d deleted, %d failed for owner %s", len(result.succeeded), len(result.failed), owner_id)
    return result
