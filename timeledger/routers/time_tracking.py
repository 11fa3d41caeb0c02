from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pymongo.errors import PyMongoError

from timeledger.db import get_database
from timeledger.exceptions import TimeTrackingError, get_store_unavailable_exception, to_http_exception
from timeledger.models.owner_settings import OwnerSettings
from timeledger.models.time_entries import PaymentStatus, TimeEntry
from timeledger.schemas.invoice import TimeTrackingStats
from timeledger.schemas.settings import UpdateSettings
from timeledger.schemas.time_entry import (ActiveSession, BulkDelete, BulkPaymentStatus, BulkResult,
                                           CreateTimeEntry, EditTimeEntry, StartSession)
from timeledger.utils.app_utils import get_current_owner
from timeledger.utils.entry_utils import (bulk_delete_entries, bulk_update_payment_status, create_entry,
                                          delete_entry, get_entry, list_entries, update_entry)
from timeledger.utils.invoice_utils import compute_stats
from timeledger.utils.session_utils import get_active_session, start_session, stop_session
from timeledger.utils.settings_utils import get_owner_settings, update_owner_settings
from timeledger.utils.timezone_utils import today_in

router = APIRouter()


@router.post("/sessions/start", response_model=TimeEntry, status_code=status.HTTP_201_CREATED)
async def start_timer(
    body: StartSession,
    owner_id: str = Depends(get_current_owner),
    database=Depends(get_database),
):
    """
    Starts a time tracking session for the current user.
    The entry is attributed to the local date of the start instant in the
    user's configured timezone offset.
    Args:
        body (StartSession): optional hourly_rate (defaults to the settings rate) and notes
    Returns:
        TimeEntry: the open entry, with end_time, total_hours and total_earned null
    Raises:
        HTTPException:
            - 409 if a session is already active
            - 400 if no hourly rate is available
            - 503 if the database is unavailable
    """
    try:
        return await start_session(database, owner_id, body.hourly_rate, body.notes)
    except TimeTrackingError as e:
        raise to_http_exception(e)
    except PyMongoError as e:
        raise get_store_unavailable_exception(e)


@router.post("/sessions/{entry_id}/stop", response_model=TimeEntry)
async def stop_timer(
    entry_id: int,
    owner_id: str = Depends(get_current_owner),
    database=Depends(get_database),
):
    """
    Stops the active session and derives total hours and earnings.
    Raises:
        HTTPException:
            - 404 if `entry_id` is not the user's active session
            - 400 if the session would end before it started
    """
    try:
        return await stop_session(database, owner_id, entry_id)
    except TimeTrackingError as e:
        raise to_http_exception(e)
    except PyMongoError as e:
        raise get_store_unavailable_exception(e)


@router.get("/sessions/active", response_model=Optional[ActiveSession])
async def active_session(
    owner_id: str = Depends(get_current_owner),
    database=Depends(get_database),
):
    """
    Returns the running session with its elapsed hours, or null when idle.
    Read-only; clients may poll this at any interval.
    """
    try:
        return await get_active_session(database, owner_id)
    except PyMongoError as e:
        raise get_store_unavailable_exception(e)


@router.get("/entries", response_model=List[TimeEntry])
async def get_time_entries(
    start_date: Optional[date] = Query(None, description="First local date (YYYY-MM-DD)"),
    end_date: Optional[date] = Query(None, description="Last local date (YYYY-MM-DD)"),
    payment_status: Optional[PaymentStatus] = Query(None, description="Filter by payment status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    owner_id: str = Depends(get_current_owner),
    database=Depends(get_database),
):
    """
    Lists the current user's entries, newest first.
    """
    try:
        return await list_entries(database, owner_id, start_date, end_date, payment_status, skip=skip, limit=limit)
    except PyMongoError as e:
        raise get_store_unavailable_exception(e)


@router.post("/entries", response_model=TimeEntry, status_code=status.HTTP_201_CREATED)
async def create_time_entry(
    body: CreateTimeEntry,
    owner_id: str = Depends(get_current_owner),
    database=Depends(get_database),
):
    """
    Records a completed entry after the fact.
    Times without an offset are read as wall-clock times in the user's configured offset.
    Raises:
        HTTPException:
            - 400 if end_time is not after start_time or no hourly rate is available
    """
    try:
        return await create_entry(database, owner_id, body)
    except TimeTrackingError as e:
        raise to_http_exception(e)
    except PyMongoError as e:
        raise get_store_unavailable_exception(e)


@router.post("/entries/bulk/payment-status", response_model=BulkResult)
async def batch_update_payment_status(
    body: BulkPaymentStatus,
    owner_id: str = Depends(get_current_owner),
    database=Depends(get_database),
):
    """
    Sets the payment status of several entries.
    Each entry is updated on its own: ids that are missing or belong to another
    user are reported under `failed` and do not undo the successful updates.
    """
    return await bulk_update_payment_status(database, owner_id, body.entry_ids, body.payment_status)


@router.post("/entries/bulk/delete", response_model=BulkResult)
async def batch_delete_entries(
    body: BulkDelete,
    owner_id: str = Depends(get_current_owner),
    database=Depends(get_database),
):
    """Deletes several entries with per-entry results."""
    return await bulk_delete_entries(database, owner_id, body.entry_ids)


@router.get("/entries/{entry_id}", response_model=TimeEntry)
async def get_time_entry(
    entry_id: int,
    owner_id: str = Depends(get_current_owner),
    database=Depends(get_database),
):
    try:
        return await get_entry(database, owner_id, entry_id)
    except TimeTrackingError as e:
        raise to_http_exception(e)
    except PyMongoError as e:
        raise get_store_unavailable_exception(e)


@router.patch("/entries/{entry_id}", response_model=TimeEntry)
async def edit_time_entry(
    entry_id: int,
    body: EditTimeEntry,
    owner_id: str = Depends(get_current_owner),
    database=Depends(get_database),
):
    """
    Edits an entry's times, rate, payment status or notes.
    Totals are re-derived in the same write. The entry's local date only changes
    when the new start_time falls on a different day in the user's offset.
    Raises:
        HTTPException:
            - 404 if the entry does not exist
            - 403 if the entry belongs to another user
            - 400 if end_time would not be after start_time
    """
    try:
        return await update_entry(database, owner_id, entry_id, body)
    except TimeTrackingError as e:
        raise to_http_exception(e)
    except PyMongoError as e:
        raise get_store_unavailable_exception(e)


@router.delete("/entries/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_time_entry(
    entry_id: int,
    owner_id: str = Depends(get_current_owner),
    database=Depends(get_database),
):
    try:
        await delete_entry(database, owner_id, entry_id)
    except TimeTrackingError as e:
        raise to_http_exception(e)
    except PyMongoError as e:
        raise get_store_unavailable_exception(e)


@router.get("/stats", response_model=TimeTrackingStats)
async def get_stats(
    owner_id: str = Depends(get_current_owner),
    database=Depends(get_database),
):
    """
    Returns hours and earnings for today, this week and this month (in the
    user's local dates) plus unpaid, invoiced and paid amounts.
    """
    try:
        owner_settings = await get_owner_settings(database, owner_id)
        entries = await list_entries(database, owner_id, closed_only=True)
    except PyMongoError as e:
        raise get_store_unavailable_exception(e)

    return compute_stats(entries, today_in(owner_settings.timezone_offset))


@router.get("/settings", response_model=OwnerSettings)
async def get_settings(
    owner_id: str = Depends(get_current_owner),
    database=Depends(get_database),
):
    try:
        return await get_owner_settings(database, owner_id)
    except PyMongoError as e:
        raise get_store_unavailable_exception(e)


@router.put("/settings", response_model=OwnerSettings)
async def put_settings(
    body: UpdateSettings,
    owner_id: str = Depends(get_current_owner),
    database=Depends(get_database),
):
    """
    Updates the timezone offset, default hourly rate and currency.
    Existing entries keep the rate and local date they were recorded with.
    """
    try:
        return await update_owner_settings(database, owner_id, body)
    except TimeTrackingError as e:
        raise to_http_exception(e)
    except PyMongoError as e:
        raise get_store_unavailable_exception(e)
