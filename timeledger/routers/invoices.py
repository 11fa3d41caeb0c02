from datetime import date
from typing import Literal, Optional, Union

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse
from pymongo.errors import PyMongoError

from timeledger.db import get_database
from timeledger.exceptions import InvalidInterval, get_store_unavailable_exception, to_http_exception
from timeledger.models.time_entries import PaymentStatus
from timeledger.schemas.invoice import InvoicePeriod, ShareLink, ShareLinkRequest
from timeledger.utils.app_utils import get_current_owner
from timeledger.utils.invoice_utils import compute_invoice, render_invoice_text
from timeledger.utils.settings_utils import get_owner_settings
from timeledger.utils.share_utils import build_share_link

router = APIRouter()


def check_date_range(start_date: Optional[date], end_date: Optional[date]):
    if start_date and end_date and end_date < start_date:
        raise to_http_exception(InvalidInterval("end_date must not be before start_date"))


@router.get("", response_model=InvoicePeriod)
async def get_invoice(
    start_date: Optional[date] = Query(None, description="First local date (YYYY-MM-DD)"),
    end_date: Optional[date] = Query(None, description="Last local date (YYYY-MM-DD)"),
    payment_status: Optional[PaymentStatus] = Query(None, description="Only entries with this payment status"),
    order: Literal["asc", "desc"] = Query("asc", description="Day order, earliest first by default"),
    owner_id: str = Depends(get_current_owner),
    database=Depends(get_database),
):
    """
    Aggregates the current user's completed entries into an invoice period.
    Args:
        start_date, end_date: inclusive range of local dates
        payment_status: optional payment status filter
        order: "asc" for invoice documents, "desc" for most recent first
    Returns:
        InvoicePeriod: entries grouped by local date with day and period totals.
        Open sessions are never included.
    """
    check_date_range(start_date, end_date)
    try:
        return await compute_invoice(database, owner_id, start_date, end_date, payment_status, ascending=order == "asc")
    except PyMongoError as e:
        raise get_store_unavailable_exception(e)


@router.get("/summary-text", response_class=PlainTextResponse)
async def get_invoice_summary_text(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    payment_status: Union[PaymentStatus, Literal["all"]] = Query(
        PaymentStatus.NOT_PAID, description="Payment status to include, or \"all\" for every status"
    ),
    owner_id: str = Depends(get_current_owner),
    database=Depends(get_database),
):
    """
    Plain-text invoice summary with a daily breakdown, ready to paste into an email.
    Defaults to entries that have not been paid yet.
    """
    check_date_range(start_date, end_date)
    if payment_status == "all":
        payment_status = None
    try:
        owner_settings = await get_owner_settings(database, owner_id)
        period = await compute_invoice(database, owner_id, start_date, end_date, payment_status)
    except PyMongoError as e:
        raise get_store_unavailable_exception(e)

    return render_invoice_text(period, owner_settings.timezone_offset, owner_settings.currency)


@router.post("/share-links", response_model=ShareLink)
async def create_share_link(
    body: ShareLinkRequest,
    owner_id: str = Depends(get_current_owner),
):
    """
    Issues a signed, expiring link to a read-only view of this invoice query.
    The link carries the query, not the entries: opening it re-reads current
    data, so corrections made before it expires are visible.
    Returns:
        ShareLink: token, public_url and expires_at
    """
    return build_share_link(owner_id, body.start_date, body.end_date, body.payment_status, body.ttl_days)
