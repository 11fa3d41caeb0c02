"""
Invoice aggregation over time entries.

Entries are grouped by the local calendar day they are attributed to and
summed per day and per period. Hours and earnings keep full float precision
here; rounding to cents happens only in `format_currency`.
"""
import math
from collections import defaultdict
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, TypeAdapter

from timeledger.models.time_entries import PaymentStatus, TimeEntry, derive_totals
from timeledger.schemas.invoice import InvoiceDay, InvoiceLine, InvoicePeriod, TimeTrackingStats
from timeledger.utils.entry_utils import list_entries
from timeledger.utils.settings_utils import get_owner_settings
from timeledger.utils.timezone_utils import ensure_utc, local_date_of, to_local

CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£", "BRL": "R$", "JPY": "¥", "INR": "₹"}

INVOICED_STATUSES = (PaymentStatus.INVOICED_NOT_APPROVED, PaymentStatus.INVOICED_APPROVED)

instant_adapter = TypeAdapter(datetime)


def _as_fields(entry: Union[TimeEntry, dict]) -> dict:
    if isinstance(entry, BaseModel):
        return entry.model_dump()
    fields = dict(entry)
    if "id" not in fields and "_id" in fields:
        fields["id"] = fields["_id"]
    # Serialized entries carry ISO 8601 strings such as "2025-04-01T02:30:00Z".
    for key in ("start_time", "end_time"):
        if isinstance(fields.get(key), str):
            fields[key] = instant_adapter.validate_python(fields[key])
    return fields


def _entry_local_date(fields: dict, offset: str) -> date:
    # Trust the stored attribution; derive only for raw entries that lack one.
    stored = fields.get("local_date")
    if stored is None:
        return local_date_of(fields["start_time"], offset)
    if isinstance(stored, str):
        return date.fromisoformat(stored)
    return stored


def _invoice_line(fields: dict) -> InvoiceLine:
    start_time = ensure_utc(fields["start_time"])
    end_time = ensure_utc(fields["end_time"])
    total_hours = fields.get("total_hours")
    total_earned = fields.get("total_earned")
    if total_hours is None or total_earned is None:
        total_hours, total_earned = derive_totals(start_time, end_time, fields["hourly_rate"])

    return InvoiceLine(
        id=fields.get("id"),
        start_time=start_time,
        end_time=end_time,
        hourly_rate=fields.get("hourly_rate"),
        total_hours=total_hours,
        total_earned=total_earned,
        payment_status=fields.get("payment_status"),
        notes=fields.get("notes"),
    )


def aggregate_entries(entries: Iterable[Union[TimeEntry, dict]], offset: str, ascending: bool = False) -> InvoicePeriod:
    """
    Group closed entries by local date and total them.
    Args:
        entries: TimeEntry models or raw entry mappings
        offset (str): owner's offset, used only for entries without a local_date
        ascending (bool): day order; listings show newest first, invoice documents oldest first
    Returns:
        InvoicePeriod: per-day groups with entries in start order, plus period totals
    """
    lines_by_date: Dict[date, List[InvoiceLine]] = defaultdict(list)
    for entry in entries:
        fields = _as_fields(entry)
        if fields.get("end_time") is None:
            continue
        lines_by_date[_entry_local_date(fields, offset)].append(_invoice_line(fields))

    days = []
    for day in sorted(lines_by_date):
        lines = sorted(lines_by_date[day], key=lambda line: line.start_time)
        days.append(InvoiceDay(
            date=day,
            entries=lines,
            total_hours=sum(line.total_hours for line in lines),
            total_earned=sum(line.total_earned for line in lines),
        ))

    # Period totals are summed in calendar order so both orderings agree exactly.
    total_hours = sum(day.total_hours for day in days)
    total_earned = sum(day.total_earned for day in days)
    if not ascending:
        days.reverse()

    return InvoicePeriod(
        days=days,
        total_days=len(days),
        total_hours=total_hours,
        total_earned=total_earned,
        start_date=min(lines_by_date) if lines_by_date else None,
        end_date=max(lines_by_date) if lines_by_date else None,
    )


async def compute_invoice(database, owner_id: str, start_date: Optional[date], end_date: Optional[date],
                          payment_status: Optional[PaymentStatus] = None, ascending: bool = True) -> InvoicePeriod:
    """Live aggregation of the owner's closed entries matching the filters."""
    owner_settings = await get_owner_settings(database, owner_id)
    entries = await list_entries(database, owner_id, start_date, end_date, payment_status, closed_only=True)
    period = aggregate_entries(entries, owner_settings.timezone_offset, ascending=ascending)
    period.currency = owner_settings.currency
    return period


def compute_stats(entries: Iterable[TimeEntry], today: date) -> TimeTrackingStats:
    """Today/week/month totals by local date (weeks start on Monday) and amounts by payment state."""
    week_start = today - timedelta(days=today.weekday())
    week_end = week_start + timedelta(days=6)
    totals = defaultdict(float)

    for entry in entries:
        if entry.end_time is None:
            continue
        if entry.local_date == today:
            totals["hours_today"] += entry.total_hours
            totals["earned_today"] += entry.total_earned
        if week_start <= entry.local_date <= week_end:
            totals["hours_week"] += entry.total_hours
            totals["earned_week"] += entry.total_earned
        if (entry.local_date.year, entry.local_date.month) == (today.year, today.month):
            totals["hours_month"] += entry.total_hours
            totals["earned_month"] += entry.total_earned

        if entry.payment_status == PaymentStatus.NOT_PAID:
            totals["unpaid"] += entry.total_earned
        elif entry.payment_status in INVOICED_STATUSES:
            totals["invoiced"] += entry.total_earned
        elif entry.payment_status == PaymentStatus.PAID:
            totals["paid"] += entry.total_earned

    return TimeTrackingStats(
        total_hours_today=totals["hours_today"],
        total_earned_today=totals["earned_today"],
        total_hours_week=totals["hours_week"],
        total_earned_week=totals["earned_week"],
        total_hours_month=totals["hours_month"],
        total_earned_month=totals["earned_month"],
        unpaid_amount=totals["unpaid"],
        invoiced_amount=totals["invoiced"],
        paid_amount=totals["paid"],
    )


def round_currency(amount: float) -> Decimal:
    return Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def format_currency(amount: float, currency: str = "USD") -> str:
    rounded = round_currency(amount)
    symbol = CURRENCY_SYMBOLS.get(currency)
    if symbol:
        return f"{symbol}{rounded:,.2f}"
    return f"{rounded:,.2f} {currency}"


def format_duration(hours: float) -> str:
    whole_hours = math.floor(hours)
    minutes = round((hours - whole_hours) * 60)
    if minutes == 60:
        whole_hours += 1
        minutes = 0
    return f"{whole_hours}h {minutes}m"


def render_invoice_text(period: InvoicePeriod, offset: str, currency: str = "USD") -> str:
    """Plain-text invoice summary with a daily breakdown, times shown in the owner's offset."""
    days = sorted(period.days, key=lambda day: day.date)
    lines = ["INVOICE SUMMARY"]
    if period.start_date and period.end_date:
        lines.append(f"Period: {period.start_date:%b %d} - {period.end_date:%b %d, %Y}")
    lines.append(f"Total Days Worked: {period.total_days}")
    lines.append(f"Total Hours: {format_duration(period.total_hours)}")
    lines.append(f"Total Amount: {format_currency(period.total_earned, currency)}")
    lines.append("")
    lines.append("DAILY BREAKDOWN:")
    lines.append("================")
    lines.append("")

    for day in days:
        lines.append(f"{day.date:%A, %b %d, %Y}")
        for entry in day.entries:
            start = to_local(entry.start_time, offset)
            end = to_local(entry.end_time, offset)
            line = f"  {start:%H:%M} - {end:%H:%M} ({format_duration(entry.total_hours)})"
            line += f" - {format_currency(entry.total_earned, currency)}"
            if entry.notes:
                line += f" - {entry.notes}"
            lines.append(line)
        lines.append(f"  Day Total: {format_duration(day.total_hours)} = {format_currency(day.total_earned, currency)}")
        lines.append("")

    return "\n".join(lines)
