from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from timeledger.config import settings
from timeledger.models.time_entries import PaymentStatus


class InvoiceLine(BaseModel):
    id: Optional[int] = None
    start_time: datetime
    end_time: datetime
    hourly_rate: Optional[float] = None
    total_hours: float
    total_earned: float
    payment_status: Optional[PaymentStatus] = None
    notes: Optional[str] = None


class InvoiceDay(BaseModel):
    date: date
    entries: List[InvoiceLine]
    total_hours: float
    total_earned: float


class InvoicePeriod(BaseModel):
    days: List[InvoiceDay] = Field(default_factory=list)
    total_days: int = 0
    total_hours: float = 0.0
    total_earned: float = 0.0
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    currency: Optional[str] = None


class TimeTrackingStats(BaseModel):
    total_hours_today: float
    total_earned_today: float
    total_hours_week: float
    total_earned_week: float
    total_hours_month: float
    total_earned_month: float
    unpaid_amount: float
    invoiced_amount: float
    paid_amount: float


class ShareLinkRequest(BaseModel):
    start_date: date
    end_date: date
    payment_status: Optional[PaymentStatus] = None
    ttl_days: int = Field(default=settings.SHARE_LINK_DEFAULT_TTL_DAYS, ge=0, le=settings.SHARE_LINK_MAX_TTL_DAYS)

    @model_validator(mode="after")
    def check_range(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class ShareLink(BaseModel):
    token: str
    public_url: str
    expires_at: datetime


class ShareQuery(BaseModel):
    """The read-only invoice query carried inside a share token."""
    owner_id: str
    start_date: date
    end_date: date
    payment_status: Optional[PaymentStatus] = None
    issued_at: datetime
    expires_at: datetime

    @model_validator(mode="after")
    def check_range(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self
