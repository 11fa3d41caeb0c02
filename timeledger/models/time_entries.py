from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

from timeledger.utils.timezone_utils import ensure_utc, local_date_of, to_storage

UTC = timezone.utc


class PaymentStatus(str, Enum):
    NOT_PAID = "not_paid"
    INVOICED_NOT_APPROVED = "invoiced_not_approved"
    INVOICED_APPROVED = "invoiced_approved"
    PAID = "paid"


def derive_totals(start_time: datetime, end_time: Optional[datetime], hourly_rate: float) -> Tuple[Optional[float], Optional[float]]:
    """Hours and earnings of an interval; both None while the session is open."""
    if end_time is None:
        return None, None
    total_hours = (ensure_utc(end_time) - ensure_utc(start_time)).total_seconds() / 3600
    return total_hours, total_hours * hourly_rate


class TimeEntry(BaseModel):
    id: int
    owner_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    local_date: date  # calendar day in the owner's offset, fixed at creation
    hourly_rate: float = Field(gt=0)
    total_hours: Optional[float] = None
    total_earned: Optional[float] = None
    payment_status: PaymentStatus = PaymentStatus.NOT_PAID
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @field_validator("start_time", "end_time", "created_at", "updated_at")
    @classmethod
    def as_utc(cls, value):
        return ensure_utc(value)

    @model_validator(mode="after")
    def check_interval_and_totals(self):
        if self.end_time is not None and self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        self.total_hours, self.total_earned = derive_totals(self.start_time, self.end_time, self.hourly_rate)
        return self

    @property
    def is_active(self) -> bool:
        return self.end_time is None

    @classmethod
    def create(cls, entry_id: int, owner_id: str, start_time: datetime, hourly_rate: float, offset: str,
               end_time: Optional[datetime] = None, payment_status: PaymentStatus = PaymentStatus.NOT_PAID,
               notes: Optional[str] = None, now: Optional[datetime] = None) -> "TimeEntry":
        """Build a new entry, attributing it to the local day of `start_time` at `offset`."""
        now = now or datetime.now(UTC)
        return cls(
            id=entry_id,
            owner_id=owner_id,
            start_time=start_time,
            end_time=end_time,
            local_date=local_date_of(start_time, offset),
            hourly_rate=hourly_rate,
            payment_status=payment_status,
            notes=notes,
            created_at=now,
            updated_at=now,
        )

    def to_document(self) -> dict:
        document = {
            "_id": self.id,
            "owner_id": self.owner_id,
            "start_time": to_storage(self.start_time),
            "end_time": to_storage(self.end_time),
            "local_date": self.local_date.isoformat(),
            "hourly_rate": self.hourly_rate,
            "total_hours": self.total_hours,
            "total_earned": self.total_earned,
            "payment_status": self.payment_status.value,
            "notes": self.notes,
            "created_at": to_storage(self.created_at),
            "updated_at": to_storage(self.updated_at),
        }
        if self.is_active:
            document["active_owner"] = self.owner_id
        return document

    @classmethod
    def from_document(cls, document: dict) -> "TimeEntry":
        fields = {key: value for key, value in document.items() if key not in ("_id", "active_owner")}
        return cls(id=document["_id"], **fields)
