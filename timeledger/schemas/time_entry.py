from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from timeledger.models.time_entries import PaymentStatus, TimeEntry


class StartSession(BaseModel):
    hourly_rate: Optional[float] = Field(default=None, gt=0, description="Falls back to the default hourly rate in settings")
    notes: Optional[str] = None


class CreateTimeEntry(BaseModel):
    """A closed, backfilled entry. Naive times are wall-clock times in the owner's offset."""
    start_time: datetime
    end_time: datetime
    hourly_rate: Optional[float] = Field(default=None, gt=0)
    payment_status: PaymentStatus = PaymentStatus.NOT_PAID
    notes: Optional[str] = None


class EditTimeEntry(BaseModel):
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    hourly_rate: Optional[float] = Field(default=None, gt=0)
    payment_status: Optional[PaymentStatus] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def reject_null_fields(self):
        for field in ("start_time", "end_time", "hourly_rate", "payment_status"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self


class BulkPaymentStatus(BaseModel):
    entry_ids: List[int] = Field(..., min_length=1)
    payment_status: PaymentStatus


class BulkDelete(BaseModel):
    entry_ids: List[int] = Field(..., min_length=1)


class BulkFailure(BaseModel):
    entry_id: int
    error: str
    detail: str


class BulkResult(BaseModel):
    succeeded: List[int] = Field(default_factory=list)
    failed: List[BulkFailure] = Field(default_factory=list)


class ActiveSession(BaseModel):
    entry: TimeEntry
    elapsed_hours: float
    running_earned: float
