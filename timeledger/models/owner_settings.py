from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from timeledger.config import settings
from timeledger.exceptions import InvalidOffset
from timeledger.utils.timezone_utils import ensure_utc, parse_offset

UTC = timezone.utc


class OwnerSettings(BaseModel):
    owner_id: str
    timezone_offset: str = settings.DEFAULT_TIMEZONE_OFFSET
    default_hourly_rate: Optional[float] = Field(default=None, gt=0)
    currency: str = settings.DEFAULT_CURRENCY
    updated_at: Optional[datetime] = None

    @field_validator("timezone_offset")
    @classmethod
    def validate_offset(cls, value: str) -> str:
        try:
            parse_offset(value)
        except InvalidOffset as e:
            raise ValueError(e.detail)
        return value.strip().upper()

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, value: str) -> str:
        value = value.strip().upper()
        if len(value) != 3 or not value.isalpha():
            raise ValueError("currency must be a three-letter ISO 4217 code")
        return value

    @field_validator("updated_at")
    @classmethod
    def as_utc(cls, value):
        return ensure_utc(value)
