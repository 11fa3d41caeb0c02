from typing import Optional
from pydantic import BaseModel, Field, field_validator


class UpdateSettings(BaseModel):
    timezone_offset: Optional[str] = Field(default=None, description='e.g. "UTC-3" or "UTC+5:30"')
    default_hourly_rate: Optional[float] = Field(default=None, gt=0)
    currency: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, value):
        if value is None:
            return value
        value = value.strip().upper()
        if len(value) != 3 or not value.isalpha():
            raise ValueError("currency must be a three-letter ISO 4217 code")
        return value
