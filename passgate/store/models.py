# passgate/store/models.py
from datetime import date, datetime, time, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator

STATUS_ACTIVE = "active"


def parse_expiry(value: str) -> datetime:
    """
    Parse an expiry value into an aware UTC datetime.

    A bare date (``2025-11-15``) means midnight UTC at the start of that day.
    Naive datetimes are taken as UTC. Raises ValueError on anything else.
    """
    value = value.strip()
    if len(value) == 10:
        return datetime.combine(date.fromisoformat(value), time.min, tzinfo=timezone.utc)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class PassRecord(BaseModel):
    # Older clients send numeric ids (epoch millis)
    model_config = ConfigDict(coerce_numbers_to_str=True, extra="ignore")

    id: str
    pass_id: str
    name: str
    pass_status: str
    created_at: str | None = None
    issue_time: str | None = None
    expiry_date: str | None = None
    status: str = STATUS_ACTIVE

    def expires_at(self) -> datetime | None:
        if not self.expiry_date:
            return None
        return parse_expiry(self.expiry_date)

    def is_expired(self, now: datetime) -> bool:
        """True once ``now`` reaches expiry. Unparseable expiry counts as expired."""
        try:
            expires = self.expires_at()
        except ValueError:
            return True
        return expires is not None and expires <= now


class PassRecordIn(BaseModel):
    """Body of POST /api/whitelist: a record minus server-assigned fields."""

    model_config = ConfigDict(coerce_numbers_to_str=True, extra="ignore")

    id: str | None = None
    pass_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    pass_status: str = Field(min_length=1)
    issue_time: str | None = None
    expiry_date: str | None = None

    @field_validator("expiry_date")
    @classmethod
    def validate_expiry(cls, v):
        if v:
            parse_expiry(v)
        return v or None
