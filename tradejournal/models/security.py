"""Step-up verification enrollment record."""

from pydantic import Field

from tradejournal.models.base import JournalModel, utc_now_iso


class TotpEnrollment(JournalModel):
    """Stored at users/{uid}/totp. Presence with enabled=True means step-up is required."""

    secret: str
    enabled: bool = False
    created_at: str = Field(default_factory=utc_now_iso)
