"""Shared pydantic base for stored journal documents."""

import math
import re
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

_NON_NUMERIC = re.compile(r"[^0-9.\-]")


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_amount(raw: Any) -> float:
    """Parse a stored currency amount, treating anything unparsable as 0.

    Strings have every character other than digits, '.' and '-' stripped first,
    so "$1,250.50" reads as 1250.5. None, NaN and infinities become 0.
    """
    if raw is None or isinstance(raw, bool):
        return 0.0
    if isinstance(raw, str):
        cleaned = _NON_NUMERIC.sub("", raw)
        try:
            value = float(cleaned)
        except ValueError:
            return 0.0
    else:
        try:
            value = float(raw)
        except (TypeError, ValueError):
            return 0.0
    if math.isnan(value) or math.isinf(value):
        return 0.0
    return value


class JournalModel(BaseModel):
    """Base for documents stored under users/{uid}/...

    The store keeps camelCase keys; models accept either spelling.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    id: str | None = None

    def to_document(self, exclude: set[str] | None = None) -> dict[str, Any]:
        """Serialize for the store. The id is the document key, so it is never written."""
        return self.model_dump(
            mode="json",
            by_alias=True,
            exclude={"id"} | (exclude or set()),
            exclude_none=True,
        )
