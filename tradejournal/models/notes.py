"""Notes and saved links. Independent of challenges."""

from urllib.parse import urlsplit

from pydantic import BaseModel, Field, field_validator

from tradejournal.models.base import JournalModel, utc_now_iso


def normalize_url(url: str) -> str:
    """Ensure a URL carries a scheme, defaulting to https.

    Raises:
        ValueError: If the URL is empty or has no host.
    """
    url = url.strip()
    if not url:
        raise ValueError("URL is required")
    formatted = url if url.startswith("http") else f"https://{url}"
    parts = urlsplit(formatted)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValueError(f"Invalid URL: {url}")
    return formatted


class Note(JournalModel):
    title: str = ""
    content: str = ""
    created_at: str = Field(default_factory=utc_now_iso)


class Link(JournalModel):
    title: str = ""
    url: str = ""
    created_at: str = Field(default_factory=utc_now_iso)


class NoteInput(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1)

    @field_validator("title", "content")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v


class LinkInput(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    url: str

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()

    @field_validator("url")
    @classmethod
    def _normalize(cls, v: str) -> str:
        return normalize_url(v)
