"""Utility helpers for eventhub."""

from __future__ import annotations

from datetime import UTC, datetime

IMAGE_PREFIXES = ("http://", "https://", "data:image/")


def utcnow() -> datetime:
    """Return a naive UTC datetime."""

    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Normalize aware datetimes to naive UTC; naive values are assumed UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def parse_datetime(raw: str | datetime | None) -> datetime | None:
    """Parse an ISO8601 string (or pass a datetime through) into naive UTC."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return to_naive_utc(raw)
    text = raw.strip()
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    return to_naive_utc(datetime.fromisoformat(text))


def is_blank(value: object) -> bool:
    """Return True for None, whitespace-only strings and empty collections."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def clean_images(images: list | None) -> list[str]:
    """Keep only image references that are URLs or inline data images."""
    if not images:
        return []
    return [
        img
        for img in images
        if isinstance(img, str) and img.startswith(IMAGE_PREFIXES)
    ]
