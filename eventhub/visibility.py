"""Completeness check gating the private to public transition."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from .utils import is_blank

PUBLIC_REQUIRED_FIELDS = (
    "name",
    "description",
    "organizer_name",
    "start_at",
    "end_at",
    "location",
    "images",
)


@dataclass(frozen=True)
class PublishCheck:
    ok: bool
    missing: list[str] = field(default_factory=list)


def can_publish(candidate: Mapping[str, Any]) -> PublishCheck:
    """Report every public-required field that is absent or blank."""
    missing = [name for name in PUBLIC_REQUIRED_FIELDS if is_blank(candidate.get(name))]
    return PublishCheck(ok=not missing, missing=missing)
