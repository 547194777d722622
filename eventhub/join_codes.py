"""Join code generation with store-enforced uniqueness."""

from __future__ import annotations

import logging
import secrets
from typing import Callable, TypeVar

from sqlalchemy.orm import Session

from .config import settings
from .crud import join_code_exists
from .errors import GenerationExhausted, JoinCodeCollision

logger = logging.getLogger("uvicorn.error")

T = TypeVar("T")


def generate_join_code(num_bytes: int | None = None) -> str:
    """Return a short lowercase hex token (two characters per byte)."""
    return secrets.token_hex(num_bytes or settings.join_code_bytes)


def issue_join_code(
    session: Session,
    insert: Callable[[str], T],
    *,
    attempts: int | None = None,
    generator: Callable[[], str] | None = None,
) -> T:
    """Generate a join code and hand it to ``insert`` until the store accepts it.

    ``insert`` must raise ``JoinCodeCollision`` when the unique constraint on
    the join code rejects the row. Codes already present are skipped before
    inserting; a constraint violation at insert time counts as a collision too.
    Raises ``GenerationExhausted`` once ``attempts`` codes have collided.
    """
    max_attempts = attempts or settings.join_code_attempts
    make_code = generator or generate_join_code
    for attempt in range(1, max_attempts + 1):
        candidate = make_code()
        if join_code_exists(session, candidate):
            logger.debug("Join code collision on attempt %d (pre-check)", attempt)
            continue
        try:
            return insert(candidate)
        except JoinCodeCollision:
            logger.debug("Join code collision on attempt %d (constraint)", attempt)
            continue
    logger.error("Failed to generate a unique join code after %d attempts", max_attempts)
    raise GenerationExhausted("Failed to generate join code")
