"""Error taxonomy for the event lifecycle engine."""

from __future__ import annotations


class LifecycleError(Exception):
    """Base class for errors reported back to callers."""

    code = "LifecycleError"
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def as_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class ValidationError(LifecycleError):
    """Malformed input; names the offending field and the broken constraint."""

    code = "ValidationError"

    def __init__(self, field: str, constraint: str) -> None:
        super().__init__(f"{field}: {constraint}")
        self.field = field
        self.constraint = constraint

    def as_dict(self) -> dict:
        payload = super().as_dict()
        payload["field"] = self.field
        payload["constraint"] = self.constraint
        return payload


class EventClosed(ValidationError):
    """Raised when joining an event that is completed or cancelled."""

    code = "EventClosed"

    def __init__(self, phase: str) -> None:
        super().__init__("phase", f"event is {phase} and can no longer be joined")
        self.phase = phase


class MissingFieldsError(LifecycleError):
    """Raised when an event lacks fields required to become public."""

    code = "MissingFields"

    def __init__(self, missing: list[str]) -> None:
        super().__init__(
            "Event cannot be made public until all required fields are filled in"
        )
        self.missing = list(missing)

    def as_dict(self) -> dict:
        payload = super().as_dict()
        payload["missing_fields"] = self.missing
        return payload


class GenerationExhausted(LifecycleError):
    """Every join code attempt collided with an existing one."""

    code = "GenerationExhausted"
    status_code = 500


class NotFound(LifecycleError):
    code = "NotFound"
    status_code = 404


class Forbidden(LifecycleError):
    code = "Forbidden"
    status_code = 403


class JoinCodeCollision(Exception):
    """The store rejected a join code because another event already holds it."""

    def __init__(self, join_code: str) -> None:
        super().__init__(f"Join code {join_code!r} already in use")
        self.join_code = join_code
