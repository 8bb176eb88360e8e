"""Error hierarchy for the quest engine.

Every error carries a stable ``code`` and the HTTP status the host surface
should use. Retryable storage conflicts are retried inside
``app.db.run_in_transaction`` and only escape as ``StorageConflictError``
once the attempts are exhausted.
"""

from __future__ import annotations


class QuestEngineError(Exception):
    """Base exception for all quest engine failures."""

    def __init__(self, message: str, code: str, http_status: int = 500):
        super().__init__(message)
        self.message = message
        self.code = code
        self.http_status = http_status

    def to_response(self) -> dict:
        return {"ok": False, "error": {"code": self.code, "message": self.message}}


class UnknownEventTypeError(QuestEngineError):
    """An event type outside the closed QuestEventType enum reached the engine."""

    def __init__(self, raw: str):
        super().__init__(f"Unknown quest event type: {raw!r}", "UNKNOWN_EVENT_TYPE", 400)
        self.raw = raw


class CatalogueMisconfiguredError(QuestEngineError):
    """Required quest templates are missing. A deployment error, not a request error."""

    def __init__(self, message: str):
        super().__init__(message, "QUEST_TEMPLATES_MISSING", 500)


class StorageConflictError(QuestEngineError):
    def __init__(self, attempts: int):
        super().__init__(
            f"Write conflict persisted after {attempts} attempts",
            "STORAGE_CONFLICT",
            409,
        )
        self.attempts = attempts


class StorageUnavailableError(QuestEngineError):
    def __init__(self, message: str = "Quest storage is unavailable"):
        super().__init__(message, "STORAGE_UNAVAILABLE", 503)


class SchemaMissingError(QuestEngineError):
    def __init__(self, table: str | None = None):
        target = table or "quest_progress"
        super().__init__(
            f"Database schema is missing a required table ({target}). "
            "Set CREATE_SCHEMA_ON_STARTUP=true or create the quest tables.",
            "SCHEMA_MISSING",
            500,
        )


class ServiceKeyRejectedError(QuestEngineError):
    def __init__(self):
        super().__init__("Invalid or missing API key", "UNAUTHORIZED", 401)
