"""Exception taxonomy for the assistant core."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from crm_assistant.types import Intent


class CrmAssistantError(Exception):
    """Base class for errors raised by the assistant core."""


class InvalidScoreError(CrmAssistantError, ValueError):
    """An RFM score was outside the closed range [1, 5]."""

    def __init__(self, axis: str, value: object) -> None:
        super().__init__(f"{axis} score must be an integer in [1, 5], got {value!r}")
        self.axis = axis
        self.value = value


class RateLimitExceeded(CrmAssistantError):
    """A session submitted more queries than its window allows."""

    def __init__(
        self,
        session_id: str,
        *,
        scope: str = "chat",
        retry_after_ms: int = 0,
        notice: str = "Please wait a moment before asking another question.",
    ) -> None:
        super().__init__(f"Rate limit exceeded for session {session_id} ({scope})")
        self.session_id = session_id
        self.scope = scope
        self.retry_after_ms = retry_after_ms
        self.notice = notice


class ProcessingError(CrmAssistantError):
    """The data-access step failed while answering a query."""

    def __init__(self, intent: Intent, message: str | None = None) -> None:
        super().__init__(message or f"Failed to process {intent.value} query")
        self.intent = intent
