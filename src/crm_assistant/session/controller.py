"""Chat session controller: rate limit, parse, process, settle."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum

from crm_assistant.config import CHAT_QUERY_POLICY, RateLimitPolicy
from crm_assistant.errors import ProcessingError, RateLimitExceeded
from crm_assistant.obs.tracing import Timer, TraceStore
from crm_assistant.query.parser import QueryParser
from crm_assistant.query.processor import QueryProcessor
from crm_assistant.security import sanitize_input
from crm_assistant.session.rate_limiter import FixedWindowRateLimiter, RateDecision
from crm_assistant.types import ChatTurn, DispatchTrace, Intent, TurnStatus

logger = logging.getLogger(__name__)

ERROR_MESSAGE = "I encountered an error processing your request. Please try again."
RATE_LIMIT_SCOPE = "chat"


class SessionState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    AWAITING_RESULT = "awaiting_result"
    RESOLVED = "resolved"
    FAILED = "failed"


class Transcript:
    """Turns in submission order, replaceable by turn id only."""

    def __init__(self) -> None:
        self._turns: dict[int, ChatTurn] = {}

    def append(self, turn: ChatTurn) -> None:
        if turn.turn_id in self._turns:
            raise ValueError(f"Turn {turn.turn_id} already exists")
        self._turns[turn.turn_id] = turn

    def replace(self, turn: ChatTurn) -> None:
        current = self._turns.get(turn.turn_id)
        if current is None:
            raise KeyError(f"Turn not found: {turn.turn_id}")
        if current.status is not TurnStatus.PENDING:
            raise ValueError(f"Turn {turn.turn_id} is already settled")
        self._turns[turn.turn_id] = turn

    def get(self, turn_id: int) -> ChatTurn:
        return self._turns[turn_id]

    def turns(self) -> list[ChatTurn]:
        return list(self._turns.values())

    def __len__(self) -> int:
        return len(self._turns)


@dataclass(slots=True)
class ChatSession:
    session_id: str
    business_id: str
    transcript: Transcript = field(default_factory=Transcript)
    state: SessionState = SessionState.IDLE
    last_outcome: SessionState | None = None
    next_turn_id: int = 1
    in_flight: int = 0


class ChatSessionController:
    """Composition root for the chat assistant.

    Per submission, in order and before the first suspension point: the rate
    window is consumed, a turn id is assigned and a loading placeholder is
    appended. The parse/process pipeline then runs and the placeholder is
    replaced in place by its own turn id, so turns that resolve out of order
    never overwrite each other.

    Every accepted submission ends in exactly one settled turn, resolved or
    failed. A denied submission creates no turn and raises
    `RateLimitExceeded`.
    """

    def __init__(
        self,
        processor: QueryProcessor,
        *,
        parser: QueryParser | None = None,
        rate_limiter: FixedWindowRateLimiter | None = None,
        policy: RateLimitPolicy | None = None,
        trace_store: TraceStore | None = None,
    ) -> None:
        self.processor = processor
        self.parser = parser or QueryParser()
        self.rate_limiter = rate_limiter or FixedWindowRateLimiter()
        self.policy = policy or CHAT_QUERY_POLICY
        self.trace_store = trace_store or TraceStore()
        self._sessions: dict[str, ChatSession] = {}
        self._observer: Callable[[ChatTurn], None] | None = None

    def set_observer(self, observer: Callable[[ChatTurn], None] | None) -> None:
        """Set a callback invoked with each placeholder and each settled turn."""
        self._observer = observer

    def session(self, session_id: str, business_id: str) -> "SessionHandle":
        self._session_for(session_id, business_id)
        return SessionHandle(controller=self, session_id=session_id, business_id=business_id)

    def get_session(self, session_id: str) -> ChatSession | None:
        return self._sessions.get(session_id)

    def transcript(self, session_id: str) -> list[ChatTurn]:
        session = self._sessions.get(session_id)
        return session.transcript.turns() if session else []

    def end_session(self, session_id: str) -> bool:
        """Drop a session, its transcript and its rate windows.

        Turns still in flight keep their own references and settle normally;
        they are simply no longer reachable through the controller.
        """
        session = self._sessions.pop(session_id, None)
        self.rate_limiter.drop_session(session_id)
        if session is not None:
            logger.info("Session %s ended after %d turns", session_id, len(session.transcript))
        return session is not None

    async def on_suggestion_click(
        self, session_id: str, business_id: str, suggestion: str, now: datetime
    ) -> ChatTurn:
        return await self.handle_submit(session_id, business_id, suggestion, now)

    async def handle_submit(
        self, session_id: str, business_id: str, text: str, now: datetime
    ) -> ChatTurn:
        """Run one user turn and return the settled `ChatTurn`.

        Raises:
            ValueError: if `text` is blank or the session belongs to another
                business.
            RateLimitExceeded: if the session's window is exhausted.
        """

        if not text or not text.strip():
            raise ValueError("Cannot submit an empty message")

        session = self._session_for(session_id, business_id)
        now_ms = now.timestamp() * 1000.0
        decision = self.rate_limiter.consume(
            session_id, self.policy, now_ms=now_ms, scope=RATE_LIMIT_SCOPE
        )
        if decision is RateDecision.DENIED:
            retry_after = self.rate_limiter.retry_after_ms(
                session_id, self.policy.window_length_ms, now_ms=now_ms, scope=RATE_LIMIT_SCOPE
            )
            raise RateLimitExceeded(session_id, scope=RATE_LIMIT_SCOPE, retry_after_ms=retry_after)

        session.state = SessionState.SUBMITTING
        placeholder = ChatTurn(
            turn_id=session.next_turn_id,
            session_id=session_id,
            user_message=sanitize_input(text.strip()),
            submitted_at=now,
        )
        session.next_turn_id += 1
        session.transcript.append(placeholder)
        session.in_flight += 1
        session.state = SessionState.AWAITING_RESULT
        logger.info("Turn %d submitted in session %s", placeholder.turn_id, session_id)
        self._notify(placeholder)

        observed: list[DispatchTrace] = []
        intent = Intent.UNKNOWN
        try:
            with Timer() as timer:
                query = self.parser.parse(placeholder.user_message, now)
                intent = query.intent
                result = await self.processor.process(
                    query, session.business_id, now, observer=observed.append
                )
        except ProcessingError as exc:
            logger.warning("Turn %d failed in session %s: %s", placeholder.turn_id, session_id, exc)
            return self._settle(
                session,
                replace(placeholder, status=TurnStatus.FAILED, assistant_message=ERROR_MESSAGE, intent=exc.intent),
                observed,
                timer.elapsed_ms,
            )
        except Exception:
            logger.exception("Unexpected error in turn %d of session %s", placeholder.turn_id, session_id)
            self._settle(
                session,
                replace(placeholder, status=TurnStatus.FAILED, assistant_message=ERROR_MESSAGE, intent=intent),
                observed,
                timer.elapsed_ms,
            )
            raise

        return self._settle(
            session,
            replace(
                placeholder,
                status=TurnStatus.RESOLVED,
                assistant_message=result.summary,
                intent=intent,
                result=result,
            ),
            observed,
            timer.elapsed_ms,
        )

    def _settle(
        self,
        session: ChatSession,
        turn: ChatTurn,
        observed: list[DispatchTrace],
        latency_ms: float,
    ) -> ChatTurn:
        session.transcript.replace(turn)
        session.in_flight -= 1
        session.last_outcome = (
            SessionState.RESOLVED if turn.status is TurnStatus.RESOLVED else SessionState.FAILED
        )
        session.state = SessionState.IDLE if session.in_flight == 0 else SessionState.AWAITING_RESULT

        self.trace_store.create_record(
            session_id=session.session_id,
            business_id=session.business_id,
            turn_id=turn.turn_id,
            question=turn.user_message,
            intent=(turn.intent or Intent.UNKNOWN).value,
            result_kind=turn.result.kind.value if turn.result else None,
            outcome=turn.status.value,
            summary=turn.assistant_message,
            dispatch_traces=observed,
            latency_ms=latency_ms,
            timestamp=turn.submitted_at,
        )
        logger.info(
            "Turn %d %s in session %s (%.1f ms)",
            turn.turn_id,
            turn.status.value,
            session.session_id,
            latency_ms,
        )
        self._notify(turn)
        return turn

    def _session_for(self, session_id: str, business_id: str) -> ChatSession:
        session = self._sessions.get(session_id)
        if session is None:
            session = ChatSession(session_id=session_id, business_id=business_id)
            self._sessions[session_id] = session
        elif session.business_id != business_id:
            raise ValueError(f"Session {session_id} is bound to another business")
        return session

    def _notify(self, turn: ChatTurn) -> None:
        # Observers are UI callbacks; their failures never change a turn's outcome.
        if self._observer is None:
            return
        try:
            self._observer(turn)
        except Exception:
            logger.exception(
                "Turn observer failed for turn %d of session %s", turn.turn_id, turn.session_id
            )


@dataclass(slots=True)
class SessionHandle:
    """Session-bound entry point handed to UI regions that open the chat."""

    controller: ChatSessionController
    session_id: str
    business_id: str

    async def submit(self, text: str, now: datetime | None = None) -> ChatTurn:
        return await self.controller.handle_submit(
            self.session_id, self.business_id, text, now or datetime.now(timezone.utc)
        )

    async def on_suggestion_click(self, suggestion: str, now: datetime | None = None) -> ChatTurn:
        return await self.submit(suggestion, now)

    def transcript(self) -> list[ChatTurn]:
        return self.controller.transcript(self.session_id)
