"""In-memory chat sessions standing in for the history store."""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from cuid2 import cuid_wrapper

from claude_chat.models.conversation import HistoryTurn
from claude_chat.models.llm import TurnResult
from claude_chat.utils.logging import get_logger

logger = get_logger(__name__)

cuid = cuid_wrapper()


@dataclass
class Session:
    """A chat: finalized history plus running token totals."""

    session_id: str
    history: list[HistoryTurn] = field(default_factory=list)
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cost: float = 0.0
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    last_activity: datetime = field(default_factory=lambda: datetime.now(UTC))

    def as_dict(self) -> dict[str, Any]:
        """Return the session summary as a dictionary."""
        return {
            "session_id": self.session_id,
            "turns": len(self.history),
            "total_input_tokens": self.total_input_tokens,
            "total_output_tokens": self.total_output_tokens,
            "total_cost": round(self.total_cost, 6),
            "created_at": self.created_at.isoformat(),
            "last_activity": self.last_activity.isoformat(),
        }

    def update_activity(self) -> None:
        """Update the last activity timestamp."""
        self.last_activity = datetime.now(UTC)

    def commit_turn(self, user_text: str, result: TurnResult) -> None:
        """Record a completed turn. Failed turns are never committed."""
        self.history.append(HistoryTurn(role="user", text=user_text))
        self.history.append(HistoryTurn(role="assistant", text=result.text))
        self.total_input_tokens += result.usage.input_tokens
        self.total_output_tokens += result.usage.output_tokens
        self.total_cost += result.cost
        self.update_activity()
        logger.debug(f"Committed turn to session {self.session_id}: {self.as_dict()}")

    def clear(self) -> None:
        """Forget the history but keep the running totals."""
        self.history.clear()
        self.update_activity()


class InMemorySessionManager:
    """In-memory session storage with idle expiry."""

    def __init__(self, session_timeout_minutes: int = 60):
        """Initialize session manager.

        Args:
            session_timeout_minutes: Minutes before session expires
        """
        self.sessions: dict[str, Session] = {}
        self.session_timeout = timedelta(minutes=session_timeout_minutes)

    def get_or_create_session(self, session_id: str | None = None) -> Session:
        """Get existing session or create new one."""
        self._cleanup_expired_sessions()

        if session_id and session_id in self.sessions:
            session = self.sessions[session_id]
            session.update_activity()
            return session

        new_session_id = session_id or self._generate_session_id()
        session = Session(session_id=new_session_id)
        self.sessions[new_session_id] = session
        return session

    def get_session(self, session_id: str) -> Session | None:
        """Get existing session by ID, or None if missing or expired."""
        self._cleanup_expired_sessions()

        session = self.sessions.get(session_id)
        if session:
            session.update_activity()
        return session

    def delete_session(self, session_id: str) -> bool:
        """Delete a session. Returns False if it was not found."""
        if session_id in self.sessions:
            del self.sessions[session_id]
            return True
        return False

    def _generate_session_id(self) -> str:
        """Generate a new CUID-based session ID."""
        return cuid()

    def _cleanup_expired_sessions(self) -> None:
        """Remove expired sessions from memory."""
        current_time = datetime.now(UTC)
        expired_sessions = [
            session_id
            for session_id, session in self.sessions.items()
            if current_time - session.last_activity > self.session_timeout
        ]

        for session_id in expired_sessions:
            logger.info(f"Expiring idle session {session_id}")
            del self.sessions[session_id]

    def get_session_count(self) -> int:
        """Get current number of active sessions."""
        self._cleanup_expired_sessions()
        return len(self.sessions)


session_manager = InMemorySessionManager()
