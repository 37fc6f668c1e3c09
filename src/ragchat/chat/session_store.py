"""Session store: persisted chat threads and the active-session pointer.

The active session is carried in an explicit ``ChatState`` value that every
operation receives, instead of living in module state. The pointer is
mirrored to the ``active_session`` setting so it survives restarts, and is
reset to None whenever it points at a missing or malformed session.

Lifecycle of a session:
    absent → draft (in memory only, no id) → persisted → updated … → deleted

Invariants:
- A stored session always has at least one message.
- A stored session never contains a message with ``streaming=True``.
- After every write the cached ``ChatState.sessions`` list is re-read from
  the store, so it reflects the write that just happened.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from ragchat.db.models import Message, Session, derive_title, now_ms, session_from_record
from ragchat.db.repository import ACTIVE_SESSION_KEY, Repository
from ragchat.errors import Invalid, SessionStateError, Valid, ValidationResult

logger = logging.getLogger(__name__)


@dataclass
class ChatState:
    """What the user currently sees: active session id, its messages, the session list."""

    current_session_id: str | None = None
    messages: list[Message] = field(default_factory=list)
    sessions: list[Session] = field(default_factory=list)

    @property
    def is_draft(self) -> bool:
        return self.current_session_id is None


class SessionStore:
    """Owns the stored representation of chat sessions.

    Args:
        repo: Open Repository.
        title_length: Characters of the first message used for the title.
        clock: Millisecond clock, injectable for tests.
    """

    def __init__(
        self,
        repo: Repository,
        title_length: int = 30,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._repo = repo
        self._title_length = title_length
        self._clock = clock

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def restore_state(self) -> ChatState:
        """Rebuild the visible state from the store.

        The persisted pointer is followed if it resolves to a valid session;
        otherwise it is cleared and the state starts as a fresh draft.
        """
        state = ChatState(sessions=self.list_sessions())
        pointer = self._repo.get_setting(ACTIVE_SESSION_KEY)
        if pointer:
            self.open_session(state, pointer)
        return state

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_draft_from_first_message(self, state: ChatState, message: Message) -> str:
        """Persist a new one-message session and make it active.

        Returns:
            The new session id.
        """
        if message.streaming:
            raise SessionStateError("the first message of a session cannot be streaming")

        session_id = self._new_session_id()
        now = self._clock()
        session = Session(
            id=session_id,
            title=derive_title(message.content, self._title_length),
            messages=[message],
            updated_at=now,
        )
        self._repo.put_session_record(session.to_record())

        state.messages = [message]
        self._set_active(state, session_id)
        state.sessions = self.list_sessions()
        return session_id

    def append_to_active_session(self, state: ChatState, message: Message) -> None:
        """Append *message* to the active session's in-memory message list.

        Raises:
            SessionStateError: If no session is active.
        """
        if state.current_session_id is None:
            raise SessionStateError("no active session to append to")
        state.messages.append(message)

    def persist_active_session(self, state: ChatState) -> Session:
        """Write the active session from ``state.messages`` as they are now.

        The stored title is kept when present, otherwise derived from the
        first message. If the stored record already has the same title and
        messages it is left untouched, so repeated calls are idempotent.
        The session list is re-read after the write.

        Raises:
            SessionStateError: No active session, no messages, or a message
                is still streaming.
        """
        session_id = state.current_session_id
        if session_id is None:
            raise SessionStateError("no active session to persist")
        if not state.messages:
            raise SessionStateError(f"session {session_id} has no messages")
        if any(m.streaming for m in state.messages):
            raise SessionStateError(
                f"session {session_id} has a message that is still streaming"
            )

        existing = self._stored_session(session_id)
        title = (
            existing.title
            if existing is not None and existing.title
            else derive_title(state.messages[0].content, self._title_length)
        )
        session = Session(
            id=session_id,
            title=title,
            messages=list(state.messages),
            updated_at=self._clock(),
        )

        if existing is not None and _same_content(existing, session):
            session = existing
        else:
            self._repo.put_session_record(session.to_record())

        state.sessions = self.list_sessions()
        return session

    def delete_session(self, state: ChatState, session_id: str) -> bool:
        """Delete a session; if it was active, the state becomes a fresh draft.

        Returns:
            True if a stored session was removed.
        """
        removed = self._repo.delete_session_record(session_id)
        if state.current_session_id == session_id:
            self.start_new_draft(state)
        state.sessions = self.list_sessions()
        return removed

    def start_new_draft(self, state: ChatState) -> None:
        """Clear the active pointer and messages (a new, unsaved conversation)."""
        state.messages = []
        self._set_active(state, None)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_sessions(self) -> list[Session]:
        """All valid sessions, most recently updated first.

        Records that fail validation are discarded and logged.
        """
        sessions: list[Session] = []
        for record in self._repo.list_session_records():
            result = session_from_record(record)
            if isinstance(result, Invalid):
                logger.warning("Discarding stored session: %s", result.reason)
                continue
            sessions.append(result.value)
        sessions.sort(key=lambda s: s.updated_at, reverse=True)
        return sessions

    def load_session(self, session_id: str) -> ValidationResult[Session]:
        """Return ``Valid(session)`` or ``Invalid(reason)``; never raises."""
        record = self._repo.get_session_record(session_id)
        if record is None:
            return Invalid(f"session {session_id} not found")
        return session_from_record(record)

    def open_session(self, state: ChatState, session_id: str) -> ValidationResult[Session]:
        """Make *session_id* the active session.

        On a missing or malformed session the pointer is cleared and the
        state becomes a fresh draft.
        """
        result = self.load_session(session_id)
        if isinstance(result, Valid):
            state.messages = list(result.value.messages)
            self._set_active(state, session_id)
        else:
            logger.warning("Resetting active session: %s", result.reason)
            self.start_new_draft(state)
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _stored_session(self, session_id: str) -> Session | None:
        result = self.load_session(session_id)
        return result.value if isinstance(result, Valid) else None

    def _set_active(self, state: ChatState, session_id: str | None) -> None:
        state.current_session_id = session_id
        if session_id is None:
            self._repo.delete_setting(ACTIVE_SESSION_KEY)
        else:
            self._repo.set_setting(ACTIVE_SESSION_KEY, session_id)

    def _new_session_id(self) -> str:
        """Creation-time id in milliseconds, bumped until unused."""
        candidate = self._clock()
        while self._repo.session_exists(str(candidate)):
            candidate += 1
        return str(candidate)


def _same_content(a: Session, b: Session) -> bool:
    return a.title == b.title and [m.to_record() for m in a.messages] == [
        m.to_record() for m in b.messages
    ]
