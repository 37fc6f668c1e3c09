"""Domain models for the ragchat store, plus record (de)serialization."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from ragchat.errors import Invalid, Valid, ValidationResult

ROLES = ("user", "assistant")


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass
class Document:
    id: str
    title: str
    raw_text: str
    source_type: str = "text"  # text | markdown | code | pdf
    category: str = "General"
    tags: list[str] = field(default_factory=list)
    created_at: int = field(default_factory=now_ms)


@dataclass
class Chunk:
    id: str
    document_id: str
    document_title: str
    text: str
    embedding: list[float] = field(default_factory=list)
    chunk_index: int = 0


@dataclass
class GroundingSource:
    title: str
    url: str


@dataclass
class Message:
    id: str
    role: str
    content: str
    timestamp: int = field(default_factory=now_ms)
    sources: list[str] = field(default_factory=list)
    grounding_sources: list[GroundingSource] | None = None
    streaming: bool = False

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
            "sources": list(self.sources),
            "streaming": self.streaming,
        }
        if self.grounding_sources:
            record["groundingSources"] = [
                {"title": g.title, "url": g.url} for g in self.grounding_sources
            ]
        return record


@dataclass
class Session:
    id: str
    title: str
    messages: list[Message]
    updated_at: int = field(default_factory=now_ms)

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "messages": [m.to_record() for m in self.messages],
            "updatedAt": self.updated_at,
        }


@dataclass
class UserProfile:
    name: str = ""
    role: str = ""
    company: str = ""
    bio: str = ""
    technical_stack: list[str] = field(default_factory=list)
    interests: list[str] = field(default_factory=list)
    last_updated: int = field(default_factory=now_ms)

    def to_record(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "role": self.role,
            "company": self.company,
            "bio": self.bio,
            "technicalStack": list(self.technical_stack),
            "interests": list(self.interests),
            "lastUpdated": self.last_updated,
        }

    @classmethod
    def from_record(cls, record: Any) -> UserProfile:
        """Build a profile from a stored record; unknown or bad fields fall back to defaults."""
        if not isinstance(record, dict):
            return cls()

        def _text(key: str) -> str:
            value = record.get(key, "")
            return value if isinstance(value, str) else ""

        def _strings(key: str) -> list[str]:
            value = record.get(key, [])
            if not isinstance(value, list):
                return []
            return [v for v in value if isinstance(v, str)]

        last = record.get("lastUpdated")
        return cls(
            name=_text("name"),
            role=_text("role"),
            company=_text("company"),
            bio=_text("bio"),
            technical_stack=_strings("technicalStack"),
            interests=_strings("interests"),
            last_updated=last if isinstance(last, int) else now_ms(),
        )


# ------------------------------------------------------------------
# Record validation (store boundary)
# ------------------------------------------------------------------


def message_from_record(record: Any) -> ValidationResult[Message]:
    """Validate one stored message record."""
    if not isinstance(record, dict):
        return Invalid("message is not an object")
    msg_id = record.get("id")
    if not isinstance(msg_id, str) or not msg_id:
        return Invalid("message has no id")
    role = record.get("role")
    if role == "model":
        role = "assistant"
    if role not in ROLES:
        return Invalid(f"message {msg_id} has unknown role {role!r}")
    content = record.get("content")
    if not isinstance(content, str):
        return Invalid(f"message {msg_id} has no text content")
    timestamp = record.get("timestamp", 0)
    if not isinstance(timestamp, (int, float)):
        return Invalid(f"message {msg_id} has a non-numeric timestamp")

    sources = record.get("sources") or []
    if not isinstance(sources, list):
        return Invalid(f"message {msg_id} has malformed sources")

    grounding: list[GroundingSource] | None = None
    raw_grounding = record.get("groundingSources")
    if raw_grounding:
        if not isinstance(raw_grounding, list):
            return Invalid(f"message {msg_id} has malformed grounding sources")
        grounding = [
            GroundingSource(title=str(g.get("title") or "Web Source"), url=str(g["url"]))
            for g in raw_grounding
            if isinstance(g, dict) and g.get("url")
        ]

    return Valid(
        Message(
            id=msg_id,
            role=role,
            content=content,
            timestamp=int(timestamp),
            sources=[str(s) for s in sources],
            grounding_sources=grounding or None,
            # Stored messages are always complete.
            streaming=False,
        )
    )


def session_from_record(record: Any) -> ValidationResult[Session]:
    """Validate a stored session record.

    Returns ``Valid(Session)`` or ``Invalid(reason)``; never raises.
    """
    if not isinstance(record, dict):
        return Invalid("session record is not an object")
    session_id = record.get("id")
    if not isinstance(session_id, str) or not session_id:
        return Invalid("session record has no id")
    raw_messages = record.get("messages")
    if not isinstance(raw_messages, list):
        return Invalid(f"session {session_id} messages is not a list")
    if not raw_messages:
        return Invalid(f"session {session_id} has no messages")

    messages: list[Message] = []
    for raw in raw_messages:
        result = message_from_record(raw)
        if isinstance(result, Invalid):
            return Invalid(f"session {session_id}: {result.reason}")
        messages.append(result.value)

    title = record.get("title")
    if not isinstance(title, str) or not title:
        title = derive_title(messages[0].content)
    updated_at = record.get("updatedAt", 0)
    if not isinstance(updated_at, (int, float)):
        updated_at = 0

    return Valid(
        Session(
            id=session_id,
            title=title,
            messages=messages,
            updated_at=int(updated_at),
        )
    )


def derive_title(content: str, length: int = 30) -> str:
    """Session title from a fixed-length prefix of the first message."""
    return content[:length] + "..."
