"""Prompt construction: persona + library overview + retrieved context + history.

Pure functions only; nothing here knows which provider will run the prompt.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from ragchat.db.models import Chunk, Message, UserProfile

NO_MATCH_NOTICE = (
    "NO LOCAL DATA MATCHED. None of the user's documents are relevant to this "
    "query; do not cite or invent document sources."
)

_SYSTEM_TEMPLATE = """\
You are a personal knowledge assistant.

### USER PROFILE
Name: {name}
Role: {role}
Company: {company}
Bio, goals & mission: {bio}
Expertise: {stack}
Interests: {interests}

### HOW TO USE THE PROFILE
Use the profile to tailor answers that are about the user's work and goals.
Answer general or unrelated questions directly; do not force a connection to
the profile where none exists. Use the conversation history for continuity.

### DOCUMENT LIBRARY
Total documents: {doc_count}
Library index: {library}

### RETRIEVED EXCERPTS
{context}
{web_section}"""

_WEB_SECTION = """
### WEB SEARCH
If the excerpts above are insufficient or the question needs current
information, use web search and cite what you find. Keep private document
facts and public web facts clearly distinguished."""


@dataclass
class PromptFlags:
    live_search: bool = False
    history_turns: int = 12


@dataclass
class PromptSpec:
    """Provider-neutral prompt: a system instruction plus chat messages."""

    system: str
    messages: list[dict] = field(default_factory=list)

    def as_chat_messages(self) -> list[dict]:
        """OpenAI-style message list with the system prompt first."""
        return [{"role": "system", "content": self.system}, *self.messages]


def build_prompt(
    profile: UserProfile,
    history: Sequence[Message],
    query: str,
    chunks: Sequence[Chunk],
    all_titles: Sequence[str] = (),
    flags: PromptFlags | None = None,
) -> PromptSpec:
    """Assemble the prompt for one turn.

    Only the most recent ``flags.history_turns`` messages of *history* are
    included; streaming placeholders and empty messages are skipped. When
    *chunks* is empty the context section says so explicitly.
    """
    flags = flags or PromptFlags()

    if chunks:
        context = "\n\n".join(f"[Source: {c.document_title}]: {c.text}" for c in chunks)
    else:
        context = NO_MATCH_NOTICE

    system = _SYSTEM_TEMPLATE.format(
        name=profile.name or "the user",
        role=profile.role or "User",
        company=profile.company or "Not specified",
        bio=profile.bio or "General support",
        stack=", ".join(profile.technical_stack) or "General knowledge",
        interests=", ".join(profile.interests) or "Not specified",
        doc_count=len(all_titles),
        library=", ".join(all_titles) if all_titles else "Empty",
        context=context,
        web_section=_WEB_SECTION if flags.live_search else "",
    ).strip()

    messages = [
        {"role": m.role, "content": m.content}
        for m in trim_history(history, flags.history_turns)
    ]
    messages.append({"role": "user", "content": query})
    return PromptSpec(system=system, messages=messages)


def trim_history(history: Sequence[Message], turns: int) -> list[Message]:
    """Return the last *turns* completed, non-empty messages of *history*."""
    if turns <= 0:
        return []
    usable = [m for m in history if not m.streaming and m.content.strip()]
    return usable[-turns:]
