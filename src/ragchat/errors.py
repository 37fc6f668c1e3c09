"""Exception types and tagged validation results shared across ragchat."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


class CapabilityUnavailableError(EnvironmentError):
    """A provider capability cannot be used because its credentials are missing.

    Raised before any network call is attempted.
    """

    def __init__(self, capability: str, provider: str, env_var: str) -> None:
        self.capability = capability
        self.provider = provider
        self.env_var = env_var
        super().__init__(
            f"{capability} is unavailable: no API key for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


class ProviderError(RuntimeError):
    """A provider call failed (network, rate limit, timeout, malformed response)."""

    def __init__(self, capability: str, reason: str) -> None:
        self.capability = capability
        self.reason = reason
        super().__init__(f"{capability} failed: {reason}")


class IngestError(RuntimeError):
    """Ingestion of a single file failed.

    ``document_id`` is set when the document row was written before the
    failure; ``stored`` counts the chunks kept for it.
    """

    def __init__(
        self,
        name: str,
        reason: str,
        document_id: str | None = None,
        stored: int = 0,
    ) -> None:
        self.name = name
        self.reason = reason
        self.document_id = document_id
        self.stored = stored
        super().__init__(f"failed to process {name}: {reason}")


class TurnInProgressError(RuntimeError):
    """A query was sent while the previous answer is still streaming."""


class SessionStateError(ValueError):
    """A session operation was attempted in a state that does not allow it."""


@dataclass(frozen=True)
class Valid(Generic[T]):
    value: T


@dataclass(frozen=True)
class Invalid:
    reason: str


ValidationResult = Union[Valid[T], Invalid]
