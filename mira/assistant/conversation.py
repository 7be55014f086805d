"""
Conversation log with durable persistence

Holds the ordered user/assistant turns of the chat and mirrors every
mutation to the durable store under the ``chatMessages`` logical name.

Features:
- Utterances: immutable text tagged with where it came from (typed, transcribed, reply scan)
- Append-only turns with ids and timestamps
- Completion history: role + content only, identifiers and timestamps stripped
- Reset: truncates to a single seed greeting

A missing or corrupt stored log loads as the seed greeting. Failed writes
are logged; the in-memory log stays authoritative for the session.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Literal

from mira.assistant import messages
from mira.assistant.store import StoreError

if TYPE_CHECKING:
    from mira.assistant.store import JsonStore

LOGGER = logging.getLogger("mira.conversation")

CONVERSATION_KEY = "chatMessages"

Role = Literal["user", "assistant"]
ROLES: frozenset[str] = frozenset({"user", "assistant"})


class UtteranceOrigin(str, Enum):
    TYPED = "typed"
    TRANSCRIBED = "transcribed"
    REPLY_SCAN = "reply_scan"


@dataclass(frozen=True, slots=True)
class Utterance:
    text: str
    origin: UtteranceOrigin = UtteranceOrigin.TYPED


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class Turn:
    role: Role
    content: str
    timestamp: datetime = field(default_factory=_utc_now)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> dict[str, str]:
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }

    @staticmethod
    def from_dict(data: dict) -> Turn | None:
        role = data.get("role")
        content = data.get("content")
        if role not in ROLES or not isinstance(content, str):
            return None
        timestamp = _utc_now()
        raw_timestamp = data.get("timestamp")
        if isinstance(raw_timestamp, str):
            try:
                timestamp = datetime.fromisoformat(raw_timestamp.replace("Z", "+00:00"))
            except ValueError:
                pass
        turn_id = str(data.get("id") or uuid.uuid4().hex)
        return Turn(role=role, content=content, timestamp=timestamp, id=turn_id)


def seed_turns() -> list[Turn]:
    return [Turn(role="assistant", content=messages.GREETING)]


class ConversationLog:
    """Ordered, persisted conversation turns."""

    def __init__(self, store: JsonStore | None = None, logger: logging.Logger | None = None) -> None:
        self._store = store
        self._logger = logger or LOGGER
        self._turns: list[Turn] = self._load()

    @property
    def turns(self) -> tuple[Turn, ...]:
        return tuple(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    @property
    def last(self) -> Turn | None:
        return self._turns[-1] if self._turns else None

    def append(self, role: Role, content: str) -> Turn:
        if role not in ROLES:
            raise ValueError(f"Unsupported role: {role}")
        turn = Turn(role=role, content=content)
        self._turns.append(turn)
        self._persist()
        return turn

    def append_user(self, utterance: Utterance) -> Turn:
        return self.append("user", utterance.text)

    def append_assistant(self, content: str) -> Turn:
        return self.append("assistant", content)

    def history_for_completion(self) -> list[dict[str, str]]:
        """Role and content of every turn, in order."""
        return [{"role": turn.role, "content": turn.content} for turn in self._turns]

    def reset(self) -> None:
        self._turns = seed_turns()
        self._persist()
        self._logger.info("[conversation] Conversation reset")

    def _load(self) -> list[Turn]:
        if self._store is None:
            return seed_turns()
        raw = self._store.load(CONVERSATION_KEY, default=None)
        if not isinstance(raw, list):
            return seed_turns()
        turns = [turn for turn in (Turn.from_dict(item) for item in raw if isinstance(item, dict)) if turn]
        if not turns:
            return seed_turns()
        self._logger.debug("[conversation] Loaded %d turn(s)", len(turns))
        return turns

    def _persist(self) -> None:
        if self._store is None:
            return
        try:
            self._store.save(CONVERSATION_KEY, [turn.to_dict() for turn in self._turns])
        except StoreError as exc:
            self._logger.warning("[conversation] Failed to persist conversation: %s", exc)
