"""Single-slot confirmation gate for side-effecting actions.

A proposed action (reminder creation or app launch) waits here until the
user confirms or rejects it. At most one action is ever pending: proposing
while occupied is refused and leaves the current action untouched. Confirm
and reject both return the machine to ``EMPTY``, whether or not the side
effect succeeded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from mira.assistant import messages
from mira.assistant.launcher import LaunchError
from mira.assistant.store import StoreError

if TYPE_CHECKING:
    from mira.assistant.apps import AppDescriptor
    from mira.assistant.conversation import ConversationLog, Turn
    from mira.assistant.launcher import AppLauncher
    from mira.assistant.store import ReminderStore

LOGGER = logging.getLogger("mira.pending")


@dataclass(frozen=True, slots=True)
class ReminderDraft:
    title: str
    date: str
    time: str
    description: str = ""


@dataclass(frozen=True, slots=True)
class AppOpenRequest:
    app: AppDescriptor
    query: str | None = None


PendingAction = ReminderDraft | AppOpenRequest


class PendingState(str, Enum):
    EMPTY = "empty"
    AWAITING_REMINDER_CONFIRMATION = "awaiting_reminder_confirmation"
    AWAITING_APP_OPEN_CONFIRMATION = "awaiting_app_open_confirmation"


class PendingActionMachine:
    """Holds at most one action awaiting confirmation."""

    def __init__(
        self,
        *,
        conversation: ConversationLog,
        reminders: ReminderStore,
        launcher: AppLauncher,
        logger: logging.Logger | None = None,
    ) -> None:
        self.conversation = conversation
        self.reminders = reminders
        self.launcher = launcher
        self.logger = logger or LOGGER
        self._pending: PendingAction | None = None

    @property
    def pending(self) -> PendingAction | None:
        return self._pending

    @property
    def occupied(self) -> bool:
        return self._pending is not None

    @property
    def state(self) -> PendingState:
        if isinstance(self._pending, ReminderDraft):
            return PendingState.AWAITING_REMINDER_CONFIRMATION
        if isinstance(self._pending, AppOpenRequest):
            return PendingState.AWAITING_APP_OPEN_CONFIRMATION
        return PendingState.EMPTY

    def propose(self, draft: PendingAction) -> bool:
        """Occupy the slot with ``draft``; refused (False) unless the slot is empty."""
        if self._pending is not None:
            self.logger.warning(
                "[pending] Refusing to propose %s while %s is pending",
                type(draft).__name__,
                type(self._pending).__name__,
            )
            return False
        if not isinstance(draft, (ReminderDraft, AppOpenRequest)):
            raise TypeError(f"Unsupported pending action: {type(draft).__name__}")
        self._pending = draft
        self.logger.info("[pending] Awaiting confirmation: %s", _describe(draft))
        return True

    async def confirm(self) -> Turn | None:
        """Execute the pending action and return the utterance describing the outcome.

        Returns None (and changes nothing) when no action is pending.
        """
        draft = self._pending
        if draft is None:
            self.logger.warning("[pending] Confirm requested with nothing pending")
            return None
        try:
            if isinstance(draft, ReminderDraft):
                content = self._confirm_reminder(draft)
            else:
                content = await self._confirm_app_open(draft)
        finally:
            self._pending = None
        return self.conversation.append_assistant(content)

    def reject(self) -> Turn | None:
        """Drop the pending action without side effects."""
        draft = self._pending
        if draft is None:
            self.logger.warning("[pending] Reject requested with nothing pending")
            return None
        self._pending = None
        self.logger.info("[pending] Rejected %s", _describe(draft))
        if isinstance(draft, ReminderDraft):
            return self.conversation.append_assistant(messages.REMINDER_CANCELLED)
        return self.conversation.append_assistant(messages.app_open_cancelled(draft.app.name))

    def discard(self) -> None:
        """Empty the slot without announcing anything (conversation reset)."""
        if self._pending is not None:
            self.logger.debug("[pending] Discarding %s", _describe(self._pending))
        self._pending = None

    def _confirm_reminder(self, draft: ReminderDraft) -> str:
        try:
            self.reminders.add_reminder(draft)
        except StoreError as exc:
            self.logger.warning("[pending] Reminder creation failed: %s", exc)
            return messages.REMINDER_FAILED
        except Exception:
            self.logger.exception("[pending] Unexpected error creating reminder")
            return messages.REMINDER_FAILED
        return messages.reminder_created(draft.title, draft.date, draft.time, draft.description)

    async def _confirm_app_open(self, request: AppOpenRequest) -> str:
        try:
            native = await self.launcher.launch(request.app, request.query)
        except (LaunchError, OSError) as exc:
            self.logger.warning("[pending] Launching %s failed: %s", request.app.id, exc)
            return messages.app_open_failed(request.app.name)
        except Exception:
            self.logger.exception("[pending] Unexpected error launching %s", request.app.id)
            return messages.app_open_failed(request.app.name)
        return messages.app_opened(request.app.name, native)


def _describe(draft: PendingAction) -> str:
    if isinstance(draft, ReminderDraft):
        return f"reminder {draft.title!r} at {draft.date} {draft.time}"
    if draft.query:
        return f"open {draft.app.id} searching {draft.query!r}"
    return f"open {draft.app.id}"
