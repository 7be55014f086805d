"""Per-turn coordination between extraction, confirmation, and completion."""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING

from mira.assistant import messages
from mira.assistant.conversation import Utterance, UtteranceOrigin
from mira.assistant.intents import (
    AppOpenIntent,
    Intent,
    MediaSearchIntent,
    ReminderIntent,
    describe_intent,
)
from mira.assistant.llm import CompletionError
from mira.assistant.pending_actions import AppOpenRequest, PendingAction, ReminderDraft

if TYPE_CHECKING:
    from mira.assistant.apps import AppRegistry
    from mira.assistant.conversation import ConversationLog, Turn
    from mira.assistant.intents import IntentExtractor
    from mira.assistant.llm import CompletionProvider
    from mira.assistant.pending_actions import PendingActionMachine

LOGGER = logging.getLogger("mira.orchestrator")


class TurnOutcome(str, Enum):
    IGNORED = "ignored"
    BLOCKED = "blocked"
    PROPOSED = "proposed"
    REPLIED = "replied"
    FAILED = "failed"


class ConversationOrchestrator:
    """Route each user turn to a local proposal or to the remote completion service.

    Turns are handled strictly one at a time. While an action awaits
    confirmation, or while a completion call is in flight, new turns are
    refused and leave the conversation untouched.
    """

    def __init__(
        self,
        *,
        conversation: ConversationLog,
        extractor: IntentExtractor,
        pending: PendingActionMachine,
        completion: CompletionProvider,
        registry: AppRegistry | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.conversation = conversation
        self.extractor = extractor
        self.pending = pending
        self.completion = completion
        self.registry = registry if registry is not None else extractor.registry
        self._logger = logger or LOGGER
        self._in_flight = False

    @property
    def accepting_input(self) -> bool:
        return not self.pending.occupied and not self._in_flight

    async def submit(self, text: str | None, origin: UtteranceOrigin = UtteranceOrigin.TYPED) -> TurnOutcome:
        """Process one user turn.

        Args:
            text: Typed or transcribed text
            origin: Where the text came from

        Returns:
            What happened to the turn
        """
        text = (text or "").strip()
        if not text:
            return TurnOutcome.IGNORED
        if not self.accepting_input:
            self._logger.info(
                "[orchestrator] Input refused (pending=%s, in_flight=%s)",
                self.pending.state.value,
                self._in_flight,
            )
            return TurnOutcome.BLOCKED

        utterance = Utterance(text=text, origin=origin)
        self.conversation.append_user(utterance)

        intent = self.intent_for(utterance)
        proposal = self._proposal_for(intent)
        if proposal is not None and self.pending.propose(proposal):
            self._logger.info("[orchestrator] Local intent: %s", describe_intent(intent))
            if (
                isinstance(intent, MediaSearchIntent)
                and isinstance(proposal, AppOpenRequest)
                and origin is UtteranceOrigin.TRANSCRIBED
            ):
                self.conversation.append_assistant(messages.media_search_pending(proposal.app.name, intent.query))
            return TurnOutcome.PROPOSED

        return await self._complete()

    async def confirm(self) -> Turn | None:
        return await self.pending.confirm()

    def reject(self) -> Turn | None:
        return self.pending.reject()

    def reset(self) -> None:
        self.pending.discard()
        self.conversation.reset()

    async def _complete(self) -> TurnOutcome:
        self._in_flight = True
        try:
            reply = await self.completion.complete(self.conversation.history_for_completion())
        except CompletionError as exc:
            self._logger.warning("[orchestrator] Completion failed: %s", exc)
            self.conversation.append_assistant(messages.COMPLETION_FAILED)
            return TurnOutcome.FAILED
        except Exception:
            self._logger.exception("[orchestrator] Unexpected completion failure")
            self.conversation.append_assistant(messages.COMPLETION_FAILED)
            return TurnOutcome.FAILED
        finally:
            self._in_flight = False

        self.conversation.append_assistant(reply.content)
        follow_up = self.intent_for(Utterance(text=reply.content, origin=UtteranceOrigin.REPLY_SCAN))
        proposal = self._proposal_for(follow_up)
        if proposal is not None and self.pending.propose(proposal):
            self._logger.info("[orchestrator] Reply intent: %s", describe_intent(follow_up))
        return TurnOutcome.REPLIED

    def intent_for(self, utterance: Utterance) -> Intent:
        """User text runs the command tiers; assistant replies run the reply-scan tiers."""
        if utterance.origin is UtteranceOrigin.REPLY_SCAN:
            return self.extractor.extract_from_reply(utterance.text)
        return self.extractor.extract(utterance.text)

    def _proposal_for(self, intent: Intent) -> PendingAction | None:
        if isinstance(intent, ReminderIntent):
            return ReminderDraft(
                title=intent.title,
                date=intent.date,
                time=intent.time,
                description=intent.description,
            )
        if isinstance(intent, (AppOpenIntent, MediaSearchIntent)):
            app = self.registry.get(intent.app_id)
            if app is None:
                self._logger.debug("[orchestrator] Intent names unknown app %s", intent.app_id)
                return None
            query = intent.query if isinstance(intent, MediaSearchIntent) else None
            return AppOpenRequest(app=app, query=query)
        return None
