"""Tests for ConversationOrchestrator (mira/assistant/orchestrator.py)."""

from __future__ import annotations

import asyncio

import pytest

from mira.assistant import messages
from mira.assistant.conversation import Utterance, UtteranceOrigin
from mira.assistant.intents import NO_INTENT, AppOpenIntent, ReminderIntent
from mira.assistant.llm import CompletionError, CompletionProvider, CompletionReply
from mira.assistant.orchestrator import ConversationOrchestrator, TurnOutcome
from mira.assistant.pending_actions import AppOpenRequest, PendingState, ReminderDraft

pytestmark = pytest.mark.anyio


def contents(conversation):
    return [(turn.role, turn.content) for turn in conversation.turns]


# ============================================================================
# Local intents
# ============================================================================


class TestLocalIntents:
    async def test_app_open_proposes_without_completion(self, orchestrator, completion, pending, conversation):
        outcome = await orchestrator.submit("YouTube aç")
        assert outcome is TurnOutcome.PROPOSED
        assert completion.calls == []
        assert pending.state is PendingState.AWAITING_APP_OPEN_CONFIRMATION
        assert pending.pending.app.id == "youtube"
        assert pending.pending.query is None
        assert contents(conversation)[-1] == ("user", "YouTube aç")

    async def test_typed_media_search(self, orchestrator, pending, conversation):
        outcome = await orchestrator.submit("Spotify'dan efkar açabilir misin")
        assert outcome is TurnOutcome.PROPOSED
        assert isinstance(pending.pending, AppOpenRequest)
        assert pending.pending.app.id == "spotify"
        assert pending.pending.query == "efkar"
        assert contents(conversation)[-1] == ("user", "Spotify'dan efkar açabilir misin")

    async def test_transcribed_media_search_announces(self, orchestrator, conversation):
        await orchestrator.submit("YouTube'dan lo-fi oynat", UtteranceOrigin.TRANSCRIBED)
        assert contents(conversation)[-2:] == [
            ("user", "YouTube'dan lo-fi oynat"),
            ("assistant", messages.media_search_pending("YouTube", "lo-fi")),
        ]

    async def test_confirm_runs_pending_action(self, orchestrator, opener, pending):
        await orchestrator.submit("YouTube aç")
        turn = await orchestrator.confirm()
        assert opener.opened == ["youtube://"]
        assert turn.content == messages.app_opened("YouTube", native=True)
        assert pending.state is PendingState.EMPTY
        assert orchestrator.accepting_input

    async def test_reject_clears_pending(self, orchestrator, opener, pending):
        await orchestrator.submit("Instagram aç")
        turn = orchestrator.reject()
        assert turn.content == messages.app_open_cancelled("Instagram")
        assert opener.opened == []
        assert pending.state is PendingState.EMPTY


# ============================================================================
# Blocking
# ============================================================================


class TestBlocking:
    async def test_turn_refused_while_pending(self, orchestrator, completion, conversation):
        await orchestrator.submit("YouTube aç")
        before = contents(conversation)
        assert not orchestrator.accepting_input
        assert await orchestrator.submit("merhaba") is TurnOutcome.BLOCKED
        assert contents(conversation) == before
        assert completion.calls == []

    async def test_blank_input_ignored(self, orchestrator, conversation):
        before = len(conversation)
        assert await orchestrator.submit("   ") is TurnOutcome.IGNORED
        assert await orchestrator.submit(None) is TurnOutcome.IGNORED
        assert len(conversation) == before

    async def test_turn_refused_while_completion_in_flight(self, conversation, extractor, pending, mock_logger):
        release = asyncio.Event()

        class SlowCompletion(CompletionProvider):
            async def complete(self, turns):
                await release.wait()
                return CompletionReply(content="Tamam.")

        orchestrator = ConversationOrchestrator(
            conversation=conversation,
            extractor=extractor,
            pending=pending,
            completion=SlowCompletion(),
            logger=mock_logger,
        )
        first = asyncio.create_task(orchestrator.submit("bir şey sor"))
        await asyncio.sleep(0)
        assert not orchestrator.accepting_input
        assert await orchestrator.submit("ikinci mesaj") is TurnOutcome.BLOCKED
        release.set()
        assert await first is TurnOutcome.REPLIED
        assert orchestrator.accepting_input
        assert ("user", "ikinci mesaj") not in contents(conversation)


# ============================================================================
# Remote completion
# ============================================================================


class TestCompletion:
    async def test_history_is_role_and_content(self, orchestrator, completion, conversation):
        completion.replies.append("İyiyim, teşekkürler!")
        outcome = await orchestrator.submit("nasılsın")
        assert outcome is TurnOutcome.REPLIED
        assert completion.calls == [
            [
                {"role": "assistant", "content": messages.GREETING},
                {"role": "user", "content": "nasılsın"},
            ]
        ]
        assert contents(conversation)[-1] == ("assistant", "İyiyim, teşekkürler!")

    async def test_reply_with_reminder_is_proposed(self, orchestrator, completion, pending, reminders):
        completion.replies.append("Hatırlatıcı:\nBaşlık: Toplantı\nTarih: 2024-05-01\nSaat: 10:00")
        await orchestrator.submit("yarın saat 10'da toplantıyı hatırlat")
        assert pending.pending == ReminderDraft(title="Toplantı", date="2024-05-01", time="10:00")
        assert reminders.list_reminders() == []

        await orchestrator.confirm()
        assert [r.title for r in reminders.list_reminders()] == ["Toplantı"]

    async def test_reply_offering_app_is_proposed(self, orchestrator, completion, pending):
        completion.replies.append("Spotify uygulamasını açmak istiyor musunuz?")
        await orchestrator.submit("müzik dinlemek istiyorum")
        assert pending.state is PendingState.AWAITING_APP_OPEN_CONFIRMATION
        assert pending.pending.app.id == "spotify"

    async def test_plain_reply_leaves_slot_empty(self, orchestrator, completion, pending):
        completion.replies.append("Bugün hava güneşli.")
        await orchestrator.submit("hava nasıl")
        assert pending.state is PendingState.EMPTY

    async def test_completion_error_appends_fallback(self, orchestrator, completion, conversation):
        completion.replies.append(CompletionError("HTTP 500"))
        outcome = await orchestrator.submit("merhaba")
        assert outcome is TurnOutcome.FAILED
        assert contents(conversation)[-1] == ("assistant", messages.COMPLETION_FAILED)
        assert orchestrator.accepting_input

    async def test_unexpected_error_appends_fallback(self, orchestrator, completion, conversation, mock_logger):
        completion.replies.append(ValueError("boom"))
        assert await orchestrator.submit("merhaba") is TurnOutcome.FAILED
        assert contents(conversation)[-1] == ("assistant", messages.COMPLETION_FAILED)
        mock_logger.exception.assert_called()

    async def test_no_automatic_retry(self, orchestrator, completion):
        completion.replies.extend([CompletionError("down"), "ikinci cevap"])
        await orchestrator.submit("merhaba")
        assert len(completion.calls) == 1
        assert await orchestrator.submit("tekrar") is TurnOutcome.REPLIED
        assert len(completion.calls) == 2


class TestReset:
    async def test_reset_clears_conversation_and_pending(self, orchestrator, conversation, pending):
        await orchestrator.submit("YouTube aç")
        orchestrator.reset()
        assert contents(conversation) == [("assistant", messages.GREETING)]
        assert pending.state is PendingState.EMPTY
        assert orchestrator.accepting_input


class TestIntentRouting:
    REMINDER_REPLY = "Başlık: Toplantı\nTarih: 2024-05-01\nSaat: 10:00"

    def test_reply_scan_origin_reads_reminder_labels(self, orchestrator):
        intent = orchestrator.intent_for(Utterance(self.REMINDER_REPLY, UtteranceOrigin.REPLY_SCAN))
        assert intent == ReminderIntent(title="Toplantı", date="2024-05-01", time="10:00")

    @pytest.mark.parametrize("origin", [UtteranceOrigin.TYPED, UtteranceOrigin.TRANSCRIBED])
    def test_user_origins_skip_reply_tiers(self, orchestrator, origin):
        assert orchestrator.intent_for(Utterance(self.REMINDER_REPLY, origin)) == NO_INTENT
        assert isinstance(orchestrator.intent_for(Utterance("YouTube aç", origin)), AppOpenIntent)
