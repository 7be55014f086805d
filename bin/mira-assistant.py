#!/usr/bin/env python3
"""Mira conversational assistant (terminal front end)."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys

from mira.assistant.apps import load_app_registry
from mira.assistant.config import AssistantConfig
from mira.assistant.conversation import ConversationLog, Turn
from mira.assistant.intents import IntentExtractor
from mira.assistant.launcher import AppLauncher, SystemUrlOpener
from mira.assistant.llm import build_completion_provider
from mira.assistant.orchestrator import ConversationOrchestrator
from mira.assistant.pending_actions import PendingActionMachine, PendingState
from mira.assistant.speech_capture import ArecordPlatform, SpeechCapturePipeline, detect_platform_kind
from mira.assistant.store import JsonStore, ReminderStore
from mira.assistant.transcription import build_transcriber

LOGGER = logging.getLogger("mira-assistant")

HELP_TEXT = """Commands:
  /confirm    confirm the pending action (also: evet)
  /reject     reject the pending action (also: hayır)
  /mic        start or stop a voice recording
  /reminders  list saved reminders
  /reset      clear the conversation
  /help       show this help
  /quit       exit"""

CONFIRM_WORDS = {"/confirm", "evet", "onayla", "yes"}
REJECT_WORDS = {"/reject", "hayır", "hayir", "iptal", "no"}


class MiraAssistant:
    """Wire the assistant components together from configuration."""

    def __init__(self, config: AssistantConfig) -> None:
        self.config = config
        self.store = JsonStore(config.data_dir)
        self.registry = load_app_registry(config.apps_file, config.inline_apps)
        self.conversation = ConversationLog(self.store)
        self.reminders = ReminderStore(self.store)
        self.launcher = AppLauncher(
            SystemUrlOpener(config.launch.opener),
            native_wait_seconds=config.launch.native_wait_ms / 1000,
        )
        self.pending = PendingActionMachine(
            conversation=self.conversation,
            reminders=self.reminders,
            launcher=self.launcher,
        )
        self.completion = build_completion_provider(config.llm)
        self.orchestrator = ConversationOrchestrator(
            conversation=self.conversation,
            extractor=IntentExtractor(self.registry),
            pending=self.pending,
            completion=self.completion,
            registry=self.registry,
        )
        self.transcriber = build_transcriber(config.transcription)
        platform = ArecordPlatform(config.capture.mic, kind=detect_platform_kind(config.capture.user_agent))
        self.capture = SpeechCapturePipeline(
            platform,
            self.transcriber,
            self.orchestrator,
            encodings=config.capture.encodings,
            language=config.transcription.language,
        )
        self._printed = 0

    def print_new_turns(self) -> None:
        turns = self.conversation.turns
        if self._printed > len(turns):
            self._printed = 0
        for turn in turns[self._printed :]:
            _print_turn(turn)
        self._printed = len(turns)

    async def handle_line(self, line: str) -> bool:
        """Handle one line of input; False means exit."""
        text = line.strip()
        if not text:
            return True
        command = text.lower()
        if command in {"/quit", "/exit"}:
            return False
        if command == "/help":
            print(HELP_TEXT)
        elif command == "/mic":
            await self.capture.toggle()
            if self.capture.recording:
                print("(kayıt yapılıyor, durdurmak için /mic)")
        elif command == "/reset":
            self.orchestrator.reset()
            self._printed = 0
        elif command == "/reminders":
            for reminder in self.reminders.list_reminders():
                mark = "x" if reminder.completed else " "
                print(f"[{mark}] {reminder.date} {reminder.time} {reminder.title}")
        elif self.pending.state is not PendingState.EMPTY and command in CONFIRM_WORDS:
            await self.orchestrator.confirm()
        elif self.pending.state is not PendingState.EMPTY and command in REJECT_WORDS:
            self.orchestrator.reject()
        elif command.startswith("/"):
            print(f"Unknown command {text!r}; /help lists commands")
        else:
            await self.orchestrator.submit(text)
        self.print_new_turns()
        if self.pending.state is not PendingState.EMPTY:
            print("(onaylamak için /confirm, iptal için /reject)")
        return True

    async def run(self) -> None:
        self.print_new_turns()
        while True:
            line = await asyncio.to_thread(sys.stdin.readline)
            if not line:
                return
            if not await self.handle_line(line):
                return

    async def shutdown(self) -> None:
        await self.capture.close()
        await self.launcher.close()
        await self.completion.close()
        await self.transcriber.close()


def _print_turn(turn: Turn) -> None:
    speaker = "Mira" if turn.role == "assistant" else "Siz"
    print(f"{speaker}: {turn.content}")


async def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args()

    config = AssistantConfig.from_env()
    level = (args.log_level or config.log_level).upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO))

    assistant = MiraAssistant(config)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _handle_signal(signum: int) -> None:
        LOGGER.info("Received signal %s, shutting down", signum)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _handle_signal, sig)

    run_task = asyncio.create_task(assistant.run())
    stop_task = asyncio.create_task(stop_event.wait())
    await asyncio.wait({run_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
    await assistant.shutdown()
    for task in (run_task, stop_task):
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
