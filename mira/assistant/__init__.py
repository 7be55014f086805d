"""
Conversational assistant core

This package provides the turn-handling core of Mira:

- Intent extraction: media search, app open, reminder, and reply-offered app open
- Pending actions: a single confirmation slot for reminders and app launches
- Speech capture: microphone recording with platform-aware permission checks
- Transcription: OpenAI Whisper or a Wyoming STT server
- Completion: OpenAI-compatible chat completions over the full history
- Persistence: conversation and reminders as JSON documents on disk

Key modules:
- config: Configuration management from environment variables
- apps: Launchable application registry
- intents: Ordered, pure intent extraction
- pending_actions: Confirm/reject gate for side effects
- orchestrator: Per-turn routing between local intents and remote completion
- speech_capture: Capture pipeline from microphone press to submitted text
"""

from __future__ import annotations

__all__ = [
    "config",
    "apps",
    "intents",
    "pending_actions",
    "orchestrator",
    "speech_capture",
    "transcription",
    "llm",
    "launcher",
    "store",
    "conversation",
]
