"""Shared test fixtures and configuration for the Mira test suite.

This module provides reusable fixtures for common test scenarios including:
- App registry and intent extractor
- On-disk JSON store, conversation log, and reminders
- Fake URL opener, completion provider, transcriber, and capture platform
- Configuration objects
"""

from __future__ import annotations

import logging
from typing import Any
from unittest.mock import Mock

import pytest

from mira.assistant.apps import DEFAULT_APPS, AppRegistry
from mira.assistant.config import LLMConfig, MicConfig, TranscriptionConfig
from mira.assistant.conversation import ConversationLog
from mira.assistant.intents import IntentExtractor
from mira.assistant.launcher import AppLauncher, LaunchError, OpenAttempt, UrlOpener
from mira.assistant.llm import CompletionError, CompletionProvider, CompletionReply
from mira.assistant.orchestrator import ConversationOrchestrator
from mira.assistant.pending_actions import PendingActionMachine
from mira.assistant.speech_capture import (
    CapturePlatform,
    CaptureStream,
    PermissionStatus,
    PlatformKind,
)
from mira.assistant.store import JsonStore, ReminderStore
from mira.assistant.transcription import AudioPayload, Transcriber

# ============================================================================
# Pytest Configuration
# ============================================================================


@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio backend for async tests."""
    return "asyncio"


# ============================================================================
# Logging Fixtures
# ============================================================================


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing.

    Returns a Mock with spec=logging.Logger to ensure only valid
    logger methods can be called.
    """
    return Mock(spec=logging.Logger)


# ============================================================================
# Fakes
# ============================================================================


class FakeAttempt(OpenAttempt):
    def __init__(self, handed_off: bool) -> None:
        self._handed_off = handed_off

    def handed_off(self) -> bool:
        return self._handed_off


class FakeOpener(UrlOpener):
    """Records opened URLs; native schemes listed in ``installed`` hand off."""

    def __init__(self, installed: tuple[str, ...] = (), fail: bool = False) -> None:
        self.installed = installed
        self.fail = fail
        self.opened: list[str] = []

    async def open(self, url: str) -> OpenAttempt:
        if self.fail:
            raise LaunchError("no opener")
        self.opened.append(url)
        return FakeAttempt(any(url.startswith(scheme) for scheme in self.installed))


class FakeCompletion(CompletionProvider):
    """Returns queued replies in order; an exception in the queue is raised."""

    def __init__(self, *replies: str | Exception) -> None:
        self.replies = list(replies)
        self.calls: list[list[dict[str, str]]] = []

    async def complete(self, turns):
        self.calls.append([dict(turn) for turn in turns])
        if not self.replies:
            raise CompletionError("no reply queued")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return CompletionReply(content=reply)


class FakeTranscriber(Transcriber):
    accepted_encodings = frozenset({"audio/mp3", "audio/webm", "audio/wav"})
    default_encoding = "audio/mp3"

    def __init__(self, text: str = "merhaba", error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.calls: list[tuple[AudioPayload, str | None]] = []

    async def transcribe(self, payload: AudioPayload, language: str | None = None) -> str:
        self.calls.append((payload, language))
        if self.error is not None:
            raise self.error
        return self.text


class FakeStream(CaptureStream):
    def __init__(self, chunks: list[bytes] | None = None, error: Exception | None = None) -> None:
        self.chunks = list(chunks or [])
        self.error = error
        self.stop_calls = 0

    @property
    def stopped(self) -> bool:
        return self.stop_calls > 0

    async def read_chunk(self) -> bytes:
        if self.error is not None:
            raise self.error
        if self.chunks:
            return self.chunks.pop(0)
        return b""

    async def stop(self) -> None:
        self.stop_calls += 1


class FakePlatform(CapturePlatform):
    default_encoding = "audio/webm"

    def __init__(
        self,
        *,
        kind: PlatformKind = PlatformKind.STANDARD,
        permission: PermissionStatus | Exception = PermissionStatus.GRANTED,
        probe_error: Exception | None = None,
        supported: tuple[str, ...] = ("audio/webm",),
        stream: FakeStream | None = None,
        open_error: Exception | None = None,
    ) -> None:
        self.kind = kind
        self.permission = permission
        self.probe_error = probe_error
        self.supported = supported
        self.stream = stream if stream is not None else FakeStream([b"abc", b"def"])
        self.open_error = open_error
        self.query_calls = 0
        self.probe_calls = 0
        self.opened: list[str] = []

    async def query_permission(self) -> PermissionStatus:
        self.query_calls += 1
        if isinstance(self.permission, Exception):
            raise self.permission
        return self.permission

    async def probe_permission(self) -> None:
        self.probe_calls += 1
        if self.probe_error is not None:
            raise self.probe_error

    def supports_encoding(self, encoding: str) -> bool:
        return encoding in self.supported

    async def open_stream(self, encoding: str) -> CaptureStream:
        self.opened.append(encoding)
        if self.open_error is not None:
            raise self.open_error
        return self.stream


# ============================================================================
# Registry / Extraction Fixtures
# ============================================================================


@pytest.fixture
def registry():
    """Registry with the built-in apps."""
    return AppRegistry(DEFAULT_APPS)


@pytest.fixture
def extractor(registry):
    return IntentExtractor(registry)


# ============================================================================
# Persistence Fixtures
# ============================================================================


@pytest.fixture
def json_store(tmp_path, mock_logger):
    """JSON store rooted in a temporary directory."""
    return JsonStore(tmp_path / "data", logger=mock_logger)


@pytest.fixture
def conversation(json_store, mock_logger):
    return ConversationLog(json_store, logger=mock_logger)


@pytest.fixture
def reminders(json_store, mock_logger):
    return ReminderStore(json_store, logger=mock_logger)


# ============================================================================
# Collaborator Fixtures
# ============================================================================


@pytest.fixture
def opener():
    """URL opener where YouTube and Spotify native schemes are installed."""
    return FakeOpener(installed=("youtube://", "spotify://"))


@pytest.fixture
def launcher(opener, mock_logger):
    return AppLauncher(opener, native_wait_seconds=0, logger=mock_logger)


@pytest.fixture
def pending(conversation, reminders, launcher, mock_logger):
    return PendingActionMachine(
        conversation=conversation,
        reminders=reminders,
        launcher=launcher,
        logger=mock_logger,
    )


@pytest.fixture
def completion():
    return FakeCompletion()


@pytest.fixture
def orchestrator(conversation, extractor, pending, completion, registry, mock_logger):
    return ConversationOrchestrator(
        conversation=conversation,
        extractor=extractor,
        pending=pending,
        completion=completion,
        registry=registry,
        logger=mock_logger,
    )


@pytest.fixture
def transcriber():
    return FakeTranscriber()


# ============================================================================
# Test Data Factories
# ============================================================================


@pytest.fixture
def make_llm_config():
    """Factory fixture for creating LLM configs with custom overrides.

    Usage:
        config = make_llm_config(openai_api_key=None)
    """

    def _create_config(**overrides: Any) -> LLMConfig:
        defaults = {
            "system_prompt": "Sen yardımcı bir asistansın.",
            "openai_model": "gpt-3.5-turbo",
            "openai_api_key": "test_key",
            "openai_base_url": "https://api.openai.com/v1",
            "openai_timeout": 30.0,
            "temperature": 0.7,
            "max_tokens": 500,
        }
        defaults.update(overrides)
        return LLMConfig(**defaults)

    return _create_config


@pytest.fixture
def make_transcription_config():
    def _create_config(**overrides: Any) -> TranscriptionConfig:
        defaults = {
            "provider": "whisper",
            "language": "tr",
            "whisper_model": "whisper-1",
            "openai_api_key": "test_key",
            "openai_base_url": "https://api.openai.com/v1",
            "timeout": 30.0,
            "wyoming_endpoint": None,
        }
        defaults.update(overrides)
        return TranscriptionConfig(**defaults)

    return _create_config


@pytest.fixture
def mic():
    """Standard 16kHz mono mic configuration."""
    return MicConfig(device=None, rate=16000, width=2, channels=1, chunk_ms=30)


@pytest.fixture
def make_platform():
    """Factory for fake capture platforms (see ``FakePlatform``)."""
    return FakePlatform


@pytest.fixture
def make_stream():
    """Factory for fake capture streams (see ``FakeStream``)."""
    return FakeStream


@pytest.fixture
def make_completion():
    """Factory for queued-reply completion providers (see ``FakeCompletion``)."""
    return FakeCompletion


@pytest.fixture
def make_transcriber():
    return FakeTranscriber


@pytest.fixture
def make_opener():
    return FakeOpener
