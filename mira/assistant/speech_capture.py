"""Microphone capture, transcription, and hand-off to the conversation.

One capture attempt walks ``IDLE -> PERMISSION_CHECK -> RECORDING ->
STOPPING -> TRANSCRIBING -> RESOLVED -> IDLE``. Pressing the capture control while
recording forces ``STOPPING``; once transcription has started it runs to
completion. The capture stream belongs to the active attempt and is stopped
on every exit path before the attempt resolves.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import re
import shutil
import signal
from asyncio.subprocess import Process
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from mira.assistant import messages
from mira.assistant.config import DEFAULT_CAPTURE_ENCODINGS, MicConfig
from mira.assistant.conversation import UtteranceOrigin
from mira.assistant.orchestrator import TurnOutcome
from mira.assistant.transcription import AudioPayload, Transcriber, TranscriptionError

if TYPE_CHECKING:
    from mira.assistant.orchestrator import ConversationOrchestrator

LOGGER = logging.getLogger("mira.capture")

_MOBILE_WEBKIT_PATTERN = re.compile(r"iPad|iPhone|iPod")
_DESKTOP_WEBKIT_PATTERN = re.compile(r"^((?!chrome|android).)*safari", re.IGNORECASE)


class CaptureState(str, Enum):
    IDLE = "idle"
    PERMISSION_CHECK = "permission_check"
    RECORDING = "recording"
    STOPPING = "stopping"
    TRANSCRIBING = "transcribing"
    RESOLVED = "resolved"


class PlatformKind(str, Enum):
    MOBILE_WEBKIT = "mobile_webkit"
    DESKTOP_WEBKIT = "desktop_webkit"
    STANDARD = "standard"

    @property
    def requires_probe(self) -> bool:
        return self is not PlatformKind.STANDARD


class PermissionStatus(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    PROMPT = "prompt"


class CaptureStatus(str, Enum):
    TRANSCRIBED = "transcribed"
    DENIED = "denied"
    ERROR = "error"
    IGNORED = "ignored"


class CaptureError(RuntimeError):
    """Raised when the capture device or encoder cannot be used."""


class CapturePermissionError(CaptureError):
    """Raised when access to the microphone is refused."""


@dataclass(frozen=True, slots=True)
class CaptureResult:
    status: CaptureStatus
    text: str | None = None
    message: str | None = None


IGNORED = CaptureResult(CaptureStatus.IGNORED)


def detect_platform_kind(user_agent: str | None) -> PlatformKind:
    """Classify a user-agent string into the permission-handling family."""
    agent = user_agent or ""
    if _MOBILE_WEBKIT_PATTERN.search(agent):
        return PlatformKind.MOBILE_WEBKIT
    if _DESKTOP_WEBKIT_PATTERN.search(agent):
        return PlatformKind.DESKTOP_WEBKIT
    return PlatformKind.STANDARD


class CaptureStream:
    async def read_chunk(self) -> bytes:
        """Next fragment of encoded audio; ``b""`` once the stream has ended."""
        raise NotImplementedError

    async def stop(self) -> None:
        raise NotImplementedError


class CapturePlatform:
    kind: PlatformKind = PlatformKind.STANDARD
    default_encoding: str = "audio/wav"

    async def query_permission(self) -> PermissionStatus:
        raise NotImplementedError

    async def probe_permission(self) -> None:
        """Interactive permission request; raises ``CapturePermissionError`` when refused."""
        raise NotImplementedError

    def supports_encoding(self, encoding: str) -> bool:
        raise NotImplementedError

    async def open_stream(self, encoding: str) -> CaptureStream:
        raise NotImplementedError


# ============================================================================
# Local ALSA capture
# ============================================================================


def _alsa_format(width: int) -> str:
    return {
        1: "U8",
        2: "S16_LE",
        3: "S24_LE",
        4: "S32_LE",
    }.get(width, "S16_LE")


_FFMPEG_OUTPUTS: dict[str, tuple[str, ...]] = {
    "audio/mp3": ("-c:a", "libmp3lame", "-f", "mp3"),
    "audio/mpeg": ("-c:a", "libmp3lame", "-f", "mp3"),
    "audio/mp4": ("-c:a", "aac", "-movflags", "frag_keyframe+empty_moov", "-f", "mp4"),
    "audio/webm": ("-c:a", "libopus", "-f", "webm"),
    "audio/ogg": ("-c:a", "libopus", "-f", "ogg"),
}
_WAV_ENCODINGS = frozenset({"audio/wav", "audio/x-wav", "audio/wave"})


class SubprocessCaptureStream(CaptureStream):
    """Read encoded audio from a recorder process's stdout."""

    def __init__(self, command: list[str], bytes_per_chunk: int, logger: logging.Logger | None = None) -> None:
        self.command = command
        self.bytes_per_chunk = max(1, bytes_per_chunk)
        self._proc: Process | None = None
        self._logger = logger or LOGGER

    async def start(self) -> None:
        if self._proc:
            return
        self._logger.debug("[capture] Starting recorder: %s", " ".join(self.command))
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *self.command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except PermissionError as exc:
            raise CapturePermissionError(f"Recorder could not be started: {exc}") from exc
        except OSError as exc:
            raise CaptureError(f"Recorder could not be started: {exc}") from exc

    async def read_chunk(self) -> bytes:
        if not self._proc or not self._proc.stdout:
            return b""
        return await self._proc.stdout.read(self.bytes_per_chunk)

    async def stop(self) -> None:
        proc = self._proc
        if not proc:
            return
        if proc.returncode is None:
            self._logger.debug("[capture] Stopping recorder")
            # SIGINT lets arecord/ffmpeg flush and finalize the container.
            with contextlib.suppress(ProcessLookupError):
                proc.send_signal(signal.SIGINT)
            try:
                await asyncio.wait_for(proc.wait(), timeout=2)
            except TimeoutError:
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
                await proc.wait()
        self._proc = None


class ArecordPlatform(CapturePlatform):
    """Capture from ALSA: ``arecord`` for WAV, ``ffmpeg`` for compressed formats."""

    default_encoding = "audio/wav"

    def __init__(
        self,
        mic: MicConfig,
        *,
        kind: PlatformKind = PlatformKind.STANDARD,
        sound_dir: str = "/dev/snd",
        logger: logging.Logger | None = None,
    ) -> None:
        self.mic = mic
        self.kind = kind
        self.sound_dir = sound_dir
        self._logger = logger or LOGGER

    async def query_permission(self) -> PermissionStatus:
        if not os.path.isdir(self.sound_dir):
            return PermissionStatus.PROMPT
        if os.access(self.sound_dir, os.R_OK | os.X_OK):
            return PermissionStatus.GRANTED
        return PermissionStatus.DENIED

    async def probe_permission(self) -> None:
        if await self.query_permission() is PermissionStatus.DENIED:
            raise CapturePermissionError(f"No access to {self.sound_dir}")

    def supports_encoding(self, encoding: str) -> bool:
        if encoding in _WAV_ENCODINGS:
            return shutil.which("arecord") is not None
        return encoding in _FFMPEG_OUTPUTS and shutil.which("ffmpeg") is not None

    def build_command(self, encoding: str) -> list[str]:
        mic = self.mic
        if encoding in _WAV_ENCODINGS:
            cmd = [
                "arecord",
                "-q",
                "-t",
                "wav",
                "-f",
                _alsa_format(mic.width),
                "-r",
                str(mic.rate),
                "-c",
                str(mic.channels),
            ]
            if mic.device:
                cmd.extend(["-D", mic.device])
            return cmd
        output = _FFMPEG_OUTPUTS.get(encoding)
        if output is None:
            raise CaptureError(f"Unsupported capture encoding: {encoding}")
        return [
            "ffmpeg",
            "-hide_banner",
            "-loglevel",
            "error",
            "-f",
            "alsa",
            "-i",
            mic.device or "default",
            "-ac",
            str(mic.channels),
            "-ar",
            str(mic.rate),
            *output,
            "pipe:1",
        ]

    async def open_stream(self, encoding: str) -> CaptureStream:
        stream = SubprocessCaptureStream(self.build_command(encoding), self.mic.bytes_per_chunk, logger=self._logger)
        await stream.start()
        return stream


# ============================================================================
# Pipeline
# ============================================================================


class SpeechCapturePipeline:
    """Drive one capture attempt at a time from the capture control."""

    def __init__(
        self,
        platform: CapturePlatform,
        transcriber: Transcriber,
        orchestrator: ConversationOrchestrator,
        *,
        encodings: Sequence[str] = DEFAULT_CAPTURE_ENCODINGS,
        language: str | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.platform = platform
        self.platform_kind = platform.kind
        self.transcriber = transcriber
        self.orchestrator = orchestrator
        self.encodings = tuple(encodings)
        self.language = language
        self._logger = logger or LOGGER
        self.state = CaptureState.IDLE
        self._help_shown = False
        self._stream: CaptureStream | None = None
        self._reader: asyncio.Task[None] | None = None
        self._fragments: list[bytes] = []
        self._encoding: str | None = None

    @property
    def busy(self) -> bool:
        return self.state in {
            CaptureState.PERMISSION_CHECK,
            CaptureState.RECORDING,
            CaptureState.STOPPING,
            CaptureState.TRANSCRIBING,
        }

    @property
    def recording(self) -> bool:
        return self.state is CaptureState.RECORDING

    async def toggle(self) -> CaptureResult | None:
        """Handle a press of the capture control.

        Starts an attempt when idle and stops it while recording; every other
        press is ignored. Returns the resolved result, or None while recording.
        """
        if self.state is CaptureState.RECORDING:
            return await self.stop()
        if self.busy or not self.orchestrator.accepting_input:
            self._logger.debug("[capture] Ignoring capture control in state %s", self.state.value)
            return IGNORED
        return await self.start()

    async def start(self) -> CaptureResult | None:
        if self.busy:
            return IGNORED
        if not self._help_shown:
            self._help_shown = True
            self._say(messages.MIC_HELP)

        self.state = CaptureState.PERMISSION_CHECK
        try:
            denied = await self._check_permission()
        except Exception:
            self._logger.exception("[capture] Unexpected permission check failure")
            return self._resolve(self._error(self._remediation_message(messages.MIC_ACCESS_FAILED)))
        if denied is not None:
            return self._resolve(denied)

        try:
            encoding = self.select_encoding()
            stream = await self.platform.open_stream(encoding)
        except CapturePermissionError as exc:
            self._logger.warning("[capture] Microphone access refused: %s", exc)
            return self._resolve(self._error(self._remediation_message(messages.MIC_ACCESS_FAILED)))
        except CaptureError as exc:
            self._logger.warning("[capture] Recorder failed to start: %s", exc)
            return self._resolve(self._error(messages.RECORDER_FAILED))
        except Exception:
            self._logger.exception("[capture] Unexpected recorder start failure")
            return self._resolve(self._error(messages.RECORDER_FAILED))

        self._stream = stream
        self._encoding = encoding
        self._fragments = []
        self._reader = asyncio.create_task(self._pump(stream))
        self.state = CaptureState.RECORDING
        self._logger.info("[capture] Recording (%s)", encoding)
        return None

    async def stop(self) -> CaptureResult:
        if self.state is not CaptureState.RECORDING:
            return IGNORED
        self.state = CaptureState.STOPPING
        stream, reader = self._stream, self._reader
        failure: CaptureResult | None = None
        try:
            if stream is not None:
                await stream.stop()
            if reader is not None:
                await reader
        except CaptureError as exc:
            self._logger.warning("[capture] Recording failed: %s", exc)
            failure = self._error(messages.RECORDER_FAILED)
        except Exception:
            self._logger.exception("[capture] Unexpected recording failure")
            failure = self._error(messages.RECORDER_FAILED)
        finally:
            await self._release()
        if failure is not None:
            return self._resolve(failure)

        payload = AudioPayload(data=b"".join(self._fragments), encoding=self._encoding or self.platform.default_encoding)
        self._fragments = []
        return await self.resolve_payload(payload)

    async def close(self) -> None:
        """Abandon any attempt in progress and release the stream."""
        await self._release()
        self._fragments = []
        self.state = CaptureState.IDLE

    def select_encoding(self) -> str:
        """Pick the recording format.

        Formats the transcriber accepts come first, in preference order, so a
        payload only needs relabeling when the platform can produce none of
        them.
        """
        accepted = [encoding for encoding in self.encodings if self.transcriber.accepts(encoding)]
        rest = [encoding for encoding in self.encodings if not self.transcriber.accepts(encoding)]
        for encoding in (*accepted, *rest):
            if self.platform.supports_encoding(encoding):
                return encoding
        return self.platform.default_encoding

    async def resolve_payload(self, payload: AudioPayload) -> CaptureResult:
        """Transcribe a finished recording and submit the text as a user turn."""
        if payload.size == 0:
            self._logger.warning("[capture] Recording is empty")
            return self._resolve(self._error(messages.SPEECH_FAILED))
        if not self.transcriber.accepts(payload.encoding):
            self._logger.debug(
                "[capture] Relabeling %s payload as %s", payload.encoding, self.transcriber.default_encoding
            )
            payload = payload.relabel(self.transcriber.default_encoding)

        self.state = CaptureState.TRANSCRIBING
        try:
            text = await self.transcriber.transcribe(payload, self.language)
        except TranscriptionError as exc:
            self._logger.warning("[capture] Transcription failed: %s", exc)
            return self._resolve(self._error(messages.SPEECH_FAILED))
        except Exception:
            self._logger.exception("[capture] Unexpected transcription failure")
            return self._resolve(self._error(messages.SPEECH_FAILED))

        text = (text or "").strip()
        if not text:
            self._logger.info("[capture] Transcription returned no text")
            return self._resolve(self._error(messages.SPEECH_FAILED))

        self._logger.info("[capture] Transcribed: %s", text)
        self.state = CaptureState.RESOLVED
        outcome = await self.orchestrator.submit(text, UtteranceOrigin.TRANSCRIBED)
        if outcome is TurnOutcome.BLOCKED:
            self._logger.warning("[capture] Transcript refused by the conversation: %s", text)
            return self._resolve(self._error(messages.transcript_not_sent(text)))
        return self._resolve(CaptureResult(CaptureStatus.TRANSCRIBED, text=text))

    async def _check_permission(self) -> CaptureResult | None:
        if self.platform_kind.requires_probe:
            try:
                await self.platform.probe_permission()
            except CapturePermissionError as exc:
                self._logger.warning("[capture] Permission probe refused: %s", exc)
                return self._denied(self._remediation_message(messages.MIC_ACCESS_FAILED))
            return None
        try:
            status = await self.platform.query_permission()
        except Exception as exc:
            # An unanswerable query falls through to the capture request.
            self._logger.debug("[capture] Permission query failed: %s", exc)
            return None
        if status is PermissionStatus.DENIED:
            return self._denied(messages.MIC_PERMISSION_DENIED)
        return None

    def _remediation_message(self, default: str) -> str:
        if self.platform_kind is PlatformKind.MOBILE_WEBKIT:
            return messages.MOBILE_WEBKIT_REMEDIATION
        if self.platform_kind is PlatformKind.DESKTOP_WEBKIT:
            return messages.DESKTOP_WEBKIT_REMEDIATION
        return default

    async def _pump(self, stream: CaptureStream) -> None:
        while True:
            chunk = await stream.read_chunk()
            if not chunk:
                return
            self._fragments.append(chunk)

    async def _release(self) -> None:
        stream, reader = self._stream, self._reader
        self._stream = None
        self._reader = None
        if stream is not None:
            try:
                await stream.stop()
            except Exception:
                self._logger.exception("[capture] Failed to stop capture stream")
        if reader is not None and not reader.done():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader

    @staticmethod
    def _denied(message: str) -> CaptureResult:
        return CaptureResult(CaptureStatus.DENIED, message=message)

    @staticmethod
    def _error(message: str) -> CaptureResult:
        return CaptureResult(CaptureStatus.ERROR, message=message)

    def _resolve(self, result: CaptureResult) -> CaptureResult:
        self.state = CaptureState.RESOLVED
        if result.message:
            self._say(result.message)
        self._logger.debug("[capture] Attempt resolved: %s", result.status.value)
        self.state = CaptureState.IDLE
        return result

    def _say(self, content: str) -> None:
        self.orchestrator.conversation.append_assistant(content)
