"""Speech-to-text backends (OpenAI Whisper over HTTP, Wyoming over TCP)."""

from __future__ import annotations

import io
import logging
import wave
from dataclasses import dataclass

import httpx
from wyoming.asr import Transcribe, Transcript
from wyoming.audio import AudioChunk, AudioStart, AudioStop
from wyoming.client import AsyncTcpClient

from mira.utils import await_with_timeout, chunk_bytes

from .config import TranscriptionConfig, WyomingEndpoint

LOGGER = logging.getLogger(__name__)

WHISPER_ACCEPTED_ENCODINGS = frozenset(
    {
        "audio/mp3",
        "audio/mp4",
        "audio/mpeg",
        "audio/mpga",
        "audio/wav",
        "audio/webm",
        "audio/ogg",
    }
)

_EXTENSIONS = (
    ("webm", "webm"),
    ("ogg", "ogg"),
    ("wav", "wav"),
    ("mp4", "mp4"),
)


class TranscriptionError(RuntimeError):
    """Raised when the transcription service fails."""


@dataclass(frozen=True, slots=True)
class AudioPayload:
    data: bytes
    encoding: str

    @property
    def size(self) -> int:
        return len(self.data)

    def relabel(self, encoding: str) -> AudioPayload:
        """Same bytes, different encoding tag."""
        return AudioPayload(data=self.data, encoding=encoding)


def file_extension_for(encoding: str) -> str:
    lowered = (encoding or "").lower()
    for marker, extension in _EXTENSIONS:
        if marker in lowered:
            return extension
    return "mp3"


class Transcriber:
    accepted_encodings: frozenset[str] = frozenset()
    default_encoding: str = "audio/mp3"

    def accepts(self, encoding: str) -> bool:
        return encoding in self.accepted_encodings

    async def transcribe(self, payload: AudioPayload, language: str | None = None) -> str:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class WhisperTranscriber(Transcriber):
    """Send recorded audio to the OpenAI ``/audio/transcriptions`` endpoint."""

    accepted_encodings = WHISPER_ACCEPTED_ENCODINGS
    default_encoding = "audio/mp3"

    def __init__(
        self,
        config: TranscriptionConfig,
        *,
        client: httpx.AsyncClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self._logger = logger or LOGGER
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.timeout)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def transcribe(self, payload: AudioPayload, language: str | None = None) -> str:
        if not self.config.openai_api_key:
            raise TranscriptionError("OPENAI_API_KEY is not set")
        filename = f"audio.{file_extension_for(payload.encoding)}"
        url = f"{self.config.openai_base_url.rstrip('/')}/audio/transcriptions"
        data = {
            "model": self.config.whisper_model,
            "response_format": "json",
        }
        language = language or self.config.language
        if language:
            data["language"] = language
        self._logger.debug("[stt] Uploading %s (%d bytes, %s)", filename, payload.size, payload.encoding)
        try:
            response = await self._client.post(
                url,
                data=data,
                files={"file": (filename, payload.data, payload.encoding)},
                headers={"Authorization": f"Bearer {self.config.openai_api_key}"},
            )
        except httpx.HTTPError as exc:
            raise TranscriptionError(f"Transcription request failed: {exc}") from exc
        if response.status_code >= 400:
            raise TranscriptionError(f"Transcription HTTP error: {response.status_code}")
        try:
            parsed = response.json()
        except ValueError as exc:
            raise TranscriptionError("Transcription response is not JSON") from exc
        text = parsed.get("text") if isinstance(parsed, dict) else None
        return text.strip() if isinstance(text, str) else ""


class WyomingTranscriber(Transcriber):
    """Stream WAV audio to a Wyoming STT server (e.g. faster-whisper)."""

    accepted_encodings = frozenset({"audio/wav", "audio/x-wav", "audio/wave"})
    default_encoding = "audio/wav"

    def __init__(
        self,
        endpoint: WyomingEndpoint,
        *,
        language: str | None = None,
        timeout: float | None = None,
        chunk_ms: int = 30,
        logger: logging.Logger | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.language = language
        self.timeout = timeout
        self.chunk_ms = chunk_ms
        self._logger = logger or LOGGER

    async def transcribe(self, payload: AudioPayload, language: str | None = None) -> str:
        try:
            with wave.open(io.BytesIO(payload.data), "rb") as wav:
                rate = wav.getframerate()
                width = wav.getsampwidth()
                channels = wav.getnchannels()
                pcm = wav.readframes(wav.getnframes())
        except (wave.Error, EOFError) as exc:
            raise TranscriptionError(f"Payload is not WAV audio: {exc}") from exc
        try:
            text = await self._send(pcm, rate, width, channels, language or self.language)
        except (OSError, TimeoutError) as exc:
            raise TranscriptionError(f"Wyoming STT failed: {exc}") from exc
        if text is None:
            raise TranscriptionError("Wyoming STT closed the connection before returning a transcript")
        return text.strip()

    async def _send(self, pcm: bytes, rate: int, width: int, channels: int, language: str | None) -> str | None:
        timeout = self.timeout
        client = AsyncTcpClient(self.endpoint.host, self.endpoint.port)
        await await_with_timeout(client.connect(), timeout)
        try:
            await await_with_timeout(
                client.write_event(Transcribe(name=self.endpoint.model, language=language).event()),
                timeout,
            )
            await await_with_timeout(
                client.write_event(AudioStart(rate=rate, width=width, channels=channels).event()),
                timeout,
            )
            bytes_per_chunk = max(1, int(rate * self.chunk_ms / 1000) * width * channels)
            for chunk in chunk_bytes(pcm, bytes_per_chunk):
                await await_with_timeout(
                    client.write_event(AudioChunk(rate=rate, width=width, channels=channels, audio=chunk).event()),
                    timeout,
                )
            await await_with_timeout(client.write_event(AudioStop().event()), timeout)
            while True:
                event = await await_with_timeout(client.read_event(), timeout)
                if event is None:
                    self._logger.debug("[stt] Wyoming connection closed before transcript returned")
                    return None
                if Transcript.is_type(event.type):
                    return Transcript.from_event(event).text
        finally:
            await client.disconnect()


def build_transcriber(config: TranscriptionConfig, logger: logging.Logger | None = None) -> Transcriber:
    if config.provider == "wyoming":
        if config.wyoming_endpoint is None:
            raise ValueError("MIRA_WYOMING_STT_HOST is required for the wyoming STT provider")
        return WyomingTranscriber(
            config.wyoming_endpoint,
            language=config.language,
            timeout=config.timeout,
            logger=logger,
        )
    return WhisperTranscriber(config, logger=logger)
