"""Configuration helpers for the Mira assistant."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from mira.utils import parse_float, parse_int, split_csv


def _strip_or_none(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


DEFAULT_SYSTEM_PROMPT = """Sen kullanıcıya Türkçe yardım eden nazik bir yapay zeka asistanısın.
Kısa ve anlaşılır cevaplar ver.

Kullanıcı bir hatırlatıcı oluşturmak isterse cevabına şu satırları ekle:
Başlık: <hatırlatıcı başlığı>
Tarih: <YYYY-AA-GG>
Saat: <SS:DD>
Açıklama: <isteğe bağlı açıklama>

Kullanıcı bir uygulamayı açmak isterse uygulamanın adını yaz ve
"<Uygulama> uygulamasını açmak istiyor musunuz?" diye sor."""

DEFAULT_CAPTURE_ENCODINGS = ("audio/mp3", "audio/mp4", "audio/webm", "audio/ogg", "audio/wav")
STT_PROVIDERS = {"whisper", "wyoming"}


@dataclass(frozen=True)
class WyomingEndpoint:
    host: str
    port: int
    model: str | None = None


@dataclass(frozen=True)
class LLMConfig:
    system_prompt: str
    openai_model: str
    openai_api_key: str | None
    openai_base_url: str
    openai_timeout: float
    temperature: float
    max_tokens: int


@dataclass(frozen=True)
class TranscriptionConfig:
    provider: str
    language: str
    whisper_model: str
    openai_api_key: str | None
    openai_base_url: str
    timeout: float
    wyoming_endpoint: WyomingEndpoint | None


@dataclass(frozen=True)
class MicConfig:
    device: str | None
    rate: int
    width: int
    channels: int
    chunk_ms: int

    @property
    def bytes_per_chunk(self) -> int:
        samples = int(self.rate * (self.chunk_ms / 1000))
        return samples * self.width * self.channels


@dataclass(frozen=True)
class CaptureConfig:
    encodings: tuple[str, ...]
    user_agent: str | None
    mic: MicConfig


@dataclass(frozen=True)
class LaunchConfig:
    native_wait_ms: int
    opener: str | None


@dataclass(frozen=True)
class AssistantConfig:
    data_dir: Path
    apps_file: Path | None
    inline_apps: str | None
    log_level: str
    llm: LLMConfig
    transcription: TranscriptionConfig
    capture: CaptureConfig
    launch: LaunchConfig

    @staticmethod
    def from_env(env: dict[str, str] | None = None) -> AssistantConfig:
        source = env if env is not None else os.environ

        api_key = _strip_or_none(source.get("OPENAI_API_KEY"))
        base_url = source.get("MIRA_OPENAI_BASE_URL") or "https://api.openai.com/v1"

        llm = LLMConfig(
            system_prompt=source.get("MIRA_SYSTEM_PROMPT") or DEFAULT_SYSTEM_PROMPT,
            openai_model=source.get("MIRA_OPENAI_MODEL") or "gpt-3.5-turbo",
            openai_api_key=api_key,
            openai_base_url=base_url,
            openai_timeout=parse_float(source.get("MIRA_OPENAI_TIMEOUT"), 45.0),
            temperature=parse_float(source.get("MIRA_TEMPERATURE"), 0.7),
            max_tokens=parse_int(source.get("MIRA_MAX_TOKENS"), 500, minimum=1),
        )

        provider = (source.get("MIRA_STT_PROVIDER") or "whisper").strip().lower()
        if provider not in STT_PROVIDERS:
            provider = "whisper"
        wyoming_host = _strip_or_none(source.get("MIRA_WYOMING_STT_HOST"))
        wyoming_endpoint = None
        if wyoming_host:
            wyoming_endpoint = WyomingEndpoint(
                host=wyoming_host,
                port=parse_int(source.get("MIRA_WYOMING_STT_PORT"), 10300),
                model=_strip_or_none(source.get("MIRA_WYOMING_STT_MODEL")),
            )
        transcription = TranscriptionConfig(
            provider=provider,
            language=(source.get("MIRA_LANGUAGE") or "tr").strip(),
            whisper_model=source.get("MIRA_WHISPER_MODEL") or "whisper-1",
            openai_api_key=api_key,
            openai_base_url=base_url,
            timeout=parse_float(source.get("MIRA_STT_TIMEOUT"), 60.0),
            wyoming_endpoint=wyoming_endpoint,
        )

        mic = MicConfig(
            device=_strip_or_none(source.get("MIRA_MIC_DEVICE")),
            rate=parse_int(source.get("MIRA_MIC_RATE"), 16000, minimum=1),
            width=parse_int(source.get("MIRA_MIC_WIDTH"), 2, minimum=1),
            channels=parse_int(source.get("MIRA_MIC_CHANNELS"), 1, minimum=1),
            chunk_ms=parse_int(source.get("MIRA_MIC_CHUNK_MS"), 30, minimum=1),
        )
        encodings = tuple(split_csv(source.get("MIRA_CAPTURE_ENCODINGS"))) or DEFAULT_CAPTURE_ENCODINGS
        capture = CaptureConfig(
            encodings=encodings,
            user_agent=_strip_or_none(source.get("MIRA_USER_AGENT")),
            mic=mic,
        )

        launch = LaunchConfig(
            native_wait_ms=parse_int(source.get("MIRA_NATIVE_LAUNCH_WAIT_MS"), 500, minimum=0),
            opener=_strip_or_none(source.get("MIRA_OPENER")),
        )

        data_dir_raw = _strip_or_none(source.get("MIRA_DATA_DIR"))
        data_dir = Path(data_dir_raw).expanduser() if data_dir_raw else Path.home() / ".local" / "share" / "mira"
        apps_file_raw = _strip_or_none(source.get("MIRA_APPS_FILE"))

        return AssistantConfig(
            data_dir=data_dir,
            apps_file=Path(apps_file_raw).expanduser() if apps_file_raw else None,
            inline_apps=_strip_or_none(source.get("MIRA_APPS_JSON")),
            log_level=(source.get("MIRA_LOG_LEVEL") or "INFO").strip().upper(),
            llm=llm,
            transcription=transcription,
            capture=capture,
            launch=launch,
        )
