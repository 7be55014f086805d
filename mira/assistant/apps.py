"""Launchable application registry."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote

LOGGER = logging.getLogger("mira.apps")

MEDIA_APP_IDS = ("youtube", "spotify")


@dataclass(frozen=True)
class AppDescriptor:
    id: str
    name: str
    description: str
    icon: str
    web_url: str
    native_url: str | None = None
    keywords: tuple[str, ...] = ()

    @property
    def is_media(self) -> bool:
        return self.id in MEDIA_APP_IDS


DEFAULT_APPS: tuple[AppDescriptor, ...] = (
    AppDescriptor(
        id="google",
        name="Google",
        description="Web araması yapın",
        icon="/icons/google.svg",
        web_url="https://www.google.com",
        native_url="googlechrome://",
        keywords=("google", "arama", "search", "chrome"),
    ),
    AppDescriptor(
        id="youtube",
        name="YouTube",
        description="Video izleyin",
        icon="/icons/youtube.svg",
        web_url="https://www.youtube.com",
        native_url="youtube://",
        keywords=("youtube", "video", "izle", "watch", "müzik", "music"),
    ),
    AppDescriptor(
        id="maps",
        name="Google Maps",
        description="Konum ve yol tarifi bulun",
        icon="/icons/maps.svg",
        web_url="https://maps.google.com",
        native_url="comgooglemaps://",
        keywords=("maps", "harita", "konum", "yol", "tarif", "google maps", "haritalar"),
    ),
    AppDescriptor(
        id="spotify",
        name="Spotify",
        description="Müzik dinleyin",
        icon="/icons/spotify.svg",
        web_url="https://open.spotify.com",
        native_url="spotify://",
        keywords=("spotify", "müzik", "music", "dinle", "listen", "şarkı", "song"),
    ),
    AppDescriptor(
        id="twitter",
        name="Twitter",
        description="Güncel olayları takip edin",
        icon="/icons/twitter.svg",
        web_url="https://twitter.com",
        native_url="twitter://",
        keywords=("twitter", "tweet", "sosyal medya", "social media"),
    ),
    AppDescriptor(
        id="instagram",
        name="Instagram",
        description="Fotoğraf ve video paylaşın",
        icon="/icons/instagram.svg",
        web_url="https://www.instagram.com",
        native_url="instagram://",
        keywords=("instagram", "insta", "foto", "fotoğraf", "photo", "sosyal medya", "social media"),
    ),
)


class AppRegistry:
    """Read-only lookup over the app descriptors loaded at start-up."""

    def __init__(self, apps: Iterable[AppDescriptor]) -> None:
        self._apps: tuple[AppDescriptor, ...] = tuple(apps)
        self._by_id = {app.id.lower(): app for app in self._apps}

    @property
    def apps(self) -> tuple[AppDescriptor, ...]:
        return self._apps

    def __iter__(self) -> Iterator[AppDescriptor]:
        return iter(self._apps)

    def __len__(self) -> int:
        return len(self._apps)

    def get(self, app_id: str | None) -> AppDescriptor | None:
        if not app_id:
            return None
        return self._by_id.get(app_id.strip().lower())

    def find_by_name(self, name: str) -> AppDescriptor | None:
        """Return the first app whose name, id, or a keyword contains ``name``."""
        lowered = (name or "").strip().lower()
        if not lowered:
            return None
        for app in self._apps:
            if lowered in app.name.lower() or lowered in app.id.lower():
                return app
            if any(lowered in keyword.lower() for keyword in app.keywords):
                return app
        return None


def load_app_registry(app_file: Path | None = None, inline_json: str | None = None) -> AppRegistry:
    """Build the registry from a JSON file and/or inline JSON, falling back to the defaults."""
    candidates: list[dict] = []
    if app_file and app_file.exists():
        try:
            candidates.extend(_ensure_list(json.loads(app_file.read_text(encoding="utf-8"))))
        except (OSError, ValueError) as exc:
            LOGGER.warning("[apps] Ignoring unreadable app file %s: %s", app_file, exc)

    if inline_json:
        try:
            candidates.extend(_ensure_list(json.loads(inline_json)))
        except ValueError as exc:
            LOGGER.warning("[apps] Ignoring malformed inline app JSON: %s", exc)

    apps: list[AppDescriptor] = []
    seen: set[str] = set()
    for candidate in candidates:
        app_id = str(candidate.get("id") or "").strip().lower()
        name = str(candidate.get("name") or "").strip()
        web_url = str(candidate.get("webUrl") or candidate.get("web_url") or "").strip()
        if not app_id or not name or not web_url or app_id in seen:
            continue
        seen.add(app_id)
        native_url = candidate.get("appUrl") or candidate.get("native_url")
        raw_keywords = candidate.get("keywords") or []
        keywords = tuple(str(k).strip().lower() for k in raw_keywords if isinstance(k, str) and k.strip())
        apps.append(
            AppDescriptor(
                id=app_id,
                name=name,
                description=str(candidate.get("description") or name),
                icon=str(candidate.get("icon") or ""),
                web_url=web_url,
                native_url=str(native_url).strip() or None if native_url else None,
                keywords=keywords,
            )
        )

    if not apps:
        return AppRegistry(DEFAULT_APPS)
    LOGGER.info("[apps] Loaded %d app(s) from configuration", len(apps))
    return AppRegistry(apps)


def search_url(app: AppDescriptor, query: str, *, native: bool = False) -> str | None:
    """Build the search URL a media app uses for ``query``."""
    encoded = quote(query.strip(), safe="")
    if not encoded:
        return None
    native_base = _with_trailing_slash(app.native_url) if native and app.native_url else None
    if app.id == "youtube":
        if native_base:
            return f"{native_base}search?q={encoded}"
        return f"{app.web_url.rstrip('/')}/results?search_query={encoded}"
    if app.id == "spotify":
        if native_base:
            return f"{native_base}search/{encoded}"
        return f"{app.web_url.rstrip('/')}/search/{encoded}"
    return None


def _with_trailing_slash(url: str) -> str:
    return url if url.endswith("/") else f"{url}/"


def _ensure_list(value) -> list[dict]:
    if isinstance(value, list):
        return [item for item in value if isinstance(item, dict)]
    if isinstance(value, dict):
        return [value]
    return []
