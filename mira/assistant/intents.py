"""Intent extraction for Mira.

This module turns free-form text into one structured intent. It is pure and
synchronous: no I/O, no state beyond the read-only app registry.

User input is tried tier by tier, first match wins:
- Media search: "Spotify'dan efkar açabilir misin", "YouTube'dan lo-fi oynat"
- App open: "YouTube aç", "open Google Maps", "instagram'ı açar mısın"

Assistant replies are scanned separately:
- Reminder: "Başlık: ...", "Tarih: ...", "Saat: ..." lines (+ optional "Açıklama: ...")
- Reactive app open: "... YouTube uygulamasını açmak istiyor musunuz?"
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mira.assistant.apps import AppDescriptor, AppRegistry


@dataclass(frozen=True, slots=True)
class AppOpenIntent:
    app_id: str
    raw_command_verb: str


@dataclass(frozen=True, slots=True)
class MediaSearchIntent:
    app_id: str
    query: str


@dataclass(frozen=True, slots=True)
class ReminderIntent:
    title: str
    date: str
    time: str
    description: str = ""


@dataclass(frozen=True, slots=True)
class NoIntent:
    pass


Intent = AppOpenIntent | MediaSearchIntent | ReminderIntent | NoIntent

NO_INTENT = NoIntent()

DEFAULT_OPEN_VERB = "aç"
MIN_FALLBACK_TOKEN_LENGTH = 3

_MEDIA_VERBS = r"açar\s+mısın|açabilir\s+misin|aç|oynat|çal|dinle|play"
_APP_VERBS = (
    r"açar\s+mısın|açabilir\s+misin|aç|başlat|çalıştır|göster|open|start|run|show|launch|execute|play|oynat|çal"
)
_NAME_WORD = r"(?:[^\W\d_]|['’])+"

MEDIA_SEARCH_PATTERN = re.compile(
    rf"(?<!\w)(?P<platform>youtube|spotify)(?:['’]|\s)d[ae]n\s+(?P<query>.+?)\s+(?P<verb>{_MEDIA_VERBS})",
    re.IGNORECASE,
)
VERB_FIRST_PATTERN = re.compile(
    rf"(?<!\w)(?P<verb>{_APP_VERBS})\s+(?P<name>{_NAME_WORD}(?:\s+{_NAME_WORD})*)(?=\s|$|[.?!])",
    re.IGNORECASE,
)
NAME_FIRST_PATTERN = re.compile(
    rf"(?P<name>{_NAME_WORD}(?:\s+{_NAME_WORD})*?)\s+(?P<verb>{_APP_VERBS})(?=\s|$|[.?!,])",
    re.IGNORECASE,
)

_LABEL_LINE = r"^[ \t]*(?:[-*•][ \t]*)?\**[ \t]*(?:{labels})[ \t]*\**[ \t]*:[ \t]*\**[ \t]*(?P<value>[^\n]*?)[ \t]*\**[ \t]*$"
REMINDER_FIELD_PATTERNS = {
    "title": re.compile(_LABEL_LINE.format(labels="Başlık|Title"), re.IGNORECASE | re.MULTILINE),
    "date": re.compile(_LABEL_LINE.format(labels="Tarih|Date"), re.IGNORECASE | re.MULTILINE),
    "time": re.compile(_LABEL_LINE.format(labels="Saat|Time"), re.IGNORECASE | re.MULTILINE),
    "description": re.compile(_LABEL_LINE.format(labels="Açıklama|Description"), re.IGNORECASE | re.MULTILINE),
}

APP_OPEN_TRIGGER_PATTERNS = (
    re.compile(r"açmak istediğinizi anlıyorum", re.IGNORECASE),
    re.compile(r"açmak için onay", re.IGNORECASE),
    re.compile(r"uygulamasını açmak", re.IGNORECASE),
    re.compile(r"açmak istiyor musunuz", re.IGNORECASE),
    re.compile(r"(?:want|like) me to open", re.IGNORECASE),
    re.compile(r"you want to open", re.IGNORECASE),
)


def _tokens(text: str) -> list[str]:
    return [token for token in text.lower().split() if len(token) >= MIN_FALLBACK_TOKEN_LENGTH]


def _has_significant_token(text: str) -> bool:
    return bool(_tokens(text))


def _contains_either_way(phrase: str, candidate: str) -> bool:
    """Case-insensitive containment in either direction.

    The phrase-inside-candidate direction needs a phrase with at least one
    token of three or more characters so that "go" does not select Google.
    """
    candidate = candidate.strip().lower()
    if not candidate:
        return False
    if candidate in phrase:
        return True
    return _has_significant_token(phrase) and phrase in candidate


def describe_intent(intent: Intent) -> str:
    """Short one-line description used in logs."""
    if isinstance(intent, MediaSearchIntent):
        return f"media_search(app={intent.app_id}, query={intent.query!r})"
    if isinstance(intent, AppOpenIntent):
        return f"app_open(app={intent.app_id}, verb={intent.raw_command_verb!r})"
    if isinstance(intent, ReminderIntent):
        return f"reminder(title={intent.title!r}, date={intent.date}, time={intent.time})"
    return "none"


class IntentExtractor:
    """Ordered, pure intent extraction over user text and assistant replies.

    Every method is total: malformed or empty input yields ``NO_INTENT``.
    """

    def __init__(self, registry: AppRegistry) -> None:
        self.registry = registry

    # ========================================================================
    # User input (tiers 1-3)
    # ========================================================================

    def extract(self, text: str | None) -> Intent:
        """Extract an intent from user text.

        Args:
            text: Typed or transcribed user text

        Returns:
            ``MediaSearchIntent`` or ``AppOpenIntent`` when a command resolves,
            otherwise ``NO_INTENT``
        """
        if not text or not text.strip():
            return NO_INTENT
        media = self.extract_media_search(text)
        if media is not None:
            return media
        app_open = self.extract_app_open(text)
        if app_open is not None:
            return app_open
        return NO_INTENT

    def extract_media_search(self, text: str) -> MediaSearchIntent | None:
        match = MEDIA_SEARCH_PATTERN.search(text)
        if not match:
            return None
        query = match.group("query").strip()
        if not query:
            return None
        app_id = "youtube" if "youtube" in match.group("platform").lower() else "spotify"
        if self.registry.get(app_id) is None:
            return None
        return MediaSearchIntent(app_id=app_id, query=query)

    def extract_app_open(self, text: str) -> AppOpenIntent | None:
        for pattern in (VERB_FIRST_PATTERN, NAME_FIRST_PATTERN):
            match = pattern.search(text)
            if not match:
                continue
            verb = re.sub(r"\s+", " ", match.group("verb").lower())
            app = self.resolve_app(match.group("name"))
            if app is not None:
                return AppOpenIntent(app_id=app.id, raw_command_verb=verb)
        return None

    def resolve_app(self, phrase: str | None) -> AppDescriptor | None:
        """Resolve a candidate name phrase against the registry.

        Passes run in order and the first pass with a hit decides:
        name/id containment, keyword containment, then word-level fallback.
        Within the containment passes the longest matching name wins, ties go
        to registry order.
        """
        lowered = re.sub(r"\s+", " ", (phrase or "").strip().lower())
        if not lowered:
            return None

        best: tuple[int, AppDescriptor] | None = None
        for app in self.registry:
            for candidate in (app.name, app.id):
                if _contains_either_way(lowered, candidate) and (best is None or len(candidate) > best[0]):
                    best = (len(candidate), app)
        if best is not None:
            return best[1]

        for app in self.registry:
            for keyword in app.keywords:
                if _contains_either_way(lowered, keyword) and (best is None or len(keyword) > best[0]):
                    best = (len(keyword), app)
        if best is not None:
            return best[1]

        search_words = _tokens(lowered)
        if not search_words:
            return None
        for app in self.registry:
            name_words = _tokens(app.name) + _tokens(app.id)
            for keyword in app.keywords:
                name_words.extend(_tokens(keyword))
            for word in search_words:
                if any(word in name_word or name_word in word for name_word in name_words):
                    return app
        return None

    # ========================================================================
    # Assistant replies (tiers 4-5)
    # ========================================================================

    def extract_from_reply(self, text: str | None) -> Intent:
        """Scan an assistant reply for a reminder or an app-open offer."""
        if not text or not text.strip():
            return NO_INTENT
        reminder = self.extract_reminder(text)
        if reminder is not None:
            return reminder
        reactive = self.extract_reactive_app_open(text)
        if reactive is not None:
            return reactive
        return NO_INTENT

    @staticmethod
    def extract_reminder(text: str) -> ReminderIntent | None:
        """Extract labeled reminder fields.

        Title, date, and time must all be present and non-empty.
        """
        fields: dict[str, str] = {}
        for name, pattern in REMINDER_FIELD_PATTERNS.items():
            for match in pattern.finditer(text):
                value = match.group("value").strip()
                if value:
                    fields[name] = value
                    break
        if not all(fields.get(name) for name in ("title", "date", "time")):
            return None
        return ReminderIntent(
            title=fields["title"],
            date=fields["date"],
            time=fields["time"],
            description=fields.get("description", ""),
        )

    def extract_reactive_app_open(self, text: str) -> AppOpenIntent | None:
        if not any(pattern.search(text) for pattern in APP_OPEN_TRIGGER_PATTERNS):
            return None
        lowered = text.lower()
        best: AppDescriptor | None = None
        for app in self.registry:
            name = app.name.lower()
            if name and name in lowered and (best is None or len(name) > len(best.name)):
                best = app
        if best is None:
            return None
        return AppOpenIntent(app_id=best.id, raw_command_verb=DEFAULT_OPEN_VERB)
