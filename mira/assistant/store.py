"""Durable JSON storage for conversations and reminders.

Values are stored one file per logical name under the data directory.
Writes go to a temporary file that replaces the target atomically while an
``fcntl`` lock is held, so concurrent writers resolve to last-write-wins and
a crash never leaves a half-written file behind.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import re
import tempfile
import uuid
from dataclasses import asdict, dataclass
from datetime import date, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from mira.assistant.pending_actions import ReminderDraft

LOGGER = logging.getLogger("mira.store")

LOCK_FILE_SUFFIX = ".lock"
REMINDERS_KEY = "reminders"

_SAFE_NAME_RE = re.compile(r"^[A-Za-z0-9_.-]+$")
_DATE_FORMATS = ("%Y-%m-%d", "%d.%m.%Y", "%d/%m/%Y", "%Y/%m/%d", "%d-%m-%Y")
_TIME_RE = re.compile(r"^([01]?\d|2[0-3])[:.]([0-5]\d)$")


class StoreError(RuntimeError):
    """Raised when the durable store cannot be read or written."""


class ReminderStoreError(StoreError):
    """Raised when a reminder cannot be created or updated."""


class JsonStore:
    """Key/value persistence with one JSON document per logical name."""

    def __init__(self, data_dir: Path, logger: logging.Logger | None = None) -> None:
        self.data_dir = data_dir
        self._logger = logger or LOGGER

    def path_for(self, name: str) -> Path:
        if not _SAFE_NAME_RE.match(name):
            raise StoreError(f"Invalid store key: {name!r}")
        return self.data_dir / f"{name}.json"

    def load(self, name: str, default: Any = None) -> Any:
        """Return the stored value, or ``default`` when missing or unreadable."""
        path = self.path_for(name)
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return default
        except OSError as exc:
            self._logger.warning("[store] Failed to read %s: %s", path, exc)
            return default
        try:
            return json.loads(content)
        except json.JSONDecodeError as exc:
            self._logger.warning("[store] Ignoring corrupt %s: %s", path, exc)
            return default

    def save(self, name: str, value: Any) -> None:
        """Persist ``value`` under ``name``; raises ``StoreError`` on failure."""
        path = self.path_for(name)
        try:
            payload = json.dumps(value, ensure_ascii=False, indent=2)
        except (TypeError, ValueError) as exc:
            raise StoreError(f"Value for {name!r} is not JSON serializable") from exc

        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreError(f"Cannot create data directory {self.data_dir}: {exc}") from exc

        lock_path = Path(str(path) + LOCK_FILE_SUFFIX)
        try:
            with open(lock_path, "w") as lock_fd:
                fcntl.flock(lock_fd.fileno(), fcntl.LOCK_EX)
                try:
                    self._write_atomic(path, payload)
                finally:
                    fcntl.flock(lock_fd.fileno(), fcntl.LOCK_UN)
        except OSError as exc:
            raise StoreError(f"Failed to write {path}: {exc}") from exc
        self._logger.debug("[store] Saved %s (%d bytes)", path.name, len(payload))

    @staticmethod
    def _write_atomic(path: Path, payload: str) -> None:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


@dataclass(slots=True)
class Reminder:
    id: str
    title: str
    date: str
    time: str
    description: str = ""
    completed: bool = False


def parse_reminder_date(value: str) -> date | None:
    """Parse the date formats the assistant is asked to produce."""
    text = (value or "").strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def normalize_reminder_time(value: str) -> str | None:
    match = _TIME_RE.match((value or "").strip())
    if not match:
        return None
    return f"{int(match.group(1)):02d}:{match.group(2)}"


class ReminderStore:
    """Reminder list persisted through a ``JsonStore``."""

    def __init__(self, store: JsonStore, logger: logging.Logger | None = None) -> None:
        self._store = store
        self._logger = logger or LOGGER

    def list_reminders(self) -> list[Reminder]:
        raw = self._store.load(REMINDERS_KEY, default=[])
        if not isinstance(raw, list):
            return []
        reminders: list[Reminder] = []
        for item in raw:
            if not isinstance(item, dict) or not item.get("id") or not item.get("title"):
                continue
            reminders.append(
                Reminder(
                    id=str(item["id"]),
                    title=str(item["title"]),
                    date=str(item.get("date") or ""),
                    time=str(item.get("time") or ""),
                    description=str(item.get("description") or ""),
                    completed=bool(item.get("completed", False)),
                )
            )
        return reminders

    def add_reminder(self, draft: ReminderDraft) -> Reminder:
        """Validate and persist a confirmed reminder draft."""
        parsed_date = parse_reminder_date(draft.date)
        if parsed_date is None:
            raise ReminderStoreError(f"Invalid reminder date: {draft.date!r}")
        title = draft.title.strip()
        if not title:
            raise ReminderStoreError("Reminder title is empty")
        reminder = Reminder(
            id=uuid.uuid4().hex,
            title=title,
            date=parsed_date.isoformat(),
            time=normalize_reminder_time(draft.time) or draft.time.strip(),
            description=draft.description.strip(),
        )
        reminders = self.list_reminders()
        reminders.append(reminder)
        self._save(reminders)
        self._logger.info("[store] Added reminder %s (%s %s)", reminder.title, reminder.date, reminder.time)
        return reminder

    def update_reminder(self, reminder_id: str, **updates: Any) -> bool:
        reminders = self.list_reminders()
        for reminder in reminders:
            if reminder.id != reminder_id:
                continue
            for key, value in updates.items():
                if key == "id" or not hasattr(reminder, key):
                    raise ReminderStoreError(f"Unknown reminder field: {key}")
                setattr(reminder, key, value)
            self._save(reminders)
            return True
        return False

    def delete_reminder(self, reminder_id: str) -> bool:
        reminders = self.list_reminders()
        remaining = [reminder for reminder in reminders if reminder.id != reminder_id]
        if len(remaining) == len(reminders):
            return False
        self._save(remaining)
        return True

    def _save(self, reminders: list[Reminder]) -> None:
        try:
            self._store.save(REMINDERS_KEY, [asdict(reminder) for reminder in reminders])
        except StoreError as exc:
            raise ReminderStoreError(str(exc)) from exc
