"""Open registered apps through native URL schemes with a web fallback."""

from __future__ import annotations

import asyncio
import logging
import shutil
import sys
from asyncio.subprocess import Process

from .apps import AppDescriptor, search_url

LOGGER = logging.getLogger("mira.launcher")

DEFAULT_NATIVE_WAIT_SECONDS = 0.5
REAP_TIMEOUT_SECONDS = 2.0
_OPENER_CANDIDATES = ("xdg-open", "gio", "open")


class LaunchError(RuntimeError):
    """Raised when no URL could be handed to the system."""


class OpenAttempt:
    """Result of handing a URL to the system opener."""

    def handed_off(self) -> bool:
        raise NotImplementedError


class UrlOpener:
    async def open(self, url: str) -> OpenAttempt:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class ProcessOpenAttempt(OpenAttempt):
    def __init__(self, proc: Process) -> None:
        self._proc = proc

    def handed_off(self) -> bool:
        # A scheme handler exits 0 once it has taken over; unknown schemes exit non-zero.
        return self._proc.returncode == 0


class SystemUrlOpener(UrlOpener):
    """Open URLs via ``xdg-open`` (Linux), ``gio open``, or ``open`` (macOS)."""

    def __init__(self, binary: str | None = None, logger: logging.Logger | None = None) -> None:
        self.binary = binary
        self._logger = logger or LOGGER
        self._reapers: set[asyncio.Task[None]] = set()

    def _resolve_command(self, url: str) -> list[str]:
        if self.binary:
            return [self.binary, url]
        candidates = _OPENER_CANDIDATES if sys.platform != "darwin" else ("open",)
        for candidate in candidates:
            path = shutil.which(candidate)
            if not path:
                continue
            if candidate == "gio":
                return [path, "open", url]
            return [path, url]
        raise LaunchError("No URL opener found (tried xdg-open, gio, open)")

    async def open(self, url: str) -> OpenAttempt:
        cmd = self._resolve_command(url)
        self._logger.debug("[launcher] Opening %s via %s", url, cmd[0])
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as exc:
            raise LaunchError(f"Failed to start {cmd[0]}: {exc}") from exc
        reaper = asyncio.create_task(self._reap(proc, cmd[0]))
        self._reapers.add(reaper)
        reaper.add_done_callback(self._reapers.discard)
        return ProcessOpenAttempt(proc)

    async def close(self, timeout: float = REAP_TIMEOUT_SECONDS) -> None:
        """Wait for opener processes still running; give up on them after ``timeout``."""
        if not self._reapers:
            return
        _, stuck = await asyncio.wait(set(self._reapers), timeout=timeout)
        for task in stuck:
            task.cancel()
        if stuck:
            self._logger.debug("[launcher] Abandoned %d opener process(es)", len(stuck))
            await asyncio.gather(*stuck, return_exceptions=True)

    async def _reap(self, proc: Process, name: str) -> None:
        returncode = await proc.wait()
        self._logger.debug("[launcher] %s exited with %s", name, returncode)


class AppLauncher:
    """Launch apps, preferring the native scheme.

    Whether a native open worked cannot be observed directly. After handing
    off the native URL the launcher waits a fixed interval and asks the
    attempt whether the environment switched away; if not, the web URL is
    opened instead. This is a best-effort heuristic with no hard guarantee.
    """

    def __init__(
        self,
        opener: UrlOpener | None = None,
        *,
        native_wait_seconds: float = DEFAULT_NATIVE_WAIT_SECONDS,
        logger: logging.Logger | None = None,
    ) -> None:
        self.opener = opener or SystemUrlOpener()
        self.native_wait_seconds = native_wait_seconds
        self._logger = logger or LOGGER

    async def launch(self, app: AppDescriptor, query: str | None = None) -> bool:
        """Open ``app`` (optionally searching ``query``); True when the native app took over."""
        native_url, web_url = self._urls_for(app, query)
        if native_url:
            try:
                attempt = await self.opener.open(native_url)
            except LaunchError as exc:
                self._logger.info("[launcher] Native open of %s failed: %s", app.id, exc)
            else:
                await asyncio.sleep(self.native_wait_seconds)
                if attempt.handed_off():
                    self._logger.info("[launcher] Opened %s natively", app.id)
                    return True
                self._logger.info("[launcher] %s did not hand off natively; using web fallback", app.id)
        await self.opener.open(web_url)
        self._logger.info("[launcher] Opened %s in the browser (%s)", app.id, web_url)
        return False

    async def close(self) -> None:
        await self.opener.close()

    @staticmethod
    def _urls_for(app: AppDescriptor, query: str | None) -> tuple[str | None, str]:
        if query and query.strip() and app.is_media:
            native = search_url(app, query, native=True) if app.native_url else None
            web = search_url(app, query) or app.web_url
            return native, web
        return app.native_url, app.web_url
