"""Tests for app launching (mira/assistant/launcher.py)."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, Mock, patch

import pytest

from mira.assistant.apps import DEFAULT_APPS, AppDescriptor
from mira.assistant.launcher import AppLauncher, LaunchError, ProcessOpenAttempt, SystemUrlOpener

pytestmark = pytest.mark.anyio

APPS = {app.id: app for app in DEFAULT_APPS}


# ============================================================================
# AppLauncher
# ============================================================================


class TestAppLauncher:
    async def test_native_handoff(self, launcher, opener):
        assert await launcher.launch(APPS["spotify"]) is True
        assert opener.opened == ["spotify://"]

    async def test_web_fallback_when_not_handed_off(self, launcher, opener):
        assert await launcher.launch(APPS["instagram"]) is False
        assert opener.opened == ["instagram://", "https://www.instagram.com"]

    async def test_web_only_app(self, launcher, opener):
        app = AppDescriptor(id="wiki", name="Vikipedi", description="", icon="", web_url="https://tr.wikipedia.org")
        assert await launcher.launch(app) is False
        assert opener.opened == ["https://tr.wikipedia.org"]

    async def test_media_query_uses_search_urls(self, make_opener, mock_logger):
        opener = make_opener()
        launcher = AppLauncher(opener, native_wait_seconds=0, logger=mock_logger)
        assert await launcher.launch(APPS["youtube"], "tarkan") is False
        assert opener.opened == [
            "youtube://search?q=tarkan",
            "https://www.youtube.com/results?search_query=tarkan",
        ]

    async def test_query_ignored_for_non_media_app(self, launcher, opener):
        await launcher.launch(APPS["twitter"], "haber")
        assert opener.opened == ["twitter://", "https://twitter.com"]

    async def test_native_launch_error_falls_back(self, mock_logger):
        opener = Mock()
        opener.open = AsyncMock(side_effect=[LaunchError("unknown scheme"), Mock()])
        launcher = AppLauncher(opener, native_wait_seconds=0, logger=mock_logger)
        assert await launcher.launch(APPS["maps"]) is False
        assert opener.open.await_args_list[-1].args == ("https://maps.google.com",)

    async def test_web_failure_propagates(self, make_opener, mock_logger):
        launcher = AppLauncher(make_opener(fail=True), native_wait_seconds=0, logger=mock_logger)
        with pytest.raises(LaunchError):
            await launcher.launch(APPS["google"])

    async def test_waits_before_checking_handoff(self, opener, mock_logger):
        launcher = AppLauncher(opener, native_wait_seconds=0.5, logger=mock_logger)
        with patch("mira.assistant.launcher.asyncio.sleep", new=AsyncMock()) as sleep:
            await launcher.launch(APPS["youtube"])
        sleep.assert_awaited_once_with(0.5)


# ============================================================================
# SystemUrlOpener
# ============================================================================


class TestSystemUrlOpener:
    def test_explicit_binary(self):
        assert SystemUrlOpener("firefox")._resolve_command("https://x") == ["firefox", "https://x"]

    def test_gio_uses_open_subcommand(self):
        def which(name):
            return "/usr/bin/gio" if name == "gio" else None

        with (
            patch("mira.assistant.launcher.sys.platform", "linux"),
            patch("mira.assistant.launcher.shutil.which", side_effect=which),
        ):
            assert SystemUrlOpener()._resolve_command("https://x") == ["/usr/bin/gio", "open", "https://x"]

    def test_no_opener(self):
        with patch("mira.assistant.launcher.shutil.which", return_value=None):
            with pytest.raises(LaunchError):
                SystemUrlOpener()._resolve_command("https://x")

    async def test_spawn_failure(self):
        opener = SystemUrlOpener("/nonexistent/mira-opener")
        with pytest.raises(LaunchError):
            await opener.open("https://x")

    async def test_open_spawns_and_reaps_process(self):
        proc = Mock(returncode=0)
        proc.wait = AsyncMock(return_value=0)
        opener = SystemUrlOpener("xdg-open")
        with patch(
            "mira.assistant.launcher.asyncio.create_subprocess_exec", new=AsyncMock(return_value=proc)
        ) as spawn:
            attempt = await opener.open("spotify://")
        assert spawn.await_args.args == ("xdg-open", "spotify://")
        assert attempt.handed_off()

        await opener.close()
        proc.wait.assert_awaited_once()

    async def test_close_gives_up_on_stuck_opener(self):
        async def never_exits():
            await asyncio.sleep(10)

        proc = Mock(returncode=None)
        proc.wait = AsyncMock(side_effect=never_exits)
        opener = SystemUrlOpener("xdg-open")
        with patch("mira.assistant.launcher.asyncio.create_subprocess_exec", new=AsyncMock(return_value=proc)):
            await opener.open("https://x")
        await opener.close(timeout=0.01)
        assert not opener._reapers

    async def test_launcher_close_closes_opener(self, mock_logger):
        opener = Mock()
        opener.close = AsyncMock()
        await AppLauncher(opener, logger=mock_logger).close()
        opener.close.assert_awaited_once()


class TestProcessOpenAttempt:
    @pytest.mark.parametrize(("returncode", "expected"), [(0, True), (1, False), (None, False)])
    def test_handed_off(self, returncode, expected):
        assert ProcessOpenAttempt(Mock(returncode=returncode)).handed_off() is expected
