# -*- coding: utf-8 -*-
from __future__ import annotations
import asyncio

from marketplace_analytics.platforms.registry import PlatformRegistry
from marketplace_analytics.schemas import Platform
from marketplace_analytics.scraping.diagnostics import DiagnosticsRecorder
from marketplace_analytics.scraping.stealth import AntiDetectionProfile

from conftest import FakePage


class TestPlatformRegistry:

    def test_bundled_platforms(self, registry):
        keys = sorted(c.key for c in registry.all())
        assert keys == ["facebook", "kijiji"]
        fb = registry.get(Platform.facebook)
        assert fb.accepts_auth_override is True
        assert fb.login.email_selectors[0] == 'input[name="email"]'
        kj = registry.get("kijiji")
        assert kj.accepts_auth_override is False
        assert kj.dashboard.max_pages == 5
        assert kj.landing.password_field_means_login is True
        assert ".view-count" in kj.detail_selectors["views"]

    def test_bad_files_are_skipped(self, tmp_path):
        (tmp_path / "good.yaml").write_text(
            "key: kijiji\nname: Kijiji\nbase_url: https://www.kijiji.ca/\n", encoding="utf-8",
        )
        (tmp_path / "broken.yaml").write_text("key: [unclosed\n", encoding="utf-8")
        (tmp_path / "unknown.yaml").write_text(
            "key: craigslist\nbase_url: https://craigslist.org/\n", encoding="utf-8",
        )
        (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")
        reg = PlatformRegistry(str(tmp_path))
        assert [c.key for c in reg.all()] == ["kijiji"]
        assert reg.get("kijiji").login.error_keywords == ["error", "incorrect", "wrong"]

    def test_missing_dir(self, tmp_path):
        assert PlatformRegistry(str(tmp_path / "nope")).all() == []


class TestAntiDetectionProfile:

    def test_disabled_is_noop(self):
        profile = AntiDetectionProfile(enabled=False)
        assert profile.context_options() == {}
        assert profile.launch_args == []
        assert profile.keystroke_delay() == 0

    def test_enabled_options(self):
        profile = AntiDetectionProfile(enabled=True)
        opts = profile.context_options()
        assert opts["user_agent"] in profile.user_agents
        assert set(opts) >= {"viewport", "locale", "timezone_id", "extra_http_headers"}
        assert 50 <= profile.keystroke_delay() <= 150
        assert "navigator, 'webdriver'" in profile.init_script
        assert "['en-US','en']" in profile.init_script


class TestDiagnostics:

    def test_capture_writes_png_and_html(self, tmp_path):
        page = FakePage()
        shot = asyncio.run(DiagnosticsRecorder(str(tmp_path)).capture(page, "kijiji attempt/1"))
        assert shot.exists()
        assert shot.suffix == ".png"
        assert shot.with_suffix(".html").exists()

    def test_capture_never_raises(self, tmp_path):
        class Dead(FakePage):
            async def screenshot(self, path, full_page=False):
                raise RuntimeError("Target closed")

            async def content(self):
                raise RuntimeError("Target closed")

        assert asyncio.run(DiagnosticsRecorder(str(tmp_path)).capture(Dead(), "x")) is None
        assert asyncio.run(DiagnosticsRecorder(str(tmp_path)).capture(None, "x")) is None
