# -*- coding: utf-8 -*-
"""Best-effort failure snapshots: a full-page screenshot plus the page HTML."""
from __future__ import annotations
import re
from datetime import datetime
from pathlib import Path
from typing import Optional

from marketplace_analytics.config import settings
from marketplace_analytics.utils.logger import get_logger

logger = get_logger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]+")


class DiagnosticsRecorder:

    def __init__(self, directory: Optional[str] = None):
        self.directory = Path(directory or settings.diagnostics_dir)

    def _stem(self, label: str) -> str:
        ts = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        return _UNSAFE.sub("_", label).strip("_") + "_" + ts

    async def capture(self, page, label: str) -> Optional[Path]:
        """Returns the screenshot path, or None when nothing could be saved.
        Never raises: a failed capture must not mask the original error."""
        if page is None:
            return None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning("Diagnostics dir unavailable (%s): %s", self.directory, e)
            return None

        stem = self._stem(label)
        shot = self.directory / (stem + ".png")
        saved: Optional[Path] = None
        try:
            await page.screenshot(path=str(shot), full_page=True)
            saved = shot
            logger.info("Screenshot saved: %s", shot)
        except Exception as e:
            logger.warning("Screenshot failed for %s: %s", label, e)

        try:
            content = await page.content()
            html = self.directory / (stem + ".html")
            html.write_text(content, encoding="utf-8", errors="replace")
            logger.debug("Debug HTML saved: %s", html.name)
        except Exception as e:
            logger.warning("Debug HTML failed for %s: %s", label, e)
        return saved


diagnostics = DiagnosticsRecorder()
