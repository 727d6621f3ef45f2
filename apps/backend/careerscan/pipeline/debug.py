"""
Debug capturer.

Saves a screenshot, the HTML and a metadata file for failed extraction
attempts, organized per domain. Capture is sampled and rate limited so a
bad batch cannot fill the disk.
"""
import json
import logging
import random
import time
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Deque, Dict, Optional

from careerscan.config import get_settings
from careerscan.core.urls import get_domain
from careerscan.models import ExtractionResult

logger = logging.getLogger(__name__)


class DebugCapturer:
    """Sampled, budgeted export of failure artifacts"""

    def __init__(
        self,
        base_path: Optional[str] = None,
        enabled: Optional[bool] = None,
        sample_rate: Optional[float] = None,
        max_per_window: Optional[int] = None,
        window_seconds: float = 60.0,
        rng: Optional[random.Random] = None
    ):
        settings = get_settings()
        self.base_path = Path(base_path or settings.debug_dir)
        self.enabled = settings.debug_enabled if enabled is None else enabled
        self.sample_rate = settings.debug_sample_rate if sample_rate is None else sample_rate
        self.max_per_window = settings.debug_max_per_window if max_per_window is None else max_per_window
        self.window_seconds = window_seconds
        self._rng = rng or random.Random()
        self._exports: Deque[float] = deque()

        if self.enabled:
            logger.info(f"Debug capturer enabled: {self.base_path} (sample_rate={self.sample_rate})")

    def _budget_available(self, now: float) -> bool:
        while self._exports and now - self._exports[0] > self.window_seconds:
            self._exports.popleft()
        return len(self._exports) < self.max_per_window

    def should_export_debug(
        self,
        result: Optional[ExtractionResult],
        error: Optional[BaseException],
        step_name: str
    ) -> bool:
        """
        Decide whether a failure gets captured.

        True only when capture is enabled, the attempt actually failed
        (an error, no result or an empty one), the sampling draw passes and
        the per-window budget has room. A True answer consumes one slot.
        """
        if not self.enabled:
            return False
        failed = error is not None or result is None or result.is_empty or not result.links
        if not failed:
            return False
        if self._rng.random() >= self.sample_rate:
            return False
        now = time.monotonic()
        if not self._budget_available(now):
            logger.debug(f"[debug] Budget exhausted, skipping capture for {step_name}")
            return False
        self._exports.append(now)
        return True

    async def export(
        self,
        screenshot: Optional[bytes] = None,
        html: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Optional[Path]:
        """Write <base>/<domain>/<step>-<stamp>.{png,html,meta.json}; returns the stem path"""
        metadata = dict(metadata or {})
        try:
            domain = get_domain(metadata.get('url', '')) or 'unknown'
            domain_dir = self.base_path / domain
            domain_dir.mkdir(parents=True, exist_ok=True)

            stamp = datetime.now(timezone.utc).strftime('%Y%m%dT%H%M%S%fZ')
            name = f"{metadata.get('step', 'pipeline')}-{stamp}"
            stem = domain_dir / name

            if screenshot:
                with open(domain_dir / f"{name}.png", 'wb') as f:
                    f.write(screenshot)

            if html:
                with open(domain_dir / f"{name}.html", 'w', encoding='utf-8') as f:
                    f.write(html)

            metadata.update({
                'captured_at': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
                'html_size': len(html) if html else 0,
                'has_screenshot': bool(screenshot),
            })
            with open(domain_dir / f"{name}.meta.json", 'w', encoding='utf-8') as f:
                json.dump(metadata, f, indent=2, ensure_ascii=False, default=str)

            logger.info(f"[debug] Captured {stem}")
            return stem
        except Exception as e:
            logger.error(f"[debug] Failed to write debug capture: {e}")
            return None
