"""
Iframe-aware rendering step.

Many ATS products embed their job board in an iframe on the employer's
site. This step renders the host page, then walks the relevant frames
(matched by src/name keywords) and merges what it finds.
"""
import asyncio
import logging
import re
from typing import List, Optional

from careerscan.core.dictionary import Dictionary
from careerscan.core.platform_detector import PlatformDetector
from careerscan.crawler.browser import BrowserSession, PlaywrightPageDriver, navigate
from careerscan.crawler.expansion import ContentExpansionEngine, ExpansionConfig
from careerscan.models import ExtractionResult, PipelineContext
from .base import ExtractionStep

logger = logging.getLogger(__name__)

MAX_IFRAMES = 10
IFRAME_TIMEOUT = 15.0
URL_INDICATORS = ('/embed', 'iframe', 'widget', 'portal')
IFRAME_TAG_RE = re.compile(r'<iframe[^>]*src=["\']([^"\']+)["\']', re.I)

# Confidence floors for job links by source and job vocabulary presence
MAIN_PAGE_CONFIDENCE = (0.95, 0.8)
IFRAME_CONFIDENCE = (0.9, 0.7)


class IframeAwareStep(ExtractionStep):
    """Renders a page and extracts from its job-related iframes"""

    def __init__(self, dictionary: Dictionary, browser: BrowserSession, debug=None, priority: int = 7):
        super().__init__('iframe-aware-rendering', priority, dictionary, debug=debug)
        self.browser = browser
        self.detector = PlatformDetector(dictionary)
        self.engine = ContentExpansionEngine(
            dictionary,
            ExpansionConfig(max_clicks=2, max_pages=0, time_budget_s=12.0)
        )

    async def is_applicable(self, url: str, context: PipelineContext) -> bool:
        if not context.options.use_headless_fallback:
            return False

        platform = context.detected_platform
        if platform and platform.iframe_method:
            self.logger.debug(f"[step:{self.name}] Applicable: {platform.name} embeds via iframe")
            return True

        lowered = url.lower()
        if any(indicator in lowered for indicator in URL_INDICATORS):
            return True

        previous = context.previous_step_result
        if previous is not None:
            if previous.metadata.get('requires_iframe') or 'iframe' in previous.text.lower():
                self.logger.debug(f"[step:{self.name}] Applicable: previous result points at an iframe")
                return True

        if context.html_content:
            keywords = self.dictionary.get_iframe_keywords()
            for src in IFRAME_TAG_RE.findall(context.html_content):
                if any(keyword in src.lower() for keyword in keywords):
                    return True

        return False

    def _relevant_frames(self, page) -> List:
        keywords = self.dictionary.get_iframe_keywords()
        frames = []
        for frame in page.frames:
            if frame == page.main_frame:
                continue
            src = (frame.url or '').lower()
            name = (frame.name or '').lower()
            if not src or src == 'about:blank':
                continue
            if any(keyword in src or keyword in name for keyword in keywords):
                frames.append(frame)
        return frames[:MAX_IFRAMES]

    def _with_confidence_floor(self, result: ExtractionResult, floors) -> ExtractionResult:
        """Copy of result whose job-typed links carry at least the source's confidence"""
        high, low = floors
        links = []
        for link in result.links:
            if link.is_job_typed:
                floor = high if self.count_job_terms(link.text) > 0 else low
                link = link.model_copy(update={'confidence': max(link.confidence, floor)})
            links.append(link)
        return result.model_copy(update={'links': links})

    async def _scrape_frame(self, frame, context: PipelineContext) -> Optional[ExtractionResult]:
        await frame.wait_for_load_state('domcontentloaded', timeout=IFRAME_TIMEOUT * 1000)
        await self.engine.dismiss_cookies(PlaywrightPageDriver(frame))
        html = await frame.content()
        result = self.build_result(frame.url, html=html, platform=context.platform_name)
        return self._with_confidence_floor(result, IFRAME_CONFIDENCE)

    async def scrape(self, url: str, context: PipelineContext) -> Optional[ExtractionResult]:
        self.logger.info(f"[step:{self.name}] Starting for {url}")
        result = None
        error = None

        try:
            async with self.browser.page(block_resources=False) as page:
                try:
                    await navigate(page, url)
                    stats = await self.engine.run(PlaywrightPageDriver(page))

                    main_html = stats.snapshots[-1] if stats.snapshots else await page.content()
                    main = self._with_confidence_floor(
                        self.build_result(url, html=main_html, platform=context.platform_name),
                        MAIN_PAGE_CONFIDENCE
                    )

                    frames = self._relevant_frames(page)
                    self.logger.info(f"[step:{self.name}] {len(frames)} relevant iframe(s) on {url}")

                    frame_results = []
                    frame_platform = None
                    for frame in frames:
                        try:
                            frame_result = await asyncio.wait_for(
                                self._scrape_frame(frame, context), timeout=IFRAME_TIMEOUT
                            )
                        except Exception as e:
                            self.logger.info(f"[step:{self.name}] Iframe {frame.url[:80]} failed: {e}")
                            continue
                        frame_results.append(frame_result)
                        if frame_platform is None:
                            signature = self.detector.detect_by_url(frame.url)
                            frame_platform = signature.name if signature else None

                    result = ExtractionResult.merge(main, *frame_results, method=self.name)
                    result = result.model_copy(update={
                        'url': url,
                        'detected_platform': context.platform_name or frame_platform,
                    })
                    result.metadata.update({'iframes_processed': len(frame_results), 'iframes_found': len(frames)})
                except Exception as e:
                    self.logger.warning(f"[step:{self.name}] Failed for {url}: {e}")
                    error = e

                if not self.is_result_valid(result):
                    await self.report_failure(url, result, error, page=page)
        except Exception as e:
            self.logger.error(f"[step:{self.name}] Browser unavailable for {url}: {e}")
            await self.report_failure(url, None, e)
            return None

        if self.is_result_valid(result):
            self.logger.info(f"[step:{self.name}] {len(result.links)} links for {url}")
            return result
        return None

    async def close(self):
        await self.browser.close()
