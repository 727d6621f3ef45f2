"""
Headless rendering step.

Renders the page in Chromium, lets the content expansion engine click
through cookie banners, "show more" controls and pagination, then parses
the rendered HTML.
"""
import logging
from typing import Optional

from careerscan.core.dictionary import Dictionary
from careerscan.crawler.browser import BrowserSession, PlaywrightPageDriver, navigate
from careerscan.crawler.expansion import ContentExpansionEngine, ExpansionConfig
from careerscan.models import ExtractionResult, PipelineContext
from .base import ExtractionStep

logger = logging.getLogger(__name__)

MIN_RENDERED_TEXT = 200
MIN_RENDERED_LINKS = 2


class HeadlessRenderingStep(ExtractionStep):
    """Browser rendering with content expansion"""

    def __init__(
        self,
        dictionary: Dictionary,
        browser: BrowserSession,
        debug=None,
        priority: int = 3,
        expansion_config: Optional[ExpansionConfig] = None
    ):
        super().__init__('headless-rendering', priority, dictionary, debug=debug)
        self.browser = browser
        self.engine = ContentExpansionEngine(dictionary, expansion_config)

    async def is_applicable(self, url: str, context: PipelineContext) -> bool:
        return context.options.use_headless_fallback

    async def scrape(self, url: str, context: PipelineContext) -> Optional[ExtractionResult]:
        self.logger.info(f"[step:{self.name}] Starting for {url}")
        result = None
        error = None

        try:
            async with self.browser.page() as page:
                try:
                    await navigate(page, url)
                    await page.wait_for_timeout(2000)

                    stats = await self.engine.run(PlaywrightPageDriver(page))
                    snapshots = stats.snapshots or [await page.content()]

                    result = ExtractionResult.merge(
                        *[self.build_result(url, html=html, platform=context.platform_name) for html in snapshots],
                        method=self.name,
                    )
                    result.metadata.update({'expansion': stats.to_dict(), 'pages_captured': len(snapshots)})
                except Exception as e:
                    self.logger.warning(f"[step:{self.name}] Rendering failed for {url}: {e}")
                    error = e

                if not self.is_result_valid(result):
                    await self.report_failure(url, result, error, page=page)
        except Exception as e:
            # Launch/context failures land here; the step just yields no result
            self.logger.error(f"[step:{self.name}] Browser unavailable for {url}: {e}")
            await self.report_failure(url, None, e)
            return None

        if self.is_result_valid(result):
            self.logger.info(f"[step:{self.name}] Rendered {len(result.links)} links for {url}")
            return result

        self.logger.info(f"[step:{self.name}] Invalid rendered result for {url}")
        return None

    def is_result_valid(self, result: Optional[ExtractionResult]) -> bool:
        if not super().is_result_valid(result):
            return False
        return len(result.text) >= MIN_RENDERED_TEXT and len(result.links) >= MIN_RENDERED_LINKS

    async def close(self):
        await self.browser.close()
