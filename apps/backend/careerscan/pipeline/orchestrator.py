"""
Step pipeline orchestrator.

For one URL: check the cache, fetch the page once for platform detection,
narrow the registered steps to the ones that make sense for the detected
platform, then try them in priority order until one returns a result the
validator accepts.
"""
import asyncio
import logging
import time
from typing import List, Optional, Union
from urllib.parse import urlparse

from careerscan.config import get_settings
from careerscan.core.dictionary import Dictionary
from careerscan.core.net import HTTPClient
from careerscan.core.platform_detector import SPECIALIZED_STEPS, PlatformDetector
from careerscan.core.urls import cache_key
from careerscan.crawler.browser import BrowserSession
from careerscan.crawler.steps import ExtractionStep, StepRegistry, build_default_registry
from careerscan.models import (
    BatchFailure, ExtractionResult, PipelineContext, PlatformSignature, ScrapeOptions
)
from careerscan.pipeline.cache import MemoryResultCache, ResultCache
from careerscan.pipeline.debug import DebugCapturer
from careerscan.pipeline.relevance import RelevanceScorer
from careerscan.pipeline.validator import ResultValidator

logger = logging.getLogger(__name__)

DETECTION_TIMEOUT = 10.0
DETECTION_USER_AGENTS = 3
MIN_DETECTION_BODY = 500
STEP_MARGIN_S = 2.0
MIN_REMAINING_S = 5.0
DEFAULT_CONCURRENCY = 3


class StepPipeline:
    """Runs extraction steps for a URL and returns the first valid result"""

    def __init__(
        self,
        dictionary: Dictionary,
        registry: Optional[StepRegistry] = None,
        cache: Optional[ResultCache] = None,
        debug: Optional[DebugCapturer] = None,
        http_client: Optional[HTTPClient] = None,
        validator: Optional[ResultValidator] = None,
        browser: Optional[BrowserSession] = None
    ):
        self.dictionary = dictionary
        settings = get_settings()
        self.http_client = http_client or HTTPClient(
            user_agent=settings.user_agent,
            timeout=settings.http_timeout,
            requests_per_minute=settings.requests_per_minute or None,
        )
        self.browser = browser or BrowserSession(headless=settings.headless)
        self.debug = debug
        self.registry = registry or build_default_registry(
            dictionary, http_client=self.http_client, browser=self.browser, debug=debug
        )
        self.cache = cache if cache is not None else MemoryResultCache()
        self.validator = validator or ResultValidator(dictionary)
        self.detector = PlatformDetector(dictionary)
        self._closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def fetch_for_detection(self, url: str) -> Optional[str]:
        """Fetch the page for detection, rotating user agents on 403/429"""
        for user_agent in self.http_client.user_agents[:DETECTION_USER_AGENTS]:
            try:
                status, _, text = await self.http_client.fetch_text(
                    url, user_agent=user_agent, timeout=DETECTION_TIMEOUT
                )
            except Exception as e:
                logger.warning(f"[pipeline] Detection fetch failed for {url}: {e}")
                continue

            if status == 200 and len(text) > MIN_DETECTION_BODY:
                return text
            if status in (403, 429):
                logger.info(f"[pipeline] Detection fetch got {status} for {url}, rotating user agent")
                continue
            logger.info(f"[pipeline] Detection fetch unusable for {url} (status={status}, {len(text)} chars)")
            return None
        return None

    def select_steps(self, platform: Optional[PlatformSignature]) -> List[ExtractionStep]:
        """
        Steps to try for a detected platform, in priority order.

        Without a platform every registered step is kept. With one, only its
        recommended platform step survives among the ATS-specific steps, and
        anything the platform blocks is dropped.
        """
        steps = self.registry.steps
        if platform is None:
            return steps

        recommended = self.detector.recommended_step(platform)
        selected = []
        for step in steps:
            if step.name in SPECIALIZED_STEPS and step.name != recommended:
                continue
            if self.detector.should_block_step(platform, step.name):
                continue
            selected.append(step)
        logger.info(f"[pipeline] {platform.name}: trying {[s.name for s in selected]}")
        return selected

    async def _is_applicable(self, step: ExtractionStep, url: str, context: PipelineContext) -> bool:
        try:
            return await step.is_applicable(url, context)
        except Exception as e:
            logger.warning(f"[pipeline] {step.name}.is_applicable raised for {url}: {e}")
            return False

    async def _detect_within_budget(self, url: str, deadline: float) -> Optional[str]:
        """Detection fetch bounded by what is left of the URL's time budget"""
        budget = max(0.0, deadline - time.monotonic())
        try:
            return await asyncio.wait_for(self.fetch_for_detection(url), timeout=budget)
        except asyncio.TimeoutError:
            logger.warning(f"[pipeline] Detection fetch for {url} exceeded {budget:.1f}s, continuing without HTML")
            return None

    async def _cache_get(self, key: str, url: str) -> Optional[ExtractionResult]:
        try:
            return await self.cache.get(key)
        except Exception as e:
            logger.warning(f"[pipeline] Cache read failed for {url}, treating as miss: {e}")
            return None

    async def _cache_put(self, key: str, url: str, result: ExtractionResult):
        try:
            await self.cache.put(key, result)
        except Exception as e:
            logger.warning(f"[pipeline] Cache write failed for {url}: {e}")

    async def scrape(self, url: str, options: Optional[ScrapeOptions] = None) -> Optional[ExtractionResult]:
        """
        Extract one career page.

        Args:
            url: Page URL (http or https)
            options: Scrape options

        Returns:
            First result accepted by the validator, or None. Unsupported URLs and
            cache outages are logged, not raised.
        """
        if urlparse(url).scheme not in ('http', 'https'):
            logger.warning(f"[pipeline] Unsupported URL scheme, skipping: {url!r}")
            return None
        if self._closed:
            logger.warning(f"[pipeline] scrape() called after close() for {url}")
            return None

        options = options or ScrapeOptions()
        key = cache_key(url)

        if self.cache is not None and not options.force_refresh:
            cached = await self._cache_get(key, url)
            if cached is not None:
                logger.info(f"[pipeline] Cache hit for {url}")
                return self.annotate_relevance(cached, options)

        start = time.monotonic()
        deadline = start + options.timeout_ms / 1000

        html = await self._detect_within_budget(url, deadline)
        platform = self.detector.detect(url, html)
        context = PipelineContext(options=options, detected_platform=platform, html_content=html)

        for step in self.select_steps(platform):
            remaining = deadline - time.monotonic()
            if remaining < MIN_REMAINING_S:
                logger.warning(f"[pipeline] Time budget exhausted for {url} before {step.name}")
                break

            if not await self._is_applicable(step, url, context):
                logger.debug(f"[pipeline] {step.name} not applicable for {url}")
                continue

            step_timeout = min(options.timeout_ms / 1000, remaining - STEP_MARGIN_S)
            logger.info(f"[pipeline] Trying {step.name} for {url} (timeout {step_timeout:.1f}s)")
            step_start = time.monotonic()
            try:
                result = await asyncio.wait_for(step.scrape(url, context), timeout=step_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"[pipeline] {step.name} timed out after {step_timeout:.1f}s for {url}")
                result = None
            except Exception as e:
                logger.error(f"[pipeline] {step.name} failed for {url}: {e}", exc_info=True)
                result = None

            context = context.with_previous(result)

            if not self.validator.is_valid(result):
                continue

            metadata = dict(result.metadata)
            metadata.update({
                'step_duration_ms': int((time.monotonic() - step_start) * 1000),
                'total_duration_ms': int((time.monotonic() - start) * 1000),
            })
            result = result.model_copy(update={
                'method': step.name,
                'detected_platform': result.detected_platform or context.platform_name,
                'metadata': metadata,
            })
            logger.info(
                f"[pipeline] {step.name} succeeded for {url}: "
                f"{len(result.links)} links, {self.extract_job_count(result)} job links"
            )

            if self.cache is not None:
                await self._cache_put(key, url, result)
            return self.annotate_relevance(result, options)

        logger.info(f"[pipeline] No step produced a valid result for {url}")
        return None

    def annotate_relevance(self, result: ExtractionResult, options: ScrapeOptions) -> ExtractionResult:
        """Tag links matching the searched titles; never drops the result"""
        if not options.job_titles:
            return result

        scorer = RelevanceScorer(self.dictionary, strict_mode=options.strict_mode)
        report = scorer.score(result, options.job_titles, options.locations)
        annotated = {link.url: link for link in report.links}
        metadata = dict(result.metadata)
        metadata['relevance'] = {
            'matched_titles': report.matched_titles,
            'matched_locations': report.matched_locations,
            'match_types': report.match_types,
            'relevant_links': len(report.links),
            'priority': report.priority,
        }
        return result.model_copy(update={
            'links': [annotated.get(link.url, link) for link in result.links],
            'metadata': metadata,
        })

    async def scrape_many(
        self,
        urls: List[str],
        options: Optional[ScrapeOptions] = None,
        concurrency: int = DEFAULT_CONCURRENCY
    ) -> List[Union[ExtractionResult, BatchFailure, None]]:
        """Scrape URLs concurrently; one entry per URL in input order, never raises"""
        semaphore = asyncio.Semaphore(concurrency)

        async def run_one(url: str):
            async with semaphore:
                try:
                    return await self.scrape(url, options)
                except Exception as e:
                    logger.error(f"[pipeline] Batch item failed for {url}: {e}")
                    return BatchFailure(url=url, error=str(e))

        results = await asyncio.gather(*[run_one(url) for url in urls])
        succeeded = sum(1 for r in results if isinstance(r, ExtractionResult))
        logger.info(f"[pipeline] Batch done: {succeeded}/{len(urls)} succeeded")
        return list(results)

    @staticmethod
    def extract_job_count(result: Optional[ExtractionResult]) -> int:
        if result is None:
            return 0
        return len(result.job_links())

    async def close(self):
        """Close every step and the shared browser; safe to call twice"""
        if self._closed:
            return
        self._closed = True
        await self.registry.close_all()
        await self.browser.close()
        logger.info("[pipeline] Closed")
