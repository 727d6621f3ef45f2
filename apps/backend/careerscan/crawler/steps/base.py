"""
Base interface for extraction steps.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, TYPE_CHECKING

from careerscan.core.content import count_job_terms, extract_content, has_blocking_content
from careerscan.core.dictionary import Dictionary
from careerscan.models import ExtractionResult, PipelineContext

if TYPE_CHECKING:
    from careerscan.pipeline.debug import DebugCapturer

logger = logging.getLogger(__name__)

MIN_TEXT_LENGTH = 100


class ExtractionStep(ABC):
    """
    Base class for extraction steps.

    A step is one extraction strategy. Each step should:
    1. Decide cheaply whether it applies to a URL (never raising)
    2. Try its internal methods in ascending cost order
    3. Return a complete ExtractionResult or None, releasing every
       resource it acquired on the way out
    """

    def __init__(
        self,
        name: str,
        priority: int,
        dictionary: Dictionary,
        debug: Optional['DebugCapturer'] = None
    ):
        """
        Initialize step.

        Args:
            name: Step name (e.g., 'lightweight-variants', 'lever-step')
            priority: Priority (lower = tried first)
            dictionary: Vocabulary, selectors and platform signatures
            debug: Optional debug capturer informed about failures
        """
        self.name = name
        self.priority = priority
        self.dictionary = dictionary
        self.debug = debug
        self.logger = logging.getLogger(f"{__name__}.{name}")

    async def is_applicable(self, url: str, context: PipelineContext) -> bool:
        """
        Check if this step should run for the URL.

        Implementations may perform at most one cheap HTTP fetch and must
        return False instead of raising.
        """
        return True

    @abstractmethod
    async def scrape(self, url: str, context: PipelineContext) -> Optional[ExtractionResult]:
        """
        Extract the page.

        Args:
            url: Page URL
            context: Pipeline context (options, platform hint, prior HTML/result)

        Returns:
            ExtractionResult, or None if every method failed
        """
        pass

    async def close(self):
        """Release owned resources (optional override)"""
        return None

    def build_result(
        self,
        url: str,
        html: Optional[str] = None,
        content: Optional[Dict[str, Any]] = None,
        method: Optional[str] = None,
        platform: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> ExtractionResult:
        """Build a result from HTML or from an already extracted content dict"""
        if content is None:
            content = extract_content(html or '', url, self.dictionary)
        links = content.get('links', [])
        text = content.get('text', '')
        return ExtractionResult(
            url=url,
            title=content.get('title', ''),
            text=text,
            links=links,
            detected_platform=platform,
            method=method or self.name,
            is_empty=not links,
            metadata=metadata or {},
        )

    def count_job_terms(self, text: str) -> int:
        return count_job_terms(text, self.dictionary.get_job_terms())

    def is_result_valid(self, result: Optional[ExtractionResult]) -> bool:
        """Step-local sanity check; the pipeline validator has the final say"""
        if result is None or not result.url:
            return False
        if len(result.text) < MIN_TEXT_LENGTH:
            return False
        if not result.links:
            return False
        return not has_blocking_content(result.text, self.dictionary)

    async def report_failure(
        self,
        url: str,
        result: Optional[ExtractionResult],
        error: Optional[BaseException],
        page=None,
        html: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ):
        """Hand failure artifacts to the debug capturer when its policy allows"""
        if self.debug is None or not self.debug.should_export_debug(result, error, self.name):
            return
        screenshot = None
        if page is not None:
            try:
                screenshot = await page.screenshot(full_page=True)
            except Exception as e:
                self.logger.debug(f"[step:{self.name}] Screenshot failed: {e}")
            if html is None:
                try:
                    html = await page.content()
                except Exception as e:
                    self.logger.debug(f"[step:{self.name}] Could not read page content: {e}")
        info = {
            'url': url,
            'step': self.name,
            'error': str(error) if error else None,
            'text_length': len(result.text) if result else 0,
            'links': len(result.links) if result else 0,
        }
        info.update(metadata or {})
        await self.debug.export(screenshot=screenshot, html=html, metadata=info)

    def __repr__(self):
        return f"<{self.__class__.__name__}(name={self.name}, priority={self.priority})>"
