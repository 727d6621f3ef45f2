"""
Platform detection.

Matches a URL (and optionally its HTML) against the dictionary's known ATS
signatures. URL patterns are checked first since they cost nothing; HTML
indicators and API patterns are only consulted when the URL is inconclusive.
Ties break by signature priority, which defaults to declaration order.
"""
import logging
from typing import Any, Dict, Optional

from careerscan.core.content import count_job_terms, html_text_ratio
from careerscan.core.dictionary import Dictionary
from careerscan.models import PlatformSignature

logger = logging.getLogger(__name__)

SPECIALIZED_STEPS = {
    'greenhouse-step', 'lever-step', 'smartrecruiters-step', 'workable-step', 'recruitee-step',
}


class PlatformDetector:
    """Detects the ATS platform behind a career page"""

    def __init__(self, dictionary: Dictionary):
        self.dictionary = dictionary

    def detect(self, url: str, html: Optional[str] = None) -> Optional[PlatformSignature]:
        """
        Detect the platform for a URL.

        Args:
            url: Page URL
            html: Optional HTML already fetched for the page

        Returns:
            Matching PlatformSignature or None
        """
        platform = self.detect_by_url(url)
        if platform:
            logger.info(f"[detect] {platform.name} from URL pattern for {url[:80]}")
            return platform

        if not html:
            return None

        platform = self.detect_by_indicators(html)
        if platform:
            logger.info(f"[detect] {platform.name} from HTML indicators for {url[:80]}")
            return platform

        platform = self.detect_by_api_patterns(html)
        if platform:
            logger.info(f"[detect] {platform.name} from API pattern for {url[:80]}")
            return platform

        logger.debug(f"[detect] No platform detected for {url[:80]}")
        return None

    def detect_by_url(self, url: str) -> Optional[PlatformSignature]:
        lowered = (url or '').lower()
        for platform in self.dictionary.get_known_job_platforms():
            if any(pattern.lower() in lowered for pattern in platform.patterns):
                return platform
        return None

    def detect_by_indicators(self, html: str) -> Optional[PlatformSignature]:
        lowered = html.lower()
        for platform in self.dictionary.get_known_job_platforms():
            if self._has_strong_evidence(platform, lowered):
                return platform
            matches = sum(1 for indicator in platform.indicators if indicator.lower() in lowered)
            if matches and matches >= platform.min_indicator_matches:
                return platform
        return None

    def detect_by_api_patterns(self, html: str) -> Optional[PlatformSignature]:
        lowered = html.lower()
        for platform in self.dictionary.get_known_job_platforms():
            if any(pattern.lower() in lowered for pattern in platform.api_patterns):
                return platform
        return None

    @staticmethod
    def _has_strong_evidence(platform: PlatformSignature, lowered_html: str) -> bool:
        return any(indicator.lower() in lowered_html for indicator in platform.strong_indicators)

    def has_conflicting_indicators(self, platform_name: str, html: Optional[str]) -> bool:
        """
        True when the HTML carries strong evidence for a platform other than
        `platform_name`. Platform-specific steps must back off in that case.
        """
        if not html:
            return False
        lowered = html.lower()
        for platform in self.dictionary.get_known_job_platforms():
            if platform.name.lower() == platform_name.lower():
                continue
            if self._has_strong_evidence(platform, lowered):
                logger.info(f"[detect] Conflicting {platform.name} evidence while expecting {platform_name}")
                return True
            if any(pattern.lower() in lowered for pattern in platform.api_patterns):
                logger.info(f"[detect] Conflicting {platform.name} API pattern while expecting {platform_name}")
                return True
        return False

    def should_block_step(self, platform: Optional[PlatformSignature], step_name: str) -> bool:
        if not platform:
            return False
        blocked = step_name in platform.blocked_steps
        if blocked:
            logger.debug(f"[detect] Blocking {step_name} because {platform.name} was detected")
        return blocked

    def recommended_step(self, platform: Optional[PlatformSignature]) -> Optional[str]:
        return platform.recommended_step if platform else None

    def has_dynamic_content(self, html: Optional[str]) -> bool:
        if not html:
            return False
        lowered = html.lower()
        return any(marker.lower() in lowered for marker in self.dictionary.get_dynamic_content_indicators())

    def analyze_page_structure(self, url: str, html: Optional[str]) -> Dict[str, Any]:
        """
        Summarize what a page looks like before choosing steps.

        Returns:
            {
                "platform": Optional[str],
                "job_term_count": int,
                "has_dynamic_content": bool,
                "has_show_more": bool,
                "has_pagination": bool,
                "text_ratio": float,
                "recommended_step": Optional[str],
                "strategy": str  # specialized_scraper | headless_browser | simple_http
            }
        """
        html = html or ''
        lowered = html.lower()
        platform = self.detect(url, html)
        positive, _ = self.dictionary.get_show_more_patterns()

        has_dynamic = self.has_dynamic_content(html)
        has_show_more = bool(positive.search(lowered))
        has_pagination = any(
            marker in lowered for marker in ('rel="next"', 'class="pagination', 'class="pager', 'aria-label="next')
        )

        if platform and platform.recommended_step in SPECIALIZED_STEPS:
            strategy = 'specialized_scraper'
        elif has_dynamic or has_show_more or has_pagination:
            strategy = 'headless_browser'
        else:
            strategy = 'simple_http'

        return {
            'platform': platform.name if platform else None,
            'job_term_count': count_job_terms(html, self.dictionary.get_job_terms()),
            'has_dynamic_content': has_dynamic,
            'has_show_more': has_show_more,
            'has_pagination': has_pagination,
            'text_ratio': round(html_text_ratio(html), 4) if html else 0.0,
            'recommended_step': self.recommended_step(platform),
            'strategy': strategy,
        }
