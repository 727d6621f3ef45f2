"""
Shared plumbing for ATS-specific steps (Greenhouse, Lever, SmartRecruiters,
Workable, Recruitee).

These steps talk to a platform's public job board API first and fall back
to its hosted HTML board. They only apply when the page clearly belongs to
their platform.
"""
import html
import json
import logging
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from careerscan.core.content import collapse_whitespace, has_blocking_content
from careerscan.core.dictionary import Dictionary
from careerscan.core.net import HTTPClient
from careerscan.core.platform_detector import PlatformDetector
from careerscan.models import ExtractionResult, JobLink, PipelineContext
from .base import ExtractionStep

logger = logging.getLogger(__name__)

API_TIMEOUT = 10.0
API_LINK_CONFIDENCE = 0.9
BOARD_LINK_CONFIDENCE = 0.85
SUMMARY_LIMIT = 280


def field_label(value: Any, key: str) -> Optional[str]:
    """Label of an API field that is either an object ({key: label}) or already a string"""
    if isinstance(value, dict):
        value = value.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def summarize(description: Optional[str], limit: int = SUMMARY_LIMIT) -> Optional[str]:
    """Plain-text summary of an API description field, which may hold (escaped) HTML"""
    if not isinstance(description, str) or not description.strip():
        return None
    text = collapse_whitespace(BeautifulSoup(html.unescape(description), 'lxml').get_text(' '))
    if len(text) > limit:
        text = text[:limit].rsplit(' ', 1)[0] + '...'
    return text or None


class PlatformApiStep(ExtractionStep):
    """Base for steps bound to one named ATS platform"""

    platform_name: str = ''

    def __init__(
        self,
        name: str,
        priority: int,
        dictionary: Dictionary,
        http_client: HTTPClient,
        debug=None
    ):
        super().__init__(name, priority, dictionary, debug=debug)
        self.http_client = http_client
        self.detector = PlatformDetector(dictionary)

    async def is_applicable(self, url: str, context: PipelineContext) -> bool:
        try:
            return self._matches_platform(url, context)
        except Exception as e:
            self.logger.warning(f"[step:{self.name}] Applicability check failed for {url}: {e}")
            return False

    def _matches_platform(self, url: str, context: PipelineContext) -> bool:
        signature = self.dictionary.get_platform(self.platform_name)
        if signature is None:
            self.logger.debug(f"[step:{self.name}] No {self.platform_name} signature in dictionary")
            return False

        html = context.html_content
        lowered = url.lower()
        hinted = (
            context.platform_name == self.platform_name
            or any(pattern.lower() in lowered for pattern in signature.patterns)
        )
        if not hinted and html:
            detected = self.detector.detect(url, html)
            hinted = detected is not None and detected.name == self.platform_name

        if not hinted:
            return False

        if self.detector.has_conflicting_indicators(self.platform_name, html):
            self.logger.info(f"[step:{self.name}] Conflicting platform evidence on {url}, backing off")
            return False

        self.logger.debug(f"[step:{self.name}] Applicable for {url}")
        return True

    async def fetch_json(
        self,
        api_url: str,
        params: Optional[dict] = None,
        body: Optional[dict] = None
    ) -> Optional[Any]:
        """
        GET a JSON document, or POST `body` to a JSON search endpoint.

        None on transport errors, non-200 or bad JSON.
        """
        try:
            status, _, text = await self.http_client.fetch_text(
                api_url,
                timeout=API_TIMEOUT,
                accept='application/json',
                params=params,
                method='POST' if body is not None else 'GET',
                json_body=body,
            )
        except Exception as e:
            self.logger.debug(f"[step:{self.name}] API request failed {api_url}: {e}")
            return None

        if status != 200:
            self.logger.debug(f"[step:{self.name}] API {api_url} returned {status}")
            return None

        try:
            return json.loads(text)
        except ValueError:
            self.logger.debug(f"[step:{self.name}] API {api_url} did not return JSON")
            return None

    async def fetch_html(self, board_url: str) -> Optional[str]:
        try:
            status, _, text = await self.http_client.fetch_text(board_url, timeout=API_TIMEOUT)
        except Exception as e:
            self.logger.debug(f"[step:{self.name}] Board request failed {board_url}: {e}")
            return None
        if status != 200:
            self.logger.debug(f"[step:{self.name}] Board {board_url} returned {status}")
            return None
        return text

    def job_link(
        self,
        url: str,
        title: str,
        location: Optional[str] = None,
        department: Optional[str] = None,
        confidence: float = API_LINK_CONFIDENCE
    ) -> JobLink:
        return JobLink(
            url=url,
            text=collapse_whitespace(title),
            is_job_posting=True,
            link_type='job_posting',
            confidence=confidence,
            location=location or None,
            department=department or None,
        )

    def board_result(
        self,
        url: str,
        title: str,
        links: List[JobLink],
        source: str,
        summaries: Optional[Dict[str, str]] = None
    ) -> ExtractionResult:
        """
        Result for a job board whose postings came back as structured data.

        The text reads like the board itself: a header with the posting count,
        then one entry per posting with its details, summary and apply link.
        summaries maps posting URL to a short plain-text description.
        """
        summaries = summaries or {}
        noun = 'position' if len(links) == 1 else 'positions'
        entries = [f"{title} careers: {len(links)} open {noun} on {self.platform_name}."]
        for link in links:
            details = ', '.join(d for d in (link.location, link.department) if d)
            entry = f"{link.text} ({details})." if details else f"{link.text}."
            if summaries.get(link.url):
                entry += f" {summaries[link.url]}"
            entries.append(f"{entry} Apply: {link.url}")
        text = collapse_whitespace(' '.join(entries))
        return self.build_result(
            url,
            content={'title': title, 'text': text, 'links': links},
            platform=self.platform_name,
            metadata={'source': source, 'jobs_found': len(links)},
        )

    def is_result_valid(self, result: Optional[ExtractionResult]) -> bool:
        # Links are this step's bar; the pipeline validator still applies the text floor
        if result is None or not result.links:
            return False
        return not has_blocking_content(result.text, self.dictionary)
