"""
Lever step: public postings API first, hosted board HTML second.
"""
import logging
import re
from typing import List, Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from careerscan.core.dictionary import Dictionary
from careerscan.core.net import HTTPClient
from careerscan.core.urls import resolve_href
from careerscan.models import ExtractionResult, JobLink, PipelineContext
from .platform import BOARD_LINK_CONFIDENCE, PlatformApiStep, summarize

logger = logging.getLogger(__name__)

LEVER_HOSTS = ('jobs.lever.co', 'jobs.eu.lever.co')
API_ENDPOINTS = (
    'https://api.lever.co/v0/postings/{slug}?mode=json',
    'https://api.eu.lever.co/v0/postings/{slug}?mode=json',
)
SLUG_RE = re.compile(r'jobs\.(?:eu\.)?lever\.co/([\w-]+)', re.I)


def extract_company_slug(url: str, html: Optional[str] = None) -> Optional[str]:
    """Company slug from a jobs.lever.co URL, or from a Lever link embedded in HTML"""
    parsed = urlparse(url)
    if parsed.hostname in LEVER_HOSTS:
        parts = [p for p in parsed.path.split('/') if p]
        return parts[0] if parts else None
    if html:
        match = SLUG_RE.search(html)
        if match:
            return match.group(1)
    return None


class LeverStep(PlatformApiStep):
    """Lever hosted job boards"""

    platform_name = 'Lever'

    def __init__(self, dictionary: Dictionary, http_client: HTTPClient, debug=None, priority: int = 8):
        super().__init__('lever-step', priority, dictionary, http_client, debug=debug)

    async def scrape(self, url: str, context: PipelineContext) -> Optional[ExtractionResult]:
        self.logger.info(f"[step:{self.name}] Starting for {url}")
        slug = extract_company_slug(url, context.html_content)
        if not slug:
            self.logger.info(f"[step:{self.name}] No Lever company slug in {url}")
            await self.report_failure(url, None, None, metadata={'reason': 'no_slug'})
            return None

        result = await self.try_api(url, slug)
        if self.is_result_valid(result):
            return result

        result = await self.try_hosted_board(url, slug)
        if self.is_result_valid(result):
            return result

        self.logger.info(f"[step:{self.name}] All methods failed for {url}")
        await self.report_failure(url, result, None, metadata={'slug': slug, 'methods': ['api', 'board']})
        return None

    async def try_api(self, url: str, slug: str) -> Optional[ExtractionResult]:
        for endpoint in API_ENDPOINTS:
            api_url = endpoint.format(slug=slug)
            data = await self.fetch_json(api_url)
            if not isinstance(data, list):
                continue
            links = self.parse_postings(data, slug)
            if links:
                summaries = {link.url: summarize(job.get('descriptionPlain'))
                             for link, job in zip(links, self._usable(data))}
                self.logger.info(f"[step:{self.name}] {len(links)} postings from {api_url}")
                return self.board_result(url, slug.capitalize(), links, source='lever-api', summaries=summaries)
        return None

    @staticmethod
    def _usable(postings: List[dict]) -> List[dict]:
        return [job for job in postings if isinstance(job, dict) and job.get('id') and job.get('text')]

    def parse_postings(self, postings: List[dict], slug: str) -> List[JobLink]:
        links = []
        for job in self._usable(postings):
            categories = job.get('categories') if isinstance(job.get('categories'), dict) else {}
            links.append(self.job_link(
                job.get('hostedUrl') or f"https://jobs.lever.co/{slug}/{job['id']}",
                job['text'],
                location=categories.get('location'),
                department=categories.get('team') or categories.get('department'),
            ))
        return links

    async def try_hosted_board(self, url: str, slug: str) -> Optional[ExtractionResult]:
        board_url = f"https://jobs.lever.co/{slug}"
        html = await self.fetch_html(board_url)
        if not html:
            return None

        soup = BeautifulSoup(html, 'lxml')
        links = []
        for posting in soup.select('.posting'):
            anchor = posting.select_one('a.posting-title') or posting.find('a', href=True)
            title_tag = posting.find('h5') or anchor
            if anchor is None or title_tag is None:
                continue
            href = resolve_href(anchor.get('href'), board_url)
            if not href:
                continue
            location = posting.select_one('.sort-by-location, .location')
            team = posting.select_one('.sort-by-team, .department')
            links.append(self.job_link(
                href,
                title_tag.get_text(' ', strip=True),
                location=location.get_text(strip=True) if location else None,
                department=team.get_text(strip=True) if team else None,
                confidence=BOARD_LINK_CONFIDENCE,
            ))

        if not links:
            self.logger.debug(f"[step:{self.name}] No postings on hosted board {board_url}")
            return None
        title_tag = soup.find('title')
        title = title_tag.get_text(strip=True) if title_tag else slug.capitalize()
        return self.board_result(url, title, links, source='lever-board')
