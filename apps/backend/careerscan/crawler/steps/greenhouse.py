"""
Greenhouse step: boards API first, then the embeddable job board HTML.
"""
import logging
import re
from typing import List, Optional
from urllib.parse import parse_qs, urlparse

from bs4 import BeautifulSoup

from careerscan.core.dictionary import Dictionary
from careerscan.core.net import HTTPClient
from careerscan.core.urls import resolve_href
from careerscan.models import ExtractionResult, JobLink, PipelineContext
from .platform import BOARD_LINK_CONFIDENCE, PlatformApiStep, field_label, summarize

logger = logging.getLogger(__name__)

API_URL = 'https://boards-api.greenhouse.io/v1/boards/{token}/jobs'
EMBED_URL = 'https://boards.greenhouse.io/embed/job_board?for={token}'
BOARD_HOSTS = ('boards.greenhouse.io', 'job-boards.greenhouse.io', 'job-boards.eu.greenhouse.io')
NON_TOKEN_SEGMENTS = {'embed', 'v1', 'jobs'}
EMBED_TOKEN_RE = re.compile(r'greenhouse\.io/embed/job_board(?:/js)?\?(?:[^"\'\s]*&)?(?:for|token)=([\w-]+)', re.I)
BOARD_TOKEN_RE = re.compile(r'(?:job-)?boards(?:\.eu)?\.greenhouse\.io/(?!embed\b)([\w-]+)', re.I)
API_TOKEN_RE = re.compile(r'boards-api\.greenhouse\.io/v1/boards/([\w-]+)', re.I)


def extract_board_token(url: str, html: Optional[str] = None) -> Optional[str]:
    """Board token from a Greenhouse URL (path or for=/token= param), else from embedded markup"""
    parsed = urlparse(url)
    query = parse_qs(parsed.query)
    for param in ('for', 'token'):
        if query.get(param) and 'greenhouse' in (parsed.hostname or ''):
            return query[param][0]

    if parsed.hostname in BOARD_HOSTS:
        parts = [p for p in parsed.path.split('/') if p]
        if parts and parts[0] not in NON_TOKEN_SEGMENTS:
            return parts[0]

    if html:
        for pattern in (EMBED_TOKEN_RE, API_TOKEN_RE, BOARD_TOKEN_RE):
            match = pattern.search(html)
            if match:
                return match.group(1)
    return None


class GreenhouseStep(PlatformApiStep):
    """Greenhouse job boards"""

    platform_name = 'Greenhouse'

    def __init__(self, dictionary: Dictionary, http_client: HTTPClient, debug=None, priority: int = 2):
        super().__init__('greenhouse-step', priority, dictionary, http_client, debug=debug)

    async def scrape(self, url: str, context: PipelineContext) -> Optional[ExtractionResult]:
        self.logger.info(f"[step:{self.name}] Starting for {url}")
        token = extract_board_token(url, context.html_content)
        if not token:
            self.logger.info(f"[step:{self.name}] No board token for {url}")
            await self.report_failure(url, None, None, metadata={'reason': 'no_board_token'})
            return None

        result = await self.try_api(url, token)
        if self.is_result_valid(result):
            return result

        result = await self.try_embed_board(url, token)
        if self.is_result_valid(result):
            return result

        self.logger.info(f"[step:{self.name}] All methods failed for {url}")
        await self.report_failure(url, result, None, metadata={'token': token, 'methods': ['api', 'embed']})
        return None

    async def try_api(self, url: str, token: str) -> Optional[ExtractionResult]:
        api_url = API_URL.format(token=token)
        data = await self.fetch_json(api_url, params={'content': 'true'})
        if not isinstance(data, dict):
            return None
        jobs = data.get('jobs') or []
        links = self.parse_jobs(jobs)
        if not links:
            return None
        summaries = {
            job['absolute_url']: summarize(job.get('content'))
            for job in jobs
            if isinstance(job, dict) and job.get('absolute_url')
        }
        self.logger.info(f"[step:{self.name}] {len(links)} jobs from boards API ({token})")
        return self.board_result(url, token, links, source='greenhouse-api', summaries=summaries)

    def parse_jobs(self, jobs: List[dict]) -> List[JobLink]:
        links = []
        for job in jobs:
            if not isinstance(job, dict) or not job.get('title') or not job.get('absolute_url'):
                continue
            location = field_label(job.get('location'), 'name')
            departments = job.get('departments') or []
            department = field_label(departments[0], 'name') if isinstance(departments, list) and departments else None
            links.append(self.job_link(job['absolute_url'], job['title'], location=location, department=department))
        return links

    async def try_embed_board(self, url: str, token: str) -> Optional[ExtractionResult]:
        board_url = EMBED_URL.format(token=token)
        html = await self.fetch_html(board_url)
        if not html:
            return None

        soup = BeautifulSoup(html, 'lxml')
        links = []
        # Classic board (div.opening) and the newer job-boards table rows
        for opening in soup.select('div.opening, tr.job-post, .job-post'):
            anchor = opening.find('a', href=True)
            if anchor is None:
                continue
            href = resolve_href(anchor.get('href'), board_url)
            if not href:
                continue
            location = opening.select_one('.location')
            title = anchor.get_text(' ', strip=True)
            if location and location.get_text(strip=True) in title:
                title = title.replace(location.get_text(strip=True), '').strip()
            links.append(self.job_link(
                href,
                title,
                location=location.get_text(strip=True) if location else None,
                confidence=BOARD_LINK_CONFIDENCE,
            ))

        if not links:
            self.logger.debug(f"[step:{self.name}] No openings on embed board {board_url}")
            return None
        return self.board_result(url, token, links, source='greenhouse-embed')
