"""
SmartRecruiters step: company postings API.
"""
import logging
import re
from typing import List, Optional
from urllib.parse import urlparse

from careerscan.core.dictionary import Dictionary
from careerscan.core.net import HTTPClient
from careerscan.models import ExtractionResult, JobLink, PipelineContext
from .platform import PlatformApiStep, field_label

logger = logging.getLogger(__name__)

API_URL = 'https://api.smartrecruiters.com/v1/companies/{company}/postings'
POSTING_URL = 'https://jobs.smartrecruiters.com/{company}/{posting_id}'
PAGE_SIZE = 100
MAX_API_PAGES = 5
COMPANY_HOSTS = ('jobs.smartrecruiters.com', 'careers.smartrecruiters.com')
COMPANY_RE = re.compile(
    r'(?:api\.smartrecruiters\.com/v1/companies|(?:jobs|careers)\.smartrecruiters\.com)/([\w-]+)', re.I
)


def extract_company_id(url: str, html: Optional[str] = None) -> Optional[str]:
    parsed = urlparse(url)
    if parsed.hostname in COMPANY_HOSTS:
        parts = [p for p in parsed.path.split('/') if p]
        return parts[0] if parts else None
    match = COMPANY_RE.search(url) or (COMPANY_RE.search(html) if html else None)
    return match.group(1) if match else None


def _location_label(location) -> Optional[str]:
    if not isinstance(location, dict):
        return field_label(location, 'city')
    parts = [location.get('city'), location.get('region'), location.get('country')]
    label = ', '.join(p for p in parts if p)
    if location.get('remote'):
        label = f"{label} (remote)" if label else 'Remote'
    return label or None


class SmartRecruitersStep(PlatformApiStep):
    """SmartRecruiters company career sites"""

    platform_name = 'SmartRecruiters'

    def __init__(self, dictionary: Dictionary, http_client: HTTPClient, debug=None, priority: int = 6):
        super().__init__('smartrecruiters-step', priority, dictionary, http_client, debug=debug)

    async def scrape(self, url: str, context: PipelineContext) -> Optional[ExtractionResult]:
        self.logger.info(f"[step:{self.name}] Starting for {url}")
        company = extract_company_id(url, context.html_content)
        if not company:
            self.logger.info(f"[step:{self.name}] No company identifier in {url}")
            await self.report_failure(url, None, None, metadata={'reason': 'no_company_id'})
            return None

        links = await self.fetch_postings(company)
        if not links:
            self.logger.info(f"[step:{self.name}] No postings for {company}")
            await self.report_failure(url, None, None, metadata={'company': company})
            return None

        self.logger.info(f"[step:{self.name}] {len(links)} postings for {company}")
        return self.board_result(url, company, links, source='smartrecruiters-api')

    async def fetch_postings(self, company: str) -> List[JobLink]:
        links: List[JobLink] = []
        api_url = API_URL.format(company=company)
        for page in range(MAX_API_PAGES):
            data = await self.fetch_json(api_url, params={'limit': PAGE_SIZE, 'offset': page * PAGE_SIZE})
            if not isinstance(data, dict):
                break
            content = data.get('content') or []
            links.extend(self.parse_postings(content, company))
            total = data.get('totalFound') or 0
            if len(content) < PAGE_SIZE or (page + 1) * PAGE_SIZE >= total:
                break
        return links

    def parse_postings(self, postings: List[dict], company: str) -> List[JobLink]:
        links = []
        for posting in postings:
            if not isinstance(posting, dict) or not posting.get('id') or not posting.get('name'):
                continue
            department = field_label(posting.get('department'), 'label')
            links.append(self.job_link(
                POSTING_URL.format(company=company, posting_id=posting['id']),
                posting['name'],
                location=_location_label(posting.get('location')),
                department=department,
            ))
        return links
