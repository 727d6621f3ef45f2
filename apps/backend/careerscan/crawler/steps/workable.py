"""
Workable step: the jobs search API behind apply.workable.com.

The API is a POST search endpoint that pages with an opaque `nextPage`
token rather than offsets.
"""
import logging
import re
from typing import List, Optional, Tuple
from urllib.parse import urlparse

from careerscan.core.dictionary import Dictionary
from careerscan.core.net import HTTPClient
from careerscan.models import ExtractionResult, JobLink, PipelineContext
from .platform import PlatformApiStep, field_label

logger = logging.getLogger(__name__)

API_URL = 'https://apply.workable.com/api/v3/accounts/{account}/jobs'
JOB_URL = 'https://apply.workable.com/{account}/j/{shortcode}/'
MAX_API_PAGES = 5
SHARED_HOSTS = ('apply.workable.com', 'careers-page.workable.com', 'jobs.workable.com')
NON_ACCOUNT_SEGMENTS = {'api', 'j', 'embed'}
NON_ACCOUNT_SUBDOMAINS = {'www', 'apply', 'careers-page', 'jobs', 'api'}
ACCOUNT_RE = re.compile(r'apply\.workable\.com/(?:api/v\d/(?:widget/)?accounts/)?([\w-]+)', re.I)
SUBDOMAIN_RE = re.compile(r'([\w-]+)\.workable\.com', re.I)


def extract_account(url: str, html: Optional[str] = None) -> Optional[str]:
    """Workable account slug from a board URL, a legacy subdomain, or embedded markup"""
    parsed = urlparse(url)
    host = (parsed.hostname or '').lower()
    if host in SHARED_HOSTS:
        parts = [p for p in parsed.path.split('/') if p]
        if parts and parts[0] not in NON_ACCOUNT_SEGMENTS:
            return parts[0]
        match = ACCOUNT_RE.search(url)
        return match.group(1) if match and match.group(1) not in NON_ACCOUNT_SEGMENTS else None

    if host.endswith('.workable.com'):
        subdomain = host[:-len('.workable.com')]
        if subdomain not in NON_ACCOUNT_SUBDOMAINS:
            return subdomain

    if html:
        for match in ACCOUNT_RE.finditer(html):
            if match.group(1) not in NON_ACCOUNT_SEGMENTS:
                return match.group(1)
        for match in SUBDOMAIN_RE.finditer(html):
            if match.group(1).lower() not in NON_ACCOUNT_SUBDOMAINS:
                return match.group(1)
    return None


def _location_label(job: dict) -> Optional[str]:
    location = job.get('location')
    if isinstance(location, dict):
        parts = [location.get('city'), location.get('region'), location.get('country')]
        label = ', '.join(p for p in parts if isinstance(p, str) and p)
    else:
        label = field_label(location, 'city') or ''
    if job.get('remote') or job.get('workplace') == 'remote':
        label = f"{label} (remote)" if label else 'Remote'
    return label or None


class WorkableStep(PlatformApiStep):
    """Workable hosted career pages"""

    platform_name = 'Workable'

    def __init__(self, dictionary: Dictionary, http_client: HTTPClient, debug=None, priority: int = 2):
        super().__init__('workable-step', priority, dictionary, http_client, debug=debug)

    async def scrape(self, url: str, context: PipelineContext) -> Optional[ExtractionResult]:
        self.logger.info(f"[step:{self.name}] Starting for {url}")
        account = extract_account(url, context.html_content)
        if not account:
            self.logger.info(f"[step:{self.name}] No Workable account in {url}")
            await self.report_failure(url, None, None, metadata={'reason': 'no_account'})
            return None

        links, pages = await self.fetch_jobs(account)
        if not links:
            self.logger.info(f"[step:{self.name}] No jobs for {account}")
            await self.report_failure(url, None, None, metadata={'account': account, 'pages': pages})
            return None

        self.logger.info(f"[step:{self.name}] {len(links)} jobs for {account} ({pages} page(s))")
        return self.board_result(url, account, links, source='workable-api')

    async def fetch_jobs(self, account: str) -> Tuple[List[JobLink], int]:
        """All postings for the account, following nextPage tokens; returns (links, pages read)"""
        api_url = API_URL.format(account=account)
        links: List[JobLink] = []
        body = {'query': '', 'location': [], 'department': [], 'worktype': [], 'remote': []}
        pages = 0
        for _ in range(MAX_API_PAGES):
            data = await self.fetch_json(api_url, body=body)
            if not isinstance(data, dict):
                break
            pages += 1
            links.extend(self.parse_jobs(data.get('results') or [], account))
            token = data.get('nextPage')
            if not token or not isinstance(token, str):
                break
            body = dict(body, token=token)
        return links, pages

    def parse_jobs(self, jobs: List[dict], account: str) -> List[JobLink]:
        links = []
        for job in jobs:
            if not isinstance(job, dict) or not job.get('shortcode') or not job.get('title'):
                continue
            departments = job.get('department')
            if isinstance(departments, list):
                department = next((d for d in departments if isinstance(d, str) and d), None)
            else:
                department = field_label(departments, 'name')
            links.append(self.job_link(
                JOB_URL.format(account=account, shortcode=job['shortcode']),
                job['title'],
                location=_location_label(job),
                department=department,
            ))
        return links
