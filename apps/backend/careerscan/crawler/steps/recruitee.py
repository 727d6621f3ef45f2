"""
Recruitee step: the public offers API of a company's recruitee.com site.
"""
import logging
import re
from typing import List, Optional
from urllib.parse import urlparse

from careerscan.core.dictionary import Dictionary
from careerscan.core.net import HTTPClient
from careerscan.models import ExtractionResult, JobLink, PipelineContext
from .platform import PlatformApiStep, field_label, summarize

logger = logging.getLogger(__name__)

API_URL = 'https://{company}.recruitee.com/api/offers/'
OFFER_URL = 'https://{company}.recruitee.com/o/{slug}'
NON_COMPANY_SUBDOMAINS = {'www', 'app', 'api', 'cdn', 'careers', 'static'}
COMPANY_RE = re.compile(r'([\w-]+)\.recruitee\.com', re.I)


def extract_company(url: str, html: Optional[str] = None) -> Optional[str]:
    """Company subdomain from a recruitee.com URL, else from a widget or link in the HTML"""
    host = (urlparse(url).hostname or '').lower()
    if host.endswith('.recruitee.com'):
        company = host[:-len('.recruitee.com')]
        if company not in NON_COMPANY_SUBDOMAINS:
            return company
    if html:
        for match in COMPANY_RE.finditer(html):
            company = match.group(1).lower()
            if company not in NON_COMPANY_SUBDOMAINS:
                return company
    return None


class RecruiteeStep(PlatformApiStep):
    """Recruitee career sites"""

    platform_name = 'Recruitee'

    def __init__(self, dictionary: Dictionary, http_client: HTTPClient, debug=None, priority: int = 1):
        super().__init__('recruitee-step', priority, dictionary, http_client, debug=debug)

    async def scrape(self, url: str, context: PipelineContext) -> Optional[ExtractionResult]:
        self.logger.info(f"[step:{self.name}] Starting for {url}")
        company = extract_company(url, context.html_content)
        if not company:
            self.logger.info(f"[step:{self.name}] No Recruitee company in {url}")
            await self.report_failure(url, None, None, metadata={'reason': 'no_company'})
            return None

        data = await self.fetch_json(API_URL.format(company=company))
        offers = data.get('offers') if isinstance(data, dict) else None
        links = self.parse_offers(offers or [], company)
        if not links:
            self.logger.info(f"[step:{self.name}] No published offers for {company}")
            await self.report_failure(url, None, None, metadata={'company': company})
            return None

        summaries = {
            link.url: summarize(offer.get('description'))
            for link, offer in zip(links, self._published(offers))
        }
        self.logger.info(f"[step:{self.name}] {len(links)} offers for {company}")
        return self.board_result(url, company, links, source='recruitee-api', summaries=summaries)

    @staticmethod
    def _published(offers: List[dict]) -> List[dict]:
        # Offers without a status are listed; drafts and closed offers are not
        return [
            offer for offer in offers
            if isinstance(offer, dict) and offer.get('title')
            and (offer.get('careers_url') or offer.get('slug'))
            and offer.get('status', 'published') == 'published'
        ]

    def parse_offers(self, offers: List[dict], company: str) -> List[JobLink]:
        links = []
        for offer in self._published(offers):
            location = offer.get('location')
            if not isinstance(location, str) or not location:
                parts = [offer.get('city'), offer.get('country')]
                location = ', '.join(p for p in parts if isinstance(p, str) and p)
            if offer.get('remote'):
                location = f"{location} (remote)" if location else 'Remote'
            links.append(self.job_link(
                offer.get('careers_url') or OFFER_URL.format(company=company, slug=offer['slug']),
                offer['title'],
                location=location or None,
                department=field_label(offer.get('department'), 'name'),
            ))
        return links
