"""
Lightweight variants step.

Plain HTTP only: the page itself, then cheap alternative representations
(.json, /api, /feed, print and mobile views, ...). Each variant is parsed
according to its content type and kept if it looks like job content.
"""
import json
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse, urlunparse

from bs4 import BeautifulSoup

from careerscan.core.content import (
    build_link, collapse_whitespace, extract_content, html_text_ratio, is_job_url, job_term_occurrences,
    count_job_terms
)
from careerscan.core.dictionary import Dictionary
from careerscan.core.net import HTTPClient, decode_body
from careerscan.core.urls import normalize_url, resolve_href
from careerscan.models import ExtractionResult, JobLink, PipelineContext
from .base import ExtractionStep

logger = logging.getLogger(__name__)

VARIANT_TIMEOUT = 10.0
MIN_VARIANT_TEXT = 50
MIN_JOB_SCORE = 2
URL_KEY_HINTS = ('url', 'link', 'href')
TITLE_KEYS = ('title', 'name', 'text', 'position', 'job_title')
# Client-rendered ATS boards: a plain fetch only sees the app shell
SPA_PLATFORMS = {'Workday', 'iCIMS', 'Taleo'}
JS_SHELL_TEXT_RATIO = 0.02


def generate_variants(url: str) -> List[Dict[str, str]]:
    """Alternative URLs that often serve the same listing in a simpler form"""
    parsed = urlparse(url)
    base = urlunparse((parsed.scheme, parsed.netloc, parsed.path, '', '', ''))
    trimmed = url.rstrip('/')
    return [
        {'name': 'original', 'url': url},
        {'name': 'json', 'url': trimmed + '.json'},
        {'name': 'api', 'url': trimmed + '/api'},
        {'name': 'data', 'url': trimmed + '/data'},
        {'name': 'feed', 'url': trimmed + '/feed'},
        {'name': 'xml', 'url': trimmed + '.xml'},
        {'name': 'print', 'url': base + '?print=1'},
        {'name': 'mobile', 'url': base + '?mobile=1'},
        {'name': 'amp', 'url': base.rstrip('/') + '/amp'},
        {'name': 'lite', 'url': base + '?lite=1'},
    ]


class LightweightVariantsStep(ExtractionStep):
    """HTTP-only extraction over URL variants"""

    def __init__(self, dictionary: Dictionary, http_client: HTTPClient, debug=None, priority: int = 2):
        super().__init__('lightweight-variants', priority, dictionary, debug=debug)
        self.http_client = http_client

    async def is_applicable(self, url: str, context: PipelineContext) -> bool:
        if context.platform_name in SPA_PLATFORMS:
            self.logger.debug(f"[step:{self.name}] Skipping {context.platform_name} (client-rendered)")
            return False
        html = context.html_content
        if html:
            lowered = html.lower()
            markers = self.dictionary.get_dynamic_content_indicators()
            if any(m.lower() in lowered for m in markers) and html_text_ratio(html) < JS_SHELL_TEXT_RATIO:
                self.logger.debug(f"[step:{self.name}] Page looks like a JS shell: {url}")
                return False
        return True

    async def scrape(self, url: str, context: PipelineContext) -> Optional[ExtractionResult]:
        self.logger.info(f"[step:{self.name}] Starting for {url}")
        valid: List[Dict[str, Any]] = []

        for variant in generate_variants(url):
            if variant['name'] == 'original' and context.html_content:
                # Detection already fetched the page; reuse it
                parsed = self.process_html(context.html_content, variant, url)
            else:
                parsed = await self.fetch_variant(variant, url)

            if not parsed or not self.is_valid_content(parsed):
                continue

            valid.append(parsed)
            combined = self.combine_results(valid, url, context)
            if self.is_result_valid(combined):
                self.logger.info(
                    f"[step:{self.name}] {len(combined.links)} links via {len(valid)} variant(s) "
                    f"(last: {variant['name']})"
                )
                return combined

        if valid:
            combined = self.combine_results(valid, url, context)
            self.logger.info(f"[step:{self.name}] Returning weak result from {len(valid)} variant(s)")
            return combined

        self.logger.info(f"[step:{self.name}] No valid variant for {url}")
        await self.report_failure(url, None, None, metadata={'variants_tried': len(generate_variants(url))})
        return None

    async def fetch_variant(self, variant: Dict[str, str], page_url: str) -> Optional[Dict[str, Any]]:
        try:
            status, headers, body, _ = await self.http_client.fetch(
                variant['url'], timeout=VARIANT_TIMEOUT, accept='*/*'
            )
        except Exception as e:
            self.logger.debug(f"[step:{self.name}] Variant {variant['name']} failed: {e}")
            return None

        if not 200 <= status < 400:
            self.logger.debug(f"[step:{self.name}] Variant {variant['name']} returned {status}")
            return None

        content_type = headers.get('content-type', '').lower()
        text = decode_body(body, headers)
        try:
            if 'json' in content_type:
                return self.process_json(text, variant, page_url)
            if 'xml' in content_type:
                return self.process_xml(text, variant, page_url)
            return self.process_html(text, variant, page_url)
        except Exception as e:
            self.logger.debug(f"[step:{self.name}] Could not parse variant {variant['name']}: {e}")
            return None

    def process_html(self, html: str, variant: Dict[str, str], page_url: str) -> Dict[str, Any]:
        content = extract_content(html, page_url, self.dictionary)
        return {
            'type': 'html',
            'variant': variant['name'],
            'title': content['title'],
            'text': content['text'],
            'links': content['links'],
            'job_score': self.calculate_job_score(content['text']),
            'job_links': sum(1 for link in content['links'] if is_job_url(link.url, self.dictionary)),
        }

    def process_json(self, raw: str, variant: Dict[str, str], page_url: str) -> Optional[Dict[str, Any]]:
        try:
            data = json.loads(raw)
        except ValueError:
            return None
        texts: List[str] = []
        _collect_strings(data, texts)
        text = collapse_whitespace(' '.join(texts))
        links = self.extract_links_from_json(data, page_url)
        return {
            'type': 'json',
            'variant': variant['name'],
            'title': '',
            'text': text,
            'links': links,
            'job_score': self.calculate_job_score(text),
            'job_links': sum(1 for link in links if is_job_url(link.url, self.dictionary)),
        }

    def process_xml(self, raw: str, variant: Dict[str, str], page_url: str) -> Dict[str, Any]:
        soup = BeautifulSoup(raw, 'xml')
        text = collapse_whitespace(soup.get_text(' '))
        links: List[JobLink] = []
        seen = set()
        # RSS <item><link> / Atom <entry><link href>
        for item in soup.find_all(['item', 'entry']):
            title_tag = item.find('title')
            link_tag = item.find('link')
            href = None
            if link_tag is not None:
                href = link_tag.get('href') or link_tag.get_text(strip=True)
            resolved = resolve_href(href, page_url)
            if not resolved or normalize_url(resolved) in seen:
                continue
            seen.add(normalize_url(resolved))
            title = title_tag.get_text(strip=True) if title_tag else ''
            links.append(build_link(resolved, title or resolved, self.dictionary, in_listing=True))
        return {
            'type': 'xml',
            'variant': variant['name'],
            'title': '',
            'text': text,
            'links': links,
            'job_score': self.calculate_job_score(text),
            'job_links': sum(1 for link in links if is_job_url(link.url, self.dictionary)),
        }

    def extract_links_from_json(self, data: Any, page_url: str) -> List[JobLink]:
        """Pick URL-looking values out of arbitrary JSON, titled by sibling fields"""
        links: List[JobLink] = []
        seen = set()

        def walk(node):
            if isinstance(node, dict):
                title = next((node[k] for k in TITLE_KEYS if isinstance(node.get(k), str)), None)
                for key, value in node.items():
                    if not isinstance(value, str):
                        continue
                    looks_like_url = value.startswith(('http://', 'https://', '/'))
                    if not looks_like_url or not any(h in key.lower() for h in URL_KEY_HINTS):
                        continue
                    resolved = resolve_href(value, page_url)
                    if not resolved or normalize_url(resolved) in seen:
                        continue
                    seen.add(normalize_url(resolved))
                    links.append(build_link(resolved, title or key, self.dictionary, in_listing=title is not None))
                for value in node.values():
                    walk(value)
            elif isinstance(node, list):
                for item in node:
                    walk(item)

        walk(data)
        return links

    def calculate_job_score(self, text: str) -> Dict[str, float]:
        terms = self.dictionary.get_job_terms()
        total = job_term_occurrences(text, terms)
        length = len(text or '')
        return {
            'total': total,
            'matches': count_job_terms(text, terms),
            'density': (total / length) * 1000 if length else 0.0,
        }

    def is_valid_content(self, parsed: Dict[str, Any]) -> bool:
        text = parsed.get('text') or ''
        if len(text) < MIN_VARIANT_TEXT:
            return False
        if parsed['job_score']['total'] >= MIN_JOB_SCORE:
            return True
        if parsed.get('job_links', 0) > 0:
            return True
        return self.count_job_terms(text) > 0

    def combine_results(
        self,
        results: List[Dict[str, Any]],
        url: str,
        context: PipelineContext
    ) -> ExtractionResult:
        links: List[JobLink] = []
        seen = set()
        for parsed in results:
            for link in parsed['links']:
                key = normalize_url(link.url)
                if key in seen:
                    continue
                seen.add(key)
                links.append(link)

        title = next((r['title'] for r in results if r.get('title')), '')
        text = collapse_whitespace(' '.join(r['text'] for r in results))
        return self.build_result(
            url,
            content={'title': title, 'text': text, 'links': links},
            platform=context.platform_name,
            metadata={
                'variants': [
                    {'type': r['type'], 'variant': r['variant'], 'job_score': r['job_score']['total']}
                    for r in results
                ],
                'language': self.dictionary.get_current_language(),
            },
        )


def _collect_strings(node: Any, texts: List[str]):
    if isinstance(node, str):
        texts.append(node)
    elif isinstance(node, list):
        for item in node:
            _collect_strings(item, texts)
    elif isinstance(node, dict):
        for value in node.values():
            _collect_strings(value, texts)
