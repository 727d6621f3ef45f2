"""
Page content extraction.

Turns raw HTML into the (title, text, links) triple every step produces:
- strips non-content tags and normalizes whitespace
- resolves, filters and de-duplicates anchors
- classifies each link and assigns a heuristic confidence
"""
import logging
import re
from typing import Dict, List, Optional, Set

from bs4 import BeautifulSoup, Tag

from careerscan.core.dictionary import Dictionary
from careerscan.core.urls import normalize_url, resolve_href
from careerscan.models import JobLink

logger = logging.getLogger(__name__)

STRIPPED_TAGS = ['script', 'style', 'noscript', 'iframe', 'svg', 'template']
MAX_LINK_TEXT = 200
MAX_LINKS = 500

# Detail pages usually end in a numeric id or carry an id query param
DETAIL_URL_RE = re.compile(r'/\d+/?$|[?&](id|jid|gh_jid|job_?id)=', re.I)


def collapse_whitespace(text: str) -> str:
    return re.sub(r'\s+', ' ', text or '').strip()


def _term_regex(term: str) -> re.Pattern:
    return re.compile(rf'\b{re.escape(term.lower())}\b', re.I)


def count_job_terms(text: str, terms: List[str]) -> int:
    """Number of distinct job terms present in text (word-boundary match)"""
    if not text:
        return 0
    lowered = text.lower()
    return sum(1 for term in terms if _term_regex(term).search(lowered))


def job_term_occurrences(text: str, terms: List[str]) -> int:
    """Total number of job term occurrences in text"""
    if not text:
        return 0
    lowered = text.lower()
    return sum(len(_term_regex(term).findall(lowered)) for term in terms)


def is_job_url(url: str, dictionary: Dictionary) -> bool:
    lowered = url.lower()
    return any(pattern.search(lowered) for pattern in dictionary.get_job_url_patterns())


def calculate_link_confidence(url: str, text: str, is_job_related: bool, dictionary: Dictionary) -> float:
    """
    Heuristic confidence that a link points at a job posting.

    Job relatedness, job-like URL shape, job vocabulary in the anchor text
    and a detail-page id each contribute; the sum is capped at 1.0.
    """
    confidence = 0.0
    if is_job_related:
        confidence += 0.3

    if is_job_url(url, dictionary):
        confidence += 0.4

    term_matches = count_job_terms(text, dictionary.get_job_terms())
    confidence += min(term_matches * 0.1, 0.3)

    if DETAIL_URL_RE.search(url):
        confidence += 0.2

    return round(min(confidence, 1.0), 4)


def determine_link_type(url: str, text: str, in_listing: bool, dictionary: Dictionary) -> str:
    """Classify a link as job_posting, job_listing or career_portal"""
    if is_job_url(url, dictionary):
        if DETAIL_URL_RE.search(url) or count_job_terms(text, dictionary.get_job_terms()) > 0 or in_listing:
            return 'job_posting'
    if in_listing:
        return 'job_listing'
    return 'career_portal'


def _listing_containers(soup: BeautifulSoup, dictionary: Dictionary) -> Set[int]:
    containers: Set[int] = set()
    for selector in dictionary.get_job_listing_selectors():
        try:
            for element in soup.select(selector):
                containers.add(id(element))
        except Exception as e:
            logger.debug(f"[content] Skipping selector {selector}: {e}")
    return containers


def _in_listing(anchor: Tag, containers: Set[int]) -> bool:
    if not containers:
        return False
    if id(anchor) in containers:
        return True
    return any(id(parent) in containers for parent in anchor.parents)


def build_link(url: str, text: str, dictionary: Dictionary, in_listing: bool = False) -> JobLink:
    """Build a classified JobLink from a resolved URL and anchor text"""
    text = collapse_whitespace(text)[:MAX_LINK_TEXT]
    terms = dictionary.get_job_terms()
    is_job_related = in_listing or is_job_url(url, dictionary) or count_job_terms(text, terms) > 0
    link_type = determine_link_type(url, text, in_listing, dictionary)
    return JobLink(
        url=url,
        text=text,
        is_job_posting=link_type == 'job_posting',
        link_type=link_type,
        confidence=calculate_link_confidence(url, text, is_job_related, dictionary),
    )


def extract_links(soup: BeautifulSoup, base_url: str, dictionary: Dictionary) -> List[JobLink]:
    """
    Collect anchors in discovery order.

    Skips anchors without text, in-page anchors, javascript:/mailto: links
    and duplicates (by normalized URL).
    """
    containers = _listing_containers(soup, dictionary)
    links: List[JobLink] = []
    seen: Set[str] = set()

    for anchor in soup.find_all('a'):
        text = collapse_whitespace(anchor.get_text(' '))
        if not text:
            continue
        url = resolve_href(anchor.get('href'), base_url)
        if not url:
            continue
        key = normalize_url(url)
        if key in seen:
            continue
        seen.add(key)
        links.append(build_link(url, text, dictionary, _in_listing(anchor, containers)))
        if len(links) >= MAX_LINKS:
            logger.debug(f"[content] Link cap {MAX_LINKS} reached for {base_url}")
            break

    return links


def extract_content(html: str, url: str, dictionary: Dictionary) -> Dict:
    """
    Extract title, flattened text and links from HTML.

    Args:
        html: Raw or rendered HTML
        url: Page URL used to resolve relative links
        dictionary: Vocabulary and selectors

    Returns:
        Dict with 'title', 'text' and 'links'
    """
    try:
        soup = BeautifulSoup(html or '', 'lxml')
        title_tag = soup.find('title')
        title = collapse_whitespace(title_tag.get_text()) if title_tag else ''
        if not title:
            h1 = soup.find('h1')
            title = collapse_whitespace(h1.get_text(' ')) if h1 else ''

        links = extract_links(soup, url, dictionary)

        body = soup.body or soup
        for tag in body.find_all(STRIPPED_TAGS):
            tag.decompose()
        text = collapse_whitespace(body.get_text(' '))

        return {'title': title, 'text': text, 'links': links}
    except Exception as e:
        logger.error(f"[content] Failed to parse HTML for {url}: {e}")
        return {'title': '', 'text': '', 'links': []}


def has_blocking_content(text: str, dictionary: Dictionary) -> bool:
    lowered = (text or '').lower()
    return any(term in lowered for term in dictionary.get_blocking_terms())


def html_text_ratio(html: Optional[str]) -> float:
    """Visible text length divided by markup length; low values suggest a JS shell"""
    if not html:
        return 0.0
    soup = BeautifulSoup(html, 'lxml')
    for tag in soup.find_all(STRIPPED_TAGS):
        tag.decompose()
    text = collapse_whitespace(soup.get_text(' '))
    return len(text) / max(len(html), 1)
