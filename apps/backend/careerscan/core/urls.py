"""
URL helpers shared by link extraction, de-duplication and cache keys.
"""
import hashlib
import logging
from urllib.parse import urlparse, urlunparse, parse_qs, urlencode, urljoin
from typing import Optional

logger = logging.getLogger(__name__)

TRACKING_PARAMS = ['utm_source', 'utm_medium', 'utm_campaign', 'utm_term',
                   'utm_content', 'gclid', 'fbclid', 'ref', 'source', 'gh_src',
                   'lever-source', 'mc_cid', 'mc_eid']

SKIPPED_SCHEMES = ('javascript:', 'mailto:', 'tel:', 'data:')


def normalize_url(url: str) -> str:
    """
    Normalize URL for deduplication:
    - Strip tracking parameters
    - Remove trailing slashes
    - Lowercase scheme and host
    - Drop fragment
    """
    try:
        parsed = urlparse(url.strip())
        netloc = parsed.netloc.lower()

        query_params = parse_qs(parsed.query, keep_blank_values=True)
        filtered_params = {k: v for k, v in query_params.items()
                           if k.lower() not in TRACKING_PARAMS}
        new_query = urlencode(sorted(filtered_params.items()), doseq=True) if filtered_params else ''

        path = parsed.path.rstrip('/')

        return urlunparse((
            parsed.scheme.lower(),
            netloc,
            path,
            parsed.params,
            new_query,
            ''
        ))
    except Exception as e:
        logger.warning(f"Error normalizing URL {url}: {e}")
        return url


def resolve_href(href: Optional[str], base_url: str) -> Optional[str]:
    """
    Resolve an anchor href against the page URL.

    Returns None for empty hrefs, in-page anchors and non-navigational
    schemes (javascript:, mailto:, tel:, data:).
    """
    if not href:
        return None
    href = href.strip()
    if not href or href.startswith('#'):
        return None
    if href.lower().startswith(SKIPPED_SCHEMES):
        return None
    try:
        resolved = urljoin(base_url, href)
    except ValueError:
        return None
    if not resolved.startswith(('http://', 'https://')):
        return None
    return resolved


def get_domain(url: str) -> str:
    """Host without the www. prefix"""
    host = urlparse(url).netloc.lower()
    return host[4:] if host.startswith('www.') else host


def cache_key(url: str) -> str:
    """Stable cache key for a URL (sha256 of the normalized form)"""
    return hashlib.sha256(normalize_url(url).encode()).hexdigest()
