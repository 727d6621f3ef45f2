"""
Relevance scoring of extracted pages against searched job titles and locations.

Match tiers, strongest first:
- exact: the full title appears in the page text or title
- proximity: consecutive title words appear close together
- contextual: a one-word title sits next to role/seniority/function vocabulary
- partial / isolated: looser matches, only outside strict mode
"""
import logging
import re
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from careerscan.core.dictionary import Dictionary
from careerscan.models import ExtractionResult, JobLink, MatchType

logger = logging.getLogger(__name__)

MIN_WORD_LENGTH = 2
TEXT_PROXIMITY_WINDOW = 50
TITLE_PROXIMITY_WINDOW = 30
WORD_MATCH_RATIO = 0.7
LOCATION_BONUS = 0.2

BASE_CONFIDENCE: Dict[str, float] = {
    'exact': 0.9,
    'proximity': 0.7,
    'contextual': 0.6,
    'partial': 0.5,
    'isolated': 0.3,
}
LINK_BONUS_PER_LINK = 0.05
MAX_LINK_BONUS = 0.1


class RelevanceReport(BaseModel):
    """How well one page matches the searched titles and locations"""
    matched_titles: List[str] = Field(default_factory=list)
    matched_locations: List[str] = Field(default_factory=list)
    match_types: Dict[str, MatchType] = Field(default_factory=dict)
    links: List[JobLink] = Field(default_factory=list)
    priority: float = 0.0

    @property
    def has_matches(self) -> bool:
        return bool(self.matched_titles)


def calculate_match_confidence(match_type: str, links_count: int) -> float:
    """Base confidence for the tier plus a small bonus for corroborating links, capped at 1.0"""
    base = BASE_CONFIDENCE.get(match_type, BASE_CONFIDENCE['isolated'])
    bonus = min(links_count * LINK_BONUS_PER_LINK, MAX_LINK_BONUS)
    return min(base + bonus, 1.0)


def title_words(job_title: str) -> List[str]:
    return [w for w in job_title.lower().split() if len(w) > MIN_WORD_LENGTH]


class RelevanceScorer:
    """Scores extraction results against job titles (and optional locations)"""

    def __init__(self, dictionary: Dictionary, strict_mode: bool = False):
        self.dictionary = dictionary
        self.strict_mode = strict_mode
        self._generic_texts = {t.lower() for t in dictionary.get_generic_link_texts()}

    def check_proximity(self, text: str, words: List[str], max_distance: int) -> bool:
        """True when some pair of consecutive words sits within max_distance chars"""
        for first, second in zip(words, words[1:]):
            pattern = rf"\b{re.escape(first)}\b[\s\w]{{0,{max_distance}}}\b{re.escape(second)}\b"
            if re.search(pattern, text, re.I):
                return True

        if len(words) == 2:
            pattern = rf"\b{re.escape(words[1])}\b[\s\w]{{0,{max_distance}}}\b{re.escape(words[0])}\b"
            return re.search(pattern, text, re.I) is not None
        return False

    def check_job_context(self, text: str, word: str) -> bool:
        """True when a single-word title is surrounded by job vocabulary"""
        terms = self.dictionary.get_context_terms()
        escaped = re.escape(word)
        patterns = [
            rf"(?:{terms['role']})[\s\w]{{0,30}}\b{escaped}\b",
            rf"\b{escaped}\b[\s\w]{{0,30}}(?:{terms['role']})",
            rf"(?:{terms['seniority']})[\s\w]{{0,20}}\b{escaped}\b",
            rf"\b{escaped}\b[\s\w]{{0,20}}(?:{terms['function']})",
        ]
        return any(re.search(p, text, re.I) for p in patterns)

    def match_title(self, job_title: str, page_text: str, page_title: str) -> Optional[str]:
        """Match tier for one title, or None"""
        title_lower = job_title.lower().strip()
        words = title_words(job_title)
        if not words:
            return None

        if title_lower in page_text or title_lower in page_title:
            return 'exact'

        if len(words) >= 2:
            if not all(w in page_text or w in page_title for w in words):
                return None
            if (self.check_proximity(page_text, words, TEXT_PROXIMITY_WINDOW)
                    or self.check_proximity(page_title, words, TITLE_PROXIMITY_WINDOW)):
                return 'proximity'
            return None if self.strict_mode else 'partial'

        word = words[0]
        boundary = re.compile(rf"\b{re.escape(word)}\b", re.I)
        if not (boundary.search(page_text) or boundary.search(page_title)):
            return None
        if self.check_job_context(page_text, word) or self.check_job_context(page_title, word):
            return 'contextual'
        return None if self.strict_mode else 'isolated'

    def filter_relevant_links(self, links: List[JobLink], job_title: str) -> List[JobLink]:
        title_lower = job_title.lower().strip()
        words = title_words(job_title)
        slug_variants = [
            re.sub(r'\s+', '-', title_lower),
            re.sub(r'\s+', '_', title_lower),
            re.sub(r'\s+', '+', title_lower),
        ]

        relevant = []
        for link in links:
            if not link.text or not link.url:
                continue
            text_lower = link.text.lower()
            url_lower = link.url.lower()
            if text_lower.strip() in self._generic_texts:
                continue

            if title_lower in text_lower or any(v in url_lower for v in slug_variants):
                relevant.append(link)
                continue

            if len(words) >= 2:
                ratio = sum(1 for w in words if w in text_lower) / len(words)
                if ratio >= WORD_MATCH_RATIO:
                    relevant.append(link)
                    continue

            if link.is_job_typed and any(w in text_lower for w in words):
                relevant.append(link)
        return relevant

    def score(
        self,
        result: ExtractionResult,
        job_titles: List[str],
        locations: Optional[List[str]] = None
    ) -> RelevanceReport:
        """
        Score a result.

        Args:
            result: Extraction result
            job_titles: Searched job titles
            locations: Optional locations; each hit raises priority, none gates

        Returns:
            RelevanceReport with matched titles/locations and annotated links
        """
        report = RelevanceReport()
        if result is None or not result.text:
            return report

        page_text = result.text.lower()
        page_title = (result.title or '').lower()
        locations = locations or []
        candidates: List[JobLink] = []

        for job_title in job_titles:
            match_type = self.match_title(job_title, page_text, page_title)
            if match_type is None:
                logger.debug(f"[relevance] No match for '{job_title}'")
                continue

            report.matched_titles.append(job_title)
            report.match_types[job_title] = match_type
            relevant = self.filter_relevant_links(result.links, job_title)
            confidence = calculate_match_confidence(match_type, len(relevant))
            for link in relevant:
                update = {'match_type': match_type, 'confidence': confidence}
                if link.location is None:
                    mentioned = next((loc for loc in locations if loc.lower() in link.text.lower()), None)
                    if mentioned:
                        update['location'] = mentioned
                candidates.append(link.model_copy(update=update))
            logger.debug(f"[relevance] {match_type} match for '{job_title}' with {len(relevant)} link(s)")

        report.links = self._dedupe_and_sort(candidates)

        if report.matched_titles:
            priority = len(report.matched_titles) * 0.5
            if result.detected_platform:
                priority += 0.3
            if result.job_links():
                priority += 0.2
            if report.links:
                priority += 0.2
            report.priority = priority

        for location in locations:
            if location.lower() in page_text or location.lower() in page_title:
                report.matched_locations.append(location)
                report.priority += LOCATION_BONUS

        logger.info(
            f"[relevance] {len(report.matched_titles)} title match(es), "
            f"{len(report.links)} relevant link(s) for {result.url}"
        )
        return report

    @staticmethod
    def _dedupe_and_sort(links: List[JobLink]) -> List[JobLink]:
        best: Dict[str, JobLink] = {}
        for link in links:
            existing = best.get(link.url)
            if existing is None or link.confidence > existing.confidence:
                best[link.url] = link
        return sorted(best.values(), key=lambda link: link.confidence, reverse=True)
