"""
Pipeline-level result validation.

Steps run their own sanity checks; this validator is the single gate the
pipeline applies before it accepts, caches and returns a result.
"""
import logging
import re
from typing import List, Optional
from urllib.parse import unquote

from careerscan.core.content import count_job_terms, has_blocking_content
from careerscan.core.dictionary import Dictionary
from careerscan.models import ExtractionResult, JobLink

logger = logging.getLogger(__name__)

DEFAULT_MIN_TEXT_LENGTH = 100
DEFAULT_TEMPLATE_RATIO = 0.5

# {{ job.title }}, {% for %}, <%= name %>, ${title}
TEMPLATE_PLACEHOLDER_RE = re.compile(r'\{\{.*?\}\}|\{%.*?%\}|<%.*?%>|\$\{[^}]*\}', re.S)


class ResultValidator:
    """Decides whether an extraction result is good enough to return"""

    def __init__(
        self,
        dictionary: Dictionary,
        min_text_length: int = DEFAULT_MIN_TEXT_LENGTH,
        template_ratio_threshold: float = DEFAULT_TEMPLATE_RATIO
    ):
        self.dictionary = dictionary
        self.min_text_length = min_text_length
        self.template_ratio_threshold = template_ratio_threshold

    def find_template_placeholders(self, text: Optional[str]) -> List[str]:
        """Unrendered template expressions in text"""
        if not text:
            return []
        return TEMPLATE_PLACEHOLDER_RE.findall(text)

    def _is_real_job_link(self, link: JobLink) -> bool:
        if not link.is_job_typed:
            return False
        if self.find_template_placeholders(link.text):
            return False
        return not self.find_template_placeholders(unquote(link.url))

    def template_density(self, result: ExtractionResult) -> float:
        """
        Share of template placeholders among placeholders plus real job links.

        0.0 when the page has no placeholders; 1.0 when it has placeholders
        and no real job link at all.
        """
        placeholders = len(self.find_template_placeholders(result.title))
        placeholders += len(self.find_template_placeholders(result.text))
        if not placeholders:
            return 0.0
        real_links = sum(1 for link in result.links if self._is_real_job_link(link))
        return placeholders / (placeholders + real_links)

    def explain(self, result: Optional[ExtractionResult]) -> List[str]:
        """Reasons the result would be rejected, in check order; empty when valid"""
        if result is None:
            return ['no result']
        if not result.url:
            return ['missing url']

        density = self.template_density(result)
        if density >= self.template_ratio_threshold:
            return [f"unrendered template content (density {density:.2f})"]

        text_length = len(result.text or '')
        if text_length <= self.min_text_length:
            return [f"text too short ({text_length} <= {self.min_text_length})"]

        job_terms = count_job_terms(result.text, self.dictionary.get_job_terms())
        if has_blocking_content(result.text, self.dictionary):
            real_links = any(self._is_real_job_link(link) for link in result.links)
            if not (real_links and job_terms > 0):
                return ['blocking content without job evidence']

        if not result.links and job_terms == 0:
            return ['no links and no job vocabulary']
        return []

    def is_valid(self, result: Optional[ExtractionResult]) -> bool:
        reasons = self.explain(result)
        if reasons:
            url = result.url if result is not None else None
            logger.info(f"[validate] Rejected {url}: {'; '.join(reasons)}")
            return False
        return True
