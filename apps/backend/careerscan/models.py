"""
Data model for extraction results.

Results and links are created fresh per scrape call. Merging builds new
objects and never mutates its inputs, so independent URLs can be scraped
concurrently without sharing state.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Set

from pydantic import BaseModel, ConfigDict, Field

from careerscan.core.urls import normalize_url

LinkType = Literal['job_posting', 'job_listing', 'career_portal']
MatchType = Literal['exact', 'proximity', 'contextual', 'partial', 'isolated']


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')


class JobLink(BaseModel):
    """A candidate job link discovered on a page"""
    url: str
    text: str = ''
    is_job_posting: bool = False
    link_type: LinkType = 'career_portal'
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    location: Optional[str] = None
    department: Optional[str] = None
    match_type: Optional[MatchType] = None

    @property
    def is_job_typed(self) -> bool:
        return self.link_type in ('job_posting', 'job_listing')


class ExtractionResult(BaseModel):
    """Outcome of one successful extraction attempt"""
    url: str
    title: str = ''
    text: str = ''
    links: List[JobLink] = Field(default_factory=list)
    scraped_at: str = Field(default_factory=utc_now_iso)
    detected_platform: Optional[str] = None
    method: Optional[str] = None
    is_empty: bool = False
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def link_urls(self) -> Set[str]:
        return {link.url for link in self.links}

    def job_links(self) -> List[JobLink]:
        return [link for link in self.links if link.is_job_typed]

    @classmethod
    def merge(cls, *results: Optional['ExtractionResult'], method: Optional[str] = None) -> Optional['ExtractionResult']:
        """
        Merge several results for the same page into a new one.

        Links are de-duplicated by normalized URL keeping the highest
        confidence copy; discovery order of first appearance is preserved.
        Text is concatenated in argument order.

        Returns:
            New ExtractionResult, or None if no inputs were given
        """
        present = [r for r in results if r is not None]
        if not present:
            return None

        first = present[0]
        merged_links: Dict[str, JobLink] = {}
        for result in present:
            for link in result.links:
                key = normalize_url(link.url)
                existing = merged_links.get(key)
                if existing is None or link.confidence > existing.confidence:
                    merged_links[key] = link.model_copy()

        texts = [r.text for r in present if r.text]
        title = next((r.title for r in present if r.title), '')
        platform = next((r.detected_platform for r in present if r.detected_platform), None)
        metadata: Dict[str, Any] = {}
        for result in present:
            metadata.update(result.metadata)
        metadata['merged_sources'] = len(present)

        links = list(merged_links.values())
        return cls(
            url=first.url,
            title=title,
            text=' '.join(texts),
            links=links,
            detected_platform=platform,
            method=method or first.method,
            is_empty=not links and not texts,
            metadata=metadata,
        )


class PlatformSignature(BaseModel):
    """Known ATS platform signature (read-only dictionary data)"""
    model_config = ConfigDict(frozen=True)

    name: str
    patterns: List[str] = Field(default_factory=list)
    indicators: List[str] = Field(default_factory=list)
    api_patterns: List[str] = Field(default_factory=list)
    strong_indicators: List[str] = Field(default_factory=list)
    min_indicator_matches: int = 1
    priority: int = 100
    recommended_step: Optional[str] = None
    blocked_steps: List[str] = Field(default_factory=list)
    iframe_method: bool = False


class ScrapeOptions(BaseModel):
    """Per-call scrape options"""
    timeout_ms: int = 60000
    force_refresh: bool = False
    use_headless_fallback: bool = True
    search_contact_pages: bool = False
    strict_mode: bool = False
    language: str = 'en'
    job_titles: List[str] = Field(default_factory=list)
    locations: List[str] = Field(default_factory=list)


class PipelineContext(BaseModel):
    """
    State threaded through the steps of one scrape call.

    Owned by the pipeline; steps read it and may return an extended copy
    but never keep a reference after the call.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    options: ScrapeOptions = Field(default_factory=ScrapeOptions)
    detected_platform: Optional[PlatformSignature] = None
    html_content: Optional[str] = None
    previous_step_result: Optional[ExtractionResult] = None
    is_iframe_content: bool = False

    @property
    def platform_name(self) -> Optional[str]:
        return self.detected_platform.name if self.detected_platform else None

    def with_previous(self, result: Optional[ExtractionResult]) -> 'PipelineContext':
        return self.model_copy(update={'previous_step_result': result})


class BatchFailure(BaseModel):
    """Failure record for one URL of a batch"""
    url: str
    error: str
    scraped_at: str = Field(default_factory=utc_now_iso)


class PageState(BaseModel):
    """Cheap digest of a rendered page used to detect new content"""
    height: int = 0
    elements: int = 0
    text_length: int = 0
    job_count: int = 0
    fingerprint: str = ''
