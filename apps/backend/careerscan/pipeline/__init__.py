"""
Extraction pipeline: orchestration, validation, relevance scoring, caching
and debug capture.
"""

from .cache import MemoryResultCache, ResultCache
from .debug import DebugCapturer
from .orchestrator import StepPipeline
from .relevance import RelevanceReport, RelevanceScorer
from .validator import ResultValidator

__all__ = [
    'StepPipeline',
    'ResultValidator',
    'RelevanceScorer',
    'RelevanceReport',
    'ResultCache',
    'MemoryResultCache',
    'DebugCapturer'
]
