"""
Extraction steps for careerscan.

Each step is one extraction strategy, tried by the pipeline in ascending
priority order:
- Plain HTTP over URL variants
- ATS-specific APIs (Recruitee, Greenhouse, Workable, SmartRecruiters, Lever)
- Headless rendering with content expansion
- Iframe-aware rendering
"""

from .base import ExtractionStep
from .registry import StepRegistry, build_default_registry

__all__ = [
    'ExtractionStep',
    'StepRegistry',
    'build_default_registry'
]
