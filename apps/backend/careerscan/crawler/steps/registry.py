"""
Step registry for managing extraction steps.
"""
import logging
from typing import Dict, List, Optional, TYPE_CHECKING

from careerscan.core.dictionary import Dictionary
from careerscan.core.net import HTTPClient
from careerscan.crawler.browser import BrowserSession
from .base import ExtractionStep

if TYPE_CHECKING:
    from careerscan.pipeline.debug import DebugCapturer

logger = logging.getLogger(__name__)


class StepRegistry:
    """Registry of extraction steps, kept in ascending priority order"""

    def __init__(self):
        self._steps: List[ExtractionStep] = []
        self._steps_by_name: Dict[str, ExtractionStep] = {}

    def register(self, step: ExtractionStep):
        """Register a step, replacing any step with the same name"""
        if step.name in self._steps_by_name:
            logger.warning(f"Step {step.name} already registered, replacing")
            self._steps = [s for s in self._steps if s.name != step.name]

        self._steps_by_name[step.name] = step
        self._steps.append(step)

        # Lower priority first; sort is stable so ties keep registration order
        self._steps.sort(key=lambda s: s.priority)

        logger.info(f"Registered step: {step.name} (priority={step.priority})")

    def get_step(self, name: str) -> Optional[ExtractionStep]:
        """Get step by name"""
        return self._steps_by_name.get(name)

    @property
    def steps(self) -> List[ExtractionStep]:
        return list(self._steps)

    def list_steps(self) -> List[Dict]:
        """List all registered steps"""
        return [
            {
                'name': step.name,
                'priority': step.priority,
                'class': step.__class__.__name__
            }
            for step in self._steps
        ]

    async def close_all(self):
        """Close every step; one failing close does not stop the others"""
        for step in self._steps:
            try:
                await step.close()
            except Exception as e:
                logger.error(f"Step {step.name} close error: {e}", exc_info=True)

    def __len__(self):
        return len(self._steps)


def build_default_registry(
    dictionary: Dictionary,
    http_client: Optional[HTTPClient] = None,
    browser: Optional[BrowserSession] = None,
    debug: Optional['DebugCapturer'] = None
) -> StepRegistry:
    """Create a registry with all built-in steps sharing one HTTP client and browser"""
    from .greenhouse import GreenhouseStep
    from .headless import HeadlessRenderingStep
    from .iframe import IframeAwareStep
    from .lever import LeverStep
    from .lightweight import LightweightVariantsStep
    from .recruitee import RecruiteeStep
    from .smartrecruiters import SmartRecruitersStep
    from .workable import WorkableStep

    http_client = http_client or HTTPClient()
    browser = browser or BrowserSession()

    registry = StepRegistry()
    registry.register(LightweightVariantsStep(dictionary, http_client, debug=debug))
    registry.register(GreenhouseStep(dictionary, http_client, debug=debug))
    registry.register(WorkableStep(dictionary, http_client, debug=debug))
    registry.register(HeadlessRenderingStep(dictionary, browser, debug=debug))
    registry.register(SmartRecruitersStep(dictionary, http_client, debug=debug))
    registry.register(IframeAwareStep(dictionary, browser, debug=debug))
    registry.register(LeverStep(dictionary, http_client, debug=debug))
    registry.register(RecruiteeStep(dictionary, http_client, debug=debug))
    return registry
