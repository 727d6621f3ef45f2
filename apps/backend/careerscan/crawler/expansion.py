"""
Content expansion engine.

Drives a rendered page (or frame) through cookie dismissal, "show more"
clicking and pagination until no new content appears.

Each show-more iteration is a small state machine:

    SCANNING   digest the page and enumerate visible candidate controls
    CLICKING   click the best unexhausted control (selector -> coordinates -> script)
    VERIFYING  wait, re-digest and compare against the pre-click state
    CONVERGED  stop; first trigger wins:
                 - no candidates remain
                 - N consecutive clicks produced nothing new
                 - every candidate hit its per-control cap without new content
                 - the click or time budget is exhausted

The engine only talks to a PageDriver (see crawler.browser.PlaywrightPageDriver),
which keeps it independent of Playwright and easy to exercise with fakes.
"""
import logging
import time
from enum import Enum
from typing import Dict, List, Optional, Protocol, Set

from careerscan.core.dictionary import Dictionary
from careerscan.crawler.browser import Candidate
from careerscan.models import PageState

logger = logging.getLogger(__name__)

NEXT_TEXT_MARKERS = ('next', '›', '»', '>')


class ExpansionState(str, Enum):
    SCANNING = 'scanning'
    CLICKING = 'clicking'
    VERIFYING = 'verifying'
    CONVERGED = 'converged'


class PageDriver(Protocol):
    async def digest(self) -> PageState: ...
    async def find_candidates(self, selectors: List[str]) -> List[Candidate]: ...
    async def click_selector(self, selector: str, timeout_ms: int): ...
    async def click_coordinates(self, selector: str, x: float, y: float): ...
    async def click_script(self, selector: str) -> bool: ...
    async def click_first_visible(self, selectors: List[str]) -> Optional[str]: ...
    async def click_text(self, texts: List[str], max_length: int = 25) -> Optional[str]: ...
    async def scroll_into_view(self, y: float): ...
    async def scroll_page(self, max_steps: int = 40): ...
    async def settle(self, ms: int): ...
    async def wait_for_network_idle(self, timeout_ms: int = 5000): ...
    async def content(self) -> str: ...


class ExpansionConfig:
    """Bounds for the expansion loop"""

    def __init__(
        self,
        max_clicks: int = 50,
        max_consecutive_failures: int = 3,
        max_same_control_clicks: int = 2,
        max_pages: int = 2,
        click_timeout_ms: int = 5000,
        settle_ms: int = 3000,
        pre_click_ms: int = 500,
        page_settle_ms: int = 2000,
        cookie_settle_ms: int = 1000,
        height_threshold: int = 20,
        element_threshold: int = 10,
        time_budget_s: float = 25.0
    ):
        self.max_clicks = max_clicks
        self.max_consecutive_failures = max_consecutive_failures
        self.max_same_control_clicks = max_same_control_clicks
        self.max_pages = max_pages
        self.click_timeout_ms = click_timeout_ms
        self.settle_ms = settle_ms
        self.pre_click_ms = pre_click_ms
        self.page_settle_ms = page_settle_ms
        self.cookie_settle_ms = cookie_settle_ms
        self.height_threshold = height_threshold
        self.element_threshold = element_threshold
        self.time_budget_s = time_budget_s


class ExpansionStats:
    """What the engine did on one page"""

    def __init__(self):
        self.clicks = 0
        self.productive_clicks = 0
        self.non_productive_clicks = 0
        self.pages = 0
        self.cookies_dismissed = False
        self.stop_reason: Optional[str] = None
        self.state = ExpansionState.SCANNING
        # Rendered HTML of the first page and of every new pagination page
        self.snapshots: List[str] = []

    def to_dict(self) -> Dict:
        return {
            'clicks': self.clicks,
            'productive_clicks': self.productive_clicks,
            'non_productive_clicks': self.non_productive_clicks,
            'pages': self.pages,
            'cookies_dismissed': self.cookies_dismissed,
            'stop_reason': self.stop_reason,
        }


class ContentExpansionEngine:
    """Expands dynamic listings with digest-based convergence detection"""

    def __init__(self, dictionary: Dictionary, config: Optional[ExpansionConfig] = None):
        self.dictionary = dictionary
        self.config = config or ExpansionConfig()
        self._positive, self._negative = dictionary.get_show_more_patterns()

    async def run(self, driver: PageDriver) -> ExpansionStats:
        """Cookies, scroll, show-more, then pagination. Never raises."""
        stats = ExpansionStats()
        deadline = time.monotonic() + self.config.time_budget_s
        try:
            stats.cookies_dismissed = await self.dismiss_cookies(driver)
            await driver.scroll_page()
            initial = await driver.digest()
            seen = {initial.fingerprint}
            await self.expand(driver, stats, seen, deadline)
            stats.snapshots.append(await driver.content())
            if self.config.max_pages > 0:
                await self.paginate(driver, stats, seen, deadline)
        except Exception as e:
            logger.warning(f"[expand] Expansion aborted: {e}")
            stats.stop_reason = stats.stop_reason or 'error'
            if not stats.snapshots:
                try:
                    stats.snapshots.append(await driver.content())
                except Exception as content_error:
                    logger.debug(f"[expand] Could not read page content: {content_error}")
        stats.state = ExpansionState.CONVERGED
        logger.info(f"[expand] Done: {stats.to_dict()}")
        return stats

    async def dismiss_cookies(self, driver: PageDriver) -> bool:
        """Click a cookie-consent control: known selectors first, then short button texts"""
        try:
            selector = await driver.click_first_visible(self.dictionary.get_cookie_selectors())
            if selector:
                logger.debug(f"[expand] Cookie banner dismissed via {selector}")
                await driver.settle(self.config.cookie_settle_ms)
                return True
            label = await driver.click_text(self.dictionary.get_cookie_texts(), max_length=25)
            if label:
                logger.debug(f"[expand] Cookie banner dismissed via text '{label}'")
                await driver.settle(self.config.cookie_settle_ms)
                return True
        except Exception as e:
            logger.debug(f"[expand] Cookie dismissal failed: {e}")
        return False

    def score_candidate(self, candidate: Candidate) -> int:
        text = (candidate.text or '').lower()
        class_name = (candidate.class_name or '').lower()
        score = 0
        if self._positive.search(text):
            score += 20
        if self._negative.search(text):
            score -= 50
        if 'more' in class_name or 'plus' in class_name:
            score += 5
        if 'pagination' in class_name or 'next' in class_name:
            score += 5
        if (candidate.tag or '').upper() == 'BUTTON':
            score += 3
        if candidate.in_lower_viewport:
            score += 5
        return score

    def rank_candidates(self, candidates: List[Candidate]) -> List[Candidate]:
        """
        Score and order candidates, best first.

        A candidate needs a vocabulary or class signal and a positive total;
        position and tag bonuses alone do not qualify a control.
        """
        ranked = []
        for candidate in candidates:
            text = (candidate.text or '').lower()
            class_name = (candidate.class_name or '').lower()
            has_signal = bool(self._positive.search(text)) or any(
                marker in class_name for marker in ('more', 'plus', 'pagination', 'next')
            )
            candidate.score = self.score_candidate(candidate)
            if has_signal and candidate.score > 0:
                ranked.append(candidate)
        return sorted(ranked, key=lambda c: c.score, reverse=True)

    def content_changed(self, before: PageState, after: PageState) -> bool:
        return (
            abs(after.height - before.height) > self.config.height_threshold
            or abs(after.elements - before.elements) > self.config.element_threshold
            or after.job_count != before.job_count
        )

    async def click(self, driver: PageDriver, candidate: Candidate) -> bool:
        """Click with fallbacks: selector, then coordinates, then script"""
        try:
            await driver.scroll_into_view(candidate.y)
            await driver.settle(self.config.pre_click_ms)
        except Exception as e:
            logger.debug(f"[expand] Scroll into view failed: {e}")

        try:
            await driver.click_selector(candidate.selector, self.config.click_timeout_ms)
            return True
        except Exception as e:
            logger.debug(f"[expand] Selector click failed: {e}")

        try:
            await driver.click_coordinates(candidate.selector, candidate.x, candidate.y)
            return True
        except Exception as e:
            logger.debug(f"[expand] Coordinate click failed: {e}")

        try:
            if await driver.click_script(candidate.selector):
                return True
        except Exception as e:
            logger.debug(f"[expand] Script click failed: {e}")

        return False

    async def _digest_after_action(self, driver: PageDriver) -> PageState:
        try:
            return await driver.digest()
        except Exception as e:
            # The click may have triggered a navigation
            logger.debug(f"[expand] Digest failed after click, waiting for load: {e}")
            await driver.wait_for_network_idle()
            return await driver.digest()

    async def expand(
        self,
        driver: PageDriver,
        stats: Optional[ExpansionStats] = None,
        seen: Optional[Set[str]] = None,
        deadline: Optional[float] = None
    ) -> ExpansionStats:
        """
        Run the show-more loop until convergence.

        Args:
            driver: Page driver
            stats: Stats accumulator (a new one is created if omitted)
            seen: Fingerprints of content already observed
            deadline: time.monotonic() value after which the loop stops

        Returns:
            ExpansionStats with stop_reason set
        """
        stats = stats or ExpansionStats()
        if seen is None:
            seen = {(await driver.digest()).fingerprint}
        config = self.config
        selectors = self.dictionary.get_show_more_selectors()
        failed_clicks: Dict[str, int] = {}
        consecutive_failures = 0
        clicks = 0

        while True:
            if clicks >= config.max_clicks:
                stats.stop_reason = 'max_clicks'
                break
            if consecutive_failures >= config.max_consecutive_failures:
                stats.stop_reason = 'consecutive_failures'
                break
            if deadline is not None and time.monotonic() >= deadline:
                stats.stop_reason = 'time_budget'
                break

            stats.state = ExpansionState.SCANNING
            before = await driver.digest()
            candidates = self.rank_candidates(await driver.find_candidates(selectors))
            if not candidates:
                stats.stop_reason = 'no_candidates'
                break

            control = next(
                (c for c in candidates if failed_clicks.get(c.control_id, 0) < config.max_same_control_clicks),
                None
            )
            if control is None:
                stats.stop_reason = 'control_cap'
                break

            stats.state = ExpansionState.CLICKING
            logger.debug(f"[expand] Clicking '{control.text[:40]}' (score={control.score})")
            clicked = await self.click(driver, control)
            if not clicked:
                consecutive_failures += 1
                failed_clicks[control.control_id] = failed_clicks.get(control.control_id, 0) + 1
                continue

            clicks += 1
            stats.clicks += 1
            await driver.settle(config.settle_ms)
            await driver.scroll_page()

            stats.state = ExpansionState.VERIFYING
            after = await self._digest_after_action(driver)
            if self.content_changed(before, after) and after.fingerprint not in seen:
                seen.add(after.fingerprint)
                stats.productive_clicks += 1
                consecutive_failures = 0
                failed_clicks[control.control_id] = 0
                logger.debug(f"[expand] New content: jobs {before.job_count} -> {after.job_count}")
            else:
                stats.non_productive_clicks += 1
                consecutive_failures += 1
                failed_clicks[control.control_id] = failed_clicks.get(control.control_id, 0) + 1

        stats.state = ExpansionState.CONVERGED
        logger.info(
            f"[expand] Show-more converged ({stats.stop_reason}): "
            f"{stats.productive_clicks}/{clicks} productive clicks"
        )
        return stats

    def is_next_control(self, candidate: Candidate) -> bool:
        text = (candidate.text or '').strip().lower()
        class_name = (candidate.class_name or '').lower()
        if self._negative.search(text):
            return False
        if 'next' in class_name:
            return True
        texts = [t.lower() for t in self.dictionary.get_pagination_texts()] or list(NEXT_TEXT_MARKERS)
        return any(marker == text or marker in text.split() for marker in texts)

    async def paginate(
        self,
        driver: PageDriver,
        stats: Optional[ExpansionStats] = None,
        seen: Optional[Set[str]] = None,
        deadline: Optional[float] = None
    ) -> ExpansionStats:
        """
        Follow "next" controls for up to max_pages pages.

        Stops as soon as a page yields no unseen fingerprint; each new page
        gets its own show-more pass and a content snapshot.
        """
        stats = stats or ExpansionStats()
        if seen is None:
            seen = {(await driver.digest()).fingerprint}
        selectors = self.dictionary.get_pagination_selectors()

        while stats.pages < self.config.max_pages:
            if deadline is not None and time.monotonic() >= deadline:
                break
            candidates = [c for c in await driver.find_candidates(selectors) if self.is_next_control(c)]
            if not candidates:
                logger.debug("[expand] No pagination control found")
                break

            if not await self.click(driver, candidates[0]):
                logger.debug("[expand] Pagination click failed")
                break

            await driver.settle(self.config.page_settle_ms)
            await driver.wait_for_network_idle()
            after = await self._digest_after_action(driver)
            if after.fingerprint in seen:
                logger.debug("[expand] Pagination produced no new content")
                break

            seen.add(after.fingerprint)
            stats.pages += 1
            await driver.scroll_page()
            await self.expand(driver, stats, seen, deadline)
            stats.snapshots.append(await driver.content())
            logger.info(f"[expand] Pagination page {stats.pages} captured")

        return stats
