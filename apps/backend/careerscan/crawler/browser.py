"""
Browser handling built on Playwright.

BrowserSession owns at most one browser process, launched lazily on first
use and closed explicitly (closing twice is a no-op). Each scrape attempt
opens its own context and page through BrowserSession.page(), which closes
both on every exit path.

PlaywrightPageDriver adapts a Playwright Page or Frame to the small set of
operations the content expansion engine needs.
"""
import asyncio
import hashlib
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional, Union

from playwright.async_api import async_playwright, Browser, BrowserContext, Frame, Page, Playwright

from careerscan.core.net import BROWSER_USER_AGENTS
from careerscan.errors import BrowserUnavailableError
from careerscan.models import PageState

logger = logging.getLogger(__name__)

VIEWPORT = {'width': 1366, 'height': 768}
BLOCKED_RESOURCES = '**/*.{png,jpg,jpeg,gif,svg,webp,woff,woff2,ttf,eot}'
JOB_COUNT_SELECTOR = '[class*="job"], [class*="offer"], [class*="result"], article, .card'


class Candidate:
    """
    A visible clickable control found on the page.

    x and y are the centre of the control in document coordinates (viewport
    position plus scroll offset) at the time it was found.
    """

    def __init__(
        self,
        control_id: str,
        selector: str,
        text: str,
        tag: str = '',
        class_name: str = '',
        x: float = 0.0,
        y: float = 0.0,
        in_lower_viewport: bool = False
    ):
        self.control_id = control_id
        self.selector = selector
        self.text = text
        self.tag = tag
        self.class_name = class_name
        self.x = x
        self.y = y
        self.in_lower_viewport = in_lower_viewport
        self.score = 0

    def __repr__(self):
        return f"Candidate(text={self.text[:30]!r}, score={self.score})"


class BrowserSession:
    """Lazily launched, explicitly closed browser handle"""

    def __init__(self, headless: bool = True, launch_args: Optional[List[str]] = None):
        self.headless = headless
        self.launch_args = launch_args or ['--disable-dev-shm-usage', '--no-sandbox']
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._browser is not None

    async def get_browser(self) -> Browser:
        """Launch the browser on first use"""
        async with self._lock:
            if self._browser is not None:
                return self._browser
            try:
                self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=self.headless,
                    args=self.launch_args
                )
                logger.info("[browser] Chromium launched")
            except Exception as e:
                await self._shutdown()
                raise BrowserUnavailableError(f"Browser launch failed: {e}") from e
            return self._browser

    @asynccontextmanager
    async def page(self, block_resources: bool = True, user_agent: Optional[str] = None) -> AsyncIterator[Page]:
        """
        Open an isolated context and page for one attempt.

        Usage:
            async with session.page() as page:
                await page.goto(url)
        """
        browser = await self.get_browser()
        try:
            context: BrowserContext = await browser.new_context(
                user_agent=user_agent or BROWSER_USER_AGENTS[0],
                viewport=VIEWPORT,
                ignore_https_errors=True,
                java_script_enabled=True
            )
        except Exception as e:
            raise BrowserUnavailableError(f"Browser context creation failed: {e}") from e

        try:
            if block_resources:
                await context.route(BLOCKED_RESOURCES, _abort_route)
            page = await context.new_page()
            try:
                yield page
            finally:
                await _quietly_close(page)
        finally:
            await _quietly_close(context)

    async def close(self):
        """Close the browser; safe to call more than once"""
        async with self._lock:
            await self._shutdown()

    async def _shutdown(self):
        browser, playwright = self._browser, self._playwright
        self._browser = None
        self._playwright = None
        if browser is not None:
            await _quietly_close(browser)
            logger.info("[browser] Chromium closed")
        if playwright is not None:
            try:
                await playwright.stop()
            except Exception as e:
                logger.debug(f"[browser] Playwright stop failed: {e}")


async def _abort_route(route):
    await route.abort()


async def _quietly_close(resource):
    try:
        await resource.close()
    except Exception as e:
        logger.debug(f"[browser] Close failed for {resource.__class__.__name__}: {e}")


async def navigate(page: Page, url: str) -> bool:
    """
    Navigate with progressively more patient wait strategies.

    Returns:
        True if any strategy succeeded
    """
    strategies = [('domcontentloaded', 30000), ('networkidle', 45000), ('load', 60000)]
    for wait_until, timeout in strategies:
        try:
            await page.goto(url, wait_until=wait_until, timeout=timeout)
            return True
        except Exception as e:
            logger.info(f"[browser] {wait_until} navigation failed for {url}: {e}")
    logger.warning(f"[browser] All navigation strategies failed for {url}, proceeding anyway")
    return False


DIGEST_SCRIPT = """
(jobSelector) => {
    const body = document.body;
    const text = body ? (body.innerText || '') : '';
    return {
        height: body ? body.scrollHeight : 0,
        elements: document.querySelectorAll('*').length,
        textLength: text.length,
        jobCount: document.querySelectorAll(jobSelector).length,
        sample: text.length + ':' + text.slice(0, 500) + text.slice(-500)
    };
}
"""

DESCRIBE_SCRIPT = """
(el) => {
    if (!window.__careerscanSeq) { window.__careerscanSeq = 0; }
    let id = el.getAttribute('data-careerscan-id');
    if (!id) {
        window.__careerscanSeq += 1;
        id = String(window.__careerscanSeq);
        el.setAttribute('data-careerscan-id', id);
    }
    const rect = el.getBoundingClientRect();
    return {
        id: id,
        text: (el.textContent || '').trim().toLowerCase().slice(0, 120),
        tag: el.tagName,
        className: typeof el.className === 'string' ? el.className : '',
        x: rect.left + window.scrollX + rect.width / 2,
        y: rect.top + window.scrollY + rect.height / 2,
        lower: rect.bottom > window.innerHeight * 0.7
    };
}
"""

SCROLL_SCRIPT = """
async (maxSteps) => {
    const distance = 300;
    let total = 0;
    for (let i = 0; i < maxSteps; i++) {
        window.scrollBy(0, distance);
        total += distance;
        await new Promise(r => setTimeout(r, 150));
        if (total >= document.body.scrollHeight) { break; }
    }
}
"""

TEXT_CLICK_SCRIPT = """
([texts, maxLength]) => {
    const nodes = document.querySelectorAll('button, a, [role="button"], input[type="button"], input[type="submit"]');
    for (const el of nodes) {
        const label = ((el.innerText || el.value || '') + '').trim().toLowerCase();
        if (!label || label.length >= maxLength) { continue; }
        if (el.offsetParent === null) { continue; }
        if (texts.some(t => label === t || label.startsWith(t + ' '))) {
            el.click();
            return label;
        }
    }
    return null;
}
"""


class PlaywrightPageDriver:
    """PageDriver implementation over a Playwright Page or Frame"""

    def __init__(self, target: Union[Page, Frame]):
        self.target = target

    @property
    def _page(self) -> Page:
        return self.target.page if isinstance(self.target, Frame) else self.target

    async def digest(self) -> PageState:
        raw = await self.target.evaluate(DIGEST_SCRIPT, JOB_COUNT_SELECTOR)
        fingerprint = hashlib.sha1(raw.get('sample', '').encode('utf-8', errors='ignore')).hexdigest()
        return PageState(
            height=int(raw.get('height') or 0),
            elements=int(raw.get('elements') or 0),
            text_length=int(raw.get('textLength') or 0),
            job_count=int(raw.get('jobCount') or 0),
            fingerprint=fingerprint,
        )

    async def find_candidates(self, selectors: List[str]) -> List[Candidate]:
        candidates = {}
        for selector in selectors:
            try:
                elements = await self.target.query_selector_all(selector)
            except Exception as e:
                logger.debug(f"[browser] Invalid selector {selector}: {e}")
                continue
            for element in elements:
                try:
                    if not await element.is_visible():
                        continue
                    info = await element.evaluate(DESCRIBE_SCRIPT)
                except Exception as e:
                    logger.debug(f"[browser] Could not describe element for {selector}: {e}")
                    continue
                control_id = info['id']
                if control_id in candidates:
                    continue
                candidates[control_id] = Candidate(
                    control_id=control_id,
                    selector=f'[data-careerscan-id="{control_id}"]',
                    text=info.get('text', ''),
                    tag=info.get('tag', ''),
                    class_name=info.get('className', ''),
                    x=float(info.get('x') or 0),
                    y=float(info.get('y') or 0),
                    in_lower_viewport=bool(info.get('lower')),
                )
        return list(candidates.values())

    async def click_selector(self, selector: str, timeout_ms: int):
        await self.target.click(selector, timeout=timeout_ms)

    async def click_coordinates(self, selector: str, x: float, y: float):
        """
        Mouse click on the control's current on-screen centre.

        The element is re-measured after any scrolling; the recorded document
        coordinates are only used, shifted by the current scroll offset, when
        it can no longer be found.
        """
        element = await self.target.query_selector(selector)
        box = await element.bounding_box() if element is not None else None
        if box:
            x = box['x'] + box['width'] / 2
            y = box['y'] + box['height'] / 2
        else:
            scroll_x, scroll_y = await self.target.evaluate("() => [window.scrollX, window.scrollY]")
            x, y = x - scroll_x, y - scroll_y
        await self._page.mouse.click(x, y)

    async def click_script(self, selector: str) -> bool:
        return bool(await self.target.evaluate(
            "(sel) => { const el = document.querySelector(sel); if (el) { el.click(); return true; } return false; }",
            selector
        ))

    async def click_first_visible(self, selectors: List[str]) -> Optional[str]:
        for selector in selectors:
            try:
                element = await self.target.query_selector(selector)
                if element and await element.is_visible():
                    await element.click(timeout=3000)
                    return selector
            except Exception as e:
                logger.debug(f"[browser] Click on {selector} failed: {e}")
        return None

    async def click_text(self, texts: List[str], max_length: int = 25) -> Optional[str]:
        return await self.target.evaluate(TEXT_CLICK_SCRIPT, [[t.lower() for t in texts], max_length])

    async def scroll_into_view(self, y: float):
        # y is a document offset; centre it in the viewport
        await self.target.evaluate("(y) => window.scrollTo(0, y - window.innerHeight / 2)", y)

    async def scroll_page(self, max_steps: int = 40):
        await self.target.evaluate(SCROLL_SCRIPT, max_steps)

    async def settle(self, ms: int):
        await self._page.wait_for_timeout(ms)

    async def wait_for_network_idle(self, timeout_ms: int = 5000):
        try:
            await self.target.wait_for_load_state('networkidle', timeout=timeout_ms)
        except Exception as e:
            logger.debug(f"[browser] networkidle wait ended: {e}")

    async def content(self) -> str:
        return await self.target.content()
