"""
HTTP client with retries, backoff, user-agent rotation and throttling.
"""
import os
import time
import asyncio
import logging
from typing import Optional, Dict, Tuple, Any, List
from urllib.parse import urlparse
import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

logger = logging.getLogger(__name__)

BROWSER_USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.4 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64; rv:125.0) Gecko/20100101 Firefox/125.0",
]
DEFAULT_UA = BROWSER_USER_AGENTS[0]
DEFAULT_TIMEOUT = 15.0
MAX_RETRIES = 2
MAX_RETRY_AFTER_SECONDS = 10
DEFAULT_BURST = 5


class HostThrottle:
    """
    Token bucket for one host.

    Allows `burst` requests straight away, then one every 60/requests_per_minute
    seconds. Callers reserve a slot under the lock and sleep outside it, so
    concurrent requests queue up behind each other instead of all waking at once.
    """

    def __init__(self, requests_per_minute: int, burst: int = DEFAULT_BURST, clock=time.monotonic):
        self.interval = 60.0 / max(1, requests_per_minute)
        self.burst = max(1, burst)
        self._clock = clock
        self._tokens = float(self.burst)
        self._updated = clock()
        self._lock = asyncio.Lock()

    def reserve(self) -> float:
        """Take the next slot; returns seconds to wait before it may be used"""
        now = self._clock()
        self._tokens = min(float(self.burst), self._tokens + (now - self._updated) / self.interval)
        self._updated = now
        self._tokens -= 1.0
        if self._tokens >= 0:
            return 0.0
        return -self._tokens * self.interval

    async def acquire(self, host: str = ''):
        async with self._lock:
            delay = self.reserve()
        if delay > 0:
            logger.debug(f"[net] Throttling {host or 'request'} for {delay:.2f}s")
            await asyncio.sleep(delay)


class HTTPClient:
    """Async HTTP client shared by the pipeline and the lightweight/API steps"""

    def __init__(
        self,
        user_agent: Optional[str] = None,
        timeout: Optional[float] = None,
        requests_per_minute: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.user_agent = user_agent or os.getenv("CAREERSCAN_USER_AGENT", DEFAULT_UA)
        self.timeout = httpx.Timeout(timeout or DEFAULT_TIMEOUT)
        self.requests_per_minute = requests_per_minute
        # Injected transport (tests use httpx.MockTransport)
        self._transport = transport
        # host -> HostThrottle, only when requests_per_minute is set
        self._throttles: Dict[str, HostThrottle] = {}

    @property
    def user_agents(self) -> List[str]:
        """Configured UA first, then the browser rotation list"""
        agents = [self.user_agent]
        agents.extend(ua for ua in BROWSER_USER_AGENTS if ua != self.user_agent)
        return agents

    def throttle_for(self, url: str) -> Optional[HostThrottle]:
        """Throttle shared by every request to the URL's host, or None when unthrottled"""
        if not self.requests_per_minute:
            return None
        host = urlparse(url).netloc or "default"
        if host not in self._throttles:
            self._throttles[host] = HostThrottle(self.requests_per_minute)
        return self._throttles[host]

    async def _handle_retry_after(self, headers: Dict[str, str], url: str):
        """Honour a Retry-After header, bounded to a few seconds"""
        retry_after = headers.get("retry-after") or headers.get("Retry-After")
        if not retry_after:
            return
        try:
            wait_seconds = int(retry_after)
        except ValueError:
            try:
                from email.utils import parsedate_to_datetime
                retry_date = parsedate_to_datetime(retry_after)
                wait_seconds = max(0, int(retry_date.timestamp() - time.time()))
            except (TypeError, ValueError):
                logger.warning(f"[net] Could not parse Retry-After header: {retry_after}")
                return

        wait_seconds = min(wait_seconds, MAX_RETRY_AFTER_SECONDS)
        if wait_seconds > 0:
            logger.info(f"[net] Retry-After header: waiting {wait_seconds}s for {url}")
            await asyncio.sleep(wait_seconds)

    def _get_headers(
        self,
        user_agent: Optional[str] = None,
        accept: Optional[str] = None,
        custom_headers: Optional[Dict[str, str]] = None
    ) -> Dict[str, str]:
        """Build browser-like request headers"""
        headers = {
            "User-Agent": user_agent or self.user_agent,
            "Accept": accept or "text/html,application/xhtml+xml,application/json,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
            "Accept-Encoding": "gzip, deflate",
            "DNT": "1",
            "Connection": "keep-alive",
        }
        if custom_headers:
            headers.update(custom_headers)
        return headers

    def _client(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(timeout) if timeout else self.timeout,
            follow_redirects=True,
            transport=self._transport,
        )

    @retry(
        stop=stop_after_attempt(MAX_RETRIES + 1),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.ConnectError)),
        reraise=True
    )
    async def fetch(
        self,
        url: str,
        user_agent: Optional[str] = None,
        timeout: Optional[float] = None,
        accept: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        max_size_kb: int = 4096,
        method: str = "GET",
        json_body: Optional[Any] = None
    ) -> Tuple[int, Dict[str, str], bytes, int]:
        """
        Request a URL (GET by default) with retries and throttling.

        Args:
            url: URL to fetch
            user_agent: Override the User-Agent for this request
            timeout: Per-request timeout in seconds
            accept: Accept header override
            headers: Extra headers
            params: Query parameters
            max_size_kb: Maximum body size kept in memory
            method: HTTP method
            json_body: JSON payload, for POST search endpoints

        Returns:
            (status_code, headers, body, content_length_bytes)
        """
        throttle = self.throttle_for(url)
        if throttle:
            await throttle.acquire(urlparse(url).netloc)

        request_headers = self._get_headers(user_agent=user_agent, accept=accept, custom_headers=headers)

        async with self._client(timeout) as client:
            start_time = time.monotonic()
            try:
                response = await client.request(
                    method, url, headers=request_headers, params=params, json=json_body
                )
            except httpx.TimeoutException as e:
                logger.warning(f"[net] Timeout fetching {url}: {e}")
                raise
            except httpx.ConnectError as e:
                logger.warning(f"[net] Connection error fetching {url}: {e}")
                raise

            elapsed_ms = int((time.monotonic() - start_time) * 1000)
            response_headers = {k.lower(): v for k, v in response.headers.items()}

            if response.status_code in (429, 503):
                await self._handle_retry_after(response_headers, url)

            content_length = len(response.content)
            if content_length > max_size_kb * 1024:
                logger.warning(f"[net] Content too large: {content_length} bytes (limit: {max_size_kb}KB) - {url}")
                body = response.content[:max_size_kb * 1024]
            else:
                body = response.content

            logger.info(f"[net] {method} {response.status_code} {url} ({content_length} bytes, {elapsed_ms}ms)")
            return response.status_code, response_headers, body, content_length

    async def fetch_text(self, url: str, **kwargs) -> Tuple[int, Dict[str, str], str]:
        """Fetch and decode as text; returns (status, headers, text)"""
        status, headers, body, _ = await self.fetch(url, **kwargs)
        return status, headers, decode_body(body, headers)


def decode_body(body: bytes, headers: Dict[str, str]) -> str:
    """Decode a response body using the declared charset, falling back to utf-8"""
    content_type = headers.get('content-type', '')
    charset = 'utf-8'
    if 'charset=' in content_type:
        charset = content_type.split('charset=')[-1].split(';')[0].strip() or 'utf-8'
    try:
        return body.decode(charset, errors='replace')
    except LookupError:
        return body.decode('utf-8', errors='replace')
