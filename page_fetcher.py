"""Fetch candidate pages: plain HTTP first, headless browser as the fallback."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Dict, Optional, Tuple
from urllib.parse import urlparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

import finder_config as config
import email_extractor
from finder_models import BrowserLaunchError, ExtractionResult
from headless_browser import BrowserResource

LOG = logging.getLogger("page_fetcher")

BLOCK_STATUSES = (401, 403, 429, 451, 503, 520)
BLOCK_SIGNATURES = (
    "captcha",
    "unusual traffic",
    "verify you are human",
    "access denied",
    "temporarily blocked",
)

KNOWN_PLATFORMS = (
    (("linkedin.com",), "LinkedIn"),
    (("github.com",), "GitHub"),
    (("twitter.com", "x.com"), "Twitter/X"),
    (("facebook.com",), "Facebook"),
    (("indeed.com",), "Indeed"),
    (("glassdoor.com",), "Glassdoor"),
    (("angel.co", "wellfound.com"), "AngelList"),
)


def determine_platform(url: str) -> str:
    """Label the site an address was found on, from the URL host alone."""
    try:
        host = (urlparse(url).hostname or "").lower()
    except ValueError:
        return "Unknown"
    if not host:
        return "Unknown"
    for domains, label in KNOWN_PLATFORMS:
        if any(host == d or host.endswith("." + d) for d in domains):
            return label
    if host.startswith("www."):
        host = host[4:]
    first = host.split(".")[0]
    return first[:1].upper() + first[1:] if first else "Unknown"


def random_user_agent() -> str:
    return random.choice(config.USER_AGENT_POOL)


def browser_headers(user_agent: Optional[str] = None) -> Dict[str, str]:
    return {
        "User-Agent": user_agent or random_user_agent(),
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": random.choice(config.ACCEPT_LANGUAGE_POOL),
        "Cache-Control": "no-cache",
    }


def new_session(
    retries: int = config.HTTP_RETRIES,
    backoff: float = config.HTTP_BACKOFF,
    max_redirects: int = config.MAX_REDIRECTS,
) -> requests.Session:
    session = requests.Session()
    retry = Retry(
        total=retries,
        connect=retries,
        read=retries,
        backoff_factor=backoff,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=("GET", "HEAD"),
        respect_retry_after_header=True,
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.max_redirects = max_redirects
    return session


def looks_like_block(status: int, body: str) -> bool:
    if status in BLOCK_STATUSES:
        return True
    head = (body or "")[:2000].lower()
    return any(sig in head for sig in BLOCK_SIGNATURES)


class PageFetcher:
    """Two-tier page fetch.

    Tier 1 is a ``requests`` GET with a rotated user agent; when it fails or
    the page holds no usable address, tier 2 renders the page in the shared
    headless browser. Network trouble in either tier means "no content", never
    an exception; only a browser that cannot launch is reported upward.
    """

    def __init__(
        self,
        browser: Optional[BrowserResource] = None,
        session: Optional[requests.Session] = None,
        *,
        http_timeout: float = config.HTTP_TIMEOUT,
        render_timeout_ms: int = config.RENDER_TIMEOUT_MS,
        headless_fallback: bool = config.HEADLESS_FALLBACK,
    ):
        self.browser = browser
        self.session = session or new_session()
        self.http_timeout = http_timeout
        self.render_timeout_ms = render_timeout_ms
        self.headless_fallback = headless_fallback and browser is not None

    def _http_get(self, url: str) -> str:
        try:
            resp = self.session.get(
                url,
                headers=browser_headers(),
                timeout=self.http_timeout,
                allow_redirects=True,
            )
        except requests.RequestException as exc:
            LOG.debug("HTTP_FETCH_FAILED url=%s err=%s", url, exc)
            return ""
        body = resp.text or ""
        if looks_like_block(resp.status_code, body):
            LOG.info("HTTP_BLOCKED url=%s status=%s", url, resp.status_code)
            return ""
        if not 200 <= resp.status_code < 300:
            LOG.debug("HTTP_FETCH_STATUS url=%s status=%s", url, resp.status_code)
            return ""
        return body

    async def fetch_http(self, url: str) -> str:
        return await asyncio.to_thread(self._http_get, url)

    async def fetch_rendered(self, url: str) -> str:
        if not self.headless_fallback:
            return ""
        try:
            async with self.browser.page(
                user_agent=random_user_agent(),
                timeout_ms=self.render_timeout_ms,
                block_resources=True,
            ) as page:
                await page.goto(url, wait_until="domcontentloaded", timeout=self.render_timeout_ms)
                return await page.content() or ""
        except BrowserLaunchError:
            raise
        except Exception as exc:
            LOG.info("RENDER_FETCH_FAILED url=%s err=%s", url, exc)
            return ""

    async def fetch(self, url: str, provider: Optional[str] = None) -> ExtractionResult:
        platform = determine_platform(url)
        html = await self.fetch_http(url)
        emails = email_extractor.extract_from_html(html, provider) if html else []
        if emails:
            LOG.info("EMAILS_FOUND url=%s count=%s via=http", url, len(emails))
            return ExtractionResult(tuple(emails), platform, url, "http")

        LOG.debug("RENDER_FALLBACK url=%s http_ok=%s", url, bool(html))
        html = await self.fetch_rendered(url)
        emails = email_extractor.extract_from_html(html, provider) if html else []
        if emails:
            LOG.info("EMAILS_FOUND url=%s count=%s via=browser", url, len(emails))
            return ExtractionResult(tuple(emails), platform, url, "browser")
        LOG.info("NO_EMAILS url=%s", url)
        return ExtractionResult((), platform, url, "")

    async def fetch_content(self, url: str) -> Tuple[str, str]:
        """Return ``(content, platform)`` for *url*, preferring the HTTP tier."""
        platform = determine_platform(url)
        html = await self.fetch_http(url)
        if html and email_extractor.extract_from_html(html):
            return html, platform
        rendered = await self.fetch_rendered(url)
        return (rendered or html), platform
