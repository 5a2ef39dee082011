"""Resolve a query to candidate URLs on one of the supported search engines."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Iterable, List, Optional
from urllib.parse import parse_qsl, quote_plus, unquote, urlparse

import requests
from bs4 import BeautifulSoup

import finder_config as config
from finder_models import BrowserLaunchError, CandidateURL, Query, UnknownSearchEngineError
from headless_browser import BrowserResource
from page_fetcher import browser_headers, looks_like_block, new_session, random_user_agent

LOG = logging.getLogger("search_engines")

SEARCH_ENGINES = ("Google", "Google Dork", "DuckDuckGo", "Bing", "Yahoo")

MIRROR_MARKERS = ("webcache", "googleusercontent", "/amp/", "ampproject")
AUTH_MARKERS = ("accounts.google", "login.", "/signin", "/login")


def is_acceptable(url: str, own_domain: str = "") -> bool:
    if not url or not url.lower().startswith(("http://", "https://")):
        return False
    lower = url.lower()
    try:
        host = (urlparse(lower).hostname or "")
    except ValueError:
        return False
    if not host:
        return False
    if own_domain and (host == own_domain or host.endswith("." + own_domain)):
        return False
    if any(m in lower for m in MIRROR_MARKERS):
        return False
    return not any(m in lower for m in AUTH_MARKERS)


def filter_links(links: Iterable[str], own_domain: str, max_results: int) -> List[str]:
    out: List[str] = []
    seen = set()
    for link in links:
        link = (link or "").strip()
        if link in seen or not is_acceptable(link, own_domain):
            continue
        seen.add(link)
        out.append(link)
        if len(out) >= max_results:
            break
    return out


def _decode_duckduckgo_link(raw: str) -> str:
    if raw.startswith("//"):
        raw = "https:" + raw
    parsed = urlparse(raw)
    qs = dict(parse_qsl(parsed.query))
    target = qs.get("uddg") or ""
    return unquote(target) if target else raw


def _decode_yahoo_link(raw: str) -> str:
    # r.search.yahoo.com/.../RU=<encoded target>/RK=2/RS=...
    marker = "/RU="
    idx = raw.find(marker)
    if idx < 0:
        return raw
    target = raw[idx + len(marker):].split("/", 1)[0]
    return unquote(target) or raw


class SearchEngineAdapter:
    name = ""
    domain = ""
    discovery_method = ""

    async def links(self, text: str, max_results: int) -> List[str]:
        raise NotImplementedError

    async def resolve(self, query: Query, max_results: int = config.RESULTS_PER_QUERY) -> List[CandidateURL]:
        links = await self.links(query.text, max_results)
        LOG.info("SEARCH_RESOLVED engine=%s hits=%s q=%s", self.name, len(links), query.text)
        return [
            CandidateURL(
                url=link,
                source_site=query.site,
                email_provider=query.email_provider,
                discovery_method=self.discovery_method,
            )
            for link in links
        ]


class HtmlSearch(SearchEngineAdapter):
    """Static-HTML result page fetched with ``requests`` and parsed with bs4."""

    search_url = ""
    selectors: tuple = ()

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = config.HTTP_TIMEOUT):
        self.session = session or new_session()
        self.timeout = timeout

    def decode(self, href: str) -> str:
        return href

    def parse(self, html: str, max_results: int) -> List[str]:
        soup = BeautifulSoup(html, "html.parser")
        hrefs: List[str] = []
        for selector in self.selectors:
            for a in soup.select(selector):
                href = a.get("href")
                if not href:
                    continue
                try:
                    hrefs.append(self.decode(href))
                except ValueError as exc:
                    LOG.debug("SEARCH_BAD_HREF engine=%s href=%s err=%s", self.name, href, exc)
        return filter_links(hrefs, self.domain, max_results)

    def _get(self, text: str) -> str:
        url = self.search_url + quote_plus(text)
        try:
            resp = self.session.get(url, headers=browser_headers(), timeout=self.timeout)
        except requests.RequestException as exc:
            LOG.warning("SEARCH_REQUEST_FAILED engine=%s err=%s", self.name, exc)
            return ""
        body = resp.text or ""
        if looks_like_block(resp.status_code, body):
            LOG.warning("SEARCH_BLOCKED engine=%s status=%s", self.name, resp.status_code)
            return ""
        if not 200 <= resp.status_code < 300:
            LOG.warning("SEARCH_STATUS engine=%s status=%s", self.name, resp.status_code)
            return ""
        return body

    async def links(self, text: str, max_results: int) -> List[str]:
        html = await asyncio.to_thread(self._get, text)
        if not html:
            return []
        return self.parse(html, max_results)


class DuckDuckGoHtmlSearch(HtmlSearch):
    name = "DuckDuckGo"
    domain = "duckduckgo.com"
    discovery_method = "duckduckgo-html"
    search_url = "https://html.duckduckgo.com/html/?q="
    selectors = (".result__a", ".result__url")

    def decode(self, href: str) -> str:
        return _decode_duckduckgo_link(href)


class BingHtmlSearch(HtmlSearch):
    name = "Bing"
    domain = "bing.com"
    discovery_method = "bing-html"
    search_url = "https://www.bing.com/search?q="
    selectors = ("li.b_algo h2 a",)


class YahooHtmlSearch(HtmlSearch):
    name = "Yahoo"
    domain = "yahoo.com"
    discovery_method = "yahoo-html"
    search_url = "https://search.yahoo.com/search?p="
    selectors = ("div.algo h3 a",)

    def decode(self, href: str) -> str:
        return _decode_yahoo_link(href)


class GoogleBrowserSearch(SearchEngineAdapter):
    """Google results rendered in the shared headless browser."""

    name = "Google"
    domain = "google.com"
    discovery_method = "google-browser"
    selectors = ('div.g a[href^="http"]', 'a[href^="http"]', "div[data-hveid] a", ".yuRUbf a")
    viewport = {"width": 1920, "height": 1080}

    def __init__(
        self,
        browser: BrowserResource,
        *,
        timeout_ms: int = config.SEARCH_TIMEOUT_MS,
        settle_ms: int = config.SEARCH_SETTLE_MS,
    ):
        self.browser = browser
        self.timeout_ms = timeout_ms
        self.settle_ms = settle_ms

    async def links(self, text: str, max_results: int) -> List[str]:
        url = f"https://www.google.com/search?q={quote_plus(text)}&num={max_results * 2}"
        headers = {
            "Accept-Language": random.choice(config.ACCEPT_LANGUAGE_POOL),
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        }
        hrefs: List[str] = []
        try:
            async with self.browser.page(
                user_agent=random_user_agent(),
                viewport=self.viewport,
                extra_headers=headers,
                timeout_ms=self.timeout_ms,
            ) as page:
                await page.goto(url, wait_until="domcontentloaded", timeout=self.timeout_ms)
                if self.settle_ms > 0:
                    await page.wait_for_timeout(self.settle_ms)
                for selector in self.selectors:
                    found = await page.eval_on_selector_all(
                        selector, "els => els.map(e => e.href).filter(Boolean)"
                    )
                    hrefs.extend(found or [])
        except BrowserLaunchError:
            raise
        except Exception as exc:
            LOG.warning("GOOGLE_SEARCH_FAILED err=%s", exc)
            return []
        return filter_links(hrefs, self.domain, max_results)


def canonical_engine_name(name: str) -> str:
    key = (name or "").strip().lower()
    for engine in SEARCH_ENGINES:
        if engine.lower() == key:
            return engine
    raise UnknownSearchEngineError(
        f"Unknown search engine {name!r}; choose one of {', '.join(SEARCH_ENGINES)}"
    )


def get_search_engine(
    name: str,
    http: Optional[requests.Session] = None,
    browser: Optional[BrowserResource] = None,
) -> SearchEngineAdapter:
    canonical = canonical_engine_name(name)
    if canonical in ("Google", "Google Dork"):
        engine = GoogleBrowserSearch(browser or BrowserResource())
        engine.name = canonical
        return engine
    if canonical == "DuckDuckGo":
        return DuckDuckGoHtmlSearch(http)
    if canonical == "Bing":
        return BingHtmlSearch(http)
    return YahooHtmlSearch(http)
