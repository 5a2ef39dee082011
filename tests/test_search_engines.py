import sys
import types
from contextlib import asynccontextmanager
from pathlib import Path

import pytest
import requests

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import search_engines
from finder_models import BrowserLaunchError, Query, UnknownSearchEngineError
from headless_browser import BrowserResource
from search_engines import (
    BingHtmlSearch,
    DuckDuckGoHtmlSearch,
    GoogleBrowserSearch,
    YahooHtmlSearch,
    get_search_engine,
    is_acceptable,
)

QUERY = Query(
    text='site:linkedin.com "@gmail.com" "designer"',
    site="linkedin.com",
    email_provider="@gmail.com",
    profile="designer",
)

DDG_HTML = """
<div class="result">
  <a class="result__a" href="//duckduckgo.com/l/?uddg=https%3A%2F%2Fwww.linkedin.com%2Fin%2Fpriya-sharma&rut=abc">Priya</a>
  <a class="result__url" href="//duckduckgo.com/l/?uddg=https%3A%2F%2Fwww.linkedin.com%2Fin%2Fpriya-sharma&rut=abc">linkedin.com</a>
</div>
<div class="result">
  <a class="result__a" href="https://duckduckgo.com/y.js?ad_provider=x">Ad</a>
</div>
<div class="result">
  <a class="result__a" href="//duckduckgo.com/l/?uddg=https%3A%2F%2Fwww.linkedin.com%2Fin%2Frahul-kumar">Rahul</a>
</div>
"""

BING_HTML = """
<ol id="b_results">
  <li class="b_algo"><h2><a href="https://www.linkedin.com/in/anjali">Anjali</a></h2></li>
  <li class="b_algo"><h2><a href="https://www.bing.com/ck/a?u=abc">Bing redirect</a></h2></li>
  <li class="b_algo"><h2><a href="https://accounts.google.com/signin">Sign in</a></h2></li>
  <li class="b_algo"><h2><a href="https://webcache.googleusercontent.com/search?q=cache:x">Cache</a></h2></li>
  <li class="b_algo"><h2><a href="javascript:void(0)">Script</a></h2></li>
  <li class="b_algo"><h2><a href="https://github.com/arjun">Arjun</a></h2></li>
</ol>
"""

YAHOO_HTML = """
<div class="algo"><h3><a href="https://r.search.yahoo.com/_ylt=Awr/RV=2/RE=1/RO=10/RU=https%3a%2f%2fgithub.com%2fnehadev/RK=2/RS=abc-">Neha</a></h3></div>
<div class="algo"><h3><a href="https://www.indeed.com/r/rohan">Rohan</a></h3></div>
"""


class FakeSession:
    def __init__(self, text="", status=200, error=None):
        self.text = text
        self.status = status
        self.error = error
        self.urls = []

    def get(self, url, **kwargs):
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return types.SimpleNamespace(status_code=self.status, text=self.text)


def test_filter_rules():
    assert is_acceptable("https://www.linkedin.com/in/jane")
    assert not is_acceptable("https://www.google.com/search?q=x", "google.com")
    assert not is_acceptable("https://maps.google.com/x", "google.com")
    assert not is_acceptable("https://example.org/amp/page")
    assert not is_acceptable("https://cdn.ampproject.org/c/s/x")
    assert not is_acceptable("https://login.microsoftonline.com/")
    assert not is_acceptable("https://site.io/login?next=/")
    assert not is_acceptable("https://site.io/signin")
    assert not is_acceptable("mailto:a@b.io")
    assert not is_acceptable("/relative/path")


@pytest.mark.asyncio
async def test_duckduckgo_decodes_redirects_and_dedupes():
    session = FakeSession(DDG_HTML)
    engine = DuckDuckGoHtmlSearch(session)

    found = await engine.resolve(QUERY, 5)

    assert [c.url for c in found] == [
        "https://www.linkedin.com/in/priya-sharma",
        "https://www.linkedin.com/in/rahul-kumar",
    ]
    assert all(c.source_site == "linkedin.com" for c in found)
    assert all(c.email_provider == "@gmail.com" for c in found)
    assert found[0].discovery_method == "duckduckgo-html"
    assert session.urls[0].startswith("https://html.duckduckgo.com/html/?q=site%3Alinkedin.com")


@pytest.mark.asyncio
async def test_max_results_caps_hits():
    engine = DuckDuckGoHtmlSearch(FakeSession(DDG_HTML))
    found = await engine.resolve(QUERY, 1)
    assert len(found) == 1


@pytest.mark.asyncio
async def test_bing_filters_own_domain_and_auth_links():
    engine = BingHtmlSearch(FakeSession(BING_HTML))
    links = await engine.links("x", 10)
    assert links == ["https://www.linkedin.com/in/anjali", "https://github.com/arjun"]


@pytest.mark.asyncio
async def test_yahoo_decodes_ru_links():
    engine = YahooHtmlSearch(FakeSession(YAHOO_HTML))
    links = await engine.links("x", 10)
    assert links == ["https://github.com/nehadev", "https://www.indeed.com/r/rohan"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "session",
    [
        FakeSession(error=requests.Timeout("slow")),
        FakeSession(status=429, text=DDG_HTML),
        FakeSession(status=500, text=DDG_HTML),
        FakeSession(text="<p>unusual traffic from your network</p>"),
        FakeSession(text="<html><body>no results</body></html>"),
    ],
)
async def test_failures_resolve_to_empty(session):
    engine = DuckDuckGoHtmlSearch(session)
    assert await engine.resolve(QUERY, 5) == []


class FakeGooglePage:
    def __init__(self, by_selector, error=None):
        self.by_selector = by_selector
        self.error = error
        self.visited = []
        self.waited = []

    async def goto(self, url, **kwargs):
        self.visited.append((url, kwargs))
        if self.error is not None:
            raise self.error

    async def wait_for_timeout(self, ms):
        self.waited.append(ms)

    async def eval_on_selector_all(self, selector, script):
        return self.by_selector.get(selector, [])


class FakeBrowser:
    def __init__(self, page=None, launch_error=None):
        self._page = page
        self.launch_error = launch_error
        self.kwargs = None
        self.closed = 0

    @asynccontextmanager
    async def page(self, **kwargs):
        if self.launch_error is not None:
            raise self.launch_error
        self.kwargs = kwargs
        try:
            yield self._page
        finally:
            self.closed += 1


@pytest.mark.asyncio
async def test_google_unions_selectors_in_order():
    page = FakeGooglePage(
        {
            'div.g a[href^="http"]': [
                "https://www.linkedin.com/in/kavya",
                "https://www.google.com/search?q=related",
            ],
            'a[href^="http"]': [
                "https://www.linkedin.com/in/kavya",
                "https://support.google.com/websearch",
                "https://github.com/sanjay",
            ],
            "div[data-hveid] a": ["https://webcache.googleusercontent.com/x"],
            ".yuRUbf a": ["https://www.indeed.com/r/divya"],
        }
    )
    browser = FakeBrowser(page)
    engine = GoogleBrowserSearch(browser, settle_ms=50)

    found = await engine.resolve(QUERY, 5)

    assert [c.url for c in found] == [
        "https://www.linkedin.com/in/kavya",
        "https://github.com/sanjay",
        "https://www.indeed.com/r/divya",
    ]
    url, kwargs = page.visited[0]
    assert url.startswith("https://www.google.com/search?q=")
    assert "&num=" in url
    assert kwargs["wait_until"] == "domcontentloaded"
    assert page.waited == [50]
    assert browser.kwargs["viewport"] == {"width": 1920, "height": 1080}
    assert "Accept-Language" in browser.kwargs["extra_headers"]
    assert browser.closed == 1


@pytest.mark.asyncio
async def test_google_navigation_error_is_empty():
    browser = FakeBrowser(FakeGooglePage({}, error=RuntimeError("net::ERR_TIMED_OUT")))
    engine = GoogleBrowserSearch(browser, settle_ms=0)
    assert await engine.resolve(QUERY, 5) == []
    assert browser.closed == 1


class ClosedChromium:
    async def new_context(self, **kwargs):
        raise RuntimeError("Target page, context or browser has been closed")


@pytest.mark.asyncio
async def test_google_dead_browser_is_empty():
    resource = BrowserResource()
    resource._browser = ClosedChromium()
    engine = GoogleBrowserSearch(resource, settle_ms=0)

    assert await engine.resolve(QUERY, 5) == []


@pytest.mark.asyncio
async def test_google_launch_error_propagates():
    engine = GoogleBrowserSearch(FakeBrowser(launch_error=BrowserLaunchError("no chromium")))
    with pytest.raises(BrowserLaunchError):
        await engine.resolve(QUERY, 5)


@pytest.mark.parametrize("engine_cls", [DuckDuckGoHtmlSearch, BingHtmlSearch])
def test_malformed_href_is_skipped(engine_cls):
    html = (
        '<div class="result"><a class="result__a" href="http://[broken/x">Bad</a></div>'
        '<div class="result"><a class="result__a" href="https://ok.example.org/a">Good</a></div>'
        '<ol><li class="b_algo"><h2><a href="http://[broken/y">Bad</a></h2></li>'
        '<li class="b_algo"><h2><a href="https://ok.example.org/a">Good</a></h2></li></ol>'
    )
    assert engine_cls(FakeSession()).parse(html, 5) == ["https://ok.example.org/a"]


def test_get_search_engine_by_name():
    session = FakeSession()
    browser = FakeBrowser()
    assert isinstance(get_search_engine("DuckDuckGo", session, browser), DuckDuckGoHtmlSearch)
    assert isinstance(get_search_engine("bing", session, browser), BingHtmlSearch)
    assert isinstance(get_search_engine(" YAHOO ", session, browser), YahooHtmlSearch)
    google = get_search_engine("Google", session, browser)
    dork = get_search_engine("google dork", session, browser)
    assert isinstance(google, GoogleBrowserSearch) and google.name == "Google"
    assert isinstance(dork, GoogleBrowserSearch) and dork.name == "Google Dork"
    assert google.browser is browser
    assert GoogleBrowserSearch.name == "Google"


def test_unknown_engine_rejected():
    with pytest.raises(UnknownSearchEngineError):
        get_search_engine("AltaVista")
    assert search_engines.SEARCH_ENGINES == ("Google", "Google Dork", "DuckDuckGo", "Bing", "Yahoo")
