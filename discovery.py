"""Profile keyword -> email results.

The orchestrator wires the pieces together: build the site/provider queries,
resolve them on one search engine, fetch the candidate pages, extract the
addresses and infer a name for each. Everything is created per run except the
shared headless browser, which lives as long as the orchestrator.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

import requests

import finder_config as config
from ai_namer import default_collaborator
from finder_models import (
    SYNTHETIC_ENGINE,
    BrowserLaunchError,
    CandidateURL,
    DiscoveryOptions,
    DiscoveryReport,
    NameInference,
    Result,
)
from headless_browser import BrowserResource
from name_inference import build_inferencer
from page_fetcher import PageFetcher, new_session
from query_builder import QueryBuilder, clean_profile
from search_engines import SearchEngineAdapter, canonical_engine_name, get_search_engine

LOG = logging.getLogger("discovery")

PLATFORM_LABELS = {
    "linkedin.com": "LinkedIn",
    "indeed.com": "Indeed",
    "github.com": "GitHub",
}

SUGGESTIONS = [
    "Search engines often detect and block automated browsers; this is expected",
    "Try a different profile keyword",
    "Try a different search engine",
    "Lower the limit to 1-3 results",
]

SYNTHETIC_FIRST_NAMES = (
    "Priya", "Rahul", "Ankit", "Sneha", "Vikram", "Anjali", "Arjun", "Neha",
    "Rohan", "Pooja", "Amit", "Kavya", "Sanjay", "Divya", "Karan", "Shreya",
    "Aditya", "Meera", "Rajesh", "Swati",
)
SYNTHETIC_LAST_NAMES = (
    "Sharma", "Kumar", "Patel", "Singh", "Reddy", "Verma", "Gupta", "Joshi",
    "Iyer", "Mehta", "Agarwal", "Nair", "Chopra", "Desai", "Malhotra",
    "Kulkarni", "Bhat", "Rao", "Shah", "Pillai",
)
SYNTHETIC_PLATFORMS = ("LinkedIn", "Indeed", "GitHub")
MAX_SYNTHETIC = len(SYNTHETIC_FIRST_NAMES)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _synthetic_url(platform: str, first: str, last: str) -> str:
    if platform == "LinkedIn":
        return f"https://www.linkedin.com/in/{first}-{last}"
    if platform == "Indeed":
        return f"https://profile.indeed.com/{first}{last}"
    return f"https://github.com/{first}{last}"


def zero_result_message(engine: str, sites: Sequence[str], providers: Sequence[str]) -> str:
    return (
        f"No results found using {engine}. Searched {', '.join(sites)} "
        f"for {', '.join(providers)} addresses. Search engines often block "
        "automated requests and these sites have aggressive anti-scraping protection."
    )


class _RunState:
    """Mutable accumulator for one run; survives cancellation of the run task."""

    def __init__(self, profile: str, engine: str, limit: int):
        self.profile = profile
        self.engine = engine
        self.limit = limit
        self.candidates: List[CandidateURL] = []
        self.seen_urls: set = set()
        self.results: Dict[str, Result] = {}
        self.queries_run = 0

    @property
    def full(self) -> bool:
        return len(self.results) >= self.limit

    def add_candidates(self, found: Sequence[CandidateURL]) -> None:
        for candidate in found:
            if len(self.candidates) >= self.limit:
                return
            if candidate.url in self.seen_urls:
                continue
            self.seen_urls.add(candidate.url)
            self.candidates.append(candidate)

    def add_result(self, result: Result) -> bool:
        if self.full or result.email in self.results:
            return False
        self.results[result.email] = result
        return True


class DiscoveryOrchestrator:
    def __init__(
        self,
        *,
        browser: Optional[BrowserResource] = None,
        session: Optional[requests.Session] = None,
        fetcher: Optional[PageFetcher] = None,
        collaborator: Any = None,
        query_builder: Optional[QueryBuilder] = None,
        engine_factory: Callable[..., SearchEngineAdapter] = get_search_engine,
        sleep: Callable[[float], Any] = asyncio.sleep,
        max_queries: int = config.MAX_QUERIES,
        query_delay: float = config.QUERY_DELAY,
        results_per_query: int = config.RESULTS_PER_QUERY,
        fetch_concurrency: int = config.FETCH_CONCURRENCY,
    ):
        self.browser = browser or BrowserResource()
        self.session = session or new_session()
        self.fetcher = fetcher or PageFetcher(self.browser, self.session)
        self.collaborator = collaborator
        self.query_builder = query_builder or QueryBuilder()
        self.engine_factory = engine_factory
        self.sleep = sleep
        self.max_queries = max_queries
        self.query_delay = query_delay
        self.results_per_query = results_per_query
        self.fetch_concurrency = max(1, fetch_concurrency)

    @property
    def sites(self) -> List[str]:
        return [PLATFORM_LABELS.get(s, s) for s in self.query_builder.sites]

    @property
    def providers(self) -> List[str]:
        return list(self.query_builder.providers)

    def _inferencer(self, use_ai: bool):
        if use_ai and self.collaborator is None:
            self.collaborator = default_collaborator()
            if self.collaborator is None:
                LOG.info("AI_DISABLED reason=no_api_key")
        return build_inferencer(use_ai, self.collaborator)

    async def search_and_extract(self, profile: str, options: Optional[DiscoveryOptions] = None) -> List[Result]:
        report = await self.run(profile, options)
        return report.results

    async def run(self, profile: str, options: Optional[DiscoveryOptions] = None) -> DiscoveryReport:
        options = options or DiscoveryOptions()
        profile = clean_profile(profile)
        engine_name = canonical_engine_name(options.search_engine)
        state = _RunState(profile.lower(), engine_name, options.limit)
        LOG.info(
            "DISCOVERY_START profile=%s engine=%s limit=%s ai=%s",
            profile, engine_name, options.limit, options.use_ai,
        )

        timed_out = False
        work = self._discover(profile, options, state)
        if options.timeout:
            try:
                await asyncio.wait_for(work, timeout=options.timeout)
            except asyncio.TimeoutError:
                timed_out = True
                LOG.warning(
                    "DISCOVERY_TIMEOUT profile=%s after=%ss partial=%s",
                    profile, options.timeout, len(state.results),
                )
        else:
            await work

        report = DiscoveryReport(
            profile=state.profile,
            search_engine=engine_name,
            results=list(state.results.values()),
            sites_searched=self.sites,
            email_providers_searched=self.providers,
            queries_run=state.queries_run,
            urls_discovered=len(state.candidates),
            timed_out=timed_out,
        )
        if not report.results and options.allow_synthetic:
            LOG.info("DISCOVERY_SYNTHETIC profile=%s limit=%s", profile, options.limit)
            report.results = await self.synthetic_results(profile, options.limit, options.use_ai)
            report.synthetic = True
        if not report.results:
            report.message = zero_result_message(engine_name, report.sites_searched, report.email_providers_searched)
            report.suggestions = list(SUGGESTIONS)
        LOG.info(
            "DISCOVERY_DONE profile=%s results=%s urls=%s queries=%s timed_out=%s",
            profile, report.count, report.urls_discovered, report.queries_run, timed_out,
        )
        return report

    async def _discover(self, profile: str, options: DiscoveryOptions, state: _RunState) -> None:
        engine = self.engine_factory(options.search_engine, self.session, self.browser)
        queries = self.query_builder.build(profile)[: self.max_queries]

        for idx, query in enumerate(queries):
            if len(state.candidates) >= state.limit:
                break
            if idx and self.query_delay > 0:
                await self.sleep(self.query_delay)
            try:
                found = await engine.resolve(query, self.results_per_query)
            except BrowserLaunchError:
                raise
            except Exception as exc:
                LOG.warning("SEARCH_FAILED engine=%s q=%s err=%s", state.engine, query.text, exc)
                found = []
            state.queries_run += 1
            state.add_candidates(found)

        if not state.candidates:
            LOG.info("DISCOVERY_NO_URLS profile=%s engine=%s", profile, state.engine)
            return

        inferencer = self._inferencer(options.use_ai)
        semaphore = asyncio.Semaphore(self.fetch_concurrency)

        async def _one(candidate: CandidateURL) -> None:
            async with semaphore:
                if state.full:
                    return
                extraction = await self.fetcher.fetch(candidate.url, candidate.email_provider)
            fresh = [e for e in extraction.emails if e not in state.results]
            if not fresh:
                return
            named = await inferencer.infer_many(fresh)
            for email, inference in named:
                state.add_result(self._result(state, candidate, extraction.platform, email, inference))

        outcomes = await asyncio.gather(
            *(_one(c) for c in state.candidates), return_exceptions=True
        )
        for outcome in outcomes:
            if isinstance(outcome, BrowserLaunchError):
                raise outcome
            if isinstance(outcome, BaseException):
                LOG.warning("FETCH_TASK_FAILED err=%s", outcome)

    @staticmethod
    def _result(
        state: _RunState,
        candidate: CandidateURL,
        platform: str,
        email: str,
        inference: NameInference,
    ) -> Result:
        return Result(
            profile=state.profile,
            name=inference.name,
            email=email,
            platform=platform,
            search_engine=state.engine,
            confidence=inference.confidence,
            ai_enhanced=inference.ai_enhanced,
            method=inference.method,
            source_url=candidate.url,
            targeted_email_provider=candidate.email_provider,
            extracted_at=_now_iso(),
        )

    async def synthetic_results(self, profile: str, limit: int, use_ai: bool = False) -> List[Result]:
        """Deterministic demonstration records, always tagged as synthetic."""
        profile = clean_profile(profile).lower()
        count = max(0, min(limit, MAX_SYNTHETIC))
        providers = [p.lstrip("@") for p in self.providers] or ["gmail.com"]
        emails: List[str] = []
        meta = []
        for i in range(count):
            first = SYNTHETIC_FIRST_NAMES[i].lower()
            last = SYNTHETIC_LAST_NAMES[(i * 7) % len(SYNTHETIC_LAST_NAMES)].lower()
            platform = SYNTHETIC_PLATFORMS[i % len(SYNTHETIC_PLATFORMS)]
            emails.append(f"{first}.{last}@{providers[i % len(providers)]}")
            meta.append((platform, _synthetic_url(platform, first, last), "@" + providers[i % len(providers)]))

        named = await self._inferencer(use_ai).infer_many(emails)
        stamp = _now_iso()
        return [
            Result(
                profile=profile,
                name=inference.name,
                email=email,
                platform=platform,
                search_engine=SYNTHETIC_ENGINE,
                confidence=inference.confidence,
                ai_enhanced=inference.ai_enhanced,
                method=inference.method,
                source_url=url,
                targeted_email_provider=provider,
                synthetic=True,
                extracted_at=stamp,
            )
            for (email, inference), (platform, url, provider) in zip(named, meta)
        ]

    async def shutdown(self) -> None:
        await self.browser.shutdown()
        self.session.close()
