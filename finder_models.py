"""Records and exceptions shared across the discovery pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import finder_config as config

METHOD_PATTERN = "pattern-matching"
METHOD_AI = "ai-enhanced"
METHOD_FALLBACK = "fallback"

SYNTHETIC_ENGINE = "Synthetic"


class EmailFinderError(Exception):
    """Base class for errors surfaced to callers of the pipeline."""


class InvalidProfileError(EmailFinderError, ValueError):
    pass


class UnknownSearchEngineError(EmailFinderError, ValueError):
    pass


class BrowserLaunchError(EmailFinderError, RuntimeError):
    """The shared headless browser could not be started."""


@dataclass(frozen=True)
class Query:
    text: str
    site: str
    email_provider: str
    profile: str


@dataclass(frozen=True)
class CandidateURL:
    url: str
    source_site: str
    email_provider: str
    discovery_method: str


@dataclass
class ExtractionResult:
    emails: Tuple[str, ...]
    platform: str
    source_url: str
    fetch_method: str = ""  # "http", "browser" or "" when nothing was found


@dataclass
class NameInference:
    name: str
    confidence: float
    method: str
    reasoning: Optional[str] = None
    fallback: Optional["NameInference"] = None

    @property
    def ai_enhanced(self) -> bool:
        return self.method == METHOD_AI

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "confidence": self.confidence,
            "method": self.method,
            "ai_enhanced": self.ai_enhanced,
        }
        if self.reasoning:
            data["reasoning"] = self.reasoning
        if self.fallback is not None:
            data["fallback"] = self.fallback.to_dict()
        return data


@dataclass
class Result:
    profile: str
    name: str
    email: str
    platform: str
    search_engine: str
    confidence: float
    ai_enhanced: bool
    method: str
    source_url: str
    targeted_email_provider: Optional[str] = None
    synthetic: bool = False
    extracted_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "profile": self.profile,
            "name": self.name,
            "email": self.email,
            "platform": self.platform,
            "search_engine": self.search_engine,
            "confidence": self.confidence,
            "ai_enhanced": self.ai_enhanced,
            "method": self.method,
            "source_url": self.source_url,
            "targeted_email_provider": self.targeted_email_provider,
            "synthetic": self.synthetic,
        }
        if self.extracted_at:
            data["extracted_at"] = self.extracted_at
        return data


@dataclass
class DiscoveryOptions:
    limit: int = 10
    search_engine: str = config.DEFAULT_SEARCH_ENGINE
    use_ai: bool = False
    allow_synthetic: bool = config.DEMO_MODE
    timeout: Optional[float] = None

    def __post_init__(self) -> None:
        try:
            limit = int(self.limit)
        except (TypeError, ValueError):
            limit = 10
        self.limit = max(1, min(limit, config.MAX_LIMIT))


@dataclass
class DiscoveryReport:
    profile: str
    search_engine: str
    results: List[Result] = field(default_factory=list)
    sites_searched: List[str] = field(default_factory=list)
    email_providers_searched: List[str] = field(default_factory=list)
    queries_run: int = 0
    urls_discovered: int = 0
    timed_out: bool = False
    synthetic: bool = False
    message: str = ""
    suggestions: List[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.results)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "profile": self.profile,
            "search_method": self.search_engine,
            "sites_searched": list(self.sites_searched),
            "email_providers_searched": list(self.email_providers_searched),
            "queries_run": self.queries_run,
            "urls_discovered": self.urls_discovered,
            "timed_out": self.timed_out,
            "synthetic": self.synthetic,
            "count": self.count,
            "results": [r.to_dict() for r in self.results],
        }
        if self.message:
            data["message"] = self.message
        if self.suggestions:
            data["suggestions"] = list(self.suggestions)
        return data
