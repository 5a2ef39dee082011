"""Site/provider scoped search queries for a profile keyword."""

from __future__ import annotations

import re
from typing import List, Sequence

from finder_models import InvalidProfileError, Query

SITES = ("linkedin.com", "indeed.com", "github.com")
EMAIL_PROVIDERS = (
    "@gmail.com",
    "@rediffmail.com",
    "@yahoo.com",
    "@outlook.com",
    "@hotmail.com",
)


def clean_profile(profile: str) -> str:
    cleaned = re.sub(r"\s+", " ", profile or "").strip()
    if not cleaned:
        raise InvalidProfileError("Profile keyword is required")
    return cleaned


def build_queries(
    profile: str,
    sites: Sequence[str] = SITES,
    providers: Sequence[str] = EMAIL_PROVIDERS,
) -> List[Query]:
    """One ``site:<site> "<provider>" "<profile>"`` query per combination, site-major."""
    profile = clean_profile(profile)
    return [
        Query(
            text=f'site:{site} "{provider}" "{profile}"',
            site=site,
            email_provider=provider,
            profile=profile,
        )
        for site in sites
        for provider in providers
    ]


class QueryBuilder:
    def __init__(self, sites: Sequence[str] = SITES, providers: Sequence[str] = EMAIL_PROVIDERS):
        self.sites = tuple(sites)
        self.providers = tuple(providers)

    def build(self, profile: str) -> List[Query]:
        return build_queries(profile, self.sites, self.providers)
