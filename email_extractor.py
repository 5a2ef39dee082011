"""Pull validated email addresses out of fetched pages or plain text."""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional

from email_validator import EmailNotValidError, validate_email

LOG = logging.getLogger("email_extractor")

EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
SCRIPT_RE = re.compile(r"<script\b[^>]*>.*?</script\s*>", re.I | re.S)
STYLE_RE = re.compile(r"<style\b[^>]*>.*?</style\s*>", re.I | re.S)

EXCLUDED_DOMAINS = (
    "example.com",
    "test.com",
    "placeholder.com",
    "sample.com",
    "domain.com",
)
ASSET_SUFFIXES = (".png", ".jpg", ".gif", ".svg")


def strip_scripts(html: str) -> str:
    """Drop ``<script>`` and ``<style>`` blocks, tags and contents alike."""
    return STYLE_RE.sub(" ", SCRIPT_RE.sub(" ", html or ""))


def normalize_provider(provider: Optional[str]) -> str:
    provider = (provider or "").strip().lower()
    if provider and not provider.startswith("@"):
        provider = "@" + provider
    return provider


def is_excluded(email: str) -> bool:
    email = email.lower()
    if email.endswith(ASSET_SUFFIXES):
        return True
    domain = email.rpartition("@")[2]
    return any(domain == d or domain.endswith("." + d) for d in EXCLUDED_DOMAINS)


def is_valid_email(email: str) -> bool:
    if not email or is_excluded(email):
        return False
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def _collect(candidates: Iterable[str], provider: Optional[str]) -> List[str]:
    wanted = normalize_provider(provider)
    seen = set()
    emails: List[str] = []
    for raw in candidates:
        email = raw.strip().lower()
        if email in seen:
            continue
        seen.add(email)
        if not is_valid_email(email):
            continue
        if wanted and not email.endswith(wanted):
            continue
        emails.append(email)
    return emails


def extract_from_text(text: str, provider: Optional[str] = None) -> List[str]:
    """Return validated addresses found in *text*, in first-seen order.

    When *provider* is given (``"@gmail.com"`` or ``"gmail.com"``) only
    addresses ending with it are kept.
    """
    if not text:
        return []
    return _collect(EMAIL_RE.findall(text), provider)


def extract_from_html(html: str, provider: Optional[str] = None) -> List[str]:
    """Like :func:`extract_from_text` but ignores script and style payloads."""
    if not html:
        return []
    emails = extract_from_text(strip_scripts(html), provider)
    LOG.debug("EMAILS_EXTRACTED count=%s provider=%s", len(emails), provider or "*")
    return emails
