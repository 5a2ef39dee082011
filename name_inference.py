"""Guess a person's name from an email address.

Pattern matching runs first; an optional AI collaborator can re-score
low-confidence guesses. The rule table is ordered and the first matching rule
wins::

    first.last   -> "First Last"   0.90
    first_last   -> "First Last"   0.85
    firstlast    -> "First Last"   0.50  (first run must be a known first name)
    f.last       -> "F. Last"      0.70
    single       -> "Single"       0.60

Anything else falls back to the title-cased local part at 0.30.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple

import finder_config as config
from finder_models import METHOD_AI, METHOD_FALLBACK, METHOD_PATTERN, NameInference

LOG = logging.getLogger("name_inference")

COMMON_FIRST_NAMES = frozenset({
    "john", "jane", "michael", "sarah", "david", "emily", "james", "mary",
    "robert", "jennifer", "william", "linda", "richard", "patricia", "thomas",
    "jessica", "charles", "nancy", "daniel", "lisa", "matthew", "karen",
    "mark", "susan", "donald", "betty", "paul", "helen", "steven", "sandra",
})

REAL_NAME_BONUS = 0.10
FALLBACK_CONFIDENCE = 0.30

Matcher = Callable[[str], Optional[Tuple[str, ...]]]


def capitalize_words(value: str) -> str:
    return " ".join(w[:1].upper() + w[1:].lower() for w in value.split(" ") if w)


def _regex(pattern: str) -> Matcher:
    compiled = re.compile(pattern)

    def _match(local: str) -> Optional[Tuple[str, ...]]:
        m = compiled.fullmatch(local)
        return m.groups() if m else None

    return _match


_CONCAT_RE = re.compile(r"[a-z]{4,30}")


def _known_first_then_last(local: str) -> Optional[Tuple[str, ...]]:
    if not _CONCAT_RE.fullmatch(local):
        return None
    for first in sorted(COMMON_FIRST_NAMES, key=len, reverse=True):
        rest = local[len(first):]
        if local.startswith(first) and 2 <= len(rest) <= 15 and len(first) <= 15:
            return first, rest
    return None


def _full_name(parts: Tuple[str, ...]) -> str:
    return f"{capitalize_words(parts[0])} {capitalize_words(parts[1])}"


def _initial_last(parts: Tuple[str, ...]) -> str:
    return f"{parts[0].upper()}. {capitalize_words(parts[1])}"


def _single(parts: Tuple[str, ...]) -> str:
    return capitalize_words(parts[0])


@dataclass(frozen=True)
class NameRule:
    name: str
    match: Matcher
    format: Callable[[Tuple[str, ...]], str]
    confidence: float


DEFAULT_RULES: Tuple[NameRule, ...] = (
    NameRule("first.last", _regex(r"([a-z]{2,})\.([a-z]+)"), _full_name, 0.90),
    NameRule("first_last", _regex(r"([a-z]+)_([a-z]+)"), _full_name, 0.85),
    NameRule("firstlast", _known_first_then_last, _full_name, 0.50),
    NameRule("f.last", _regex(r"([a-z])\.([a-z]+)"), _initial_last, 0.70),
    NameRule("single", _regex(r"([a-z]+)"), _single, 0.60),
)


def local_part(email: str) -> str:
    return (email or "").strip().lower().split("@", 1)[0]


def is_likely_real_name(name: str) -> bool:
    parts = name.lower().split(" ")
    if parts and parts[0] in COMMON_FIRST_NAMES:
        return True
    if len(name) < 3 or len(name) > 30:
        return False
    letters = sum(1 for ch in name if ch.isalpha())
    return letters / len(name) > 0.8


class NameInferencer:
    """Pure, rule-table driven inference."""

    def __init__(self, rules: Sequence[NameRule] = DEFAULT_RULES):
        self.rules = tuple(rules)

    def infer(self, email: str) -> NameInference:
        local = local_part(email)
        for rule in self.rules:
            parts = rule.match(local)
            if not parts:
                continue
            name = rule.format(parts)
            confidence = rule.confidence
            if is_likely_real_name(name):
                confidence = min(confidence + REAL_NAME_BONUS, 1.0)
            return NameInference(name=name, confidence=round(confidence, 2), method=METHOD_PATTERN)
        return NameInference(
            name=capitalize_words(re.sub(r"[._-]", " ", local)),
            confidence=FALLBACK_CONFIDENCE,
            method=METHOD_FALLBACK,
        )

    async def ainfer(self, email: str) -> NameInference:
        return self.infer(email)

    async def infer_many(self, emails: Sequence[str]) -> List[Tuple[str, NameInference]]:
        return [(email, self.infer(email)) for email in emails]


def _coerce_ai_answer(answer: Any) -> Optional[NameInference]:
    if not isinstance(answer, dict):
        return None
    name = answer.get("name")
    if not isinstance(name, str) or not name.strip():
        return None
    try:
        confidence = float(answer.get("confidence"))
    except (TypeError, ValueError):
        return None
    confidence = min(max(confidence, 0.0), 1.0)
    reasoning = answer.get("reasoning")
    return NameInference(
        name=name.strip(),
        confidence=round(confidence, 2),
        method=METHOD_AI,
        reasoning=str(reasoning) if reasoning else "AI inference",
    )


class AIEnhancedInferencer:
    """Wraps a base inferencer and asks an AI collaborator about weak guesses.

    The collaborator only runs when it reports itself enabled and the pattern
    confidence is under ``threshold``; its answer is adopted only when it is
    strictly more confident. Collaborator errors leave the pattern result.
    """

    def __init__(
        self,
        base: NameInferencer,
        collaborator: Any,
        *,
        threshold: float = config.AI_CONFIDENCE_THRESHOLD,
        batch_size: int = config.AI_BATCH_SIZE,
        batch_pause: float = config.AI_BATCH_PAUSE,
        timeout: float = config.AI_TIMEOUT,
    ):
        self.base = base
        self.collaborator = collaborator
        self.threshold = threshold
        self.batch_size = max(1, batch_size)
        self.batch_pause = batch_pause
        self.timeout = timeout

    def infer(self, email: str) -> NameInference:
        return self.base.infer(email)

    def _collaborator_enabled(self) -> bool:
        try:
            return bool(self.collaborator and self.collaborator.is_enabled())
        except Exception as exc:
            LOG.warning("AI_COLLABORATOR_STATE_ERROR err=%s", exc)
            return False

    async def ainfer(self, email: str) -> NameInference:
        pattern = self.base.infer(email)
        if pattern.confidence >= self.threshold or not self._collaborator_enabled():
            return pattern
        try:
            answer = await asyncio.wait_for(
                asyncio.to_thread(self.collaborator.infer_name_from_email, email),
                timeout=self.timeout,
            )
        except Exception as exc:
            LOG.warning("AI_NAME_FAILED email=%s err=%s", email, exc)
            return pattern
        ai = _coerce_ai_answer(answer)
        if ai is None:
            if answer is not None:
                LOG.warning("AI_NAME_MALFORMED email=%s", email)
            return pattern
        if ai.confidence > pattern.confidence:
            ai.fallback = pattern
            return ai
        return pattern

    async def infer_many(self, emails: Sequence[str]) -> List[Tuple[str, NameInference]]:
        if not self._collaborator_enabled():
            return await self.base.infer_many(emails)
        out: List[Tuple[str, NameInference]] = []
        emails = list(emails)
        for start in range(0, len(emails), self.batch_size):
            group = emails[start:start + self.batch_size]
            answers = await asyncio.gather(*(self.ainfer(e) for e in group))
            out.extend(zip(group, answers))
            if start + self.batch_size < len(emails):
                await asyncio.sleep(self.batch_pause)
        return out


_DEFAULT = NameInferencer()


def infer_name(email: str) -> NameInference:
    return _DEFAULT.infer(email)


def build_inferencer(use_ai: bool, collaborator: Any = None):
    if not use_ai or collaborator is None:
        return _DEFAULT
    return AIEnhancedInferencer(_DEFAULT, collaborator)
