"""OpenAI-backed name inference used to re-score weak pattern guesses."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

from openai import OpenAI

import finder_config as config

LOG = logging.getLogger("ai_namer")

MAX_BATCH = 10

_SINGLE_PROMPT = """Given the email address "{email}", infer the person's likely full name.

Rules:
1. Analyze the part before the @ symbol
2. Common patterns: firstname.lastname, f.lastname, firstname_lastname
3. Return ONLY a JSON object with these fields:
   - name: the inferred full name, properly capitalized
   - confidence: a number between 0 and 1
   - reasoning: a brief explanation of the inference

Example: john.doe@company.com
{{"name": "John Doe", "confidence": 0.95, "reasoning": "Clear firstname.lastname pattern"}}"""

_BATCH_PROMPT = """Infer the person's name for each of these email addresses:
{emails}

Return ONLY a JSON array of objects with the keys email, name, confidence (0-1)
and reasoning. Example:
[{{"email": "john.doe@co.com", "name": "John Doe", "confidence": 0.95, "reasoning": "Clear pattern"}}]"""


class NameCollaborator(Protocol):
    def is_enabled(self) -> bool: ...

    def infer_name_from_email(self, email: str) -> Optional[Dict[str, Any]]: ...

    def batch_infer(self, emails: Sequence[str]) -> List[Dict[str, Any]]: ...


def _parse_json(text: str, opener: str = "{", closer: str = "}") -> Any:
    if not text:
        return None
    start = text.find(opener)
    end = text.rfind(closer) + 1
    if start < 0 or end <= start:
        return None
    try:
        return json.loads(text[start:end])
    except ValueError:
        return None


def _clamp(value: Any, default: float = 0.5) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        value = default
    return min(max(value, 0.0), 1.0)


def _normalize(item: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": str(item.get("name") or "Unknown").strip(),
        "confidence": _clamp(item.get("confidence")),
        "reasoning": str(item.get("reasoning") or "AI inference"),
    }


class OpenAINameCollaborator:
    def __init__(
        self,
        api_key: str = config.OPENAI_API_KEY,
        model: str = config.OPENAI_NAME_MODEL,
        timeout: float = config.AI_TIMEOUT,
        client: Any = None,
    ):
        self.model = model
        self.client = client
        if self.client is None and api_key:
            try:
                self.client = OpenAI(api_key=api_key, timeout=timeout, max_retries=1)
            except Exception as exc:
                LOG.warning("AI_CLIENT_INIT_FAILED err=%s", exc)
                self.client = None
        LOG.info("AI_NAMER enabled=%s model=%s", self.is_enabled(), model)

    def is_enabled(self) -> bool:
        return self.client is not None

    def _complete(self, prompt: str) -> str:
        resp = self.client.chat.completions.create(
            model=self.model,
            temperature=0,
            messages=[
                {"role": "system", "content": "Return ONLY valid JSON, no other text."},
                {"role": "user", "content": prompt},
            ],
        )
        return resp.choices[0].message.content or ""

    def infer_name_from_email(self, email: str) -> Optional[Dict[str, Any]]:
        if not self.is_enabled():
            return None
        try:
            content = self._complete(_SINGLE_PROMPT.format(email=email))
        except Exception as exc:
            LOG.warning("AI_NAME_REQUEST_FAILED email=%s err=%s", email, exc)
            return None
        data = _parse_json(content)
        if not isinstance(data, dict):
            LOG.warning("AI_NAME_UNPARSEABLE email=%s", email)
            return None
        return _normalize(data)

    def batch_infer(self, emails: Sequence[str]) -> List[Dict[str, Any]]:
        emails = list(emails)[:MAX_BATCH]
        if not self.is_enabled() or not emails:
            return []
        listing = "\n".join(f"{i}. {e}" for i, e in enumerate(emails, 1))
        try:
            content = self._complete(_BATCH_PROMPT.format(emails=listing))
        except Exception as exc:
            LOG.warning("AI_BATCH_REQUEST_FAILED count=%s err=%s", len(emails), exc)
            return []
        data = _parse_json(content, "[", "]")
        if not isinstance(data, list):
            return []
        out: List[Dict[str, Any]] = []
        for item in data:
            if not isinstance(item, dict) or not item.get("email"):
                continue
            row = _normalize(item)
            row["email"] = str(item["email"]).strip().lower()
            out.append(row)
        return out


def default_collaborator() -> Optional[OpenAINameCollaborator]:
    """Return a collaborator when an API key is configured, else ``None``."""
    if not config.OPENAI_API_KEY:
        return None
    return OpenAINameCollaborator()
