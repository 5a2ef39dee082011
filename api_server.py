# api_server.py – HTTP front door for profile email discovery:
#                 search (with a 24 h cache), history, stats and self-tests

import logging
from datetime import datetime, timedelta, timezone
from math import ceil
from typing import Any, Dict, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request

import finder_config as config
import email_extractor
from discovery import DiscoveryOrchestrator
from finder_models import (
    BrowserLaunchError,
    DiscoveryOptions,
    InvalidProfileError,
    Result,
    UnknownSearchEngineError,
)
from name_inference import infer_name
from query_builder import EMAIL_PROVIDERS, clean_profile
from results_store import ResultsStore, normalize_profile
from search_engines import SEARCH_ENGINES, canonical_engine_name

# ──────────────────────────────────────────────────────────────────────
# Configuration & logging
# ──────────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=getattr(logging, config.LOGLEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("api_server")

app = FastAPI(title="Profile Email Finder")

_store: Optional[ResultsStore] = None
_orchestrator: Optional[DiscoveryOrchestrator] = None

SAMPLE_HTML = """
<html>
  <body>
    <p>Contact: john.doe@company.com</p>
    <p>Email: jane.smith@startup.io</p>
    <p>Reach out: ceo@business.com</p>
    <p>Invalid: test@example.com</p>
  </body>
</html>
"""
SAMPLE_EMAILS = [
    "john.doe@company.com",
    "jane_smith@startup.io",
    "jdoe@business.com",
    "ceo@company.com",
    "contact@example.com",
    "sarah.johnson@tech.io",
]
MOCK_ROWS = [
    ("john.doe@techcompany.com", "LinkedIn", "https://www.linkedin.com/in/john-doe"),
    ("jane.smith@startup.io", "GitHub", "https://github.com/janesmith"),
    ("bob.wilson@company.com", "Company", "https://company.com/team/bob-wilson"),
]


def get_store() -> ResultsStore:
    global _store
    if _store is None:
        _store = ResultsStore(config.RESULTS_DB_PATH)
    return _store


def get_orchestrator() -> DiscoveryOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = DiscoveryOrchestrator()
    return _orchestrator


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


async def _json_body(request: Request) -> Dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Request body must be JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")
    return payload


def _cached_response(profile: str, limit: int, allow_synthetic: bool = False) -> Optional[Dict[str, Any]]:
    # demo rows are only replayed to callers that asked for demo data
    store = get_store()
    latest = store.latest_extracted_at(profile, include_synthetic=allow_synthetic)
    if latest is None:
        return None
    age = datetime.now(timezone.utc) - latest
    if age >= timedelta(hours=config.CACHE_TTL_HOURS):
        return None
    rows = store.find_by_profile(profile, limit=limit, include_synthetic=allow_synthetic)
    if not rows:
        return None
    logger.info("CACHE_HIT profile=%s rows=%s age=%s", profile, len(rows), age)
    return {
        "success": True,
        "cached": True,
        "ai_enhanced": False,
        "count": len(rows),
        "results": [r.to_dict() for r in rows],
    }


# ──────────────────────────────────────────────────────────────────────
# Lifecycle & health
# ──────────────────────────────────────────────────────────────────────
@app.on_event("startup")
async def _startup() -> None:
    get_store()
    logger.info("API_READY db=%s engines=%s", config.RESULTS_DB_PATH, ",".join(SEARCH_ENGINES))


@app.on_event("shutdown")
async def _shutdown() -> None:
    global _orchestrator
    if _orchestrator is not None:
        await _orchestrator.shutdown()
        _orchestrator = None
    logger.info("API_STOPPED")


@app.get("/health")
def health():
    browser_live = bool(_orchestrator and _orchestrator.browser.is_live)
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "browser_live": browser_live,
    }


# ──────────────────────────────────────────────────────────────────────
# Search, history, stats
# ──────────────────────────────────────────────────────────────────────
@app.post("/api/search")
async def search(request: Request):
    payload = await _json_body(request)
    try:
        profile = clean_profile(str(payload.get("profile") or ""))
        engine = canonical_engine_name(str(payload.get("search_engine") or config.DEFAULT_SEARCH_ENGINE))
    except (InvalidProfileError, UnknownSearchEngineError) as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    use_ai = _as_bool(payload.get("use_ai"), False)
    options = DiscoveryOptions(
        limit=payload.get("limit", 10),
        search_engine=engine,
        use_ai=use_ai,
        allow_synthetic=_as_bool(payload.get("allow_synthetic"), config.DEMO_MODE),
    )

    if _as_bool(payload.get("use_cache"), True) and not use_ai:
        cached = _cached_response(normalize_profile(profile), options.limit, options.allow_synthetic)
        if cached:
            return cached

    logger.info("SEARCH profile=%s engine=%s limit=%s ai=%s", profile, engine, options.limit, use_ai)
    try:
        report = await get_orchestrator().run(profile, options)
    except BrowserLaunchError as exc:
        logger.error("SEARCH_BROWSER_UNAVAILABLE err=%s", exc)
        raise HTTPException(status_code=503, detail="Headless browser unavailable")

    saved = get_store().save_many(report.results)
    body: Dict[str, Any] = {"success": True, "cached": False, "ai_enhanced": use_ai}
    body.update(report.to_dict())
    body["saved"] = len(saved)
    return body


@app.get("/api/history")
def history(page: int = 1, limit: int = 20, profile: Optional[str] = None):
    page = max(1, page)
    limit = max(1, min(limit, 100))
    store = get_store()
    rows = store.find_recent(profile, limit=limit, offset=(page - 1) * limit)
    total = store.count(profile)
    return {
        "success": True,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": ceil(total / limit) if total else 0,
        },
        "results": [r.to_dict() for r in rows],
    }


@app.get("/api/stats")
def stats():
    store = get_store()
    return {
        "success": True,
        "stats": {
            "total_emails": store.count(),
            "top_profiles": store.count_by_profile(limit=10),
            "search_engines": store.count_by_search_engine(),
        },
    }


# ──────────────────────────────────────────────────────────────────────
# Self-test endpoints (no network)
# ──────────────────────────────────────────────────────────────────────
@app.get("/api/test/email-extraction")
def selftest_email_extraction():
    emails = email_extractor.extract_from_html(SAMPLE_HTML)
    results = []
    for email in emails:
        inference = infer_name(email)
        results.append({"email": email, **inference.to_dict()})
    return {
        "success": True,
        "message": "Email extraction test",
        "emails_found": len(emails),
        "results": results,
    }


@app.get("/api/test/name-inference")
def selftest_name_inference():
    return {
        "success": True,
        "message": "Name inference test",
        "results": [{"email": e, **infer_name(e).to_dict()} for e in SAMPLE_EMAILS],
    }


@app.post("/api/test/mock-search")
async def selftest_mock_search(request: Request):
    payload = await _json_body(request)
    try:
        profile = clean_profile(str(payload.get("profile") or "")).lower()
    except InvalidProfileError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    results = []
    for email, platform, url in MOCK_ROWS:
        inference = infer_name(email)
        results.append(
            Result(
                profile=profile,
                name=inference.name,
                email=email,
                platform=platform,
                search_engine="Mock",
                confidence=inference.confidence,
                ai_enhanced=False,
                method=inference.method,
                source_url=url,
                targeted_email_provider=None,
                synthetic=True,
            ).to_dict()
        )
    return {
        "success": True,
        "cached": False,
        "ai_enhanced": False,
        "count": len(results),
        "results": results,
        "email_providers_searched": list(EMAIL_PROVIDERS),
        "note": "Mock results for testing; nothing was fetched or stored.",
    }


if __name__ == "__main__":
    uvicorn.run(app, host=config.API_HOST, port=config.API_PORT, log_level=config.LOGLEVEL.lower())
