# app/main.py
import logging
import uuid
from contextlib import asynccontextmanager
from typing import List

import httpx
from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import Settings, get_settings
from app.core.logging_config import configure_logging
from app.models import AnalysisRequest, Report
from app.services import fetch_service, llm_service, pagespeed_service, report_service
from app.services.fetch_service import PageFetchError
from app.services.history_service import HistoryPersistenceError, HistoryRegistry, SQLiteKeyValueStore
from app.services.metrics_service import extract_metrics
from app.services.report_service import Completer

logger = logging.getLogger(__name__)

# --- Application Lifespan ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    app.state.history = HistoryRegistry(
        SQLiteKeyValueStore(settings.HISTORY_DB_PATH), limit=settings.HISTORY_LIMIT
    )
    app.state.http_client = httpx.AsyncClient(follow_redirects=True)
    logger.info(
        "Website Inspector started (PageSpeed: %s, LLM: %s)",
        "on" if settings.PAGESPEED_API_KEY else "off",
        "on" if settings.GROQ_API_KEY else "fallback only",
    )
    try:
        yield
    finally:
        await app.state.history.close()
        await app.state.http_client.aclose()

# --- FastAPI App Initialization ---
app = FastAPI(
    title="AI Website Inspector",
    description="An API that scores a webpage's SEO, performance, accessibility and best practices.",
    version="1.0.0",
    lifespan=lifespan,
)

# --- CORS Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Dependencies ---
def get_history_registry(request: Request) -> HistoryRegistry:
    return request.app.state.history

def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client

def get_completer() -> Completer:
    return llm_service.complete

def resolve_user_id(request: Request, response: Response, settings: Settings) -> str:
    """
    Reads the opaque session id from the request cookie, minting a new one
    (and setting it on the response) when the caller has none.
    """
    user_id = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if user_id:
        return user_id

    user_id = str(uuid.uuid4())
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=user_id,
        max_age=settings.SESSION_COOKIE_MAX_AGE,
        path="/",
        samesite="lax",
    )
    return user_id

# --- API Endpoints ---
@app.post("/analyze", response_model=Report)
async def analyze_website(
    body: AnalysisRequest,
    request: Request,
    response: Response,
    settings: Settings = Depends(get_settings),
    history: HistoryRegistry = Depends(get_history_registry),
    client: httpx.AsyncClient = Depends(get_http_client),
    completer: Completer = Depends(get_completer),
):
    """
    Fetches the URL, extracts page metrics, measures Core Web Vitals, scores the
    page and stores the report in the caller's history.
    """
    url = body.url
    if not url or not url.startswith(("http://", "https://")):
        raise HTTPException(status_code=400, detail="Invalid URL. Must start with http:// or https://")

    user_id = resolve_user_id(request, response, settings)

    try:
        page = await fetch_service.fetch_page(url, settings.USER_AGENT, settings.MAX_HTML_CHARS, client=client)
    except PageFetchError as e:
        logger.info("Could not fetch %s: %s", url, e)
        raise HTTPException(status_code=400, detail=f"Failed to fetch URL: {e}")

    metrics = await run_in_threadpool(extract_metrics, page.html, url, max_chars=settings.MAX_HTML_CHARS)

    # Real Core Web Vitals from PageSpeed Insights, degraded when unavailable
    vitals = await pagespeed_service.fetch_core_web_vitals(
        url, settings.PAGESPEED_API_KEY, settings.PAGESPEED_STRATEGY, client=client
    )

    report = await report_service.compose_report(metrics, vitals, page.fetch_time_ms, completer=completer)

    try:
        await history.add(user_id, report)
    except HistoryPersistenceError:
        raise HTTPException(status_code=500, detail="Could not save the report to history.")

    return report

@app.get("/history", response_model=List[Report])
async def get_history(
    request: Request,
    response: Response,
    settings: Settings = Depends(get_settings),
    history: HistoryRegistry = Depends(get_history_registry),
):
    """Returns the caller's stored reports, most recent first."""
    user_id = resolve_user_id(request, response, settings)
    try:
        reports = await history.list(user_id)
    except HistoryPersistenceError:
        raise HTTPException(status_code=500, detail="Could not load history.")
    return list(reports)

# A simple root endpoint to confirm the API is running
@app.get("/")
def read_root():
    return {"message": "Welcome to the AI Website Inspector API"}

@app.get("/health")
def health() -> dict:
    """Health check for deployment."""
    return {"status": "ok"}
