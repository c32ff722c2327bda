# app/services/report_service.py
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from pydantic import ValidationError

from app.models import Analysis, CoreWebVitals, GeneratedAnalysis, PageMetrics, Report
from app.services import llm_service
from app.services.scoring_service import build_fallback_analysis

logger = logging.getLogger(__name__)

Completer = Callable[[str], Awaitable[str]]

REQUIRED_KEYS = ("scores", "findings", "recommendations")


# --- Validation outcomes ---
@dataclass(frozen=True)
class ValidAnalysis:
    analysis: GeneratedAnalysis


@dataclass(frozen=True)
class InvalidAnalysis:
    reason: str


ValidationResult = Union[ValidAnalysis, InvalidAnalysis]


def format_for_llm(metrics: PageMetrics, vitals: CoreWebVitals, fetch_time_ms: Optional[int] = None) -> str:
    """
    Formats the page metrics into a clean, readable prompt for the LLM.
    The output depends only on its arguments.
    """
    m = metrics
    prompt_lines = [
        "Analyze this webpage and return structured JSON analysis:",
        "",
        f"URL: {m.url}",
        f"HTTPS: {m.is_https}",
    ]
    if fetch_time_ms is not None:
        prompt_lines.append(f"Initial Load Time: {fetch_time_ms}ms")

    prompt_lines += [
        "",
        "SEO METRICS:",
        f"- Title: {m.title or 'MISSING'}",
        f"- Meta Description: {m.description or 'MISSING'}",
        f"- H1 tags: {m.h1_count} (Unique: {m.unique_h1})",
        f"- H2 tags: {m.h2_count}",
        f"- H3 tags: {m.h3_count}",
        f"- Has Language: {m.has_lang}",
        f"- Has Canonical: {m.has_canonical}",
        f"- Has Robots: {m.has_robots}",
        f"- Open Graph: {m.has_open_graph}",
        f"- Structured Data: {m.has_structured_data}",
        "",
        "IMAGES:",
        f"- Total: {m.img_count}",
        f"- With Alt: {m.img_with_alt_count}",
        f"- Missing Alt: {m.img_count - m.img_with_alt_count}",
        "",
        "LINKS:",
        f"- Total: {m.link_count}",
        f"- Internal: {m.internal_link_count}",
        f"- External: {m.external_link_count}",
        "",
        "PERFORMANCE:",
        f"- HTML Size: {m.html_length / 1024:.2f} KB",
        f"- Scripts: {m.script_count}",
        f"- Stylesheets: {m.stylesheet_count}",
        f"- Inline Styles: {m.inline_style_count}",
        f"- Text/HTML Ratio: {m.text_to_html_ratio}%",
    ]
    if vitals.performance_score is not None:
        prompt_lines.append(f"- PageSpeed Score: {vitals.performance_score}/100")

    prompt_lines += [
        "",
        "TECHNICAL:",
        f"- Viewport Meta: {m.has_viewport}",
        f"- Charset: {m.has_charset}",
        "",
        "Note: Core Web Vitals are measured separately via Google PageSpeed Insights API.",
        "",
        "Provide accurate scores (0-100), specific findings, and prioritized recommendations "
        "based ONLY on the metrics above.",
    ]
    return "\n".join(prompt_lines)


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Returns the first top-level JSON object embedded in `text`, or None."""
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            obj, _ = decoder.raw_decode(text, idx=start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        if isinstance(obj, dict):
            return obj
        start = text.find("{", start + 1)
    return None


def validate_analysis(raw_text: str) -> ValidationResult:
    """
    Treats the LLM output as untrusted input and checks it against the analysis schema.

    Returns:
        ValidAnalysis with the parsed model, or InvalidAnalysis explaining the rejection.
    """
    data = extract_json_object(raw_text)
    if data is None:
        return InvalidAnalysis("no JSON object found in completion")

    missing = [key for key in REQUIRED_KEYS if key not in data]
    if missing:
        return InvalidAnalysis(f"missing keys: {', '.join(missing)}")

    # The LLM must not supply vitals; they are attached by the composer
    data.pop("coreWebVitals", None)
    data.pop("core_web_vitals", None)
    if data.get("summary") is None:
        data["summary"] = ""

    try:
        return ValidAnalysis(GeneratedAnalysis.model_validate(data))
    except ValidationError as e:
        return InvalidAnalysis(f"schema mismatch: {e.error_count()} errors")


async def generate_analysis(
    metrics: PageMetrics,
    vitals: CoreWebVitals,
    fetch_time_ms: Optional[int] = None,
    completer: Optional[Completer] = None,
) -> GeneratedAnalysis:
    """
    Asks the LLM for an analysis and falls back to the point-table scorer on
    any failure or invalid output. Never raises for completion problems.
    """
    completer = completer or llm_service.complete
    query = format_for_llm(metrics, vitals, fetch_time_ms)

    try:
        raw_text = await completer(query)
    except llm_service.LLMUnavailableError as e:
        logger.info("LLM unavailable (%s), using fallback scoring for %s", e, metrics.url)
        return build_fallback_analysis(metrics)
    except Exception:
        logger.warning("LLM call failed for %s, using fallback scoring", metrics.url, exc_info=True)
        return build_fallback_analysis(metrics)

    result = validate_analysis(raw_text or "")
    if isinstance(result, InvalidAnalysis):
        logger.warning("Discarding LLM output for %s: %s", metrics.url, result.reason)
        logger.debug("Rejected LLM output: %s", (raw_text or "")[:500])
        return build_fallback_analysis(metrics)
    return result.analysis


def attach_vitals(generated: GeneratedAnalysis, vitals: CoreWebVitals) -> Analysis:
    return Analysis(**dict(generated), core_web_vitals=vitals)


_last_created_at: Optional[datetime] = None


def next_created_at(now: Optional[datetime] = None) -> datetime:
    """UTC creation time that never runs backwards, even when the wall clock does."""
    global _last_created_at
    now = now or datetime.now(timezone.utc)
    if _last_created_at is not None and now < _last_created_at:
        now = _last_created_at
    _last_created_at = now
    return now


def create_report(metrics: PageMetrics, analysis: Analysis) -> Report:
    """Assembles the immutable Report stored in the user's history."""
    return Report(
        id=str(uuid.uuid4()),
        url=metrics.url,
        title=metrics.title,
        description=metrics.description,
        analysis=analysis.model_dump_json(by_alias=True),
        metrics=metrics,
        created_at=next_created_at(),
    )


async def compose_report(
    metrics: PageMetrics,
    vitals: CoreWebVitals,
    fetch_time_ms: Optional[int] = None,
    completer: Optional[Completer] = None,
) -> Report:
    generated = await generate_analysis(metrics, vitals, fetch_time_ms, completer=completer)
    return create_report(metrics, attach_vitals(generated, vitals))
