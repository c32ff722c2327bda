# app/services/pagespeed_service.py
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional, Union

import httpx

from app.models import CoreWebVitals, VitalMetric, VitalStatus

logger = logging.getLogger(__name__)

API_ENDPOINT = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"

NO_CREDENTIAL_MESSAGE = "API key required"
MEASUREMENT_FAILED_MESSAGE = "Measurement failed"

# metric -> (lighthouse audit id, field data key, unit)
METRIC_SOURCES = {
    "lcp": ("largest-contentful-paint", "LARGEST_CONTENTFUL_PAINT_MS", "millisecond"),
    "fid": ("max-potential-fid", "FIRST_INPUT_DELAY_MS", "millisecond"),
    "cls": ("cumulative-layout-shift", "CUMULATIVE_LAYOUT_SHIFT_SCORE", "unitless"),
    "fcp": ("first-contentful-paint", "FIRST_CONTENTFUL_PAINT_MS", "millisecond"),
    "ttfb": ("server-response-time", "EXPERIMENTAL_TIME_TO_FIRST_BYTE", "millisecond"),
}

# Chrome UX Report buckets, used only when the lab audit carries no score
FIELD_CATEGORY_STATUS: Dict[str, VitalStatus] = {
    "FAST": "good",
    "AVERAGE": "needs-improvement",
    "SLOW": "poor",
}


class PageSpeedError(Exception):
    """Raised when the PageSpeed Insights call fails or returns an unusable body."""


# --- Measurement outcomes ---
@dataclass(frozen=True)
class NoCredential:
    pass


@dataclass(frozen=True)
class MeasurementFailed:
    reason: str


@dataclass(frozen=True)
class Measured:
    data: Dict[str, Any]


MeasurementResult = Union[NoCredential, MeasurementFailed, Measured]


async def get_pagespeed_insights(
    url: str,
    api_key: str,
    strategy: Literal["mobile", "desktop"] = "desktop",
    client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, Any]:
    """
    Asynchronously calls the Google PageSpeed Insights API.

    Args:
        url: The target website URL.
        api_key: The PageSpeed Insights credential.
        strategy: The analysis strategy ('mobile' or 'desktop').
        client: Optional shared HTTP client; a short-lived one is created otherwise.

    Returns:
        The parsed JSON response as a dictionary.

    Raises:
        PageSpeedError: If the API call fails or returns an error.
    """
    params = {"url": url, "key": api_key, "strategy": strategy, "category": "performance"}

    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient()
    try:
        response = await client.get(
            API_ENDPOINT, params=params, headers={"Accept": "application/json"}, timeout=60.0
        )
        response.raise_for_status()  # Raise an exception for bad status codes (4xx or 5xx)
        data = response.json()
    except httpx.HTTPStatusError as e:
        raise PageSpeedError(f"PageSpeed API returned {e.response.status_code}") from e
    except (httpx.RequestError, httpx.InvalidURL) as e:
        raise PageSpeedError(f"Network error while calling PageSpeed API: {e}") from e
    except ValueError as e:
        raise PageSpeedError("PageSpeed API returned a non-JSON body") from e
    finally:
        if owns_client:
            await client.aclose()

    if not isinstance(data, dict):
        raise PageSpeedError("PageSpeed API returned an unexpected body")
    if "error" in data:
        error = data["error"]
        error_message = error.get("message", "Unknown API error") if isinstance(error, dict) else str(error)
        raise PageSpeedError(f"PageSpeed API Error: {error_message}")
    if "lighthouseResult" not in data:
        raise PageSpeedError("Invalid response from PageSpeed API: 'lighthouseResult' not found.")

    return data


async def measure(
    url: str,
    api_key: Optional[str],
    strategy: Literal["mobile", "desktop"] = "desktop",
    client: Optional[httpx.AsyncClient] = None,
) -> MeasurementResult:
    """Runs the measurement once and turns every possible outcome into a MeasurementResult."""
    if not api_key:
        logger.info("No PageSpeed API key configured, skipping Core Web Vitals for %s", url)
        return NoCredential()

    try:
        return Measured(await get_pagespeed_insights(url, api_key, strategy, client=client))
    except PageSpeedError as e:
        logger.warning("PageSpeed measurement failed for %s: %s", url, e)
        return MeasurementFailed(str(e))


async def fetch_core_web_vitals(
    url: str,
    api_key: Optional[str],
    strategy: Literal["mobile", "desktop"] = "desktop",
    client: Optional[httpx.AsyncClient] = None,
) -> CoreWebVitals:
    """Measures `url` and normalizes the outcome. Never raises for measurement problems."""
    return normalize_vitals(await measure(url, api_key, strategy, client=client))


# --- Normalization ---
def score_to_status(score: Optional[float]) -> VitalStatus:
    """Maps a 0-1 Lighthouse score to a status bucket."""
    if score is None:
        return "unavailable"
    if score >= 0.9:
        return "good"
    if score >= 0.5:
        return "needs-improvement"
    return "poor"


def format_metric_value(value: float, unit: str) -> str:
    if unit == "millisecond":
        return f"{round(value)}ms"
    if unit == "unitless":
        return f"{value:.3f}"
    return f"{value:.2f}{unit}"


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _finite_number(value: Any) -> Optional[float]:
    """Returns `value` if it is a real, finite number; JSON bodies may carry NaN or Infinity."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value if math.isfinite(value) else None


def _unavailable_vitals(message: str) -> CoreWebVitals:
    entry = VitalMetric(status="unavailable", display_value=message)
    return CoreWebVitals(lcp=entry, fid=entry, cls=entry, fcp=entry, ttfb=entry, source="unavailable")


def _normalize_metric(audit: Any, field: Any, unit: str) -> VitalMetric:
    audit = audit if isinstance(audit, dict) else {}
    field = field if isinstance(field, dict) else {}
    score = _finite_number(audit.get("score"))

    status = score_to_status(score)
    display_value = None

    # Field (real-user) data wins over lab data when it is present
    percentile = _finite_number(field.get("percentile"))
    if percentile is not None:
        # CrUX reports CLS multiplied by 100
        value = percentile / 100 if unit == "unitless" else percentile
        display_value = format_metric_value(value, unit)
        if status == "unavailable":
            status = FIELD_CATEGORY_STATUS.get(str(field.get("category", "")).upper(), "unavailable")

    if display_value is None:
        display_value = audit.get("displayValue")
        numeric_value = _finite_number(audit.get("numericValue"))
        if not display_value and numeric_value is not None:
            display_value = format_metric_value(numeric_value, unit)

    return VitalMetric(status=status, display_value=str(display_value) if display_value else "N/A", raw_score=score)


def normalize_vitals(result: MeasurementResult) -> CoreWebVitals:
    """
    Converts a measurement outcome into a uniform CoreWebVitals structure.

    Args:
        result: NoCredential, MeasurementFailed or Measured with the raw PageSpeed body.

    Returns:
        CoreWebVitals with one status bucket per metric. Unavailable outcomes mark
        every metric unavailable with a message telling the two causes apart.
    """
    if isinstance(result, NoCredential):
        return _unavailable_vitals(NO_CREDENTIAL_MESSAGE)
    if isinstance(result, MeasurementFailed):
        return _unavailable_vitals(MEASUREMENT_FAILED_MESSAGE)

    data = result.data
    lighthouse_result = _as_dict(data.get("lighthouseResult"))
    audits = _as_dict(lighthouse_result.get("audits"))
    field_metrics = _as_dict(_as_dict(data.get("loadingExperience")).get("metrics"))

    entries = {
        name: _normalize_metric(audits.get(audit_id), field_metrics.get(field_key), unit)
        for name, (audit_id, field_key, unit) in METRIC_SOURCES.items()
    }

    speed_index = _finite_number(_as_dict(audits.get("speed-index")).get("numericValue"))
    performance = _as_dict(_as_dict(lighthouse_result.get("categories")).get("performance"))
    performance_score = _finite_number(performance.get("score"))

    return CoreWebVitals(
        **entries,
        speed_index=speed_index,
        performance_score=round(performance_score * 100) if performance_score is not None else None,
        source="measured",
    )
