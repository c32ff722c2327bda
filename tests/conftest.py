"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

import pytest

from app.models import PageMetrics, Report

# Markup from the worked example: one H1, three images without alt text,
# two scripts, viewport and charset present, no lang attribute.
SCENARIO_HTML = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<script src="/app.js"></script>
<script>console.log("hi")</script>
</head>
<body>
<h1>Hello</h1>
<img src="a.png"><img src="b.png"><img src="c.png" alt="">
</body>
</html>
"""


@pytest.fixture
def scenario_html() -> str:
    return SCENARIO_HTML


@pytest.fixture
def make_metrics() -> Callable[..., PageMetrics]:
    """Return a factory for PageMetrics with sensible defaults."""

    def _make(**overrides: Any) -> PageMetrics:
        fields: dict[str, Any] = {"url": "https://example.com"}
        fields.update(overrides)
        return PageMetrics(**fields)

    return _make


@pytest.fixture
def make_report(make_metrics) -> Callable[..., Report]:
    """Return a factory for minimal Reports identified by `report_id`."""

    def _make(report_id: str, url: str = "https://example.com") -> Report:
        return Report(
            id=report_id,
            url=url,
            title="",
            description="",
            analysis="{}",
            metrics=make_metrics(url=url),
            created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )

    return _make
