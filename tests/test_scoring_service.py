"""Tests for the fallback point-table scorer."""

from __future__ import annotations

import itertools

from app.services.metrics_service import extract_metrics
from app.services.scoring_service import build_fallback_analysis


class TestWorkedExample:
    def test_scores(self, scenario_html: str) -> None:
        metrics = extract_metrics(scenario_html, "https://example.com")
        scores = build_fallback_analysis(metrics).scores

        assert scores.seo == 70
        assert scores.performance == 100
        assert scores.accessibility == 60
        assert scores.best_practices == 100

    def test_findings_order(self, scenario_html: str) -> None:
        metrics = extract_metrics(scenario_html, "https://example.com")
        findings = build_fallback_analysis(metrics).findings

        assert [(f.severity, f.category, f.title) for f in findings] == [
            ("critical", "seo", "Missing Title"),
            ("warning", "seo", "Missing Meta Description"),
            ("warning", "accessibility", "Missing Alt Text"),
            ("positive", "best-practices", "Using HTTPS"),
        ]
        assert findings[2].description == "3 images missing alt text"

    def test_recommendations(self, scenario_html: str) -> None:
        metrics = extract_metrics(scenario_html, "https://example.com")
        recommendations = build_fallback_analysis(metrics).recommendations

        assert [(r.priority, r.title) for r in recommendations] == [
            ("medium", "Add Canonical URL"),
            ("medium", "Add Open Graph Tags"),
            ("low", "Add Structured Data"),
        ]

    def test_summary_counts(self, scenario_html: str) -> None:
        metrics = extract_metrics(scenario_html, "https://example.com")
        summary = build_fallback_analysis(metrics).summary
        assert summary.startswith("This website has 1 critical issues and 2 warnings.")


class TestPointTable:
    def test_perfect_page(self, make_metrics) -> None:
        m = make_metrics(
            title="T", description="D", has_h1=True, unique_h1=True, h1_count=1,
            has_canonical=True, has_open_graph=True, img_count=2, img_with_alt_count=2,
            has_lang=True, has_viewport=True, is_https=True, has_charset=True,
            has_structured_data=True, html_length=1000,
        )
        analysis = build_fallback_analysis(m)
        scores = analysis.scores
        assert (scores.seo, scores.performance, scores.accessibility, scores.best_practices) == (
            100, 100, 100, 100,
        )
        assert analysis.recommendations == []
        assert all(f.severity == "positive" for f in analysis.findings)

    def test_worst_page(self, make_metrics) -> None:
        m = make_metrics(
            url="http://example.com", html_length=60_000, script_count=20,
            inline_style_count=3, img_count=4, img_with_alt_count=0,
        )
        analysis = build_fallback_analysis(m)
        scores = analysis.scores
        assert (scores.seo, scores.performance, scores.accessibility, scores.best_practices) == (
            50, 70, 50, 60,
        )
        assert [r.title for r in analysis.recommendations] == [
            "Add Canonical URL",
            "Add Open Graph Tags",
            "Reduce Script Count",
            "Add Structured Data",
        ]
        assert analysis.recommendations[2].priority == "high"
        assert [f.title for f in analysis.findings] == [
            "Missing Title",
            "Missing Meta Description",
            "Missing H1",
            "Missing Alt Text",
            "Not HTTPS",
        ]

    def test_partial_alt_bonus(self, make_metrics) -> None:
        # 3 of 4 covered: more than half, not all
        assert build_fallback_analysis(make_metrics(img_count=4, img_with_alt_count=3)).scores.accessibility == 65
        # exactly half earns nothing
        assert build_fallback_analysis(make_metrics(img_count=4, img_with_alt_count=2)).scores.accessibility == 50

    def test_no_images_gets_no_alt_bonus(self, make_metrics) -> None:
        assert build_fallback_analysis(make_metrics(img_count=0, img_with_alt_count=0)).scores.accessibility == 50

    def test_performance_thresholds(self, make_metrics) -> None:
        at_limit = make_metrics(html_length=50_000, script_count=10, inline_style_count=0)
        assert build_fallback_analysis(at_limit).scores.performance == 80

    def test_scores_always_in_range(self, make_metrics) -> None:
        flags = ("has_h1", "unique_h1", "has_canonical", "has_open_graph", "has_lang",
                 "has_viewport", "is_https", "has_charset")
        for values in itertools.product([False, True], repeat=len(flags)):
            m = make_metrics(
                title="t" if values[0] else "", img_count=3, img_with_alt_count=2,
                **dict(zip(flags, values)),
            )
            scores = build_fallback_analysis(m).scores
            for score in (scores.seo, scores.performance, scores.accessibility, scores.best_practices):
                assert isinstance(score, int)
                assert 0 <= score <= 100
