# app/services/scoring_service.py
from typing import List

from app.models import Finding, GeneratedAnalysis, PageMetrics, Recommendation, Scores


def _seo_score(m: PageMetrics) -> int:
    score = 50
    if m.title:
        score += 10
    if m.description:
        score += 10
    if m.has_h1:
        score += 10
    if m.has_canonical:
        score += 5
    if m.has_open_graph:
        score += 5
    if m.unique_h1:
        score += 10
    return min(score, 100)


def _performance_score(m: PageMetrics) -> int:
    score = 70
    if m.html_length < 50_000:
        score += 10
    if m.script_count < 10:
        score += 10
    if m.inline_style_count == 0:
        score += 10
    return min(score, 100)


def _accessibility_score(m: PageMetrics) -> int:
    score = 50
    if m.img_count > 0 and m.img_with_alt_count == m.img_count:
        score += 30
    elif m.img_with_alt_count > m.img_count / 2:
        score += 15
    if m.has_lang:
        score += 10
    if m.has_viewport:
        score += 10
    return min(score, 100)


def _best_practices_score(m: PageMetrics) -> int:
    score = 60
    if m.is_https:
        score += 15
    if m.has_charset:
        score += 10
    if m.has_viewport:
        score += 15
    return min(score, 100)


def build_findings(m: PageMetrics) -> List[Finding]:
    findings = []
    if not m.title:
        findings.append(Finding(severity="critical", category="seo", title="Missing Title",
                                description="Page has no title tag"))
    if not m.description:
        findings.append(Finding(severity="warning", category="seo", title="Missing Meta Description",
                                description="No meta description found"))
    if not m.has_h1:
        findings.append(Finding(severity="critical", category="seo", title="Missing H1",
                                description="Page has no H1 heading"))
    if m.img_with_alt_count < m.img_count:
        findings.append(Finding(severity="warning", category="accessibility", title="Missing Alt Text",
                                description=f"{m.img_count - m.img_with_alt_count} images missing alt text"))
    if not m.is_https:
        findings.append(Finding(severity="critical", category="best-practices", title="Not HTTPS",
                                description="Site is not using HTTPS"))
    if m.is_https:
        findings.append(Finding(severity="positive", category="best-practices", title="Using HTTPS",
                                description="Site is secured with HTTPS"))
    if m.title:
        findings.append(Finding(severity="positive", category="seo", title="Has Title Tag",
                                description="Page has a title tag"))
    return findings


def build_recommendations(m: PageMetrics) -> List[Recommendation]:
    recommendations = []
    if not m.has_canonical:
        recommendations.append(Recommendation(
            priority="medium", title="Add Canonical URL",
            description="Add a canonical link tag to specify the preferred URL",
            impact="Helps prevent duplicate content issues",
        ))
    if not m.has_open_graph:
        recommendations.append(Recommendation(
            priority="medium", title="Add Open Graph Tags",
            description="Add OG tags for better social media sharing",
            impact="Improves social media presence",
        ))
    if m.script_count > 15:
        recommendations.append(Recommendation(
            priority="high", title="Reduce Script Count",
            description="Too many script tags may slow page load",
            impact="Improves page load time",
        ))
    if not m.has_structured_data:
        recommendations.append(Recommendation(
            priority="low", title="Add Structured Data",
            description="Implement schema.org markup for rich snippets",
            impact="Enhances search results display",
        ))
    return recommendations


def build_fallback_analysis(metrics: PageMetrics) -> GeneratedAnalysis:
    """
    Scores a page from its metrics alone.

    Args:
        metrics: The extracted PageMetrics.

    Returns:
        A GeneratedAnalysis that is valid by construction. Core Web Vitals are
        attached later by the report composer, as for LLM output.
    """
    findings = build_findings(metrics)
    critical = sum(1 for f in findings if f.severity == "critical")
    warnings = sum(1 for f in findings if f.severity == "warning")

    return GeneratedAnalysis(
        scores=Scores(
            seo=_seo_score(metrics),
            performance=_performance_score(metrics),
            accessibility=_accessibility_score(metrics),
            best_practices=_best_practices_score(metrics),
        ),
        findings=findings,
        recommendations=build_recommendations(metrics),
        summary=(
            f"This website has {critical} critical issues and {warnings} warnings. "
            "Focus on improving SEO fundamentals and accessibility."
        ),
    )
