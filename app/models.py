# app/models.py
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

VitalStatus = Literal["good", "needs-improvement", "poor", "unavailable"]
Severity = Literal["positive", "warning", "critical"]
Priority = Literal["high", "medium", "low"]

class CamelModel(BaseModel):
    """Base model serialized with camelCase keys, immutable once built."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

class AnalysisRequest(BaseModel):
    url: str

class PageMetrics(CamelModel):
    url: str
    title: str = ""
    description: str = ""
    h1_count: int = 0
    h2_count: int = 0
    h3_count: int = 0
    img_count: int = 0
    img_with_alt_count: int = 0
    script_count: int = 0
    stylesheet_count: int = 0
    inline_style_count: int = 0
    html_length: int = 0
    has_viewport: bool = False
    has_lang: bool = False
    has_canonical: bool = False
    has_robots: bool = False
    has_open_graph: bool = False
    has_structured_data: bool = False
    has_charset: bool = False
    is_https: bool = False
    link_count: int = 0
    internal_link_count: int = 0
    external_link_count: int = 0
    has_h1: bool = False
    unique_h1: bool = False
    text_to_html_ratio: int = 0

class VitalMetric(CamelModel):
    status: VitalStatus
    display_value: str
    raw_score: Optional[float] = None

class CoreWebVitals(CamelModel):
    lcp: VitalMetric
    fid: VitalMetric
    cls: VitalMetric
    fcp: VitalMetric
    ttfb: VitalMetric
    speed_index: Optional[float] = None
    performance_score: Optional[int] = None
    source: Literal["measured", "unavailable"]

class Scores(CamelModel):
    seo: int = Field(ge=0, le=100)
    performance: int = Field(ge=0, le=100)
    accessibility: int = Field(ge=0, le=100)
    best_practices: int = Field(ge=0, le=100)

class Finding(CamelModel):
    severity: Severity
    category: str
    title: str
    description: str

class Recommendation(CamelModel):
    priority: Priority
    title: str
    description: str
    impact: str

class GeneratedAnalysis(CamelModel):
    """The part of an analysis the completion service is asked to produce."""
    scores: Scores
    findings: List[Finding]
    recommendations: List[Recommendation]
    summary: str = ""

class Analysis(GeneratedAnalysis):
    core_web_vitals: CoreWebVitals

class Report(CamelModel):
    id: str
    url: str
    title: str
    description: str
    analysis: str  # JSON-encoded Analysis
    metrics: PageMetrics
    created_at: datetime
