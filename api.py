"""
Assessment Intelligence — FastAPI Server
=========================================

RESTful API for property data validation and assessment analysis.

Endpoints:
    POST /validate                  Validate a single property record
    POST /validate/batch            Validate a collection, split valid / invalid
    POST /autofix                   Auto-fix a collection, split changed / unchanged
    POST /review                    Full collection review (validation + analysis)
    POST /analysis/outliers         Outlier detection
    POST /analysis/trends           Market trends by area
    POST /analysis/appeal-risk      Appeal-risk scoring
    POST /analysis/comparables      Comparable properties for a subject
    POST /analysis/insights         Assessment insights for one property
    GET  /health                    Health check / readiness check

Run:
    uvicorn api:app --reload              # Dev (http://localhost:8000)
    uvicorn api:app --host 0.0.0.0        # Production

Docs:
    http://localhost:8000/docs             # Swagger UI (auto-generated)
    http://localhost:8000/redoc            # ReDoc (alternative)
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from pydantic import Field

from assessment_intelligence import __version__
from assessment_intelligence.config import AnalysisSettings
from assessment_intelligence.exceptions import InvalidOptionError, PropertyNotFoundError
from assessment_intelligence.models import (
    AppealRisk,
    AssessmentHistoryEntry,
    AutoFixBatchResult,
    BatchValidation,
    CamelModel,
    CollectionReport,
    ComparableProperty,
    MarketTrend,
    PropertyAssessmentInsights,
    PropertyOutlier,
    PropertyRecord,
    ValidationResult,
)
from assessment_intelligence.pipeline import AssessmentPipeline

load_dotenv()


# ─── Application Lifespan (build the pipeline once) ─────────────────

_pipeline: AssessmentPipeline | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the pipeline from environment settings on startup."""
    global _pipeline  # noqa: PLW0603
    _pipeline = AssessmentPipeline(AnalysisSettings.from_env())
    yield
    _pipeline = None


# ─── FastAPI App ─────────────────────────────────────────────────────

app = FastAPI(
    title="Assessment Intelligence API",
    description=(
        "Rule-based validation and auto-fix for property records, plus "
        "outlier detection, market trends, appeal-risk scoring and "
        "comparable-property analysis for tax assessments."
    ),
    version=__version__,
    lifespan=lifespan,
)


# ─── Request / Response Schemas ─────────────────────────────────────


class PropertiesRequest(CamelModel):
    """A collection of property records."""

    properties: list[PropertyRecord] = Field(..., description="Property records to process.")


class OutliersRequest(PropertiesRequest):
    threshold: Optional[float] = Field(default=None, ge=0)
    method: Optional[str] = Field(default=None, description="statistical | comparative | hybrid")
    group_by: Optional[str] = Field(default=None, description="neighborhood | propertyType | both")


class TrendsRequest(PropertiesRequest):
    period: str = "year"
    area_type: str = "neighborhood"
    significance_threshold: Optional[float] = Field(default=None, ge=0)


class AppealRiskRequest(PropertiesRequest):
    assessment_history: dict[str, list[AssessmentHistoryEntry]] = Field(default_factory=dict)


class ComparablesRequest(CamelModel):
    subject: PropertyRecord
    candidates: list[PropertyRecord]
    count: Optional[int] = Field(default=None, ge=1)
    max_distance: Optional[float] = Field(default=None, gt=0, description="Miles")
    adjust_for_time: bool = True
    adjust_for_features: bool = True


class InsightsRequest(PropertiesRequest):
    property_id: str = Field(..., min_length=1, description="Id of the subject within `properties`.")


class HealthResponse(CamelModel):
    status: str
    version: str
    rules_loaded: int


# ─── Helpers ─────────────────────────────────────────────────────────


def _get_pipeline() -> AssessmentPipeline:
    if _pipeline is None:
        raise HTTPException(status_code=503, detail="Pipeline not initialised")
    return _pipeline


def _invalid_option(e: InvalidOptionError) -> HTTPException:
    return HTTPException(status_code=422, detail={"code": e.code, "message": str(e), **e.details})


# ─── Validation Endpoints ────────────────────────────────────────────


@app.post("/validate", summary="Validate a property record", tags=["Validation"])
def validate_property(record: PropertyRecord) -> ValidationResult:
    """Run every validation rule against one record.

    Returns the issues found, a 0-100 data-quality **score**, and whether the
    record has blocking (error or critical) issues.
    """
    return _get_pipeline().validator.validate(record)


@app.post("/validate/batch", summary="Validate a collection", tags=["Validation"])
def validate_batch(request: PropertiesRequest) -> BatchValidation:
    return _get_pipeline().batch.validate_and_group(request.properties)


@app.post("/autofix", summary="Auto-fix a collection", tags=["Validation"])
def autofix_batch(request: PropertiesRequest) -> AutoFixBatchResult:
    """Apply every available fix. Records that did not change are returned
    under `unfixable`, including records that needed no fixing."""
    return _get_pipeline().batch.auto_fix_batch(request.properties)


@app.post("/review", summary="Review a whole collection", tags=["Validation", "Analysis"])
async def review_collection(request: PropertiesRequest) -> CollectionReport:
    pipeline = _get_pipeline()
    return await asyncio.to_thread(pipeline.review, request.properties)


# ─── Analysis Endpoints ──────────────────────────────────────────────


@app.post(
    "/analysis/outliers",
    summary="Detect assessment outliers",
    tags=["Analysis"],
    responses={422: {"description": "Unknown method or grouping"}},
)
def detect_outliers(request: OutliersRequest) -> list[PropertyOutlier]:
    try:
        return _get_pipeline().intelligence.detect_outliers(
            request.properties,
            threshold=request.threshold,
            method=request.method,
            group_by=request.group_by,
        )
    except InvalidOptionError as e:
        raise _invalid_option(e) from e


@app.post(
    "/analysis/trends",
    summary="Analyze market trends by area",
    tags=["Analysis"],
    responses={422: {"description": "Unknown period or area type"}},
)
def analyze_trends(request: TrendsRequest) -> list[MarketTrend]:
    try:
        return _get_pipeline().intelligence.analyze_market_trends(
            request.properties,
            period=request.period,
            area_type=request.area_type,
            significance_threshold=request.significance_threshold,
        )
    except InvalidOptionError as e:
        raise _invalid_option(e) from e


@app.post("/analysis/appeal-risk", summary="Predict appeal risk", tags=["Analysis"])
def predict_appeal_risk(request: AppealRiskRequest) -> list[AppealRisk]:
    return _get_pipeline().intelligence.predict_appeal_risk(
        request.properties, request.assessment_history
    )


@app.post("/analysis/comparables", summary="Find comparable properties", tags=["Analysis"])
def find_comparables(request: ComparablesRequest) -> list[ComparableProperty]:
    """Rank nearby candidates by similarity. Empty when the subject has no coordinates."""
    return _get_pipeline().intelligence.find_comparable_properties(
        request.subject,
        request.candidates,
        count=request.count,
        max_distance=request.max_distance,
        adjust_for_time=request.adjust_for_time,
        adjust_for_features=request.adjust_for_features,
    )


@app.post(
    "/analysis/insights",
    summary="Assessment insights for one property",
    tags=["Analysis"],
    responses={404: {"description": "Property id not in the supplied collection"}},
)
def property_insights(request: InsightsRequest) -> PropertyAssessmentInsights:
    try:
        return _get_pipeline().insights_for(request.property_id, request.properties)
    except PropertyNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


# ─── System ──────────────────────────────────────────────────────────


@app.get(
    "/health",
    summary="Health check",
    tags=["System"],
    responses={503: {"description": "Pipeline not yet initialised"}},
)
def health_check() -> HealthResponse:
    """Returns service status and configuration info."""
    pipeline = _get_pipeline()
    return HealthResponse(
        status="healthy",
        version=__version__,
        rules_loaded=len(pipeline.validator.get_all_rules()),
    )
