"""
Pydantic models for property records and every derived analysis result.

Records are loosely populated bags of data in practice: any field may be
missing, so every PropertyRecord field is Optional. Derived results are
recomputed on demand and never persisted here.

Python attributes are snake_case; the JSON wire format is camelCase
(``zipCode``, ``squareFeet``...) and both spellings are accepted on input.
"""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model emitting camelCase JSON while keeping snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ─── Property Record ────────────────────────────────────────────────


class PropertyRecord(CamelModel):
    """A single property as supplied by the caller. Nothing is guaranteed present."""

    # Identity
    id: Optional[str] = None
    parcel_id: Optional[str] = None

    # Location
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    county: Optional[str] = None
    zip_code: Optional[str] = None
    neighborhood: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    # Physical
    square_feet: Optional[float] = None
    year_built: Optional[int] = None
    bedrooms: Optional[float] = None
    bathrooms: Optional[float] = None
    lot_size: Optional[float] = None
    garage: Optional[int] = None  # Garage spaces
    pool: Optional[bool] = None

    # Value
    price: Optional[float] = None  # Current assessed value
    land_value: Optional[float] = None
    improvement_value: Optional[float] = None
    last_sold_price: Optional[float] = None
    last_sold_date: Optional[date] = None
    tax_rate: Optional[float] = None

    # Classification
    property_type: Optional[str] = None
    zoning: Optional[str] = None

    @field_validator("id", "parcel_id", "zip_code", mode="before")
    @classmethod
    def _coerce_to_str(cls, value: object) -> object:
        # Ids and zip codes frequently arrive as numbers from upstream feeds
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


# ─── Validation ─────────────────────────────────────────────────────


class Severity(str, Enum):
    """Severity of a validation issue."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ValidationIssue(CamelModel):
    """One failing rule for one record."""

    rule_id: str
    severity: Severity
    message: str
    can_auto_fix: bool = False


class ValidationResult(CamelModel):
    record: PropertyRecord
    issues: list[ValidationIssue] = Field(default_factory=list)
    is_valid: bool
    score: int = Field(ge=0, le=100)  # 0-100 data quality score
    has_critical_issues: bool


class AutoFixResult(CamelModel):
    record: PropertyRecord
    fixed_issues: list[str] = Field(default_factory=list)  # Rule ids that were repaired


class BatchValidation(CamelModel):
    valid: list[PropertyRecord] = Field(default_factory=list)
    invalid: list[PropertyRecord] = Field(default_factory=list)
    results: list[ValidationResult] = Field(default_factory=list)


class AutoFixBatchResult(CamelModel):
    """Partition of a batch after auto-fix.

    ``unfixable`` holds every record auto-fix left unchanged, including
    records that needed no fixing at all.
    """

    fixed: list[PropertyRecord] = Field(default_factory=list)
    unfixable: list[PropertyRecord] = Field(default_factory=list)
    fixed_issue_count: int = 0


# ─── Outliers & Trends ──────────────────────────────────────────────


class OutlierType(str, Enum):
    OVERASSESSED = "overassessed"
    UNDERASSESSED = "underassessed"
    OTHER = "other"


class PropertyOutlier(CamelModel):
    property: PropertyRecord
    score: int = Field(ge=0, le=100)  # Higher = more anomalous
    type: OutlierType
    reason: str
    similar_properties: list[PropertyRecord] = Field(default_factory=list)
    percentage_difference: float


class MarketTrend(CamelModel):
    area_id: str
    area_name: str
    area_type: str
    trend: float  # Percentage change, signed
    period: str
    is_significant: bool
    confidence: float  # 0-1
    properties: list[PropertyRecord] = Field(default_factory=list)


# ─── Appeal Risk ────────────────────────────────────────────────────


class RecommendedAction(str, Enum):
    ADJUST = "adjust"
    REVIEW = "review"
    MONITOR = "monitor"
    DEFEND = "defend"


class AssessmentHistoryEntry(CamelModel):
    """One historical assessment for a property, oldest entries first."""

    assessed_value: float
    assessed_date: Optional[date] = None
    appealed: bool = False
    appeal_successful: Optional[bool] = None


class RecentSaleFactor(CamelModel):
    exists: bool
    sale_price: Optional[float] = None
    sale_date: Optional[date] = None
    assessment_difference: float = 0.0


class AssessmentChangeFactor(CamelModel):
    amount: float
    percentage: float
    is_significant: bool


class PriorAppealsFactor(CamelModel):
    appealed: bool
    successful: Optional[bool] = None
    # A field literally named ``date`` would shadow the type during annotation lookup
    appeal_date: Optional[date] = Field(default=None, alias="date")


class OwnerFactors(CamelModel):
    prior_appeals_count: int = 0
    success_rate: float = 0.0


class AppealRiskFactors(CamelModel):
    recent_sale: RecentSaleFactor
    assessment_change: AssessmentChangeFactor
    prior_appeals: PriorAppealsFactor
    owner_factors: OwnerFactors


class AppealRisk(CamelModel):
    property: PropertyRecord
    risk_score: float = Field(ge=0, le=100)
    factors: AppealRiskFactors
    recommended_action: RecommendedAction


# ─── Comparables ────────────────────────────────────────────────────


class ValueAdjustment(CamelModel):
    factor: str  # size | age | time | garage | pool
    amount: float
    reason: str


class ComparableProperty(CamelModel):
    property: PropertyRecord
    similarity_score: float = Field(ge=0, le=100)
    adjustments: list[ValueAdjustment] = Field(default_factory=list)
    adjusted_value: float


# ─── Assessment Insights ────────────────────────────────────────────


class SalesApproach(CamelModel):
    value: float
    comparables: list[ComparableProperty] = Field(default_factory=list)
    weight: float


class CostApproach(CamelModel):
    value: float
    replacement_cost: float
    depreciation: float
    land_value: float
    weight: float


class IncomeApproach(CamelModel):
    value: float
    net_income: float
    cap_rate: float
    weight: float


class ValuationApproaches(CamelModel):
    sales: SalesApproach
    cost: CostApproach
    income: IncomeApproach


class MarketValueEstimate(CamelModel):
    value: float
    range: tuple[float, float]
    confidence: float
    approaches: ValuationApproaches


class AssessmentQuality(CamelModel):
    uniformity: float
    fairness: float
    accuracy: float
    overall: int


class PropertyAssessmentInsights(CamelModel):
    property: PropertyRecord
    market_value_estimate: MarketValueEstimate
    assessment_quality: AssessmentQuality
    outlier_status: Optional[PropertyOutlier] = None
    appeal_risk: Optional[AppealRisk] = None
    neighborhood_trends: list[MarketTrend] = Field(default_factory=list)


# ─── Collection Review ──────────────────────────────────────────────


class CollectionReport(CamelModel):
    """Everything the pipeline derives from one pass over a collection."""

    total: int
    valid_count: int
    invalid_count: int
    average_quality_score: float
    validation: BatchValidation
    auto_fix: AutoFixBatchResult
    outliers: list[PropertyOutlier] = Field(default_factory=list)
    trends: list[MarketTrend] = Field(default_factory=list)
    appeal_risks: list[AppealRisk] = Field(default_factory=list)
