"""
Assessment intelligence — statistical scoring over property collections.

Capabilities:
  - Outlier detection: value per sq ft against the group median, scaled by
    the mean absolute deviation (MAD) rather than the standard deviation
  - Market trends per area
  - Appeal-risk scoring with a recommended action
  - Comparable-property search with itemized value adjustments
  - A composite insights report for a single subject property

Every method is a pure function of its inputs. Groups or records lacking
the data a computation needs are skipped, so thin data produces empty
results, never exceptions.

Placeholder heuristics: without a real assessment time series, market
trends are derived from a hash of the area id, and appeal-risk history
inputs from the trailing digits of the property id (unless an explicit
assessment history is supplied). Both are deterministic so results are
stable across runs, but neither carries statistical meaning.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import date

from .config import (
    AREA_TYPES,
    OUTLIER_GROUPINGS,
    OUTLIER_METHODS,
    TREND_PERIODS,
    AnalysisSettings,
)
from .exceptions import InvalidOptionError
from .models import (
    AppealRisk,
    AppealRiskFactors,
    AssessmentChangeFactor,
    AssessmentHistoryEntry,
    AssessmentQuality,
    ComparableProperty,
    CostApproach,
    IncomeApproach,
    MarketTrend,
    MarketValueEstimate,
    OutlierType,
    OwnerFactors,
    PriorAppealsFactor,
    PropertyAssessmentInsights,
    PropertyOutlier,
    PropertyRecord,
    RecentSaleFactor,
    RecommendedAction,
    SalesApproach,
    ValuationApproaches,
    ValueAdjustment,
)
from .stats import (
    compact_number,
    haversine_miles,
    mean_absolute_deviation,
    round_half_up,
    upper_median,
)

logger = logging.getLogger(__name__)


# ─── Constants ───────────────────────────────────────────────────────

MIN_OUTLIER_GROUP_SIZE = 3
MIN_TREND_GROUP_SIZE = 5
MAX_SIMILAR_PROPERTIES = 5
SIMILAR_SIZE_TOLERANCE = 0.25  # ±25% square footage

STATISTICAL_Z_THRESHOLD = 2.5
HYBRID_Z_THRESHOLD = 1.5

SIGNIFICANT_ASSESSMENT_CHANGE = 10.0  # percent

GARAGE_SPACE_VALUE = 10_000
POOL_VALUE = 25_000
AGE_ADJUSTMENT_RATE = 0.5  # percent of comp price per year of age difference
MIN_AGE_ADJUSTMENT = 1_000
MONTHLY_APPRECIATION = 0.005

SALES_APPROACH_WEIGHT = 0.7
COST_APPROACH_WEIGHT = 0.2
INCOME_APPROACH_WEIGHT = 0.1
REPLACEMENT_COST_PER_SQFT = 150
CAP_RATE = 0.06

# Area type → (record attribute, label used when the attribute is missing)
_AREA_FIELDS: dict[str, tuple[str, str]] = {
    "neighborhood": ("neighborhood", "Unknown Neighborhood"),
    "zipCode": ("zip_code", "Unknown Zip Code"),
    "city": ("city", "Unknown City"),
    "county": ("county", "Unknown County"),
}

_LEADING_INT = re.compile(r"\s*[+-]?\d+")


def recommend_action(risk_score: float) -> RecommendedAction:
    """Map a 0-100 appeal-risk score to the assessor's next step."""
    if risk_score >= 75:
        return RecommendedAction.ADJUST
    if risk_score >= 50:
        return RecommendedAction.REVIEW
    if risk_score >= 25:
        return RecommendedAction.MONITOR
    return RecommendedAction.DEFEND


class AssessmentIntelligenceEngine:
    """Outlier, trend, appeal-risk and comparable analysis over property records.

    Options left as ``None`` fall back to ``settings``. ``today`` is the
    clock used for sale-date and building-age arithmetic.
    """

    def __init__(
        self,
        settings: AnalysisSettings | None = None,
        today: Callable[[], date] = date.today,
    ):
        self.settings = settings or AnalysisSettings()
        self._today = today

    # ─── Outlier Detection ──────────────────────────────────────────

    def detect_outliers(
        self,
        records: Iterable[PropertyRecord],
        *,
        threshold: float | None = None,
        method: str | None = None,
        group_by: str | None = None,
    ) -> list[PropertyOutlier]:
        """Flag records whose value per sq ft strays from their group's median.

        Groups with fewer than three members, or fewer than three members
        carrying a positive price and square footage, are skipped.
        Results are ordered most anomalous first.
        """
        threshold = self.settings.outlier_threshold if threshold is None else threshold
        method = method or self.settings.outlier_method
        group_by = group_by or self.settings.outlier_group_by
        _require_choice("method", method, OUTLIER_METHODS)
        _require_choice("group_by", group_by, OUTLIER_GROUPINGS)

        groups: dict[str, list[PropertyRecord]] = {}
        for record in records:
            groups.setdefault(_outlier_group_key(record, group_by), []).append(record)

        outliers: list[PropertyOutlier] = []

        for key, group in groups.items():
            if len(group) < MIN_OUTLIER_GROUP_SIZE:
                logger.debug("Skipping group '%s': only %d records", key, len(group))
                continue

            priced = [
                (record, record.price / record.square_feet)
                for record in group
                if _positive(record.price) and _positive(record.square_feet)
            ]
            if len(priced) < MIN_OUTLIER_GROUP_SIZE:
                logger.debug("Skipping group '%s': only %d priced records", key, len(priced))
                continue

            values = [value for _, value in priced]
            median = upper_median(values)
            mad = mean_absolute_deviation(values, median)

            for record, value in priced:
                percent_diff = (value - median) / median * 100
                z_score = abs(value - median) / mad if mad > 0 else 0.0

                if not _is_outlier(method, z_score, abs(percent_diff), threshold):
                    continue

                outliers.append(
                    PropertyOutlier(
                        property=record,
                        score=min(100, round_half_up(z_score * 25)),
                        type=OutlierType.OVERASSESSED if percent_diff > 0 else OutlierType.UNDERASSESSED,
                        reason=(
                            f"Property value per sq ft (${value:.2f}) differs from "
                            f"median (${median:.2f}) by {abs(percent_diff):.1f}%"
                        ),
                        similar_properties=_similar_by_size(record, group),
                        percentage_difference=percent_diff,
                    )
                )

        logger.info(
            "Outlier scan (%s, by %s): %d outliers across %d groups",
            method,
            group_by,
            len(outliers),
            len(groups),
        )
        return sorted(outliers, key=lambda o: o.score, reverse=True)

    # ─── Market Trends ──────────────────────────────────────────────

    def analyze_market_trends(
        self,
        records: Iterable[PropertyRecord],
        *,
        period: str = "year",
        area_type: str = "neighborhood",
        significance_threshold: float | None = None,
    ) -> list[MarketTrend]:
        """Estimate a value trend per area with at least five records.

        The trend value is a deterministic placeholder (see module docstring).
        Results are ordered by |trend| × confidence, strongest first.
        """
        if significance_threshold is None:
            significance_threshold = self.settings.trend_significance_threshold
        _require_choice("period", period, TREND_PERIODS)
        _require_choice("area_type", area_type, AREA_TYPES)

        attribute, unknown_label = _AREA_FIELDS[area_type]
        areas: dict[str, list[PropertyRecord]] = {}
        for record in records:
            areas.setdefault(getattr(record, attribute) or "unknown", []).append(record)

        trends: list[MarketTrend] = []
        for area_id, members in areas.items():
            if len(members) < MIN_TREND_GROUP_SIZE:
                continue

            trend = _placeholder_trend(area_id, members)
            confidence = min(0.95, 0.5 + len(members) / 20)

            trends.append(
                MarketTrend(
                    area_id=area_id,
                    area_name=unknown_label if area_id == "unknown" else area_id,
                    area_type=area_type,
                    trend=trend,
                    period=period,
                    is_significant=abs(trend) >= significance_threshold,
                    confidence=confidence,
                    properties=members,
                )
            )

        logger.info("Market trends by %s: %d of %d areas analyzed", area_type, len(trends), len(areas))
        return sorted(trends, key=lambda t: abs(t.trend) * t.confidence, reverse=True)

    # ─── Appeal Risk ────────────────────────────────────────────────

    def predict_appeal_risk(
        self,
        records: Iterable[PropertyRecord],
        assessment_history: Mapping[str, Sequence[AssessmentHistoryEntry]] | None = None,
    ) -> list[AppealRisk]:
        """Score each record's likelihood of an assessment appeal, highest first.

        ``assessment_history`` maps a property id to its assessments, oldest
        first. Records with at least two history entries use them for the
        assessment-change and prior-appeal inputs; all others fall back to
        the id-digit placeholder.
        """
        history = assessment_history or {}
        risks = [
            self._appeal_risk(record, history.get(record.id, ()) if record.id else ())
            for record in records
        ]
        return sorted(risks, key=lambda r: r.risk_score, reverse=True)

    def _appeal_risk(
        self,
        record: PropertyRecord,
        history: Sequence[AssessmentHistoryEntry],
    ) -> AppealRisk:
        # ── Recent sale vs current assessment ──────────────────────
        has_recent_sale = bool(record.last_sold_date and record.last_sold_price)
        sale_difference = 0.0
        if has_recent_sale and record.price:
            sale_difference = (record.price - record.last_sold_price) / record.last_sold_price * 100

        # ── Assessment change & prior appeals ──────────────────────
        if len(history) >= 2:
            change_pct = _history_change_pct(history)
            appeals = [entry for entry in history if entry.appealed]
            has_prior_appeals = bool(appeals)
            last_appeal = appeals[-1] if appeals else None
            prior_appeals = PriorAppealsFactor(
                appealed=has_prior_appeals,
                successful=last_appeal.appeal_successful if last_appeal else None,
                appeal_date=last_appeal.assessed_date if last_appeal else None,
            )
            successes = sum(1 for entry in appeals if entry.appeal_successful)
            owner_factors = OwnerFactors(
                prior_appeals_count=len(appeals),
                success_rate=successes / len(appeals) if appeals else 0.0,
            )
        else:
            change_pct = _placeholder_assessment_change(record.id)
            has_prior_appeals = _placeholder_prior_appeal(record.id)
            prior_appeals = PriorAppealsFactor(appealed=has_prior_appeals)
            owner_factors = OwnerFactors(prior_appeals_count=1 if has_prior_appeals else 0)

        # ── Score ──────────────────────────────────────────────────
        risk_score = 0.0
        if sale_difference > 10:
            risk_score += min(40.0, sale_difference)
        if change_pct > SIGNIFICANT_ASSESSMENT_CHANGE:
            risk_score += min(30.0, change_pct)
        if has_prior_appeals:
            risk_score += 20
        risk_score = min(100.0, max(0.0, risk_score))

        return AppealRisk(
            property=record,
            risk_score=risk_score,
            factors=AppealRiskFactors(
                recent_sale=RecentSaleFactor(
                    exists=has_recent_sale,
                    sale_price=record.last_sold_price,
                    sale_date=record.last_sold_date,
                    assessment_difference=sale_difference,
                ),
                assessment_change=AssessmentChangeFactor(
                    amount=record.price * (change_pct / 100) if record.price else 0.0,
                    percentage=change_pct,
                    is_significant=abs(change_pct) > SIGNIFICANT_ASSESSMENT_CHANGE,
                ),
                prior_appeals=prior_appeals,
                owner_factors=owner_factors,
            ),
            recommended_action=recommend_action(risk_score),
        )

    # ─── Comparables ────────────────────────────────────────────────

    def find_comparable_properties(
        self,
        subject: PropertyRecord,
        candidates: Iterable[PropertyRecord],
        *,
        count: int | None = None,
        max_distance: float | None = None,
        adjust_for_time: bool = True,
        adjust_for_features: bool = True,
    ) -> list[ComparableProperty]:
        """Rank nearby priced candidates by similarity to ``subject``.

        Requires coordinates on the subject; returns an empty list otherwise.
        ``max_distance`` is in miles.
        """
        count = self.settings.comparable_count if count is None else count
        if max_distance is None:
            max_distance = self.settings.comparable_max_distance_miles

        if subject.latitude is None or subject.longitude is None:
            return []

        comparables: list[ComparableProperty] = []
        for comp in candidates:
            if _same_property(comp, subject):
                continue
            if comp.latitude is None or comp.longitude is None:
                continue
            if not comp.price or not comp.square_feet:
                continue

            distance = haversine_miles(subject.latitude, subject.longitude, comp.latitude, comp.longitude)
            if distance > max_distance:
                continue

            comparables.append(
                self._score_comparable(subject, comp, distance, adjust_for_time, adjust_for_features)
            )

        comparables.sort(key=lambda c: c.similarity_score, reverse=True)
        return comparables[:count]

    def _score_comparable(
        self,
        subject: PropertyRecord,
        comp: PropertyRecord,
        distance: float,
        adjust_for_time: bool,
        adjust_for_features: bool,
    ) -> ComparableProperty:
        distance_factor = max(0.0, 100 - distance * 100)
        similarity = 100 * 0.7 + distance_factor * 0.3
        adjustments: list[ValueAdjustment] = []

        # ── Size ───────────────────────────────────────────────────
        if subject.square_feet and comp.square_feet:
            similarity -= abs(subject.square_feet - comp.square_feet) / subject.square_feet * 50

            if adjust_for_features:
                size_difference = subject.square_feet - comp.square_feet
                adjustments.append(
                    ValueAdjustment(
                        factor="size",
                        amount=size_difference * (comp.price / comp.square_feet),
                        reason=(
                            f"Subject property is {compact_number(abs(size_difference))} sq ft "
                            f"{'larger' if size_difference > 0 else 'smaller'}"
                        ),
                    )
                )

        # ── Age ────────────────────────────────────────────────────
        if subject.year_built and comp.year_built:
            year_difference = subject.year_built - comp.year_built
            similarity -= min(30, abs(year_difference) * 2)

            if adjust_for_features:
                age_adjustment = year_difference / 100 * AGE_ADJUSTMENT_RATE * comp.price
                if abs(age_adjustment) > MIN_AGE_ADJUSTMENT:
                    adjustments.append(
                        ValueAdjustment(
                            factor="age",
                            amount=age_adjustment,
                            reason=(
                                f"Subject property is {abs(year_difference)} years "
                                f"{'newer' if year_difference > 0 else 'older'}"
                            ),
                        )
                    )

        # ── Time since sale ────────────────────────────────────────
        if adjust_for_time and comp.last_sold_date:
            months = self._months_since(comp.last_sold_date)
            if months > 0:
                adjustments.append(
                    ValueAdjustment(
                        factor="time",
                        amount=comp.price * MONTHLY_APPRECIATION * months,
                        reason=f"Sale occurred {months} months ago",
                    )
                )

        # ── Features ───────────────────────────────────────────────
        if adjust_for_features:
            if subject.garage is not None and comp.garage is not None:
                garage_difference = subject.garage - comp.garage
                if garage_difference:
                    adjustments.append(
                        ValueAdjustment(
                            factor="garage",
                            amount=garage_difference * GARAGE_SPACE_VALUE,
                            reason=(
                                f"Subject property has "
                                f"{'more' if garage_difference > 0 else 'fewer'} garage spaces"
                            ),
                        )
                    )

            if subject.pool is not None and comp.pool is not None:
                if subject.pool and not comp.pool:
                    adjustments.append(
                        ValueAdjustment(
                            factor="pool",
                            amount=POOL_VALUE,
                            reason="Subject property has a pool, comparable does not",
                        )
                    )
                elif comp.pool and not subject.pool:
                    adjustments.append(
                        ValueAdjustment(
                            factor="pool",
                            amount=-POOL_VALUE,
                            reason="Comparable has a pool, subject property does not",
                        )
                    )

        return ComparableProperty(
            property=comp,
            similarity_score=max(0.0, min(100.0, similarity)),
            adjustments=adjustments,
            adjusted_value=comp.price + sum(adj.amount for adj in adjustments),
        )

    def _months_since(self, sale_date: date) -> int:
        today = self._today()
        return (today.year - sale_date.year) * 12 + (today.month - sale_date.month)

    # ─── Insights Report ────────────────────────────────────────────

    def get_property_assessment_insights(
        self,
        subject: PropertyRecord,
        all_records: Sequence[PropertyRecord],
    ) -> PropertyAssessmentInsights:
        """Assemble comparables, outlier status, appeal risk and area trends
        into a market-value estimate and assessment-quality scores."""
        comparables = self.find_comparable_properties(subject, all_records)

        outliers = self.detect_outliers([subject, *(c.property for c in comparables)])
        outlier = next((o for o in outliers if _same_property(o.property, subject)), None)

        appeal_risks = self.predict_appeal_risk([subject])
        appeal_risk = appeal_risks[0] if appeal_risks else None

        area_trends = [
            trend
            for trend in self.analyze_market_trends(all_records)
            if _trend_covers(trend, subject)
        ]

        # ── Three valuation approaches ─────────────────────────────
        price = subject.price or 0.0
        sales = SalesApproach(
            value=(
                sum(c.adjusted_value for c in comparables) / len(comparables)
                if comparables
                else price
            ),
            comparables=comparables,
            weight=SALES_APPROACH_WEIGHT,
        )
        cost = CostApproach(
            value=price * 1.05,
            replacement_cost=(subject.square_feet or 0.0) * REPLACEMENT_COST_PER_SQFT,
            depreciation=(
                (self._today().year - subject.year_built) * 0.5 / 100
                if subject.year_built
                else 0.2
            ),
            land_value=price * 0.3,
            weight=COST_APPROACH_WEIGHT,
        )
        income = IncomeApproach(
            value=price * 0.95,
            net_income=price * CAP_RATE,
            cap_rate=CAP_RATE,
            weight=INCOME_APPROACH_WEIGHT,
        )

        weighted_value = (
            sales.value * sales.weight
            + cost.value * cost.weight
            + income.value * income.weight
        )

        # ── Assessment quality ─────────────────────────────────────
        variation = abs((price - weighted_value) / weighted_value) if price and weighted_value else 0.0
        uniformity = 100 - (outlier.score if outlier else 0)
        fairness = 100 - (appeal_risk.risk_score if appeal_risk else 0)
        accuracy = 100 - variation * 100

        return PropertyAssessmentInsights(
            property=subject,
            market_value_estimate=MarketValueEstimate(
                value=weighted_value,
                range=(weighted_value * 0.9, weighted_value * 1.1),
                confidence=min(0.95, 0.5 + len(comparables) * 0.1),
                approaches=ValuationApproaches(sales=sales, cost=cost, income=income),
            ),
            assessment_quality=AssessmentQuality(
                uniformity=uniformity,
                fairness=fairness,
                accuracy=accuracy,
                overall=round_half_up((uniformity + fairness + accuracy) / 3),
            ),
            outlier_status=outlier,
            appeal_risk=appeal_risk,
            neighborhood_trends=area_trends,
        )


# ─── Internal Helpers ────────────────────────────────────────────────


def _require_choice(option: str, value: str, allowed: tuple[str, ...]) -> None:
    if value not in allowed:
        raise InvalidOptionError(option, value, allowed)


def _positive(value: float | None) -> bool:
    return value is not None and value > 0


def _same_property(a: PropertyRecord, b: PropertyRecord) -> bool:
    """Same object, or same non-empty id. Two id-less records are distinct."""
    return a is b or (a.id is not None and a.id == b.id)


def _outlier_group_key(record: PropertyRecord, group_by: str) -> str:
    key = ""
    if group_by in ("neighborhood", "both"):
        key += record.neighborhood or "unknown"
    if group_by in ("propertyType", "both"):
        key += "_" + (record.property_type or "unknown")
    return key


def _is_outlier(method: str, z_score: float, abs_percent_diff: float, threshold: float) -> bool:
    if method == "statistical":
        return z_score > STATISTICAL_Z_THRESHOLD
    if method == "comparative":
        return abs_percent_diff > threshold
    return z_score > HYBRID_Z_THRESHOLD and abs_percent_diff > threshold


def _similar_by_size(record: PropertyRecord, group: Sequence[PropertyRecord]) -> list[PropertyRecord]:
    """Up to five group members within ±25% of ``record``'s size, closest first."""
    size = record.square_feet
    low, high = size * (1 - SIMILAR_SIZE_TOLERANCE), size * (1 + SIMILAR_SIZE_TOLERANCE)

    similar = [
        other
        for other in group
        if not _same_property(other, record)
        and other.price
        and _positive(other.square_feet)
        and low <= other.square_feet <= high
    ]
    similar.sort(key=lambda other: abs((other.square_feet - size) / size))
    return similar[:MAX_SIMILAR_PROPERTIES]


def _placeholder_trend(area_id: str, members: Sequence[PropertyRecord]) -> float:
    """Deterministic stand-in for a time-series trend, roughly -7% to +7%."""
    char_sum = sum(ord(ch) for ch in area_id)
    base_trend = ((char_sum % 20) - 10) / 2

    magnitudes = [math.floor(math.log10(r.price)) for r in members if _positive(r.price)]
    value_trend = sum(magnitudes) / len(magnitudes) if magnitudes else 0.0

    return base_trend + math.fmod(value_trend, 5) - 2


def _leading_int(text: str) -> int | None:
    match = _LEADING_INT.match(text)
    return int(match.group()) if match else None


def _placeholder_assessment_change(property_id: str | None) -> float:
    """Pseudo assessment change (-10% to +39.5%) from the id's last two characters."""
    if not property_id:
        return 0.0
    digits = _leading_int(property_id[-2:])
    return digits / 2 - 10 if digits is not None else 0.0


def _placeholder_prior_appeal(property_id: str | None) -> bool:
    """Pseudo prior-appeal flag: the id ends in 8 or 9."""
    if not property_id:
        return False
    digit = _leading_int(property_id[-1:])
    return digit is not None and digit > 7


def _history_change_pct(history: Sequence[AssessmentHistoryEntry]) -> float:
    previous, latest = history[-2].assessed_value, history[-1].assessed_value
    if not previous:
        return 0.0
    return (latest - previous) / previous * 100


def _trend_covers(trend: MarketTrend, subject: PropertyRecord) -> bool:
    if trend.area_type == "neighborhood" and subject.neighborhood:
        return trend.area_id == subject.neighborhood
    if trend.area_type == "zipCode" and subject.zip_code:
        return trend.area_id == subject.zip_code
    return False
