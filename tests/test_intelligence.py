"""
Tests for the assessment intelligence engine: outliers, market trends,
appeal risk, comparables and the per-property insights report.

The ``engine`` fixture pins "today" to 2025-06-15.
"""

from __future__ import annotations

from datetime import date

import pytest

from assessment_intelligence.exceptions import InvalidOptionError
from assessment_intelligence.intelligence import recommend_action
from assessment_intelligence.models import (
    AssessmentHistoryEntry,
    OutlierType,
    PropertyRecord,
    RecommendedAction,
)
from assessment_intelligence.stats import haversine_miles, round_half_up, upper_median


def _make_record(id: str, price: float | None = 200_000, square_feet: float | None = 1_000, **extra):
    fields = {
        "id": id,
        "neighborhood": "Eastgate",
        "property_type": "Residential",
        "price": price,
        "square_feet": square_feet,
    }
    fields.update(extra)
    return PropertyRecord(**fields)


def _ids(items) -> list[str]:
    return [item.property.id for item in items]


# ═══════════════════════════════════════════════════════════════════════
# NUMERIC HELPERS
# ═══════════════════════════════════════════════════════════════════════


class TestStats:
    @pytest.mark.parametrize("value,expected", [(2.5, 3), (-2.5, -2), (2.4, 2), (74.99, 75)])
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected

    def test_upper_median_takes_upper_middle(self):
        assert upper_median([4, 1, 3, 2]) == 3
        assert upper_median([5, 1, 3]) == 3

    def test_one_degree_of_latitude(self):
        assert haversine_miles(40.0, -75.0, 41.0, -75.0) == pytest.approx(69.09, abs=0.01)

    def test_zero_distance(self):
        assert haversine_miles(12.5, 45.0, 12.5, 45.0) == 0.0


# ═══════════════════════════════════════════════════════════════════════
# OUTLIER DETECTION
# ═══════════════════════════════════════════════════════════════════════


@pytest.fixture
def overassessed_group() -> list[PropertyRecord]:
    return [
        _make_record("a", 200_000, 1_000),
        _make_record("b", 210_000, 1_050),
        _make_record("c", 600_000, 1_000),
    ]


class TestOutlierDetection:
    def test_flags_the_overassessed_record(self, engine, overassessed_group):
        outliers = engine.detect_outliers(overassessed_group, method="comparative")
        assert _ids(outliers) == ["c"]

        outlier = outliers[0]
        assert outlier.type == OutlierType.OVERASSESSED
        assert outlier.score == 75
        assert outlier.percentage_difference == pytest.approx(200.0)
        assert outlier.reason == (
            "Property value per sq ft ($600.00) differs from median ($200.00) by 200.0%"
        )

    def test_similar_properties_closest_size_first(self, engine, overassessed_group):
        [outlier] = engine.detect_outliers(overassessed_group)
        assert [p.id for p in outlier.similar_properties] == ["a", "b"]

    @pytest.mark.parametrize("method", ["statistical", "comparative", "hybrid"])
    def test_every_method_flags_a_large_deviation(self, engine, overassessed_group, method):
        assert _ids(engine.detect_outliers(overassessed_group, method=method)) == ["c"]

    @pytest.mark.parametrize("method", ["statistical", "comparative", "hybrid"])
    def test_identical_values_yield_no_outliers(self, engine, method):
        records = [_make_record(str(i)) for i in range(6)]
        assert engine.detect_outliers(records, method=method) == []

    def test_group_of_two_is_skipped(self, engine):
        records = [_make_record("a", 100_000), _make_record("b", 900_000)]
        assert engine.detect_outliers(records, method="comparative") == []

    def test_group_with_too_few_priced_members_is_skipped(self, engine):
        records = [
            _make_record("a", 200_000),
            _make_record("b", 600_000),
            _make_record("c", 200_000, square_feet=None),
        ]
        assert engine.detect_outliers(records, method="comparative") == []

    def test_underassessed(self, engine):
        records = [
            _make_record("a"),
            _make_record("b"),
            _make_record("c"),
            _make_record("low", 50_000),
        ]
        [outlier] = engine.detect_outliers(records)
        assert outlier.property.id == "low"
        assert outlier.type == OutlierType.UNDERASSESSED
        assert outlier.percentage_difference == pytest.approx(-75.0)

    def test_threshold_overrides_default(self, engine, overassessed_group):
        assert engine.detect_outliers(overassessed_group, method="comparative", threshold=250) == []

    def test_score_capped_and_sorted_descending(self, engine, overassessed_group):
        westgate = [_make_record(f"w{i}", 100_000, neighborhood="Westgate") for i in range(4)]
        westgate.append(_make_record("w-high", 1_000_000, neighborhood="Westgate"))

        outliers = engine.detect_outliers(overassessed_group + westgate)

        assert _ids(outliers) == ["w-high", "c"]
        assert outliers[0].score == 100

    def test_grouping_by_neighborhood_ignores_property_type(self, engine, overassessed_group):
        mixed = [
            overassessed_group[0],
            overassessed_group[1],
            overassessed_group[2].model_copy(update={"property_type": "Commercial"}),
        ]
        assert engine.detect_outliers(mixed, group_by="both") == []
        assert _ids(engine.detect_outliers(mixed, group_by="neighborhood")) == ["c"]

    def test_missing_grouping_fields_share_unknown_group(self, engine):
        records = [
            PropertyRecord(id="a", price=200_000, square_feet=1_000),
            PropertyRecord(id="b", price=200_000, square_feet=1_000),
            PropertyRecord(id="c", price=600_000, square_feet=1_000),
        ]
        assert _ids(engine.detect_outliers(records)) == ["c"]

    def test_unknown_method_rejected(self, engine, overassessed_group):
        with pytest.raises(InvalidOptionError) as exc_info:
            engine.detect_outliers(overassessed_group, method="magic")
        assert exc_info.value.code == "INVALID_OPTION"
        assert exc_info.value.details["option"] == "method"

    def test_unknown_grouping_rejected(self, engine, overassessed_group):
        with pytest.raises(InvalidOptionError):
            engine.detect_outliers(overassessed_group, group_by="county")


# ═══════════════════════════════════════════════════════════════════════
# MARKET TRENDS
# ═══════════════════════════════════════════════════════════════════════


def _area(name: str | None, count: int, price: float = 250_000) -> list[PropertyRecord]:
    return [_make_record(f"{name}-{i}", price, neighborhood=name) for i in range(count)]


class TestMarketTrends:
    def test_trend_is_deterministic_per_area(self, engine):
        [trend] = engine.analyze_market_trends(_area("X", 5))
        # ord("X") % 20 = 8 → -1; floor(log10(250000)) = 5 → fmod(5, 5) = 0
        assert trend.trend == pytest.approx(-3.0)
        assert trend.confidence == pytest.approx(0.75)
        assert trend.area_id == "X"
        assert trend.area_name == "X"
        assert trend.period == "year"
        assert len(trend.properties) == 5

    def test_value_magnitude_shifts_the_trend(self, engine):
        records = _area("X", 3) + _area("X", 2, price=2_500_000)
        [trend] = engine.analyze_market_trends(records)
        assert trend.trend == pytest.approx(-2.6)

    def test_small_areas_are_skipped(self, engine):
        assert engine.analyze_market_trends(_area("X", 4)) == []

    def test_significance_threshold(self, engine):
        [default] = engine.analyze_market_trends(_area("X", 5))
        [strict] = engine.analyze_market_trends(_area("X", 5), significance_threshold=2)
        assert default.is_significant is False
        assert strict.is_significant is True

    def test_sorted_by_weighted_magnitude(self, engine):
        # X: |-3.0| × 0.75 = 2.25; AB: |-1.5| × 0.80 = 1.2
        trends = engine.analyze_market_trends(_area("AB", 6) + _area("X", 5))
        assert [t.area_id for t in trends] == ["X", "AB"]

    def test_confidence_caps_at_95_percent(self, engine):
        [trend] = engine.analyze_market_trends(_area("X", 30))
        assert trend.confidence == pytest.approx(0.95)

    def test_missing_area_label(self, engine):
        [trend] = engine.analyze_market_trends(_area(None, 5))
        assert trend.area_id == "unknown"
        assert trend.area_name == "Unknown Neighborhood"

    def test_zip_code_areas(self, engine):
        records = [_make_record(str(i), zip_code="97301") for i in range(5)]
        [trend] = engine.analyze_market_trends(records, area_type="zipCode", period="quarter")
        assert trend.area_id == "97301"
        assert trend.area_type == "zipCode"
        assert trend.period == "quarter"

    def test_repeat_runs_are_identical(self, engine):
        records = _area("AB", 6) + _area("X", 5)
        assert engine.analyze_market_trends(records) == engine.analyze_market_trends(records)

    @pytest.mark.parametrize("kwargs", [{"period": "decade"}, {"area_type": "state"}])
    def test_unknown_options_rejected(self, engine, kwargs):
        with pytest.raises(InvalidOptionError):
            engine.analyze_market_trends(_area("X", 5), **kwargs)


# ═══════════════════════════════════════════════════════════════════════
# APPEAL RISK
# ═══════════════════════════════════════════════════════════════════════


class TestAppealRisk:
    @pytest.mark.parametrize(
        "score,action",
        [
            (100, RecommendedAction.ADJUST),
            (75, RecommendedAction.ADJUST),
            (74.9, RecommendedAction.REVIEW),
            (50, RecommendedAction.REVIEW),
            (49.9, RecommendedAction.MONITOR),
            (25, RecommendedAction.MONITOR),
            (24.9, RecommendedAction.DEFEND),
            (0, RecommendedAction.DEFEND),
        ],
    )
    def test_recommended_action_thresholds(self, score, action):
        assert recommend_action(score) == action

    def test_assessment_change_from_id_digits(self, engine):
        # "80" → 80 / 2 - 10 = 30%, capped contribution 30
        [risk] = engine.predict_appeal_risk([_make_record("P-80")])
        assert risk.risk_score == pytest.approx(30.0)
        assert risk.recommended_action == RecommendedAction.MONITOR
        change = risk.factors.assessment_change
        assert change.percentage == pytest.approx(30.0)
        assert change.amount == pytest.approx(60_000)
        assert change.is_significant is True

    def test_prior_appeal_from_last_digit(self, engine):
        # "19" → -0.5% change; trailing 9 → prior appeal (+20)
        [risk] = engine.predict_appeal_risk([_make_record("P-19")])
        assert risk.risk_score == pytest.approx(20.0)
        assert risk.factors.prior_appeals.appealed is True
        assert risk.factors.owner_factors.prior_appeals_count == 1
        assert risk.recommended_action == RecommendedAction.DEFEND

    def test_recent_sale_below_assessment(self, engine):
        record = _make_record(
            "P-98",
            300_000,
            last_sold_price=200_000,
            last_sold_date=date(2024, 1, 10),
        )
        [risk] = engine.predict_appeal_risk([record])
        # 40 (sale, capped) + 30 (change, capped) + 20 (prior appeal)
        assert risk.risk_score == pytest.approx(90.0)
        assert risk.recommended_action == RecommendedAction.ADJUST
        assert risk.factors.recent_sale.exists is True
        assert risk.factors.recent_sale.assessment_difference == pytest.approx(50.0)

    def test_sale_without_date_is_ignored(self, engine):
        [risk] = engine.predict_appeal_risk([_make_record("P-00", last_sold_price=100_000)])
        assert risk.factors.recent_sale.exists is False
        assert risk.risk_score == 0

    @pytest.mark.parametrize("property_id", [None, "ABC"])
    def test_non_numeric_or_missing_id_scores_zero(self, engine, property_id):
        [risk] = engine.predict_appeal_risk([_make_record(property_id)])
        assert risk.factors.assessment_change.percentage == 0
        assert risk.risk_score == 0

    def test_sorted_highest_risk_first(self, engine):
        records = [
            _make_record("P-80"),
            _make_record("P-98", 300_000, last_sold_price=200_000, last_sold_date=date(2024, 1, 10)),
            _make_record("P-19"),
        ]
        assert _ids(engine.predict_appeal_risk(records)) == ["P-98", "P-80", "P-19"]

    def test_assessment_history_replaces_placeholder(self, engine):
        history = {
            "H-1": [
                AssessmentHistoryEntry(assessed_value=100_000, assessed_date=date(2023, 1, 1)),
                AssessmentHistoryEntry(
                    assessed_value=130_000,
                    assessed_date=date(2024, 1, 1),
                    appealed=True,
                    appeal_successful=True,
                ),
            ]
        }
        [risk] = engine.predict_appeal_risk([_make_record("H-1")], history)

        assert risk.factors.assessment_change.percentage == pytest.approx(30.0)
        assert risk.factors.prior_appeals.appealed is True
        assert risk.factors.prior_appeals.successful is True
        assert risk.factors.prior_appeals.appeal_date == date(2024, 1, 1)
        assert risk.factors.owner_factors.success_rate == pytest.approx(1.0)
        assert risk.risk_score == pytest.approx(50.0)
        assert risk.recommended_action == RecommendedAction.REVIEW

    def test_single_history_entry_falls_back_to_placeholder(self, engine):
        history = {"H-1": [AssessmentHistoryEntry(assessed_value=100_000, appealed=True)]}
        [risk] = engine.predict_appeal_risk([_make_record("H-1")], history)
        assert risk.factors.prior_appeals.appealed is False
        assert risk.risk_score == 0


# ═══════════════════════════════════════════════════════════════════════
# COMPARABLES
# ═══════════════════════════════════════════════════════════════════════


@pytest.fixture
def subject() -> PropertyRecord:
    return _make_record(
        "SUBJ",
        400_000,
        2_000,
        latitude=40.0,
        longitude=-75.0,
        year_built=2000,
        garage=2,
        pool=False,
    )


def _comp(id: str, price: float = 360_000, square_feet: float = 1_800, lat: float = 40.0, **extra):
    return _make_record(id, price, square_feet, latitude=lat, longitude=-75.0, **extra)


class TestComparables:
    def test_subject_without_coordinates_returns_empty(self, engine):
        subject = _make_record("S", latitude=None, longitude=None)
        assert engine.find_comparable_properties(subject, [_comp("C1")]) == []

    def test_zero_coordinates_are_valid(self, engine):
        subject = _make_record("S", latitude=0.0, longitude=0.0)
        comp = _make_record("C", latitude=0.0, longitude=0.0)
        assert _ids(engine.find_comparable_properties(subject, [comp])) == ["C"]

    def test_itemized_adjustments(self, engine, subject):
        comp = _comp(
            "C1",
            year_built=1990,
            garage=1,
            pool=True,
            last_sold_price=350_000,
            last_sold_date=date(2024, 6, 1),
        )
        [result] = engine.find_comparable_properties(subject, [comp])

        adjustments = {adj.factor: adj for adj in result.adjustments}
        assert list(adjustments) == ["size", "age", "time", "garage", "pool"]
        assert adjustments["size"].amount == pytest.approx(40_000)
        assert adjustments["size"].reason == "Subject property is 200 sq ft larger"
        assert adjustments["age"].amount == pytest.approx(18_000)
        assert adjustments["age"].reason == "Subject property is 10 years newer"
        assert adjustments["time"].amount == pytest.approx(21_600)
        assert adjustments["time"].reason == "Sale occurred 12 months ago"
        assert adjustments["garage"].amount == 10_000
        assert adjustments["pool"].amount == -25_000

        assert result.adjusted_value == pytest.approx(424_600)
        # 100 - 5 (10% size gap) - 20 (10 years)
        assert result.similarity_score == pytest.approx(75.0)

    def test_feature_adjustments_can_be_disabled(self, engine, subject):
        comp = _comp("C1", year_built=1990, garage=1, last_sold_date=date(2024, 6, 1))
        [result] = engine.find_comparable_properties(subject, [comp], adjust_for_features=False)
        assert [adj.factor for adj in result.adjustments] == ["time"]
        assert result.similarity_score == pytest.approx(75.0)

    def test_time_adjustment_can_be_disabled(self, engine, subject):
        comp = _comp("C1", last_sold_date=date(2024, 6, 1))
        [result] = engine.find_comparable_properties(subject, [comp], adjust_for_time=False)
        assert "time" not in [adj.factor for adj in result.adjustments]

    def test_small_age_gap_is_not_itemized(self, engine, subject):
        # 1 year × 0.5% of 100,000 = 500, below the 1,000 floor
        comp = _comp("C1", price=100_000, year_built=1999)
        [result] = engine.find_comparable_properties(subject, [comp])
        assert "age" not in [adj.factor for adj in result.adjustments]

    def test_distance_limit(self, engine, subject):
        far = _comp("FAR", lat=40.03)  # ~2 miles north
        assert engine.find_comparable_properties(subject, [far]) == []
        assert _ids(engine.find_comparable_properties(subject, [far], max_distance=5)) == ["FAR"]

    def test_ranked_and_limited(self, engine, subject):
        candidates = [
            _comp("SMALL", square_feet=1_500),
            _comp("SAME", square_feet=2_000),
            _comp("CLOSE", square_feet=1_900),
        ]
        result = engine.find_comparable_properties(subject, candidates, count=2)
        assert _ids(result) == ["SAME", "CLOSE"]

    def test_skips_subject_and_incomplete_candidates(self, engine, subject):
        candidates = [
            subject,
            _comp("NO-PRICE", price=None),
            _comp("NO-SIZE", square_feet=None),
            _make_record("NO-COORDS"),
            _comp("OK"),
        ]
        assert _ids(engine.find_comparable_properties(subject, candidates)) == ["OK"]

    def test_id_less_candidate_is_not_the_subject(self, engine):
        subject = PropertyRecord(price=300_000, square_feet=1_500, latitude=40.0, longitude=-75.0)
        twin = PropertyRecord(price=300_000, square_feet=1_500, latitude=40.0, longitude=-75.0)
        assert len(engine.find_comparable_properties(subject, [twin])) == 1


# ═══════════════════════════════════════════════════════════════════════
# INSIGHTS REPORT
# ═══════════════════════════════════════════════════════════════════════


class TestInsights:
    def test_without_comparables_uses_own_value(self, engine):
        subject = _make_record(
            "S-11", 300_000, 1_500, neighborhood="Uplands",
            latitude=40.0, longitude=-75.0, year_built=2000,
        )
        distant = [
            _make_record(f"U-{i}", neighborhood="Uplands", latitude=41.0, longitude=-75.0)
            for i in range(4)
        ]

        insights = engine.get_property_assessment_insights(subject, [subject, *distant])
        estimate = insights.market_value_estimate

        # 0.7 × 300k + 0.2 × 315k + 0.1 × 285k
        assert estimate.value == pytest.approx(301_500)
        assert estimate.range[0] == pytest.approx(271_350)
        assert estimate.range[1] == pytest.approx(331_650)
        assert estimate.confidence == pytest.approx(0.5)

        assert estimate.approaches.cost.replacement_cost == pytest.approx(225_000)
        assert estimate.approaches.cost.depreciation == pytest.approx(0.125)
        assert estimate.approaches.cost.land_value == pytest.approx(90_000)
        assert estimate.approaches.income.net_income == pytest.approx(18_000)

        quality = insights.assessment_quality
        assert quality.uniformity == 100
        assert quality.fairness == 100
        assert quality.accuracy == pytest.approx(100 - 1_500 / 301_500 * 100)
        assert quality.overall == 100

        assert insights.outlier_status is None
        assert [t.area_id for t in insights.neighborhood_trends] == ["Uplands"]

    def test_overassessed_subject(self, engine):
        subject = _make_record("S-20", 600_000, latitude=40.0, longitude=-75.0)
        comps = [
            _make_record(f"C-{i}", 200_000, latitude=40.0 + i / 1000, longitude=-75.0)
            for i in range(1, 4)
        ]

        insights = engine.get_property_assessment_insights(subject, [subject, *comps])

        assert insights.outlier_status is not None
        assert insights.outlier_status.type == OutlierType.OVERASSESSED
        assert insights.assessment_quality.uniformity == 0
        assert insights.market_value_estimate.approaches.sales.value == pytest.approx(200_000)
        assert insights.market_value_estimate.value == pytest.approx(323_000)
        assert insights.market_value_estimate.confidence == pytest.approx(0.8)
        assert insights.neighborhood_trends == []

    def test_appeal_risk_feeds_fairness(self, engine):
        subject = _make_record("P-80", latitude=40.0, longitude=-75.0)
        insights = engine.get_property_assessment_insights(subject, [subject])
        assert insights.appeal_risk is not None
        assert insights.assessment_quality.fairness == pytest.approx(70.0)
