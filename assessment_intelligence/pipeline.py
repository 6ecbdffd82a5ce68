"""
Composition root — wires the validator, batch processor and intelligence
engine together and runs a full review over a property collection.

Flow:
  ┌─────────────┐
  │  Records    │
  └──────┬──────┘
         │
  ┌──────▼──────┐
  │  Validate   │   ← Rule engine, chunked through the batch processor
  └──────┬──────┘
         │
  ┌──────▼──────┐
  │  Auto-fix   │   ← Preview only: the input collection is never modified
  └──────┬──────┘
         │
  ┌──────▼──────┐
  │  Analyze    │   ← Outliers, market trends, appeal risk
  └──────┬──────┘
         │
  ┌──────▼──────┐
  │   Report    │
  └─────────────┘

Each pipeline owns its own instances. Nothing is shared at module level, so
two pipelines built with different rule sets never see each other's rules.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from datetime import date

from .batch import BatchProcessor, ProgressCallback
from .config import AnalysisSettings
from .exceptions import PropertyNotFoundError
from .intelligence import AssessmentIntelligenceEngine
from .models import (
    BatchValidation,
    CollectionReport,
    PropertyAssessmentInsights,
    PropertyRecord,
)
from .validation import PropertyDataValidator
from .validators import ValidationRule

logger = logging.getLogger(__name__)


class AssessmentPipeline:
    """Owns one validator, one batch processor and one intelligence engine.

    Usage:
        pipeline = AssessmentPipeline()
        report = pipeline.review(records)
        for outlier in report.outliers:
            print(outlier.reason)
    """

    def __init__(
        self,
        settings: AnalysisSettings | None = None,
        rules: Iterable[ValidationRule] | None = None,
        today: Callable[[], date] = date.today,
    ):
        self.settings = settings or AnalysisSettings()
        self.validator = PropertyDataValidator(rules, today=today)
        self.batch = BatchProcessor(self.validator, chunk_size=self.settings.batch_chunk_size)
        self.intelligence = AssessmentIntelligenceEngine(self.settings, today=today)

    def review(
        self,
        records: Sequence[PropertyRecord],
        on_progress: ProgressCallback | None = None,
    ) -> CollectionReport:
        """Validate, preview auto-fixes and analyze a whole collection."""
        logger.info("Reviewing %d property records...", len(records))

        results = self.batch.process_batch(records, self.validator.validate, on_progress=on_progress)
        validation = BatchValidation(
            valid=[r.record for r in results if r.is_valid],
            invalid=[r.record for r in results if not r.is_valid],
            results=results,
        )
        auto_fix = self.batch.auto_fix_batch(records)

        outliers = self.intelligence.detect_outliers(records)
        trends = self.intelligence.analyze_market_trends(records)
        appeal_risks = self.intelligence.predict_appeal_risk(records)

        average_score = (
            sum(r.score for r in validation.results) / len(validation.results)
            if validation.results
            else 100.0
        )

        return CollectionReport(
            total=len(records),
            valid_count=len(validation.valid),
            invalid_count=len(validation.invalid),
            average_quality_score=average_score,
            validation=validation,
            auto_fix=auto_fix,
            outliers=outliers,
            trends=trends,
            appeal_risks=appeal_risks,
        )

    def insights_for(
        self,
        property_id: str,
        records: Sequence[PropertyRecord],
    ) -> PropertyAssessmentInsights:
        """Insights for the record with ``property_id`` within ``records``."""
        subject = next((r for r in records if r.id == property_id), None)
        if subject is None:
            raise PropertyNotFoundError(property_id)
        return self.intelligence.get_property_assessment_insights(subject, records)
