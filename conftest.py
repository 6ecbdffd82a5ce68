"""Pytest configuration — ensures the project root is importable and shares fixtures."""

import sys
from datetime import date
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent))

from assessment_intelligence.config import AnalysisSettings  # noqa: E402
from assessment_intelligence.intelligence import AssessmentIntelligenceEngine  # noqa: E402
from assessment_intelligence.validation import PropertyDataValidator  # noqa: E402

FIXED_TODAY = date(2025, 6, 15)


@pytest.fixture(autouse=True)
def _clean_settings_env(monkeypatch) -> None:
    """Keep settings variables from the host shell out of every test."""
    for field in AnalysisSettings.model_fields:
        monkeypatch.delenv(field.upper(), raising=False)


@pytest.fixture
def validator() -> PropertyDataValidator:
    """A fresh validator with the default rules, never shared between tests."""
    return PropertyDataValidator()


@pytest.fixture
def engine() -> AssessmentIntelligenceEngine:
    """Engine pinned to a fixed 'today' so sale-date arithmetic is stable."""
    return AssessmentIntelligenceEngine(today=lambda: FIXED_TODAY)
