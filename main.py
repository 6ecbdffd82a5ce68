#!/usr/bin/env python3
"""
Assessment Intelligence — Entry Point
======================================

Demonstrates the full review pipeline on a small sample neighborhood.

Usage:
    python main.py                          # Default settings
    OUTLIER_METHOD=comparative python main.py
    LOG_LEVEL=DEBUG python main.py          # Show skipped groups, fix attempts
"""

from __future__ import annotations

import logging
import sys

from dotenv import load_dotenv

from assessment_intelligence.config import AnalysisSettings
from assessment_intelligence.models import CollectionReport, PropertyRecord, Severity
from assessment_intelligence.pipeline import AssessmentPipeline

load_dotenv()


# ─── Sample Collection (a few problems on purpose) ───────────────

SAMPLE_PROPERTIES: list[dict] = [
    {"id": "WV-1001", "address": "101 Maple Ave", "city": "Walla Walla", "state": "WA",
     "zipCode": "99362", "propertyType": "Residential", "neighborhood": "Westview",
     "price": 310000, "squareFeet": 1550, "yearBuilt": 1978,
     "latitude": 46.0646, "longitude": -118.3430},
    {"id": "WV-1002", "address": "115 Maple Ave", "city": "Walla Walla", "state": "WA",
     "zipCode": "99362", "propertyType": "Residential", "neighborhood": "Westview",
     "price": 325000, "squareFeet": 1600, "yearBuilt": 1981,
     "latitude": 46.0651, "longitude": -118.3441},
    {"id": "WV-1003", "address": "122   maple   ave", "city": "Walla Walla", "state": "WA",
     "zipCode": "993621234", "propertyType": "Residential", "neighborhood": "Westview",
     "price": 298000, "squareFeet": 1500, "yearBuilt": 1975,
     "latitude": 46.0659, "longitude": -118.3422},
    {"id": "WV-1004", "address": "130 Maple Ave", "city": "Walla Walla", "state": "WA",
     "zipCode": "99362", "propertyType": "Residential", "neighborhood": "Westview",
     "price": 640000, "squareFeet": 1580, "yearBuilt": 1980,
     "lastSoldPrice": 420000, "lastSoldDate": "2023-06-15",
     "latitude": 46.0662, "longitude": -118.3450},
    {"id": "WV-1005", "address": "142 Maple Ave", "city": "Walla Walla", "state": "WA",
     "zipCode": "99362", "propertyType": "Residential", "neighborhood": "Westview",
     "price": 305000, "squareFeet": 1525, "yearBuilt": 3012,
     "latitude": 46.0668, "longitude": -118.3436},
    {"id": "WV-1009", "address": "Lot B Maple Ave", "city": "Walla Walla",
     "zipCode": "99362", "propertyType": "Residential", "neighborhood": "Westview",
     "price": 318000, "squareFeet": 1590, "yearBuilt": 1983,
     "latitude": 46.0671, "longitude": -118.3429},
]


# ─── ANSI Color Constants ───────────────────────────────────────────

_RED = "\033[91m"
_YELLOW = "\033[93m"
_GREEN = "\033[92m"
_CYAN = "\033[96m"
_DIM = "\033[2m"
_BOLD = "\033[1m"
_RESET = "\033[0m"
_WIDTH = 72

_SEVERITY_COLORS = {
    Severity.CRITICAL: _RED,
    Severity.ERROR: _RED,
    Severity.WARNING: _YELLOW,
    Severity.INFO: _CYAN,
}


# ─── Pretty Printer Helpers ─────────────────────────────────────────


def _print_validation(report: CollectionReport) -> None:
    """Print each record that has issues, with its score."""
    print(f"\n  {_BOLD}DATA VALIDATION{_RESET}  "
          f"{report.valid_count} valid / {report.invalid_count} invalid  "
          f"{_DIM}(avg quality {report.average_quality_score:.1f}){_RESET}")
    for result in report.validation.results:
        if result.is_valid:
            continue
        print(f"\n    {_BOLD}{result.record.id}{_RESET}  score {result.score}")
        for issue in result.issues:
            color = _SEVERITY_COLORS[issue.severity]
            fixable = f" {_DIM}(auto-fixable){_RESET}" if issue.can_auto_fix else ""
            print(f"      {color}[{issue.rule_id}]{_RESET} {issue.message}{fixable}")


def _print_auto_fix(report: CollectionReport) -> None:
    fix = report.auto_fix
    print(f"\n  {_BOLD}AUTO-FIX PREVIEW{_RESET}  "
          f"{len(fix.fixed)} record(s) changed, {fix.fixed_issue_count} issue(s) fixed")
    for record in fix.fixed:
        print(f"    {record.id}: {record.address} | zip {record.zip_code} | built {record.year_built}")


def _print_analysis(report: CollectionReport) -> None:
    print(f"\n  {_BOLD}OUTLIERS ({len(report.outliers)}){_RESET}")
    for outlier in report.outliers:
        print(f"    {_RED}{outlier.property.id}{_RESET} {outlier.type.value} "
              f"(score {outlier.score})")
        print(f"      {outlier.reason}")

    print(f"\n  {_BOLD}APPEAL RISK{_RESET}")
    for risk in report.appeal_risks:
        if risk.risk_score < 25:
            continue
        print(f"    {risk.property.id}: {risk.risk_score:.1f} → {risk.recommended_action.value}")

    if report.trends:
        print(f"\n  {_BOLD}MARKET TRENDS{_RESET}")
        for trend in report.trends:
            marker = f"{_YELLOW}*{_RESET}" if trend.is_significant else " "
            print(f"    {marker} {trend.area_name}: {trend.trend:+.1f}% / {trend.period} "
                  f"{_DIM}(confidence {trend.confidence:.2f}){_RESET}")


# ─── Pretty Printer ─────────────────────────────────────────────────


def print_report(report: CollectionReport) -> int:
    """Pretty-print the collection review with ANSI color codes.

    Returns:
        0 if every record passed validation, 1 otherwise.
    """
    print(f"\n{'=' * _WIDTH}")
    print(f"{_BOLD}{_CYAN}  ASSESSMENT REVIEW{_RESET}")
    print(f"{'=' * _WIDTH}")
    print(f"  Records:     {report.total}")

    _print_validation(report)
    print(f"\n{'─' * _WIDTH}")
    _print_auto_fix(report)
    print(f"\n{'─' * _WIDTH}")
    _print_analysis(report)

    print(f"\n{'=' * _WIDTH}")
    if report.invalid_count == 0:
        print(f"  {_GREEN}{_BOLD}ALL RECORDS PASSED VALIDATION{_RESET}")
    else:
        print(f"  {_RED}{_BOLD}{report.invalid_count} RECORD(S) NEED ATTENTION{_RESET}")
    print(f"{'=' * _WIDTH}\n")

    return 0 if report.invalid_count == 0 else 1


# ─── Main ────────────────────────────────────────────────────────────


def main():
    """Run the review pipeline on the sample collection and print the report."""
    settings = AnalysisSettings.from_env()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print("\n  Starting Assessment Intelligence...")
    print(f"  Reviewing {len(SAMPLE_PROPERTIES)} sample properties...\n")

    pipeline = AssessmentPipeline(settings)
    records = [PropertyRecord.model_validate(raw) for raw in SAMPLE_PROPERTIES]
    report = pipeline.review(records)
    sys.exit(print_report(report))


if __name__ == "__main__":
    main()
