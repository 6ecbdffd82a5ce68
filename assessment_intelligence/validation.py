"""
Rule engine that turns a rule list into per-record quality reports.

The engine holds an ORDERED list of rules, not a map keyed by id: two rules
may share an id, both are evaluated, and ``remove_rule`` drops every match.
Every rule is evaluated for every record; there is no short-circuit.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import date

from .models import (
    AutoFixResult,
    PropertyRecord,
    Severity,
    ValidationIssue,
    ValidationResult,
)
from .validators import ValidationRule, default_rules

logger = logging.getLogger(__name__)

# Points deducted from the 100-point quality score per issue
SEVERITY_PENALTIES: dict[Severity, int] = {
    Severity.INFO: 1,
    Severity.WARNING: 5,
    Severity.ERROR: 20,
    Severity.CRITICAL: 50,
}

_BLOCKING_SEVERITIES = frozenset({Severity.ERROR, Severity.CRITICAL})


class PropertyDataValidator:
    """Applies an extensible set of validation rules to property records.

    Usage:
        validator = PropertyDataValidator()
        result = validator.validate(record)
        if not result.is_valid:
            fixed = validator.auto_fix(record)
    """

    def __init__(
        self,
        rules: Iterable[ValidationRule] | None = None,
        today: Callable[[], date] = date.today,
    ):
        self._rules: list[ValidationRule] = list(default_rules(today) if rules is None else rules)

    # ─── Rule Registry ──────────────────────────────────────────────

    def add_rule(self, rule: ValidationRule) -> None:
        """Append a rule. Re-using an id keeps both rules active."""
        if any(existing.id == rule.id for existing in self._rules):
            logger.warning(
                "Rule id '%s' is already registered; both rules will be evaluated",
                rule.id,
            )
        self._rules.append(rule)

    def remove_rule(self, rule_id: str) -> None:
        """Remove every rule registered under ``rule_id``."""
        self._rules = [rule for rule in self._rules if rule.id != rule_id]

    def get_rule_info(self, rule_id: str) -> ValidationRule | None:
        """First rule registered under ``rule_id``, if any."""
        return next((rule for rule in self._rules if rule.id == rule_id), None)

    def get_all_rules(self) -> list[ValidationRule]:
        return list(self._rules)

    # ─── Validation ─────────────────────────────────────────────────

    def validate(self, record: PropertyRecord) -> ValidationResult:
        """Run every rule against ``record`` and score the outcome."""
        issues = [
            ValidationIssue(
                rule_id=rule.id,
                severity=rule.severity,
                message=rule.message(record),
                can_auto_fix=rule.can_auto_fix,
            )
            for rule in self._rules
            if not rule.validate(record)
        ]

        score = 100 - sum(SEVERITY_PENALTIES[issue.severity] for issue in issues)

        return ValidationResult(
            record=record,
            issues=issues,
            is_valid=not issues,
            score=max(0, min(100, score)),
            has_critical_issues=any(i.severity in _BLOCKING_SEVERITIES for i in issues),
        )

    def validate_batch(self, records: Iterable[PropertyRecord]) -> list[ValidationResult]:
        return [self.validate(record) for record in records]

    # ─── Auto-Fix ───────────────────────────────────────────────────

    def auto_fix(self, record: PropertyRecord) -> AutoFixResult:
        """Apply every applicable fix in rule order, verifying each one.

        Fixes accumulate on one working copy, so later rules see earlier
        repairs. A fix that does not satisfy its own rule is still kept but
        is not reported in ``fixed_issues``.
        """
        working = record.model_copy()
        fixed_issues: list[str] = []

        for rule in self._rules:
            if rule.fix is None or rule.validate(working):
                continue

            working = rule.fix(working)

            if rule.validate(working):
                fixed_issues.append(rule.id)
            else:
                logger.debug(
                    "Fix for rule '%s' applied to record %s but did not resolve it",
                    rule.id,
                    record.id,
                )

        return AutoFixResult(record=working, fixed_issues=fixed_issues)
