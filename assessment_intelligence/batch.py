"""
Batch utilities over property collections.

Flow for large collections:
  records ──► chunk (chunk_size) ──► map ──► on_progress(done, total) ──► next chunk

Chunk boundaries are where a caller on a single-threaded event loop gets
control back: ``aprocess_batch`` yields to the loop there, ``process_batch``
only reports progress. Output order always matches input order.

The value operations at the bottom (inflation, neighborhood adjustment,
reclassification, tax-rate updates) are the bulk edits assessors run from
the batch-editing screen. All of them return new records and leave the
input untouched.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Hashable, Iterable, Mapping, Sequence
from typing import Any, TypeVar

from .models import AutoFixBatchResult, BatchValidation, PropertyRecord
from .stats import round_half_up
from .validation import PropertyDataValidator

logger = logging.getLogger(__name__)

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)

ProgressCallback = Callable[[int, int], None]

# Zoning code assigned when a reclassification also updates zoning
ZONING_BY_CLASSIFICATION: dict[str, str] = {
    "Residential": "R1",
    "Commercial": "C2",
    "Industrial": "I1",
    "Agricultural": "A1",
    "Vacant Land": "UL",
}


class BatchProcessor:
    """Chunked map / group / filter / validate helpers bound to one validator."""

    def __init__(self, validator: PropertyDataValidator, chunk_size: int = 100):
        self.validator = validator
        self.chunk_size = chunk_size

    # ─── Processing ─────────────────────────────────────────────────

    def process_batch(
        self,
        records: Sequence[PropertyRecord],
        process_fn: Callable[[PropertyRecord], T],
        *,
        parallel: bool = False,
        chunk_size: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> list[T]:
        """Map ``process_fn`` over ``records``.

        With ``parallel`` the whole collection is mapped in one pass and
        progress is reported once. Otherwise records are handled in chunks
        and ``on_progress(processed, total)`` fires after each chunk.
        """
        total = len(records)

        results: list[T] = []

        if parallel:
            results.extend(process_fn(record) for record in records)
            if on_progress:
                on_progress(total, total)
            return results

        for chunk_end, chunk in self._chunks(records, chunk_size):
            results.extend(process_fn(record) for record in chunk)
            if on_progress:
                on_progress(chunk_end, total)
        return results

    async def aprocess_batch(
        self,
        records: Sequence[PropertyRecord],
        process_fn: Callable[[PropertyRecord], T],
        *,
        chunk_size: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> list[T]:
        """Chunked ``process_batch`` that yields to the event loop between chunks."""
        total = len(records)
        results: list[T] = []

        for chunk_end, chunk in self._chunks(records, chunk_size):
            results.extend(process_fn(record) for record in chunk)
            if on_progress:
                on_progress(chunk_end, total)
            await asyncio.sleep(0)

        return results

    def _chunks(self, records: Sequence[PropertyRecord], chunk_size: int | None):
        size = self.chunk_size if chunk_size is None else chunk_size
        if size < 1:
            raise ValueError(f"chunk_size must be at least 1, got {size}")

        total = len(records)
        for start in range(0, total, size):
            yield min(start + size, total), records[start:start + size]

    # ─── Grouping & Filtering ───────────────────────────────────────

    def group_properties(
        self,
        records: Iterable[PropertyRecord],
        key_selector: Callable[[PropertyRecord], K],
    ) -> dict[K, list[PropertyRecord]]:
        """Group records by key, keeping keys and members in first-seen order."""
        grouped: dict[K, list[PropertyRecord]] = {}
        for record in records:
            grouped.setdefault(key_selector(record), []).append(record)
        return grouped

    def apply_batch_update(
        self,
        records: Iterable[PropertyRecord],
        update_fn: Callable[[PropertyRecord], Mapping[str, Any]],
    ) -> list[PropertyRecord]:
        """Return copies of ``records`` merged with the partial update for each.

        Update keys may be attribute names or their camelCase aliases. The
        merged record is re-validated, so a bad value raises a pydantic
        ``ValidationError`` and an unknown key raises ``ValueError``.
        """
        return [_merge(record, update_fn(record)) for record in records]

    def filter_batch(
        self,
        records: Iterable[PropertyRecord],
        filters: Sequence[Callable[[PropertyRecord], bool]],
    ) -> list[PropertyRecord]:
        """Keep records that pass every filter."""
        return [record for record in records if all(f(record) for f in filters)]

    # ─── Validation ─────────────────────────────────────────────────

    def validate_and_group(self, records: Sequence[PropertyRecord]) -> BatchValidation:
        results = self.validator.validate_batch(records)
        valid = [r.record for r in results if r.is_valid]
        invalid = [r.record for r in results if not r.is_valid]

        logger.info("Validated %d records: %d valid, %d invalid", len(results), len(valid), len(invalid))
        return BatchValidation(valid=valid, invalid=invalid, results=results)

    def auto_fix_batch(self, records: Sequence[PropertyRecord]) -> AutoFixBatchResult:
        """Auto-fix every record and split the batch into changed vs unchanged.

        A record counts as fixed when any field differs after auto-fix, even
        if some of its issues remain. Records that were already clean end up
        with the unchanged ones.
        """
        changed: list[PropertyRecord] = []
        unchanged: list[PropertyRecord] = []
        fixed_issue_count = 0

        for record in records:
            outcome = self.validator.auto_fix(record)
            fixed_issue_count += len(outcome.fixed_issues)

            if outcome.record.model_dump() != record.model_dump():
                changed.append(outcome.record)
            else:
                unchanged.append(record)

        logger.info(
            "Auto-fix: %d records changed, %d unchanged, %d issues fixed",
            len(changed),
            len(unchanged),
            fixed_issue_count,
        )
        return AutoFixBatchResult(
            fixed=changed,
            unfixable=unchanged,
            fixed_issue_count=fixed_issue_count,
        )

    # ─── Value Operations ───────────────────────────────────────────

    def apply_inflation(
        self,
        records: Iterable[PropertyRecord],
        percentage: float,
        *,
        round_to: int = 100,
        apply_to_land_value: bool = False,
        apply_to_improvement_value: bool = False,
    ) -> list[PropertyRecord]:
        """Scale assessed values by ``percentage`` and round to a multiple of ``round_to``."""
        if round_to < 1:
            raise ValueError(f"round_to must be at least 1, got {round_to}")

        factor = 1 + percentage / 100

        def scale(value: float) -> int:
            return round_half_up(value * factor / round_to) * round_to

        def update(record: PropertyRecord) -> dict[str, Any]:
            changes: dict[str, Any] = {}
            if record.price:
                changes["price"] = scale(record.price)
            if apply_to_land_value and record.land_value:
                changes["land_value"] = scale(record.land_value)
            if apply_to_improvement_value and record.improvement_value:
                changes["improvement_value"] = scale(record.improvement_value)
            return changes

        return self.apply_batch_update(records, update)

    def adjust_by_neighborhood(
        self,
        records: Iterable[PropertyRecord],
        adjustments: Mapping[str, float],
    ) -> list[PropertyRecord]:
        """Apply a per-neighborhood percentage to each priced record's value."""

        def update(record: PropertyRecord) -> dict[str, Any]:
            if not record.price or record.neighborhood not in adjustments:
                return {}
            pct = adjustments[record.neighborhood]
            return {"price": round_half_up(record.price * (1 + pct / 100))}

        return self.apply_batch_update(records, update)

    def bulk_reclassify(
        self,
        records: Iterable[PropertyRecord],
        classification: str,
        *,
        auto_update_zoning: bool = False,
    ) -> list[PropertyRecord]:
        """Set the property type; optionally assign the matching zoning code."""
        changes: dict[str, Any] = {"property_type": classification}
        if auto_update_zoning and classification in ZONING_BY_CLASSIFICATION:
            changes["zoning"] = ZONING_BY_CLASSIFICATION[classification]

        return self.apply_batch_update(records, lambda record: changes)

    def update_tax_rates(
        self,
        records: Iterable[PropertyRecord],
        tax_rate_percent: float,
    ) -> list[PropertyRecord]:
        rate = tax_rate_percent / 100
        return self.apply_batch_update(records, lambda record: {"tax_rate": rate})


# ─── Internal Helpers ────────────────────────────────────────────────

# camelCase alias or attribute name → attribute name
_FIELD_NAMES: dict[str, str] = {
    key: name
    for name, info in PropertyRecord.model_fields.items()
    for key in (name, info.alias or name)
}


def _merge(record: PropertyRecord, update: Mapping[str, Any]) -> PropertyRecord:
    unknown = sorted(key for key in update if key not in _FIELD_NAMES)
    if unknown:
        raise ValueError(f"Unknown property field(s) in batch update: {', '.join(unknown)}")

    changes = {_FIELD_NAMES[key]: value for key, value in update.items()}
    return PropertyRecord.model_validate({**record.model_dump(), **changes})
