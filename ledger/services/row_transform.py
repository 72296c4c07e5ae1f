"""
Journal Ledger - Row Transform Pipeline

Turns caller-edited journal rows into storable column values:
- account numbers, entity codes and document references become identities
- enterprise-currency amounts are converted into the transaction currency
- dated rows are stamped with the fiscal year and period of the edit

Lookups for all rows run concurrently; each is tagged with the row and the
column it fills so results can be attached regardless of completion order.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Awaitable, Dict, List, Mapping, Optional, Tuple, Union
from uuid import UUID

from ledger.schemas.journal import ChangedJournalRow, NewJournalRow
from ledger.services.fiscal_service import CalendarEntry
from ledger.services.fx_service import FXService
from ledger.services.reference_service import ReferenceService
from ledger.utils.error_handling import InvalidAccountException

logger = logging.getLogger(__name__)

JournalRowInput = Union[NewJournalRow, ChangedJournalRow]

ZERO = Decimal("0.0000")


@dataclass(frozen=True)
class EditContext:
    """Transaction-wide values, taken from the transaction before the edit."""
    record_uuid: UUID
    trans_id: str
    project_id: UUID
    currency_id: str
    trans_date: date
    description: Optional[str]
    origin_id: Optional[int]
    user_id: UUID

    @classmethod
    def from_row(cls, row: Mapping[str, Any], user_id: UUID) -> "EditContext":
        return cls(
            record_uuid=row["record_uuid"],
            trans_id=row["trans_id"],
            project_id=row["project_id"],
            currency_id=row["currency_id"],
            trans_date=row["trans_date"],
            description=row["description"],
            origin_id=row["origin_id"],
            user_id=user_id,
        )


@dataclass
class PendingLookup:
    """A scheduled lookup whose result lands in `field` of row `row_key`."""
    row_key: UUID
    field: str
    awaitable: Awaitable[Any]


class RowTransformPipeline:
    """Resolves and converts edited rows."""

    def __init__(self, references: ReferenceService, fx: FXService):
        self.references = references
        self.fx = fx

    async def transform(
        self,
        rows: Mapping[UUID, JournalRowInput],
        context: EditContext,
        calendar: CalendarEntry,
    ) -> Dict[UUID, Dict[str, Any]]:
        """
        Transform rows keyed by their uuid.

        New rows come back complete; changed rows carry only the columns
        to update. Nothing is returned if any lookup fails: the first
        failure, in scheduling order, is raised once all lookups settle.
        """
        # Every new row needs an account before anything is looked up
        for row in rows.values():
            if row.kind == "new" and not row.account_number:
                raise InvalidAccountException(row.account_number)

        output: Dict[UUID, Dict[str, Any]] = {}
        lookups: List[PendingLookup] = []

        for row_key, row in rows.items():
            if row.kind == "new":
                values = self._new_row_values(row_key, row, context, calendar)
            else:
                values = self._changed_row_values(row)
            lookups.extend(self._schedule(row_key, row, values, context, calendar))
            output[row_key] = values

        resolved = await self._settle(lookups)
        for (row_key, field), value in resolved.items():
            output[row_key][field] = value

        return output

    # =========================================================================
    # ROW VALUES
    # =========================================================================

    def _new_row_values(
        self,
        row_key: UUID,
        row: NewJournalRow,
        context: EditContext,
        calendar: CalendarEntry,
    ) -> Dict[str, Any]:
        return {
            "uuid": row_key,
            "record_uuid": context.record_uuid,
            "trans_id": context.trans_id,
            "project_id": context.project_id,
            "currency_id": context.currency_id,
            "origin_id": context.origin_id,
            "user_id": context.user_id,
            "description": row.description if row.description is not None else context.description,
            "comment": row.comment,
            "trans_date": calendar.for_date,
            "fiscal_year_id": calendar.fiscal_year_id,
            "period_id": calendar.period_id,
            "entity_uuid": None,
            "reference_uuid": None,
            "debit": ZERO,
            "credit": ZERO,
            "debit_equiv": ZERO,
            "credit_equiv": ZERO,
        }

    def _changed_row_values(self, row: ChangedJournalRow) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        for field in ("description", "comment"):
            if field in row.model_fields_set:
                values[field] = getattr(row, field)
        return values

    def _schedule(
        self,
        row_key: UUID,
        row: JournalRowInput,
        values: Dict[str, Any],
        context: EditContext,
        calendar: CalendarEntry,
    ) -> List[PendingLookup]:
        """Fill what needs no lookup and return the lookups for the rest."""
        pending: List[PendingLookup] = []

        if row.account_number:
            pending.append(PendingLookup(
                row_key, "account_id", self.references.resolve_account(row.account_number),
            ))
        if row.hr_entity:
            pending.append(PendingLookup(
                row_key, "entity_uuid", self.references.resolve_entity(row.hr_entity),
            ))
        if row.hr_reference:
            pending.append(PendingLookup(
                row_key, "reference_uuid", self.references.resolve_reference(row.hr_reference),
            ))

        conversion_date = row.trans_date or context.trans_date
        for side in ("debit", "credit"):
            equiv = getattr(row, f"{side}_equiv")
            if equiv is None:
                continue
            values[f"{side}_equiv"] = equiv
            if equiv:
                pending.append(PendingLookup(
                    row_key,
                    side,
                    self.fx.convert(equiv, context.currency_id, conversion_date, context.project_id),
                ))
            else:
                values[side] = ZERO

        if row.trans_date:
            values["trans_date"] = row.trans_date
            values["fiscal_year_id"] = calendar.fiscal_year_id
            values["period_id"] = calendar.period_id

        return pending

    # =========================================================================
    # CONCURRENT RESOLUTION
    # =========================================================================

    @staticmethod
    async def _run(lookup: PendingLookup) -> Tuple[UUID, str, Any]:
        return lookup.row_key, lookup.field, await lookup.awaitable

    async def _settle(self, lookups: List[PendingLookup]) -> Dict[Tuple[UUID, str], Any]:
        """Run all lookups to completion; raise the first failure if any."""
        if not lookups:
            return {}

        tasks = [asyncio.create_task(self._run(lookup)) for lookup in lookups]
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        failures = [outcome for outcome in outcomes if isinstance(outcome, BaseException)]
        if failures:
            logger.info(f"{len(failures)} of {len(lookups)} row lookups failed")
            raise failures[0]

        return {(row_key, field): value for row_key, field, value in outcomes}
