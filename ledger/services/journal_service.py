"""
Journal Ledger - Journal Service

Service layer for the posting journal and general ledger:
- Transaction lookup through the combined journal/ledger view
- Validated editing of unposted transactions
- Transaction reversal through a cancellation voucher
- Bulk comments, edit history and journal counts
"""

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Type

from sqlalchemy import (
    select, insert, update, delete, func, and_, distinct, union_all, true, false,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ledger.config import settings
from ledger.models.accounting import Account, Period, Project
from ledger.models.journal import (
    CANCELLATION_VOUCHER_TYPE,
    DocumentMap,
    EntityMap,
    GeneralLedger,
    JournalRowMixin,
    PostingJournal,
    TransactionHistory,
    Voucher,
)
from ledger.models.user import User
from ledger.schemas.journal import JournalFilters, TransactionEditRequest
from ledger.services.fiscal_service import FiscalService
from ledger.services.fx_service import FXService
from ledger.services.reference_service import ReferenceService
from ledger.services.row_transform import EditContext, RowTransformPipeline
from ledger.utils.error_handling import (
    DuplicateJournalRowException,
    MultipleCancellingException,
    TransactionAlreadyPostedException,
    TransactionMustContainRowsException,
    TransactionNotBalancedException,
    TransactionNotFoundException,
)

logger = logging.getLogger(__name__)

# Columns read back for every journal row, in both tables
ROW_COLUMNS = (
    "uuid", "record_uuid", "trans_id", "project_id", "fiscal_year_id",
    "period_id", "trans_date", "description", "account_id", "debit", "credit",
    "debit_equiv", "credit_equiv", "currency_id", "entity_uuid",
    "reference_uuid", "comment", "origin_id", "user_id",
)

MIN_TRANSACTION_ROWS = 2


def _row_select(model: Type[JournalRowMixin], posted: bool, criteria: List[Any]):
    """Rows of one table with their display columns and a `posted` flag."""
    return (
        select(
            *(getattr(model, name) for name in ROW_COLUMNS),
            (true() if posted else false()).label("posted"),
            Account.number.label("account_number"),
            Account.label.label("account_label"),
            EntityMap.text.label("hr_entity"),
            DocumentMap.text.label("hr_reference"),
            User.display_name.label("display_name"),
        )
        .select_from(model)
        .join(Project, Project.id == model.project_id)
        .join(Period, Period.id == model.period_id)
        .join(Account, Account.id == model.account_id)
        .join(User, User.id == model.user_id)
        .outerjoin(EntityMap, EntityMap.uuid == model.entity_uuid)
        .outerjoin(DocumentMap, DocumentMap.uuid == model.reference_uuid)
        .where(*criteria)
    )


def _filter_criteria(
    model: Type[JournalRowMixin],
    filters: JournalFilters,
    record_uuids: Optional[Iterable[uuid.UUID]] = None,
) -> List[Any]:
    if record_uuids is not None:
        return [model.record_uuid.in_(list(record_uuids))]

    criteria = []
    if filters.record_uuid:
        criteria.append(model.record_uuid == filters.record_uuid)
    if filters.trans_id:
        criteria.append(model.trans_id == filters.trans_id)
    if filters.account_id:
        criteria.append(model.account_id == filters.account_id)
    if filters.project_id:
        criteria.append(model.project_id == filters.project_id)
    if filters.user_id:
        criteria.append(model.user_id == filters.user_id)
    if filters.date_from:
        criteria.append(model.trans_date >= filters.date_from)
    if filters.date_to:
        criteria.append(model.trans_date <= filters.date_to)
    if filters.description:
        criteria.append(model.description.ilike(f"%{filters.description}%"))
    if filters.comment:
        criteria.append(model.comment.ilike(f"%{filters.comment}%"))
    return criteria


def get_transaction_date(
    request: TransactionEditRequest,
    existing_rows: List[Mapping[str, Any]],
) -> date:
    """
    Effective date of an edit: the last date among changed rows, else among
    added rows, else the date of the existing transaction.
    """
    changed_dates = [row.trans_date for row in request.changed.values() if row.trans_date]
    if changed_dates:
        return changed_dates[-1]

    added_dates = [row.trans_date for row in request.added if row.trans_date]
    if added_dates:
        return added_dates[-1]

    return existing_rows[-1]["trans_date"]


class JournalService:
    """Service for journal operations."""

    def __init__(
        self,
        db: AsyncSession,
        session_factory: async_sessionmaker,
        pipeline: Optional[RowTransformPipeline] = None,
        enforce_balanced: Optional[bool] = None,
    ):
        self.db = db
        self.fiscal = FiscalService(db)
        self.pipeline = pipeline or RowTransformPipeline(
            ReferenceService(session_factory),
            FXService(session_factory),
        )
        if enforce_balanced is None:
            enforce_balanced = settings.enforce_balanced_transactions
        self.enforce_balanced = enforce_balanced

    # =========================================================================
    # LOOKUP & SEARCH
    # =========================================================================

    async def search(self, filters: JournalFilters) -> List[Mapping[str, Any]]:
        """
        Journal rows matching the filters, newest first.

        Only the posting journal is searched unless include_non_posted is set,
        in which case the general ledger is searched as well.
        """
        rows = await self._select_rows(filters, limit=filters.limit)

        if filters.show_full_transactions and rows:
            record_uuids = {row["record_uuid"] for row in rows}
            rows = await self._select_rows(filters, record_uuids=record_uuids)

        return rows

    async def _select_rows(
        self,
        filters: JournalFilters,
        record_uuids: Optional[Iterable[uuid.UUID]] = None,
        limit: Optional[int] = None,
    ) -> List[Mapping[str, Any]]:
        selects = [
            _row_select(PostingJournal, False, _filter_criteria(PostingJournal, filters, record_uuids)),
        ]
        if filters.include_non_posted:
            selects.append(
                _row_select(GeneralLedger, True, _filter_criteria(GeneralLedger, filters, record_uuids)),
            )

        combined = union_all(*selects).subquery() if len(selects) > 1 else selects[0].subquery()
        stmt = select(combined).order_by(combined.c.trans_date.desc(), combined.c.trans_id)
        if limit:
            stmt = stmt.limit(limit)

        result = await self.db.execute(stmt)
        return list(result.mappings().all())

    async def lookup_transaction(self, record_uuid: uuid.UUID) -> List[Mapping[str, Any]]:
        """All rows of a transaction, wherever they live."""
        rows = await self.search(JournalFilters(record_uuid=record_uuid, include_non_posted=True))
        if not rows:
            raise TransactionNotFoundException(record_uuid)
        return rows

    async def count_unposted_transactions(self) -> int:
        result = await self.db.execute(
            select(func.count(distinct(PostingJournal.trans_id)))
        )
        return result.scalar() or 0

    async def get_edit_history(self, record_uuid: uuid.UUID) -> List[Mapping[str, Any]]:
        """Who edited a transaction, and when."""
        result = await self.db.execute(
            select(User.display_name, TransactionHistory.timestamp)
            .join(User, User.id == TransactionHistory.user_id)
            .where(TransactionHistory.record_uuid == record_uuid)
            .order_by(TransactionHistory.timestamp)
        )
        return list(result.mappings().all())

    # =========================================================================
    # EDIT
    # =========================================================================

    async def edit_transaction(
        self,
        record_uuid: uuid.UUID,
        request: TransactionEditRequest,
        user_id: uuid.UUID,
    ) -> List[Mapping[str, Any]]:
        """
        Apply added, changed and removed rows to an unposted transaction.

        Every check and lookup completes before the first write; the writes
        and the history row then commit together or not at all.
        """
        rows = await self.lookup_transaction(record_uuid)

        if any(row["posted"] for row in rows):
            raise TransactionAlreadyPostedException(record_uuid)

        existing_uuids = {row["uuid"] for row in rows}
        seen = set()
        for row in request.added:
            if row.uuid is None:
                continue
            if row.uuid in seen or row.uuid in existing_uuids:
                raise DuplicateJournalRowException(row.uuid)
            seen.add(row.uuid)

        # Repeated or foreign removals do not count
        removed_uuids = list(dict.fromkeys(row.uuid for row in request.removed))
        added_count = len(request.added)
        removed_count = len(existing_uuids.intersection(removed_uuids))
        remaining = len(rows) - removed_count + added_count
        if remaining < MIN_TRANSACTION_ROWS or (added_count == 0 and removed_count >= len(rows)):
            raise TransactionMustContainRowsException(remaining)

        transaction_date = get_transaction_date(request, rows)
        calendar = await self.fiscal.resolve(transaction_date, require_open=True)

        context = EditContext.from_row(rows[0], user_id)

        added_values = await self.pipeline.transform(
            {row.uuid or uuid.uuid4(): row for row in request.added},
            context,
            calendar,
        )
        changed_values = await self.pipeline.transform(request.changed, context, calendar)

        if self.enforce_balanced:
            self._check_balanced(rows, removed_uuids, added_values, changed_values)

        try:
            if removed_uuids:
                await self.db.execute(
                    delete(PostingJournal).where(and_(
                        PostingJournal.record_uuid == record_uuid,
                        PostingJournal.uuid.in_(removed_uuids),
                    ))
                )
            if added_values:
                await self.db.execute(insert(PostingJournal), list(added_values.values()))
            for row_uuid, values in changed_values.items():
                if not values:
                    continue
                await self.db.execute(
                    update(PostingJournal)
                    .where(and_(
                        PostingJournal.record_uuid == record_uuid,
                        PostingJournal.uuid == row_uuid,
                    ))
                    .values(**values)
                )
            self.db.add(TransactionHistory(
                uuid=uuid.uuid4(),
                record_uuid=context.record_uuid,
                user_id=user_id,
            ))
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Edit of transaction {context.trans_id} ({record_uuid}) rolled back: {e}")
            raise

        logger.info(
            f"Transaction {context.trans_id} edited by {user_id}: "
            f"{len(added_values)} added, {len(changed_values)} changed, {removed_count} removed"
        )
        return await self.lookup_transaction(record_uuid)

    @staticmethod
    def _check_balanced(
        rows: List[Mapping[str, Any]],
        removed_uuids: List[uuid.UUID],
        added_values: Dict[uuid.UUID, Dict[str, Any]],
        changed_values: Dict[uuid.UUID, Dict[str, Any]],
    ) -> None:
        removed = set(removed_uuids)
        total_debit = Decimal("0")
        total_credit = Decimal("0")

        for row in rows:
            if row["uuid"] in removed:
                continue
            changes = changed_values.get(row["uuid"], {})
            total_debit += Decimal(changes.get("debit_equiv", row["debit_equiv"]))
            total_credit += Decimal(changes.get("credit_equiv", row["credit_equiv"]))

        for values in added_values.values():
            total_debit += Decimal(values["debit_equiv"])
            total_credit += Decimal(values["credit_equiv"])

        if total_debit != total_credit:
            raise TransactionNotBalancedException(total_debit, total_credit)

    # =========================================================================
    # REVERSAL
    # =========================================================================

    async def reverse_transaction(
        self,
        record_uuid: uuid.UUID,
        description: str,
        user_id: uuid.UUID,
        reversal_date: Optional[date] = None,
    ) -> uuid.UUID:
        """
        Cancel a transaction by writing its mirror image.

        A cancellation voucher references the reversed transaction; its rows
        swap debits and credits and land in the posting journal. A
        transaction can only be cancelled once.
        """
        rows = await self.lookup_transaction(record_uuid)

        existing = await self.db.execute(
            select(Voucher.uuid).where(and_(
                Voucher.type_id == CANCELLATION_VOUCHER_TYPE,
                Voucher.reference_uuid == record_uuid,
            ))
        )
        if existing.first() is not None:
            raise MultipleCancellingException(record_uuid)

        reversal_date = reversal_date or date.today()
        calendar = await self.fiscal.resolve(reversal_date, require_open=True)

        first = rows[0]
        voucher_uuid = uuid.uuid4()
        trans_id = await self._next_trans_id(first["project_id"])

        mirror_rows = [
            {
                "uuid": uuid.uuid4(),
                "record_uuid": voucher_uuid,
                "trans_id": trans_id,
                "project_id": row["project_id"],
                "fiscal_year_id": calendar.fiscal_year_id,
                "period_id": calendar.period_id,
                "trans_date": reversal_date,
                "description": description,
                "account_id": row["account_id"],
                "debit": row["credit"],
                "credit": row["debit"],
                "debit_equiv": row["credit_equiv"],
                "credit_equiv": row["debit_equiv"],
                "currency_id": row["currency_id"],
                "entity_uuid": row["entity_uuid"],
                "reference_uuid": record_uuid,
                "comment": None,
                "origin_id": CANCELLATION_VOUCHER_TYPE,
                "user_id": user_id,
            }
            for row in rows
        ]

        try:
            self.db.add(Voucher(
                uuid=voucher_uuid,
                type_id=CANCELLATION_VOUCHER_TYPE,
                reference_uuid=record_uuid,
                project_id=first["project_id"],
                voucher_date=reversal_date,
                description=description,
                currency_id=first["currency_id"],
                amount=sum((Decimal(row["debit"]) for row in rows), Decimal("0")),
                user_id=user_id,
            ))
            await self.db.flush()
            await self.db.execute(insert(PostingJournal), mirror_rows)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Reversal of transaction {first['trans_id']} ({record_uuid}) rolled back: {e}")
            raise

        logger.info(f"Transaction {first['trans_id']} reversed by {trans_id} (voucher {voucher_uuid})")
        return voucher_uuid

    async def _next_trans_id(self, project_id: uuid.UUID) -> str:
        """Next human readable transaction number of a project (e.g., TPA43)."""
        project = await self.db.get(Project, project_id)
        used = 0
        for model in (PostingJournal, GeneralLedger):
            result = await self.db.execute(
                select(func.count(distinct(model.trans_id))).where(model.project_id == project_id)
            )
            used += result.scalar() or 0
        return f"{project.abbr}{used + 1}"

    # =========================================================================
    # COMMENTS
    # =========================================================================

    async def update_comments(self, row_uuids: List[uuid.UUID], comment: Optional[str]) -> int:
        """Set the comment on rows of both the journal and the ledger."""
        updated = 0
        try:
            for model in (PostingJournal, GeneralLedger):
                result = await self.db.execute(
                    update(model)
                    .where(model.uuid.in_(row_uuids))
                    .values(comment=comment)
                    .execution_options(synchronize_session=False)
                )
                updated += result.rowcount
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise
        return updated
