"""
Tests for the row transform pipeline.

Uses in-memory resolvers with controlled delays so completion order can be
made to differ from scheduling order.
"""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger.models import FiscalYear, Period
from ledger.schemas.journal import ChangedJournalRow, NewJournalRow
from ledger.services.fiscal_service import CalendarEntry
from ledger.services.row_transform import EditContext, RowTransformPipeline
from ledger.utils.error_handling import (
    ErrorCode,
    InvalidAccountException,
    InvalidEntityException,
    MissingExchangeRateException,
)


class FakeReferences:
    """Resolves account numbers from a dict, sleeping per account."""

    def __init__(self, accounts, delays=None):
        self.accounts = accounts
        self.delays = delays or {}
        self.calls = []

    async def resolve_account(self, account_number):
        self.calls.append(account_number)
        await asyncio.sleep(self.delays.get(account_number, 0))
        if account_number not in self.accounts:
            raise InvalidAccountException(account_number)
        return self.accounts[account_number]

    async def resolve_entity(self, hr_entity):
        self.calls.append(hr_entity)
        if hr_entity != "PA.TPA.1":
            raise InvalidEntityException(hr_entity)
        return ENTITY_UUID

    async def resolve_reference(self, hr_reference):
        self.calls.append(hr_reference)
        return REFERENCE_UUID


class FakeFX:
    """Converts at a fixed rate per currency; unknown currencies have no rate."""

    def __init__(self, rates):
        self.rates = rates
        self.calls = []

    async def convert(self, amount, currency_id, rate_date, project_id):
        self.calls.append((amount, currency_id, rate_date))
        if currency_id not in self.rates:
            raise MissingExchangeRateException(currency_id, rate_date)
        return Decimal(amount) * self.rates[currency_id]


ENTITY_UUID = uuid4()
REFERENCE_UUID = uuid4()


@pytest.fixture
def calendar_entry():
    fiscal_year = FiscalYear(id=uuid4(), label="FY 2024", start_date=date(2024, 1, 1),
                             end_date=date(2024, 12, 31), locked=False)
    period = Period(id=uuid4(), fiscal_year_id=fiscal_year.id, number=2,
                    start_date=date(2024, 2, 1), end_date=date(2024, 2, 29))
    return CalendarEntry(for_date=date(2024, 2, 15), fiscal_year=fiscal_year, period=period)


def make_context(currency_id="USD"):
    return EditContext(
        record_uuid=uuid4(),
        trans_id="TPA1",
        project_id=uuid4(),
        currency_id=currency_id,
        trans_date=date(2024, 1, 1),
        description="Cash sale",
        origin_id=1,
        user_id=uuid4(),
    )


class TestNewRows:
    """New rows come back complete."""

    @pytest.mark.asyncio
    async def test_new_row_gets_transaction_values(self, calendar_entry):
        account_id = uuid4()
        pipeline = RowTransformPipeline(FakeReferences({"1000": account_id}), FakeFX({"USD": 1}))
        context = make_context()
        row_key = uuid4()

        output = await pipeline.transform(
            {row_key: NewJournalRow(account_number="1000", debit_equiv=Decimal("25"))},
            context,
            calendar_entry,
        )

        values = output[row_key]
        assert values["uuid"] == row_key
        assert values["account_id"] == account_id
        assert values["record_uuid"] == context.record_uuid
        assert values["trans_id"] == "TPA1"
        assert values["description"] == "Cash sale"
        assert values["fiscal_year_id"] == calendar_entry.fiscal_year_id
        assert values["period_id"] == calendar_entry.period_id
        assert values["trans_date"] == date(2024, 2, 15)
        assert values["debit_equiv"] == Decimal("25")
        assert values["debit"] == Decimal("25")
        assert values["credit"] == Decimal("0")

    @pytest.mark.asyncio
    async def test_new_row_without_account_schedules_nothing(self, calendar_entry):
        references = FakeReferences({"1000": uuid4()})
        fx = FakeFX({"USD": 1})
        pipeline = RowTransformPipeline(references, fx)

        rows = {
            uuid4(): NewJournalRow(account_number="1000", debit_equiv=Decimal("10")),
            uuid4(): NewJournalRow(credit_equiv=Decimal("10")),
        }

        with pytest.raises(InvalidAccountException) as exc_info:
            await pipeline.transform(rows, make_context(), calendar_entry)

        assert exc_info.value.code == ErrorCode.EDIT_INVALID_ACCOUNT
        assert references.calls == []
        assert fx.calls == []

    @pytest.mark.asyncio
    async def test_codes_resolve_to_identities(self, calendar_entry):
        pipeline = RowTransformPipeline(FakeReferences({"1000": uuid4()}), FakeFX({"USD": 1}))
        row_key = uuid4()

        output = await pipeline.transform(
            {row_key: NewJournalRow(account_number="1000", hrEntity="PA.TPA.1", hrReference="VO.TPA.7")},
            make_context(),
            calendar_entry,
        )

        assert output[row_key]["entity_uuid"] == ENTITY_UUID
        assert output[row_key]["reference_uuid"] == REFERENCE_UUID


class TestChangedRows:
    """Changed rows carry only what was sent."""

    @pytest.mark.asyncio
    async def test_only_sent_fields_are_returned(self, calendar_entry):
        pipeline = RowTransformPipeline(FakeReferences({}), FakeFX({"USD": 1}))
        row_key = uuid4()

        output = await pipeline.transform(
            {row_key: ChangedJournalRow(comment="checked")},
            make_context(),
            calendar_entry,
        )

        assert output[row_key] == {"comment": "checked"}

    @pytest.mark.asyncio
    async def test_zero_equiv_sets_native_amount_without_lookup(self, calendar_entry):
        fx = FakeFX({"CDF": Decimal("2800")})
        pipeline = RowTransformPipeline(FakeReferences({}), fx)
        row_key = uuid4()

        output = await pipeline.transform(
            {row_key: ChangedJournalRow(debit_equiv=Decimal("0"), credit_equiv=Decimal("3"))},
            make_context("CDF"),
            calendar_entry,
        )

        assert output[row_key]["debit_equiv"] == Decimal("0")
        assert output[row_key]["debit"] == Decimal("0")
        assert output[row_key]["credit"] == Decimal("8400")
        assert len(fx.calls) == 1

    @pytest.mark.asyncio
    async def test_conversion_uses_row_date_else_transaction_date(self, calendar_entry):
        fx = FakeFX({"CDF": Decimal("2800")})
        pipeline = RowTransformPipeline(FakeReferences({}), fx)

        await pipeline.transform(
            {
                uuid4(): ChangedJournalRow(debit_equiv=Decimal("1"), trans_date=date(2024, 2, 15)),
                uuid4(): ChangedJournalRow(credit_equiv=Decimal("1")),
            },
            make_context("CDF"),
            calendar_entry,
        )

        dates = sorted(call[2] for call in fx.calls)
        assert dates == [date(2024, 1, 1), date(2024, 2, 15)]

    @pytest.mark.asyncio
    async def test_dated_row_is_stamped_with_calendar(self, calendar_entry):
        pipeline = RowTransformPipeline(FakeReferences({}), FakeFX({}))
        row_key = uuid4()

        output = await pipeline.transform(
            {row_key: ChangedJournalRow(trans_date="2024-02-15T09:30:00.000Z")},
            make_context(),
            calendar_entry,
        )

        assert output[row_key] == {
            "trans_date": date(2024, 2, 15),
            "fiscal_year_id": calendar_entry.fiscal_year_id,
            "period_id": calendar_entry.period_id,
        }


class TestConcurrentResolution:
    """Results attach to their rows whatever order lookups complete in."""

    @pytest.mark.asyncio
    async def test_out_of_order_completion(self, calendar_entry):
        accounts = {"1000": uuid4(), "4000": uuid4(), "5000": uuid4()}
        # The first scheduled lookup finishes last
        delays = {"1000": 0.05, "4000": 0.02, "5000": 0}
        pipeline = RowTransformPipeline(FakeReferences(accounts, delays), FakeFX({"USD": 1}))

        keys = [uuid4(), uuid4(), uuid4()]
        rows = {
            key: ChangedJournalRow(account_number=number)
            for key, number in zip(keys, ["1000", "4000", "5000"])
        }

        output = await pipeline.transform(rows, make_context(), calendar_entry)

        assert output[keys[0]]["account_id"] == accounts["1000"]
        assert output[keys[1]]["account_id"] == accounts["4000"]
        assert output[keys[2]]["account_id"] == accounts["5000"]

    @pytest.mark.asyncio
    async def test_first_scheduled_failure_is_raised(self, calendar_entry):
        # BAD1 is scheduled first but fails after BAD2
        delays = {"BAD1": 0.05, "BAD2": 0}
        references = FakeReferences({}, delays)
        pipeline = RowTransformPipeline(references, FakeFX({"USD": 1}))

        rows = {
            uuid4(): ChangedJournalRow(account_number="BAD1"),
            uuid4(): ChangedJournalRow(account_number="BAD2"),
        }

        with pytest.raises(InvalidAccountException) as exc_info:
            await pipeline.transform(rows, make_context(), calendar_entry)

        assert "BAD1" in exc_info.value.message
        assert references.calls == ["BAD1", "BAD2"]

    @pytest.mark.asyncio
    async def test_failure_of_any_kind_rejects_whole_batch(self, calendar_entry):
        pipeline = RowTransformPipeline(FakeReferences({"1000": uuid4()}), FakeFX({}))

        rows = {
            uuid4(): ChangedJournalRow(account_number="1000"),
            uuid4(): ChangedJournalRow(debit_equiv=Decimal("5")),
        }

        with pytest.raises(MissingExchangeRateException):
            await pipeline.transform(rows, make_context("GBP"), calendar_entry)
