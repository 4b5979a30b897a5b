"""Tests for building Splitwise expenses from settlements."""

from datetime import date
from decimal import Decimal

import pytest

from receipt_split.exceptions import ExportError, RoundingError, UnmappedMembersError
from receipt_split.export import (
    build_splitwise_expense,
    compute_owed_with_adjustment,
    to_dollars,
)
from receipt_split.models import Member, Receipt, ReceiptStatus, SettlementRow


def make_row(member_id: str, items: int, tax: int = 0, tip: int = 0) -> SettlementRow:
    """Create a settlement row for testing."""
    return SettlementRow(
        member_id=member_id,
        items_total=items,
        tax_share=tax,
        tip_share=tip,
        final_amount=items + tax + tip,
    )


@pytest.fixture
def members():
    return {
        "ana": Member(id="ana", name="Ana", splitwise_user_id=101),
        "ben": Member(id="ben", name="Ben", splitwise_user_id=102),
        "cy": Member(id="cy", name="Cy", splitwise_user_id=103),
    }


@pytest.fixture
def settlements():
    return [
        make_row("ana", 2066, tax=207),
        make_row("ben", 866, tax=87),
        make_row("cy", 868, tax=86),
    ]


@pytest.fixture
def receipt():
    return Receipt(
        id="r1",
        merchant_name="Taqueria",
        receipt_date=date(2026, 10, 1),
        payer_id="ana",
        tax=380,
        total=4180,
        status=ReceiptStatus.SETTLED,
    )


def owed_by_user(expense) -> dict[int, Decimal]:
    return {user.user_id: user.owed_share for user in expense.users}


class TestToDollars:
    def test_cents(self):
        assert to_dollars(1234) == Decimal("12.34")
        assert str(to_dollars(5)) == "0.05"
        assert str(to_dollars(100)) == "1.00"

    def test_zero(self):
        assert str(to_dollars(0)) == "0.00"


class TestOwedAdjustment:
    """Second remainder pass at the export boundary."""

    def test_no_residual(self, settlements):
        assert compute_owed_with_adjustment(settlements, 4180) == [2273, 953, 954]

    def test_last_row_absorbs_positive_residual(self, settlements):
        assert compute_owed_with_adjustment(settlements, 4182) == [2273, 953, 956]

    def test_last_row_absorbs_negative_residual(self, settlements):
        assert compute_owed_with_adjustment(settlements, 4179) == [2273, 953, 953]

    def test_negative_share_is_rejected(self, settlements):
        with pytest.raises(RoundingError, match="negative share"):
            compute_owed_with_adjustment(settlements, 1000)


class TestBuildSplitwiseExpense:
    def test_payer_paid_everything(self, receipt, settlements, members):
        expense = build_splitwise_expense(receipt, settlements, members)

        assert expense.cost == Decimal("41.80")
        assert expense.description == "Taqueria"
        assert expense.expense_date == date(2026, 10, 1)
        assert expense.currency_code == "USD"

        paid = {user.user_id: user.paid_share for user in expense.users}
        assert paid == {
            101: Decimal("41.80"),
            102: Decimal("0.00"),
            103: Decimal("0.00"),
        }
        assert owed_by_user(expense) == {
            101: Decimal("22.73"),
            102: Decimal("9.53"),
            103: Decimal("9.54"),
        }

    def test_owed_shares_sum_to_cost(self, receipt, settlements, members):
        receipt.total = 4183

        expense = build_splitwise_expense(receipt, settlements, members)

        assert sum(user.owed_share for user in expense.users) == expense.cost
        assert owed_by_user(expense)[103] == Decimal("9.57")

    def test_missing_total_falls_back_to_settled_sum(
        self, receipt, settlements, members
    ):
        receipt.total = None

        expense = build_splitwise_expense(receipt, settlements, members)

        assert expense.cost == Decimal("41.80")

    def test_group_and_currency_are_passed_through(
        self, receipt, settlements, members
    ):
        expense = build_splitwise_expense(
            receipt, settlements, members, currency_code="CAD", group_id=77
        )

        assert expense.group_id == 77
        assert expense.currency_code == "CAD"

    def test_fallback_description_and_date(self, receipt, settlements, members):
        receipt.merchant_name = None
        receipt.receipt_date = None

        expense = build_splitwise_expense(
            receipt, settlements, members, description="Dinner"
        )

        assert expense.description == "Dinner"
        assert expense.expense_date == date.today()

    def test_payer_without_items_is_added(self, receipt, members):
        receipt.payer_id = "cy"
        receipt.total = 2000
        settlements = [make_row("ana", 1200), make_row("ben", 800)]

        expense = build_splitwise_expense(receipt, settlements, members)

        payer = next(user for user in expense.users if user.user_id == 103)
        assert payer.paid_share == Decimal("20.00")
        assert payer.owed_share == Decimal("0.00")
        assert sum(user.owed_share for user in expense.users) == Decimal("20.00")

    def test_requires_settled_receipt(self, receipt, settlements, members):
        receipt.status = ReceiptStatus.SPLITTING

        with pytest.raises(ExportError, match="must be settled"):
            build_splitwise_expense(receipt, settlements, members)

    def test_exported_receipt_can_be_exported_again(
        self, receipt, settlements, members
    ):
        receipt.status = ReceiptStatus.EXPORTED

        expense = build_splitwise_expense(receipt, settlements, members)

        assert len(expense.users) == 3

    def test_requires_payer(self, receipt, settlements, members):
        receipt.payer_id = None

        with pytest.raises(ExportError, match="No payer"):
            build_splitwise_expense(receipt, settlements, members)

    def test_requires_settlements(self, receipt, members):
        with pytest.raises(ExportError, match="No settlements"):
            build_splitwise_expense(receipt, [], members)

    def test_unmapped_members_are_listed(self, receipt, settlements, members):
        members["ben"].splitwise_user_id = None
        members["cy"].splitwise_user_id = None

        with pytest.raises(UnmappedMembersError) as exc_info:
            build_splitwise_expense(receipt, settlements, members)

        assert exc_info.value.member_names == ["Ben", "Cy"]
        assert "Ben, Cy" in str(exc_info.value)

    def test_unmapped_payer_is_listed(self, receipt, settlements, members):
        members["ana"].splitwise_user_id = None

        with pytest.raises(UnmappedMembersError) as exc_info:
            build_splitwise_expense(receipt, settlements, members)

        assert exc_info.value.member_names == ["Ana"]
