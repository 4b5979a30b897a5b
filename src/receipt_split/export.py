"""Turn a persisted settlement into a Splitwise expense."""

import logging
from datetime import date
from decimal import Decimal

from .exceptions import ExportError, RoundingError, UnmappedMembersError
from .models import (
    Member,
    Receipt,
    ReceiptStatus,
    SettlementRow,
    SplitwiseExpenseRequest,
    SplitwiseExpenseUser,
)

logger = logging.getLogger(__name__)

EXPORTABLE_STATUSES = (ReceiptStatus.SETTLED, ReceiptStatus.EXPORTED)


def to_dollars(cents: int) -> Decimal:
    """
    Convert integer cents to a two-place Decimal.

    Args:
        cents: Amount in minor units

    Returns:
        Amount in dollars, e.g. 1234 -> Decimal("12.34")
    """
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))


def find_unmapped_members(
    receipt: Receipt,
    settlements: list[SettlementRow],
    members: dict[str, Member],
) -> list[str]:
    """Names of the payer and settlement members lacking a Splitwise account."""
    member_ids = [receipt.payer_id] if receipt.payer_id else []
    member_ids += [row.member_id for row in settlements]

    unmapped = []
    for member_id in dict.fromkeys(member_ids):
        member = members.get(member_id)
        if member is None or member.splitwise_user_id is None:
            unmapped.append(member.name if member else "Unknown")
    return unmapped


def compute_owed_with_adjustment(
    settlements: list[SettlementRow], total_cost: int
) -> list[int]:
    """
    Owed cents per settlement row, corrected so they add up to total_cost.

    The receipt total can differ from items + tax + tip (extraction noise,
    excluded items). Splitwise rejects expenses whose owed shares do not sum
    to the cost, so the last row in settlement order absorbs the residual.

    Args:
        settlements: Persisted settlement rows, in stored order
        total_cost: Expense cost in cents

    Returns:
        Owed cents, one per settlement row

    Raises:
        RoundingError: If the correction would make an owed share negative
    """
    owed = [row.final_amount for row in settlements]
    residual = total_cost - sum(owed)

    if residual != 0 and owed:
        owed[-1] += residual
        logger.info(
            f"Applied rounding adjustment: {residual} cents "
            f"to member {settlements[-1].member_id}"
        )
        if owed[-1] < 0:
            raise RoundingError(
                f"Receipt total ({total_cost} cents) is {abs(residual)} cents "
                f"short of the settled amounts; cannot assign a negative share "
                f"to member {settlements[-1].member_id}"
            )

    assert sum(owed) == total_cost or not owed, "Adjustment failed"
    return owed


def build_splitwise_expense(
    receipt: Receipt,
    settlements: list[SettlementRow],
    members: dict[str, Member],
    currency_code: str = "USD",
    group_id: int | None = None,
    description: str = "Receipt from ReceiptSplit",
) -> SplitwiseExpenseRequest:
    """
    Build the expense the payer paid and everyone owes their settled share of.

    Args:
        receipt: The settled receipt
        settlements: Its persisted settlement rows
        members: Member lookup by ID
        currency_code: ISO currency code for the expense
        group_id: Optional Splitwise group to file the expense under
        description: Fallback description when the merchant is unknown

    Returns:
        Expense request ready for SplitwiseClient.create_expense

    Raises:
        ExportError: If the receipt is not settled or has no payer/settlements
        UnmappedMembersError: If someone has no Splitwise account linked
        RoundingError: If owed shares cannot be reconciled with the cost
    """
    if receipt.status not in EXPORTABLE_STATUSES:
        raise ExportError("Receipt must be settled before exporting.")
    if not receipt.payer_id:
        raise ExportError("No payer set for this receipt.")
    if not settlements:
        raise ExportError("No settlements found. Please compute settlement first.")

    unmapped = find_unmapped_members(receipt, settlements, members)
    if unmapped:
        raise UnmappedMembersError(unmapped)

    if receipt.total is not None:
        total_cost = receipt.total
    else:
        total_cost = sum(row.final_amount for row in settlements)
    cost = to_dollars(total_cost)

    owed = compute_owed_with_adjustment(settlements, total_cost)

    users = []
    for row, owed_cents in zip(settlements, owed):
        is_payer = row.member_id == receipt.payer_id
        user_id = members[row.member_id].splitwise_user_id
        assert user_id is not None
        users.append(
            SplitwiseExpenseUser(
                user_id=user_id,
                paid_share=cost if is_payer else Decimal("0.00"),
                owed_share=to_dollars(owed_cents),
            )
        )

    # A payer with no items still has to appear as the one who paid.
    if receipt.payer_id not in {row.member_id for row in settlements}:
        payer_user_id = members[receipt.payer_id].splitwise_user_id
        assert payer_user_id is not None
        users.append(
            SplitwiseExpenseUser(
                user_id=payer_user_id,
                paid_share=cost,
                owed_share=Decimal("0.00"),
            )
        )

    return SplitwiseExpenseRequest(
        cost=cost,
        description=receipt.merchant_name or description,
        expense_date=receipt.receipt_date or date.today(),
        currency_code=currency_code,
        group_id=group_id,
        users=users,
    )
