"""Settlement engine: turns line items and assignments into per-member totals.

Pure computation, no database or network access. The same function backs the
live preview and the persisted settlement, so both always agree.

Ordering rules (remainder absorption depends on them):
- Members are ordered by first appearance in the assignment list.
- Within an item, assignment rows keep the order they were supplied in.
- Tax/tip participants keep member order.
"""

import logging
from collections.abc import Iterable, Sequence

from .models import Assignment, LineItem, SettlementRow, SplitMode, Strategy

logger = logging.getLogger(__name__)


def round_half_up(numerator: int, denominator: int) -> int:
    """
    Divide two non-negative integers, rounding halves away from zero.

    Integer-only so large cent amounts never pick up float error.

    Args:
        numerator: Dividend (>= 0)
        denominator: Divisor (> 0)

    Returns:
        The rounded quotient
    """
    return (2 * numerator + denominator) // (2 * denominator)


def detect_mode(line_total: int, item_assignments: Sequence[Assignment]) -> SplitMode:
    """
    Infer how an item's assignment rows are encoded.

    Manual mode requires every row's denominator to equal the item total and
    the numerators to add up to it exactly. Anything else, including a single
    row, is read as ratio mode.

    Args:
        line_total: The item's total in cents
        item_assignments: All assignment rows for the item

    Returns:
        SplitMode.MANUAL or SplitMode.RATIO
    """
    if len(item_assignments) < 2:
        return SplitMode.RATIO

    all_manual = all(a.share_denominator == line_total for a in item_assignments)
    if all_manual and sum(a.share_numerator for a in item_assignments) == line_total:
        return SplitMode.MANUAL

    return SplitMode.RATIO


def allocate_item(
    line_total: int, item_assignments: Sequence[Assignment]
) -> list[tuple[str, int]]:
    """
    Split one line item across its assignment rows.

    Ratio mode floors every share except the last, which takes the exact
    remainder, so the shares always add up to line_total. A ratio item whose
    weights sum to zero yields nothing.

    Args:
        line_total: The item's total in cents
        item_assignments: The item's assignment rows, in supplied order

    Returns:
        (member_id, cents) pairs in row order
    """
    if not item_assignments:
        return []

    if detect_mode(line_total, item_assignments) is SplitMode.MANUAL:
        return [(a.member_id, a.share_numerator) for a in item_assignments]

    total_weight = sum(a.share_numerator for a in item_assignments)
    if total_weight == 0:
        return []

    shares = []
    allocated = 0
    last = len(item_assignments) - 1
    for i, a in enumerate(item_assignments):
        if i == last:
            share = line_total - allocated
        else:
            share = line_total * a.share_numerator // total_weight
            allocated += share
        shares.append((a.member_id, share))

    return shares


def allocate_amount(
    amount: int,
    participants: Sequence[tuple[str, int]],
    strategy: Strategy,
) -> dict[str, int]:
    """
    Spread a tax or tip amount over weighted participants.

    PROPORTIONAL rounds each share half-up by weight and lets the last
    participant absorb the difference. EQUAL gives everyone the floor and hands
    the leftover cents to the first participants, one each.

    Args:
        amount: Cents to distribute
        participants: (member_id, weight) pairs in allocation order
        strategy: PROPORTIONAL or EQUAL

    Returns:
        Mapping of member_id to share; empty when nothing is distributed
    """
    if not participants or amount == 0:
        return {}

    if strategy == Strategy.PROPORTIONAL:
        total_weight = sum(weight for _, weight in participants)
        if total_weight <= 0:
            return {}

        shares = {}
        allocated = 0
        last = len(participants) - 1
        for i, (member_id, weight) in enumerate(participants):
            if i == last:
                shares[member_id] = amount - allocated
            else:
                share = round_half_up(amount * weight, total_weight)
                shares[member_id] = share
                allocated += share
        return shares

    base, remainder = divmod(amount, len(participants))
    return {
        member_id: base + (1 if i < remainder else 0)
        for i, (member_id, _) in enumerate(participants)
    }


def compute_settlements(
    line_items: Iterable[LineItem],
    assignments: Sequence[Assignment],
    tax: int,
    tip: int,
    tax_strategy: Strategy,
    tip_strategy: Strategy,
) -> list[SettlementRow]:
    """
    Compute what each member owes for a receipt.

    Args:
        line_items: Valid line items of the receipt
        assignments: All assignment rows for those items, in stored order
        tax: Tax in cents
        tip: Tip in cents
        tax_strategy: How to spread tax
        tip_strategy: How to spread tip

    Returns:
        One settlement row per member found in assignments, in first-seen order
    """
    totals: dict[str, dict[str, int]] = {}
    by_item: dict[str, list[Assignment]] = {}
    for a in assignments:
        totals.setdefault(a.member_id, {"items": 0, "tax": 0, "tip": 0})
        by_item.setdefault(a.line_item_id, []).append(a)

    # Assignments pointing at unknown items simply never get allocated.
    for item in line_items:
        item_assignments = by_item.get(item.id, [])
        for member_id, share in allocate_item(item.line_total, item_assignments):
            totals[member_id]["items"] += share

    participants = [
        (member_id, entry["items"])
        for member_id, entry in totals.items()
        if entry["items"] > 0
    ]

    for key, amount, strategy in (
        ("tax", tax, tax_strategy),
        ("tip", tip, tip_strategy),
    ):
        if amount > 0 and not participants:
            logger.debug(f"No participants with items; {key} of {amount} not allocated")
        for member_id, share in allocate_amount(amount, participants, strategy).items():
            totals[member_id][key] = share

    return [
        SettlementRow(
            member_id=member_id,
            items_total=entry["items"],
            tax_share=entry["tax"],
            tip_share=entry["tip"],
            final_amount=entry["items"] + entry["tax"] + entry["tip"],
        )
        for member_id, entry in totals.items()
    ]
