"""Build assignment rows in the two encodings the engine understands."""

from collections.abc import Sequence

from .engine import allocate_item, detect_mode
from .exceptions import AssignmentError
from .models import Assignment, LineItem, SplitMode


def ratio_assignments(line_item_id: str, weights: dict[str, int]) -> list[Assignment]:
    """
    Encode a weighted split, e.g. {"ana": 2, "ben": 1} for a 2:1 split.

    The denominator is the weight sum. It is informational only; the engine
    recomputes it from the rows.

    Raises:
        AssignmentError: If no members are given or a weight is below 1
    """
    if not weights:
        raise AssignmentError(f"Item {line_item_id} needs at least one member")

    for member_id, weight in weights.items():
        if weight < 1:
            raise AssignmentError(
                f"Weight for {member_id} on item {line_item_id} must be >= 1, "
                f"got {weight}"
            )

    denominator = sum(weights.values())
    return [
        Assignment(
            line_item_id=line_item_id,
            member_id=member_id,
            share_numerator=weight,
            share_denominator=denominator,
        )
        for member_id, weight in weights.items()
    ]


def equal_assignments(line_item_id: str, member_ids: Sequence[str]) -> list[Assignment]:
    """Encode an even split: every member gets weight 1."""
    return ratio_assignments(line_item_id, {member_id: 1 for member_id in member_ids})


def manual_assignments(
    line_item: LineItem, amounts: dict[str, int]
) -> list[Assignment]:
    """
    Encode exact per-member cents for an item.

    Every row carries the item total as denominator, and the amounts must add
    up to that total, otherwise the engine would read the rows as weights.

    Raises:
        AssignmentError: If an amount is below 1 cent or the sum is off
    """
    if not amounts:
        raise AssignmentError(f"Item {line_item.id} needs at least one member")

    for member_id, cents in amounts.items():
        if cents < 1:
            raise AssignmentError(
                f"Amount for {member_id} on item {line_item.id} must be at least "
                f"1 cent, got {cents}"
            )

    entered = sum(amounts.values())
    if entered != line_item.line_total:
        raise AssignmentError(
            f"Manual amounts for item {line_item.id} add up to {entered}, "
            f"expected {line_item.line_total}"
        )

    return [
        Assignment(
            line_item_id=line_item.id,
            member_id=member_id,
            share_numerator=cents,
            share_denominator=line_item.line_total,
        )
        for member_id, cents in amounts.items()
    ]


def describe_split(
    line_item: LineItem, item_assignments: Sequence[Assignment]
) -> tuple[SplitMode, list[tuple[str, int]]]:
    """Return the detected mode and per-member cents for one item."""
    return (
        detect_mode(line_item.line_total, item_assignments),
        allocate_item(line_item.line_total, item_assignments),
    )
