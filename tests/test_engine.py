"""Tests for the settlement engine."""

from receipt_split.engine import (
    allocate_amount,
    allocate_item,
    compute_settlements,
    detect_mode,
    round_half_up,
)
from receipt_split.models import Assignment, LineItem, SplitMode, Strategy

PROPORTIONAL = Strategy.PROPORTIONAL
EQUAL = Strategy.EQUAL


def make_item(id: str, total: int) -> LineItem:
    """Create a line item for testing."""
    return LineItem(id=id, line_total=total)


def make_share(
    item_id: str, member_id: str, numerator: int = 1, denominator: int = 1
) -> Assignment:
    """Create an assignment row for testing."""
    return Assignment(
        line_item_id=item_id,
        member_id=member_id,
        share_numerator=numerator,
        share_denominator=denominator,
    )


def by_member(rows):
    return {row.member_id: row for row in rows}


def dinner_scenario():
    """Three items: A alone on #1, B+C on #2, everyone on #3."""
    items = [make_item("i1", 1800), make_item("i2", 1200), make_item("i3", 800)]
    assignments = [
        make_share("i1", "A"),
        make_share("i2", "B", 1, 2),
        make_share("i2", "C", 1, 2),
        make_share("i3", "A", 1, 3),
        make_share("i3", "B", 1, 3),
        make_share("i3", "C", 1, 3),
    ]
    return items, assignments


class TestRoundHalfUp:
    """Integer rounding used for proportional tax/tip shares."""

    def test_exact_division(self):
        assert round_half_up(10, 2) == 5

    def test_rounds_down_below_half(self):
        assert round_half_up(7, 3) == 2  # 2.33

    def test_rounds_up_above_half(self):
        assert round_half_up(8, 3) == 3  # 2.67

    def test_half_goes_away_from_zero(self):
        """2.5 -> 3 and 0.5 -> 1, not banker's rounding."""
        assert round_half_up(5, 2) == 3
        assert round_half_up(1, 2) == 1

    def test_zero(self):
        assert round_half_up(0, 7) == 0


class TestDetectMode:
    """Mode sniffing from the shape of an item's assignment rows."""

    def test_single_row_is_ratio(self):
        """A lone assignee is ratio even if the row looks manual."""
        rows = [make_share("i1", "A", 999, 999)]
        assert detect_mode(999, rows) is SplitMode.RATIO

    def test_manual_when_denominators_match_and_sum_exact(self):
        rows = [make_share("i1", "A", 500, 999), make_share("i1", "B", 499, 999)]
        assert detect_mode(999, rows) is SplitMode.MANUAL

    def test_ratio_when_numerators_do_not_sum_to_total(self):
        rows = [make_share("i1", "A", 3, 10), make_share("i1", "B", 3, 10)]
        assert detect_mode(10, rows) is SplitMode.RATIO

    def test_ratio_when_any_denominator_differs(self):
        rows = [make_share("i1", "A", 5, 10), make_share("i1", "B", 5, 2)]
        assert detect_mode(10, rows) is SplitMode.RATIO

    def test_typical_ratio_rows(self):
        rows = [make_share("i1", "A", 2, 3), make_share("i1", "B", 1, 3)]
        assert detect_mode(1000, rows) is SplitMode.RATIO


class TestItemAllocation:
    """Per-item allocation in ratio and manual mode."""

    def test_ratio_last_row_absorbs_remainder(self):
        rows = [
            make_share("i3", "A", 1, 3),
            make_share("i3", "B", 1, 3),
            make_share("i3", "C", 1, 3),
        ]
        assert allocate_item(800, rows) == [("A", 266), ("B", 266), ("C", 268)]

    def test_remainder_follows_row_order(self):
        """Reordering rows moves the remainder to the new last row."""
        rows = [
            make_share("i3", "C", 1, 3),
            make_share("i3", "A", 1, 3),
            make_share("i3", "B", 1, 3),
        ]
        assert allocate_item(800, rows) == [("C", 266), ("A", 266), ("B", 268)]

    def test_uneven_weights(self):
        rows = [make_share("i1", "A", 2, 3), make_share("i1", "B", 1, 3)]
        assert allocate_item(1000, rows) == [("A", 666), ("B", 334)]

    def test_stored_denominator_is_ignored(self):
        """The weight sum is recomputed from the rows."""
        rows = [make_share("i1", "A", 1, 5), make_share("i1", "B", 1, 5)]
        assert allocate_item(1000, rows) == [("A", 500), ("B", 500)]

    def test_manual_amounts_pass_through(self):
        rows = [make_share("i1", "A", 500, 999), make_share("i1", "B", 499, 999)]
        assert allocate_item(999, rows) == [("A", 500), ("B", 499)]

    def test_zero_total_weight_is_skipped(self):
        rows = [make_share("i1", "A", 0, 1), make_share("i1", "B", 0, 1)]
        assert allocate_item(1000, rows) == []

    def test_no_rows(self):
        assert allocate_item(1000, []) == []

    def test_ratio_conserves_item_total(self):
        """Shares always add up to the line total, whatever the weights."""
        weights = [3, 5, 7, 11]
        rows = [make_share("i1", f"m{w}", w, sum(weights)) for w in weights]
        for total in (0, 1, 7, 99, 1001, 12345, 999_999):
            shares = allocate_item(total, rows)
            assert sum(cents for _, cents in shares) == total

    def test_weights_summing_to_total_read_the_same_either_way(self):
        """Ratio rows that happen to look manual still give the same cents."""
        rows = [make_share("i1", "A", 2, 3), make_share("i1", "B", 1, 3)]
        assert detect_mode(3, rows) is SplitMode.MANUAL
        assert allocate_item(3, rows) == [("A", 2), ("B", 1)]


class TestAllocateAmount:
    """Tax/tip distribution strategies."""

    def test_equal_split_extra_cent_goes_first(self):
        participants = [("A", 1000), ("B", 500), ("C", 10)]
        shares = allocate_amount(100, participants, EQUAL)
        assert shares == {"A": 34, "B": 33, "C": 33}

    def test_equal_split_two_leftover_cents(self):
        participants = [("A", 1), ("B", 1), ("C", 1)]
        assert allocate_amount(101, participants, EQUAL) == {"A": 34, "B": 34, "C": 33}

    def test_equal_ignores_weights(self):
        participants = [("A", 9000), ("B", 1)]
        assert allocate_amount(200, participants, EQUAL) == {"A": 100, "B": 100}

    def test_proportional_last_absorbs_remainder(self):
        participants = [("A", 1), ("B", 1), ("C", 1)]
        shares = allocate_amount(100, participants, PROPORTIONAL)
        assert shares == {"A": 33, "B": 33, "C": 34}

    def test_proportional_rounds_half_up(self):
        participants = [("A", 1), ("B", 1)]
        assert allocate_amount(5, participants, PROPORTIONAL) == {"A": 3, "B": 2}

    def test_proportional_by_weight(self):
        participants = [("A", 3000), ("B", 1000)]
        assert allocate_amount(400, participants, PROPORTIONAL) == {"A": 300, "B": 100}

    def test_proportional_last_share_can_go_negative(self):
        # Every half-cent rounds up, so the last participant absorbs the overshoot.
        participants = [("A", 1), ("B", 1), ("C", 1), ("D", 1)]
        shares = allocate_amount(2, participants, PROPORTIONAL)
        assert shares == {"A": 1, "B": 1, "C": 1, "D": -1}
        assert sum(shares.values()) == 2

    def test_negative_tax_share_reduces_final_amount(self):
        items = [LineItem(id=f"i{n}", line_total=100) for n in range(4)]
        assignments = [
            Assignment(line_item_id=f"i{n}", member_id=member)
            for n, member in enumerate("ABCD")
        ]

        rows = compute_settlements(items, assignments, 2, 0, PROPORTIONAL, PROPORTIONAL)

        assert [row.tax_share for row in rows] == [1, 1, 1, -1]
        assert rows[-1].final_amount == 99

    def test_zero_amount(self):
        assert allocate_amount(0, [("A", 100)], PROPORTIONAL) == {}

    def test_no_participants(self):
        assert allocate_amount(500, [], EQUAL) == {}
        assert allocate_amount(500, [], PROPORTIONAL) == {}

    def test_accepts_plain_strategy_strings(self):
        participants = [("A", 1), ("B", 3)]
        shares = allocate_amount(100, participants, "PROPORTIONAL")
        assert shares == {"A": 25, "B": 75}


class TestComputeSettlements:
    """End-to-end behaviour of compute_settlements."""

    def test_dinner_scenario(self):
        items, assignments = dinner_scenario()

        rows = compute_settlements(items, assignments, 380, 0, PROPORTIONAL, EQUAL)
        result = by_member(rows)

        assert [row.member_id for row in rows] == ["A", "B", "C"]
        assert result["A"].items_total == 2066
        assert result["B"].items_total == 866
        assert result["C"].items_total == 868
        assert result["A"].tax_share == 207
        assert result["B"].tax_share == 87
        assert result["C"].tax_share == 86
        assert sum(row.items_total for row in rows) == 3800
        assert sum(row.tax_share for row in rows) == 380
        assert all(row.tip_share == 0 for row in rows)

    def test_final_amount_is_sum_of_parts(self):
        items, assignments = dinner_scenario()

        rows = compute_settlements(items, assignments, 380, 450, PROPORTIONAL, EQUAL)

        for row in rows:
            assert row.final_amount == row.items_total + row.tax_share + row.tip_share
        assert sum(row.final_amount for row in rows) == 3800 + 380 + 450

    def test_tip_strategy_is_independent_of_tax(self):
        items, assignments = dinner_scenario()

        rows = compute_settlements(items, assignments, 380, 100, PROPORTIONAL, EQUAL)
        result = by_member(rows)

        assert [result[m].tip_share for m in "ABC"] == [34, 33, 33]
        assert [result[m].tax_share for m in "ABC"] == [207, 87, 86]

    def test_same_input_gives_same_output(self):
        items, assignments = dinner_scenario()

        first = compute_settlements(items, assignments, 380, 55, EQUAL, PROPORTIONAL)
        second = compute_settlements(items, assignments, 380, 55, EQUAL, PROPORTIONAL)

        assert first == second

    def test_rows_follow_first_seen_member_order(self):
        items, assignments = dinner_scenario()
        reordered = [assignments[2]] + assignments[:2] + assignments[3:]

        rows = compute_settlements(items, reordered, 0, 0, EQUAL, EQUAL)

        assert [row.member_id for row in rows] == ["C", "A", "B"]

    def test_manual_item_is_exact(self):
        items = [make_item("wine", 999)]
        assignments = [
            make_share("wine", "A", 500, 999),
            make_share("wine", "B", 499, 999),
        ]

        result = by_member(
            compute_settlements(items, assignments, 0, 0, PROPORTIONAL, PROPORTIONAL)
        )

        assert result["A"].items_total == 500
        assert result["B"].items_total == 499

    def test_zero_weight_item_contributes_nothing(self):
        items = [make_item("i1", 1000), make_item("i2", 500)]
        assignments = [
            make_share("i1", "A", 0),
            make_share("i1", "B", 0),
            make_share("i2", "A"),
        ]

        result = by_member(compute_settlements(items, assignments, 0, 0, EQUAL, EQUAL))

        assert result["A"].items_total == 500
        assert result["B"].items_total == 0

    def test_member_without_items_owes_no_tax_or_tip(self):
        """B is only on a free item: row present, all zeros, no dilution."""
        items = [make_item("meal", 1000), make_item("water", 0)]
        assignments = [make_share("meal", "A"), make_share("water", "B")]

        rows = compute_settlements(items, assignments, 100, 50, EQUAL, EQUAL)
        result = by_member(rows)

        assert result["B"].items_total == 0
        assert result["B"].tax_share == 0
        assert result["B"].tip_share == 0
        assert result["B"].final_amount == 0
        assert result["A"].tax_share == 100
        assert result["A"].tip_share == 50

    def test_tax_dropped_when_nobody_has_items(self):
        items = [make_item("free", 0)]
        assignments = [make_share("free", "A"), make_share("free", "B")]

        rows = compute_settlements(items, assignments, 500, 200, PROPORTIONAL, EQUAL)

        assert all(row.final_amount == 0 for row in rows)
        assert len(rows) == 2

    def test_unknown_line_item_contributes_zero(self):
        items = [make_item("i1", 1000)]
        assignments = [make_share("i1", "A"), make_share("deleted", "B")]

        rows = compute_settlements(items, assignments, 100, 0, PROPORTIONAL, EQUAL)
        result = by_member(rows)

        assert result["A"].items_total == 1000
        assert result["A"].tax_share == 100
        assert result["B"].final_amount == 0

    def test_unassigned_item_is_not_counted(self):
        items = [make_item("i1", 1000), make_item("i2", 2500)]
        assignments = [make_share("i1", "A")]

        rows = compute_settlements(items, assignments, 0, 0, EQUAL, EQUAL)

        assert sum(row.items_total for row in rows) == 1000

    def test_empty_input(self):
        assert compute_settlements([], [], 100, 100, EQUAL, PROPORTIONAL) == []

    def test_mixed_modes_on_one_receipt(self):
        items = [make_item("wine", 999), make_item("pizza", 1000)]
        assignments = [
            make_share("wine", "A", 500, 999),
            make_share("wine", "B", 499, 999),
            make_share("pizza", "A", 1, 3),
            make_share("pizza", "B", 2, 3),
        ]

        rows = compute_settlements(items, assignments, 0, 0, EQUAL, EQUAL)
        result = by_member(rows)

        assert result["A"].items_total == 500 + 333
        assert result["B"].items_total == 499 + 667
