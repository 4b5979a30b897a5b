"""Pydantic domain models for ReceiptSplit.

All money is integer minor units (cents) unless a field says otherwise.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, model_validator

# ============================================================================
# Enums
# ============================================================================


class Strategy(str, Enum):
    """How tax or tip is spread across participants."""

    PROPORTIONAL = "PROPORTIONAL"
    EQUAL = "EQUAL"


class SplitMode(str, Enum):
    """Encoding of an item's assignment rows, inferred from their shape."""

    RATIO = "ratio"  # numerator is a relative weight
    MANUAL = "manual"  # numerator is exact cents, denominator == line_total


class ReceiptStatus(str, Enum):
    """Lifecycle of a receipt."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    REVIEW = "REVIEW"
    SPLITTING = "SPLITTING"
    SETTLED = "SETTLED"
    EXPORTED = "EXPORTED"


# ============================================================================
# Receipt Models
# ============================================================================


class Member(BaseModel):
    """A person who can be assigned items."""

    id: str
    name: str
    splitwise_user_id: int | None = None


class LineItem(BaseModel):
    """One purchased item or charge on a receipt."""

    id: str
    line_total: int = Field(ge=0)
    name: str = ""
    quantity: int = Field(default=1, ge=1)
    unit_price: int | None = Field(default=None, ge=0)
    is_valid: bool = True
    sort_order: int = 0


class Assignment(BaseModel):
    """Links a line item to a member with a weight or an exact cents amount.

    There is no mode field: ratio vs. manual is inferred per item from the
    shape of its rows (see engine.detect_mode).
    """

    line_item_id: str
    member_id: str
    share_numerator: int = Field(default=1, ge=0)
    share_denominator: int = Field(default=1, ge=1)


class SettlementRow(BaseModel):
    """Computed per-member summary of what is owed for a receipt."""

    member_id: str
    items_total: int
    tax_share: int = 0
    tip_share: int = 0
    final_amount: int


class Receipt(BaseModel):
    """A receipt header. Line items and assignments are stored separately."""

    id: str
    merchant_name: str | None = None
    receipt_date: date | None = None
    payer_id: str | None = None
    subtotal: int | None = None
    tax: int = Field(default=0, ge=0)
    tip: int = Field(default=0, ge=0)
    total: int | None = None
    tax_strategy: Strategy = Strategy.PROPORTIONAL
    tip_strategy: Strategy = Strategy.PROPORTIONAL
    status: ReceiptStatus = ReceiptStatus.PENDING
    splitwise_expense_id: int | None = None
    created_at: datetime = Field(default_factory=datetime.now)


class ReceiptDocument(BaseModel):
    """A complete receipt as handed over by the extraction step or a user.

    Amounts in the document are cents. Assignment numerators must be >= 1,
    and every reference must resolve inside the document.
    """

    id: str | None = None
    merchant_name: str | None = None
    receipt_date: date | None = None
    payer: str | None = None
    subtotal: int | None = None
    tax: int = Field(default=0, ge=0)
    tip: int = Field(default=0, ge=0)
    total: int | None = None
    tax_strategy: Strategy = Strategy.PROPORTIONAL
    tip_strategy: Strategy = Strategy.PROPORTIONAL
    members: list[Member] = Field(default_factory=list)
    line_items: list[LineItem] = Field(default_factory=list)
    assignments: list[Assignment] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_references(self) -> "ReceiptDocument":
        member_ids = {m.id for m in self.members}
        item_ids = {item.id for item in self.line_items}

        if len(item_ids) != len(self.line_items):
            raise ValueError("line item ids must be unique within a receipt")
        if self.payer is not None and self.payer not in member_ids:
            raise ValueError(f"payer {self.payer!r} is not a listed member")

        for a in self.assignments:
            if a.share_numerator < 1:
                raise ValueError(
                    f"assignment {a.line_item_id}/{a.member_id}: "
                    "share_numerator must be >= 1"
                )
            if a.member_id not in member_ids:
                raise ValueError(
                    f"assignment references unknown member {a.member_id!r}"
                )
            if a.line_item_id not in item_ids:
                raise ValueError(
                    f"assignment references unknown line item {a.line_item_id!r}"
                )
        return self


# ============================================================================
# Splitwise Models
# ============================================================================


class SplitwiseUser(BaseModel):
    """A Splitwise user, friend or group member."""

    id: int
    first_name: str
    last_name: str | None = None
    email: str | None = None

    @property
    def display_name(self) -> str:
        """Full name as Splitwise shows it."""
        if self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.first_name


class SplitwiseGroup(BaseModel):
    """A Splitwise group."""

    id: int
    name: str
    members: list[SplitwiseUser] = Field(default_factory=list)


class SplitwiseExpenseUser(BaseModel):
    """One participant of an expense to be created (dollars, not cents)."""

    user_id: int
    paid_share: Decimal
    owed_share: Decimal


class SplitwiseExpenseRequest(BaseModel):
    """An expense ready to be posted to Splitwise."""

    cost: Decimal
    description: str
    expense_date: date
    currency_code: str = "USD"
    group_id: int | None = None
    users: list[SplitwiseExpenseUser]
