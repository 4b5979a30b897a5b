"""Service layer that composes storage, the settlement engine and Splitwise.

Preconditions are checked here, before the engine runs; the engine itself
accepts any well-typed input.
"""

import logging
import uuid
from datetime import date

from .assignments import equal_assignments, manual_assignments, ratio_assignments
from .clients.splitwise import SplitwiseClient
from .config import Settings
from .db import Database
from .engine import compute_settlements
from .exceptions import (
    AssignmentError,
    ConfigurationError,
    NoAssignmentsError,
    NoLineItemsError,
    NoPayerError,
    ReceiptExistsError,
    ReceiptNotFoundError,
    SplitwiseAPIError,
    SplitwiseAuthError,
    ValidationError,
)
from .export import build_splitwise_expense
from .models import (
    Assignment,
    LineItem,
    Member,
    Receipt,
    ReceiptDocument,
    ReceiptStatus,
    SettlementRow,
    SplitwiseExpenseRequest,
    SplitwiseGroup,
    SplitwiseUser,
    Strategy,
)

logger = logging.getLogger(__name__)

SPLITWISE_TOKEN_KEY = "splitwise_token"


class SettlementService:
    """Service for splitting receipts and exporting settlements to Splitwise."""

    def __init__(self, settings: Settings, database: Database):
        """Initialize the settlement service."""
        self.settings = settings
        self.db = database

    # ========================================================================
    # Receipts
    # ========================================================================

    def get_receipt(self, receipt_id: str) -> Receipt:
        """Load a receipt or raise ReceiptNotFoundError."""
        receipt = self.db.get_receipt(receipt_id)
        if receipt is None:
            raise ReceiptNotFoundError(receipt_id)
        return receipt

    def import_receipt(self, document: ReceiptDocument) -> Receipt:
        """
        Store a receipt document with its members, items and assignments.

        All writes happen in one transaction, so a rejected import leaves
        stored members untouched.

        Args:
            document: Validated receipt document

        Returns:
            The stored receipt header

        Raises:
            ReceiptExistsError: If a receipt with the document's ID is stored
        """
        if document.id and self.db.get_receipt(document.id) is not None:
            raise ReceiptExistsError(document.id)

        receipt = Receipt(
            id=document.id or uuid.uuid4().hex,
            merchant_name=document.merchant_name,
            receipt_date=document.receipt_date,
            payer_id=document.payer,
            subtotal=document.subtotal,
            tax=document.tax,
            tip=document.tip,
            total=document.total,
            tax_strategy=document.tax_strategy,
            tip_strategy=document.tip_strategy,
            status=(
                ReceiptStatus.SPLITTING
                if document.assignments
                else ReceiptStatus.REVIEW
            ),
        )
        line_items = [
            item.model_copy(update={"sort_order": i})
            for i, item in enumerate(document.line_items)
        ]
        self.db.save_receipt(
            receipt,
            line_items,
            members=document.members,
            assignments=document.assignments,
        )

        logger.info(
            f"Imported receipt {receipt.id} with {len(line_items)} line items "
            f"and {len(document.assignments)} assignments"
        )
        return receipt

    def update_receipt_amounts(
        self,
        receipt_id: str,
        tax: int | None = None,
        tip: int | None = None,
        total: int | None = None,
        subtotal: int | None = None,
        merchant_name: str | None = None,
        receipt_date: date | None = None,
    ) -> Receipt:
        """
        Correct header fields misread during extraction.

        Amounts are cents; fields left as None keep their stored value.

        Raises:
            ValidationError: If an amount is negative
        """
        receipt = self.get_receipt(receipt_id)
        amounts = {"tax": tax, "tip": tip, "total": total, "subtotal": subtotal}
        for field, value in amounts.items():
            if value is None:
                continue
            _check_cents(field, value)
            setattr(receipt, field, value)

        if merchant_name is not None:
            receipt.merchant_name = merchant_name
        if receipt_date is not None:
            receipt.receipt_date = receipt_date

        self.db.update_receipt(receipt)
        self._invalidate_settlement(receipt)
        return receipt

    def set_payer(self, receipt_id: str, member_id: str) -> Receipt:
        """Record who paid the receipt."""
        receipt = self.get_receipt(receipt_id)
        if self.db.get_member(member_id) is None:
            raise AssignmentError(f"Member {member_id} not found")

        receipt.payer_id = member_id
        self.db.update_receipt(receipt)
        self._invalidate_settlement(receipt)
        return receipt

    def set_strategies(
        self,
        receipt_id: str,
        tax_strategy: Strategy | None = None,
        tip_strategy: Strategy | None = None,
    ) -> Receipt:
        """Change how tax and/or tip are allocated."""
        receipt = self.get_receipt(receipt_id)
        if tax_strategy is not None:
            receipt.tax_strategy = tax_strategy
        if tip_strategy is not None:
            receipt.tip_strategy = tip_strategy
        self.db.update_receipt(receipt)
        self._invalidate_settlement(receipt)
        return receipt

    # ========================================================================
    # Line items
    # ========================================================================

    def add_line_item(
        self,
        receipt_id: str,
        name: str,
        line_total: int,
        quantity: int = 1,
        unit_price: int | None = None,
        line_item_id: str | None = None,
    ) -> LineItem:
        """
        Add an item the extraction missed, after the existing ones.

        Raises:
            ValidationError: If an amount or the quantity is out of range
            AssignmentError: If line_item_id is already used on the receipt
        """
        receipt = self.get_receipt(receipt_id)
        existing = self.db.get_line_items(receipt_id, valid_only=False)
        if line_item_id is not None and any(i.id == line_item_id for i in existing):
            raise AssignmentError(f"Line item {line_item_id} already exists")

        _check_cents("line_total", line_total)
        if unit_price is not None:
            _check_cents("unit_price", unit_price)
        if quantity < 1:
            raise ValidationError(f"quantity must be at least 1, got {quantity}")

        item = LineItem(
            id=line_item_id or uuid.uuid4().hex[:8],
            name=name,
            line_total=line_total,
            quantity=quantity,
            unit_price=unit_price,
            sort_order=max((i.sort_order for i in existing), default=-1) + 1,
        )
        self.db.add_line_item(receipt_id, item)
        self._invalidate_settlement(receipt)
        logger.info(f"Added line item {item.id} to receipt {receipt_id}")
        return item

    def update_line_item(
        self,
        receipt_id: str,
        line_item_id: str,
        name: str | None = None,
        line_total: int | None = None,
        quantity: int | None = None,
        unit_price: int | None = None,
    ) -> LineItem:
        """
        Correct a misread line item.

        Changing the total of an item split by exact amounts turns those
        amounts into weights, since they no longer add up to the new total.

        Raises:
            AssignmentError: If the item does not exist
            ValidationError: If an amount or the quantity is out of range
        """
        receipt = self.get_receipt(receipt_id)
        item = self._get_line_item(receipt_id, line_item_id)

        if name is not None:
            item.name = name
        if line_total is not None:
            _check_cents("line_total", line_total)
            item.line_total = line_total
        if unit_price is not None:
            _check_cents("unit_price", unit_price)
            item.unit_price = unit_price
        if quantity is not None:
            if quantity < 1:
                raise ValidationError(f"quantity must be at least 1, got {quantity}")
            item.quantity = quantity

        self.db.update_line_item(receipt_id, item)
        self._invalidate_settlement(receipt)
        return item

    def remove_line_item(self, receipt_id: str, line_item_id: str):
        """Delete a line item together with its assignments."""
        receipt = self.get_receipt(receipt_id)
        self._get_line_item(receipt_id, line_item_id)
        self.db.delete_line_item(receipt_id, line_item_id)
        self._invalidate_settlement(receipt)
        logger.info(f"Removed line item {line_item_id} from receipt {receipt_id}")

    def exclude_item(self, receipt_id: str, line_item_id: str, excluded: bool = True):
        """Drop a misread line item from splitting, or bring it back."""
        receipt = self.get_receipt(receipt_id)
        self._get_line_item(receipt_id, line_item_id)
        self.db.set_line_item_valid(receipt_id, line_item_id, not excluded)
        self._invalidate_settlement(receipt)

    def assign_item(
        self,
        receipt_id: str,
        line_item_id: str,
        member_ids: list[str],
        weights: list[int] | None = None,
        amounts: list[int] | None = None,
    ) -> list[Assignment]:
        """
        Replace who shares one line item.

        With neither weights nor amounts the item is split evenly. Weights give
        a ratio split; amounts give exact cents that must add up to the item
        total.

        Raises:
            AssignmentError: If the item, a member, or the split is invalid
        """
        self.get_receipt(receipt_id)
        line_item = self._get_line_item(receipt_id, line_item_id)

        if len(set(member_ids)) != len(member_ids):
            raise AssignmentError("Each member may appear only once per item")
        for member_id in member_ids:
            if self.db.get_member(member_id) is None:
                raise AssignmentError(f"Member {member_id} not found")

        if weights is not None and amounts is not None:
            raise AssignmentError("Use either weights or amounts, not both")

        values = amounts if amounts is not None else weights
        if values is not None and len(values) != len(member_ids):
            raise AssignmentError(
                f"Got {len(values)} values for {len(member_ids)} members"
            )

        if amounts is not None:
            rows = manual_assignments(line_item, dict(zip(member_ids, amounts)))
        elif weights is not None:
            rows = ratio_assignments(line_item_id, dict(zip(member_ids, weights)))
        else:
            rows = equal_assignments(line_item_id, member_ids)

        self.db.replace_item_assignments(receipt_id, line_item_id, rows)
        return rows

    # ========================================================================
    # Settlement
    # ========================================================================

    def preview(
        self,
        receipt_id: str,
        tax_strategy: Strategy | None = None,
        tip_strategy: Strategy | None = None,
    ) -> list[SettlementRow]:
        """
        Compute the settlement without saving it.

        Strategy overrides allow what-if previews; the stored strategies are
        left untouched.
        """
        receipt = self.get_receipt(receipt_id)
        return compute_settlements(
            self.db.get_line_items(receipt_id),
            self.db.get_assignments(receipt_id),
            receipt.tax,
            receipt.tip,
            tax_strategy or receipt.tax_strategy,
            tip_strategy or receipt.tip_strategy,
        )

    def settle(self, receipt_id: str) -> list[SettlementRow]:
        """
        Compute and persist the settlement, replacing any previous one.

        Raises:
            ReceiptNotFoundError: If the receipt does not exist
            NoPayerError: If no payer is set
            NoLineItemsError: If every line item is excluded
            NoAssignmentsError: If no item has been assigned
        """
        receipt = self.get_receipt(receipt_id)
        if not receipt.payer_id:
            raise NoPayerError(receipt_id)

        line_items = self.db.get_line_items(receipt_id)
        if not line_items:
            raise NoLineItemsError(receipt_id)

        assignments = self.db.get_assignments(receipt_id)
        if not assignments:
            raise NoAssignmentsError(receipt_id)

        rows = compute_settlements(
            line_items,
            assignments,
            receipt.tax,
            receipt.tip,
            receipt.tax_strategy,
            receipt.tip_strategy,
        )
        self.db.replace_settlements(receipt_id, rows)

        logger.info(
            f"Settled receipt {receipt_id}: {len(rows)} members, "
            f"total {sum(row.final_amount for row in rows)} cents"
        )
        return rows

    def get_settlement(self, receipt_id: str) -> list[SettlementRow]:
        """Return the stored settlement; empty until the receipt is settled."""
        self.get_receipt(receipt_id)
        return self.db.get_settlements(receipt_id)

    # ========================================================================
    # Splitwise
    # ========================================================================

    def get_splitwise_token(self) -> str:
        """Return the Splitwise token from settings or the local database."""
        token = self.settings.splitwise_api_key or self.db.get_config(
            SPLITWISE_TOKEN_KEY
        )
        if not token:
            raise ConfigurationError(
                "Splitwise not connected. Set SPLITWISE_API_KEY or run "
                "'receipt-split connect'."
            )
        return token

    def save_splitwise_token(self, token: str) -> SplitwiseUser:
        """Verify a token against Splitwise and store it."""
        with SplitwiseClient(token) as client:
            user = client.get_current_user()
        self.db.set_config(SPLITWISE_TOKEN_KEY, token)
        logger.info(f"Connected Splitwise account {user.id}")
        return user

    def list_friends(self) -> list[SplitwiseUser]:
        """Fetch Splitwise friends, used to link members to accounts."""
        try:
            with SplitwiseClient(self.get_splitwise_token()) as client:
                return client.get_friends()
        except SplitwiseAuthError:
            self._forget_token()
            raise

    def list_groups(self) -> list[SplitwiseGroup]:
        """Fetch the Splitwise groups the connected user belongs to."""
        try:
            with SplitwiseClient(self.get_splitwise_token()) as client:
                return client.get_groups()
        except SplitwiseAuthError:
            self._forget_token()
            raise

    def import_splitwise_group(self, group_id: int) -> list[Member]:
        """
        Create members from a Splitwise group, already linked to their accounts.

        A group member whose Splitwise account is already linked to a local
        member reuses that member. New members get the ID "sw<user id>".

        Returns:
            The local members for the group, in Splitwise order

        Raises:
            SplitwiseAPIError: If the group is not among the user's groups
        """
        group = next((g for g in self.list_groups() if g.id == group_id), None)
        if group is None:
            raise SplitwiseAPIError(
                f"Splitwise group {group_id} not found", status_code=404
            )

        members = []
        new_members = []
        for user in group.members:
            member = self.db.get_member_by_splitwise_id(user.id)
            if member is None:
                member = Member(
                    id=f"sw{user.id}",
                    name=user.display_name.strip() or "Unknown",
                    splitwise_user_id=user.id,
                )
                new_members.append(member)
            members.append(member)

        self.db.save_members(new_members)
        logger.info(
            f"Imported Splitwise group {group.name!r}: {len(new_members)} new "
            f"of {len(members)} members"
        )
        return members

    def map_member(self, member_id: str, splitwise_user_id: int | None):
        """Link a member to a Splitwise user (None unlinks)."""
        self.db.set_splitwise_user_id(member_id, splitwise_user_id)

    def build_export(
        self, receipt_id: str, group_id: int | None = None
    ) -> SplitwiseExpenseRequest:
        """Build, without sending, the Splitwise expense for a settled receipt."""
        receipt = self.get_receipt(receipt_id)
        members = {member.id: member for member in self.db.get_members()}

        return build_splitwise_expense(
            receipt=receipt,
            settlements=self.db.get_settlements(receipt_id),
            members=members,
            currency_code=self.settings.currency_code,
            group_id=group_id or self.settings.splitwise_group_id,
            description=self.settings.default_description,
        )

    def export_to_splitwise(self, receipt_id: str, group_id: int | None = None) -> int:
        """
        Create the Splitwise expense and mark the receipt exported.

        Returns:
            The Splitwise expense ID
        """
        expense = self.build_export(receipt_id, group_id)

        try:
            with SplitwiseClient(self.get_splitwise_token()) as client:
                expense_id = client.create_expense(expense)
        except SplitwiseAuthError:
            self._forget_token()
            raise

        self.db.record_export(receipt_id, expense_id)
        logger.info(f"Exported receipt {receipt_id} as Splitwise expense {expense_id}")
        return expense_id

    def _forget_token(self):
        """Drop a token Splitwise no longer accepts."""
        logger.warning("Splitwise rejected the token; clearing stored token")
        self.db.delete_config(SPLITWISE_TOKEN_KEY)

    def _get_line_item(self, receipt_id: str, line_item_id: str) -> LineItem:
        for item in self.db.get_line_items(receipt_id, valid_only=False):
            if item.id == line_item_id:
                return item
        raise AssignmentError(f"Line item {line_item_id} not found")

    def _invalidate_settlement(self, receipt: Receipt):
        """Send a settled receipt back to splitting after an edit."""
        if receipt.status not in (ReceiptStatus.SETTLED, ReceiptStatus.EXPORTED):
            return
        logger.info(f"Receipt {receipt.id} changed; settle it again before export")
        self.db.set_receipt_status(receipt.id, ReceiptStatus.SPLITTING)
        receipt.status = ReceiptStatus.SPLITTING


def _check_cents(field: str, value: int):
    if value < 0:
        raise ValidationError(f"{field} must be >= 0 cents, got {value}")
