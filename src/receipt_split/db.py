"""SQLite database operations for ReceiptSplit."""

import sqlite3
from datetime import date, datetime
from pathlib import Path

from .models import (
    Assignment,
    LineItem,
    Member,
    Receipt,
    ReceiptStatus,
    SettlementRow,
    Strategy,
)


class Database:
    """SQLite database manager."""

    def __init__(self, db_path: Path):
        """Initialize database connection."""
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path))
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema."""
        cursor = self.conn.cursor()

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS members (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                splitwise_user_id INTEGER,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS receipts (
                id TEXT PRIMARY KEY,
                merchant_name TEXT,
                receipt_date DATE,
                payer_id TEXT REFERENCES members(id),
                subtotal INTEGER,
                tax INTEGER NOT NULL DEFAULT 0,
                tip INTEGER NOT NULL DEFAULT 0,
                total INTEGER,
                tax_strategy TEXT NOT NULL DEFAULT 'PROPORTIONAL',
                tip_strategy TEXT NOT NULL DEFAULT 'PROPORTIONAL',
                status TEXT NOT NULL DEFAULT 'PENDING',
                splitwise_expense_id INTEGER,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS line_items (
                receipt_id TEXT NOT NULL REFERENCES receipts(id) ON DELETE CASCADE,
                id TEXT NOT NULL,
                name TEXT NOT NULL DEFAULT '',
                quantity INTEGER NOT NULL DEFAULT 1,
                unit_price INTEGER,
                line_total INTEGER NOT NULL CHECK (line_total >= 0),
                is_valid INTEGER NOT NULL DEFAULT 1,
                sort_order INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (receipt_id, id)
            )
        """
        )

        # seq preserves insertion order, which the settlement engine relies on
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS assignments (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                receipt_id TEXT NOT NULL REFERENCES receipts(id) ON DELETE CASCADE,
                line_item_id TEXT NOT NULL,
                member_id TEXT NOT NULL REFERENCES members(id),
                share_numerator INTEGER NOT NULL,
                share_denominator INTEGER NOT NULL,
                FOREIGN KEY (receipt_id, line_item_id)
                    REFERENCES line_items(receipt_id, id) ON DELETE CASCADE
            )
        """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS settlements (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                receipt_id TEXT NOT NULL REFERENCES receipts(id) ON DELETE CASCADE,
                member_id TEXT NOT NULL REFERENCES members(id),
                items_total INTEGER NOT NULL,
                tax_share INTEGER NOT NULL,
                tip_share INTEGER NOT NULL,
                final_amount INTEGER NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS config (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

        self.conn.commit()

    def close(self):
        """Close database connection."""
        self.conn.close()

    # ========================================================================
    # Config operations
    # ========================================================================

    def get_config(self, key: str) -> str | None:
        """Get a config value by key."""
        cursor = self.conn.cursor()
        cursor.execute("SELECT value FROM config WHERE key = ?", (key,))
        row = cursor.fetchone()
        return str(row["value"]) if row else None

    def set_config(self, key: str, value: str):
        """Set a config value."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            INSERT INTO config (key, value, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            (key, value, datetime.now().isoformat()),
        )
        self.conn.commit()

    def delete_config(self, key: str):
        """Remove a config value."""
        self.conn.execute("DELETE FROM config WHERE key = ?", (key,))
        self.conn.commit()

    # ========================================================================
    # Member operations
    # ========================================================================

    def save_member(self, member: Member):
        """Insert or update a member."""
        with self.conn:
            self._upsert_member(member)

    def save_members(self, members: list[Member]):
        """Insert or update several members in one transaction."""
        with self.conn:
            for member in members:
                self._upsert_member(member)

    def _upsert_member(self, member: Member):
        self.conn.execute(
            """
            INSERT INTO members (id, name, splitwise_user_id)
            VALUES (?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                splitwise_user_id = COALESCE(
                    excluded.splitwise_user_id, members.splitwise_user_id
                )
            """,
            (member.id, member.name, member.splitwise_user_id),
        )

    def get_member(self, member_id: str) -> Member | None:
        """Get a member by ID."""
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT id, name, splitwise_user_id FROM members WHERE id = ?",
            (member_id,),
        )
        row = cursor.fetchone()
        return _row_to_member(row) if row else None

    def get_member_by_splitwise_id(self, splitwise_user_id: int) -> Member | None:
        """Get the member linked to a Splitwise account, if any."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT id, name, splitwise_user_id FROM members
            WHERE splitwise_user_id = ?
            ORDER BY id
            """,
            (splitwise_user_id,),
        )
        row = cursor.fetchone()
        return _row_to_member(row) if row else None

    def get_members(self) -> list[Member]:
        """Get all members ordered by name."""
        cursor = self.conn.cursor()
        cursor.execute("SELECT id, name, splitwise_user_id FROM members ORDER BY name")
        return [_row_to_member(row) for row in cursor.fetchall()]

    def set_splitwise_user_id(self, member_id: str, splitwise_user_id: int | None):
        """Link (or unlink) a member to a Splitwise account."""
        cursor = self.conn.cursor()
        cursor.execute(
            "UPDATE members SET splitwise_user_id = ? WHERE id = ?",
            (splitwise_user_id, member_id),
        )
        self.conn.commit()
        if cursor.rowcount == 0:
            raise KeyError(f"Member {member_id} not found")

    # ========================================================================
    # Receipt operations
    # ========================================================================

    def save_receipt(
        self,
        receipt: Receipt,
        line_items: list[LineItem],
        members: list[Member] | None = None,
        assignments: list[Assignment] | None = None,
    ):
        """
        Insert a receipt with its line items, members and assignments.

        Everything is written in one transaction: if any insert fails (for
        example a duplicate receipt ID) no member, item or assignment change
        is kept.
        """
        with self.conn:
            for member in members or []:
                self._upsert_member(member)
            self.conn.execute(
                """
                INSERT INTO receipts (
                    id, merchant_name, receipt_date, payer_id, subtotal, tax,
                    tip, total, tax_strategy, tip_strategy, status,
                    splitwise_expense_id, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    receipt.id,
                    receipt.merchant_name,
                    receipt.receipt_date.isoformat() if receipt.receipt_date else None,
                    receipt.payer_id,
                    receipt.subtotal,
                    receipt.tax,
                    receipt.tip,
                    receipt.total,
                    receipt.tax_strategy.value,
                    receipt.tip_strategy.value,
                    receipt.status.value,
                    receipt.splitwise_expense_id,
                    receipt.created_at.isoformat(),
                ),
            )
            for item in line_items:
                self._insert_line_item(receipt.id, item)
            self._insert_assignments(receipt.id, assignments or [])

    def update_receipt(self, receipt: Receipt):
        """Persist editable header fields (payer, amounts, strategies)."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            UPDATE receipts SET
                merchant_name = ?, receipt_date = ?, payer_id = ?, subtotal = ?,
                tax = ?, tip = ?, total = ?, tax_strategy = ?, tip_strategy = ?
            WHERE id = ?
            """,
            (
                receipt.merchant_name,
                receipt.receipt_date.isoformat() if receipt.receipt_date else None,
                receipt.payer_id,
                receipt.subtotal,
                receipt.tax,
                receipt.tip,
                receipt.total,
                receipt.tax_strategy.value,
                receipt.tip_strategy.value,
                receipt.id,
            ),
        )
        self.conn.commit()

    def get_receipt(self, receipt_id: str) -> Receipt | None:
        """Get a receipt header by ID."""
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM receipts WHERE id = ?", (receipt_id,))
        row = cursor.fetchone()
        return _row_to_receipt(row) if row else None

    def list_receipts(self) -> list[Receipt]:
        """Get all receipts, newest first."""
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM receipts ORDER BY created_at DESC")
        return [_row_to_receipt(row) for row in cursor.fetchall()]

    def set_receipt_status(self, receipt_id: str, status: ReceiptStatus):
        """Move a receipt to a new lifecycle status."""
        self.conn.execute(
            "UPDATE receipts SET status = ? WHERE id = ?", (status.value, receipt_id)
        )
        self.conn.commit()

    def record_export(self, receipt_id: str, splitwise_expense_id: int):
        """Mark a receipt as exported and remember the Splitwise expense."""
        self.conn.execute(
            """
            UPDATE receipts SET status = ?, splitwise_expense_id = ?
            WHERE id = ?
            """,
            (ReceiptStatus.EXPORTED.value, splitwise_expense_id, receipt_id),
        )
        self.conn.commit()

    # ========================================================================
    # Line item operations
    # ========================================================================

    def get_line_items(
        self, receipt_id: str, valid_only: bool = True
    ) -> list[LineItem]:
        """Get a receipt's line items in display order."""
        query = """
            SELECT id, name, quantity, unit_price, line_total, is_valid, sort_order
            FROM line_items
            WHERE receipt_id = ?
        """
        if valid_only:
            query += " AND is_valid = 1"
        query += " ORDER BY sort_order, rowid"

        cursor = self.conn.cursor()
        cursor.execute(query, (receipt_id,))
        return [
            LineItem(
                id=row["id"],
                name=row["name"],
                quantity=row["quantity"],
                unit_price=row["unit_price"],
                line_total=row["line_total"],
                is_valid=bool(row["is_valid"]),
                sort_order=row["sort_order"],
            )
            for row in cursor.fetchall()
        ]

    def set_line_item_valid(self, receipt_id: str, line_item_id: str, is_valid: bool):
        """Include or exclude a line item from splitting."""
        cursor = self.conn.cursor()
        cursor.execute(
            "UPDATE line_items SET is_valid = ? WHERE receipt_id = ? AND id = ?",
            (int(is_valid), receipt_id, line_item_id),
        )
        self.conn.commit()
        if cursor.rowcount == 0:
            raise KeyError(f"Line item {line_item_id} not found on {receipt_id}")

    def add_line_item(self, receipt_id: str, item: LineItem):
        """Insert a single line item."""
        with self.conn:
            self._insert_line_item(receipt_id, item)

    def update_line_item(self, receipt_id: str, item: LineItem):
        """Persist an item's name, quantity and amounts."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            UPDATE line_items SET
                name = ?, quantity = ?, unit_price = ?, line_total = ?
            WHERE receipt_id = ? AND id = ?
            """,
            (
                item.name,
                item.quantity,
                item.unit_price,
                item.line_total,
                receipt_id,
                item.id,
            ),
        )
        self.conn.commit()
        if cursor.rowcount == 0:
            raise KeyError(f"Line item {item.id} not found on {receipt_id}")

    def delete_line_item(self, receipt_id: str, line_item_id: str):
        """Delete a line item; its assignments go with it."""
        cursor = self.conn.cursor()
        cursor.execute(
            "DELETE FROM line_items WHERE receipt_id = ? AND id = ?",
            (receipt_id, line_item_id),
        )
        self.conn.commit()
        if cursor.rowcount == 0:
            raise KeyError(f"Line item {line_item_id} not found on {receipt_id}")

    def _insert_line_item(self, receipt_id: str, item: LineItem):
        self.conn.execute(
            """
            INSERT INTO line_items (
                receipt_id, id, name, quantity, unit_price, line_total,
                is_valid, sort_order
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                receipt_id,
                item.id,
                item.name,
                item.quantity,
                item.unit_price,
                item.line_total,
                int(item.is_valid),
                item.sort_order,
            ),
        )

    # ========================================================================
    # Assignment operations
    # ========================================================================

    def get_assignments(self, receipt_id: str) -> list[Assignment]:
        """Get all assignment rows of a receipt in insertion order."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT line_item_id, member_id, share_numerator, share_denominator
            FROM assignments
            WHERE receipt_id = ?
            ORDER BY seq
            """,
            (receipt_id,),
        )
        return [
            Assignment(
                line_item_id=row["line_item_id"],
                member_id=row["member_id"],
                share_numerator=row["share_numerator"],
                share_denominator=row["share_denominator"],
            )
            for row in cursor.fetchall()
        ]

    def replace_assignments(self, receipt_id: str, assignments: list[Assignment]):
        """Replace every assignment of a receipt in one transaction."""
        with self.conn:
            self.conn.execute(
                "DELETE FROM assignments WHERE receipt_id = ?", (receipt_id,)
            )
            self._insert_assignments(receipt_id, assignments)
            self.conn.execute(
                "UPDATE receipts SET status = ? WHERE id = ?",
                (ReceiptStatus.SPLITTING.value, receipt_id),
            )

    def replace_item_assignments(
        self, receipt_id: str, line_item_id: str, assignments: list[Assignment]
    ):
        """Replace the assignment rows of a single line item."""
        with self.conn:
            self.conn.execute(
                "DELETE FROM assignments WHERE receipt_id = ? AND line_item_id = ?",
                (receipt_id, line_item_id),
            )
            self._insert_assignments(receipt_id, assignments)
            self.conn.execute(
                "UPDATE receipts SET status = ? WHERE id = ?",
                (ReceiptStatus.SPLITTING.value, receipt_id),
            )

    def _insert_assignments(self, receipt_id: str, assignments: list[Assignment]):
        self.conn.executemany(
            """
            INSERT INTO assignments (
                receipt_id, line_item_id, member_id, share_numerator,
                share_denominator
            ) VALUES (?, ?, ?, ?, ?)
            """,
            [
                (
                    receipt_id,
                    a.line_item_id,
                    a.member_id,
                    a.share_numerator,
                    a.share_denominator,
                )
                for a in assignments
            ],
        )

    # ========================================================================
    # Settlement operations
    # ========================================================================

    def replace_settlements(self, receipt_id: str, rows: list[SettlementRow]):
        """
        Swap in a freshly computed settlement and mark the receipt settled.

        Runs as one transaction so readers never see a partial settlement.
        """
        now = datetime.now().isoformat()
        with self.conn:
            self.conn.execute(
                "DELETE FROM settlements WHERE receipt_id = ?", (receipt_id,)
            )
            self.conn.executemany(
                """
                INSERT INTO settlements (
                    receipt_id, member_id, items_total, tax_share, tip_share,
                    final_amount, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        receipt_id,
                        row.member_id,
                        row.items_total,
                        row.tax_share,
                        row.tip_share,
                        row.final_amount,
                        now,
                    )
                    for row in rows
                ],
            )
            self.conn.execute(
                "UPDATE receipts SET status = ? WHERE id = ?",
                (ReceiptStatus.SETTLED.value, receipt_id),
            )

    def get_settlements(self, receipt_id: str) -> list[SettlementRow]:
        """Get the persisted settlement of a receipt."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT member_id, items_total, tax_share, tip_share, final_amount
            FROM settlements
            WHERE receipt_id = ?
            ORDER BY seq
            """,
            (receipt_id,),
        )
        return [
            SettlementRow(
                member_id=row["member_id"],
                items_total=row["items_total"],
                tax_share=row["tax_share"],
                tip_share=row["tip_share"],
                final_amount=row["final_amount"],
            )
            for row in cursor.fetchall()
        ]


def _row_to_member(row: sqlite3.Row) -> Member:
    return Member(
        id=row["id"],
        name=row["name"],
        splitwise_user_id=row["splitwise_user_id"],
    )


def _row_to_receipt(row: sqlite3.Row) -> Receipt:
    return Receipt(
        id=row["id"],
        merchant_name=row["merchant_name"],
        receipt_date=(
            date.fromisoformat(row["receipt_date"]) if row["receipt_date"] else None
        ),
        payer_id=row["payer_id"],
        subtotal=row["subtotal"],
        tax=row["tax"],
        tip=row["tip"],
        total=row["total"],
        tax_strategy=Strategy(row["tax_strategy"]),
        tip_strategy=Strategy(row["tip_strategy"]),
        status=ReceiptStatus(row["status"]),
        splitwise_expense_id=row["splitwise_expense_id"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )
