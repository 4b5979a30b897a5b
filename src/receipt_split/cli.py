"""CLI for ReceiptSplit using Typer."""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from .assignments import describe_split
from .config import load_settings
from .db import Database
from .models import (
    Member,
    Receipt,
    ReceiptDocument,
    ReceiptStatus,
    SettlementRow,
    Strategy,
)
from .service import SettlementService
from .ui import confirm_export, select_friend_interactive

app = typer.Typer(
    name="receipt-split",
    help="Split shared receipts to the cent and export them to Splitwise",
)

console = Console()


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


@contextmanager
def open_service(verbose: bool) -> Iterator[SettlementService]:
    """Open settings and database for one command, reporting errors uniformly."""
    setup_logging(verbose)
    db = None
    try:
        settings = load_settings()
        db = Database(settings.database_path)
        yield SettlementService(settings, db)
    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if db is not None:
            db.close()


def parse_int_list(value: str | None, option: str) -> list[int] | None:
    """Parse '2,1' style option values."""
    if value is None:
        return None
    try:
        return [int(part) for part in value.split(",") if part.strip()]
    except ValueError:
        raise typer.BadParameter(
            f"{option} expects comma-separated integers, got {value!r}"
        ) from None


def format_money(cents: int, use_color: bool = True) -> str:
    """Format integer cents as dollars, e.g. 1234 -> $12.34."""
    formatted = f"${cents / 100:,.2f}"
    if use_color and cents < 0:
        return f"[red]{formatted}[/red]"
    return formatted


def member_name(members: dict[str, Member], member_id: str) -> str:
    member = members.get(member_id)
    return member.name if member else member_id


def display_settlement(
    receipt: Receipt,
    rows: list[SettlementRow],
    members: dict[str, Member],
    title: str = "Settlement",
):
    """Display settlement rows in a table with totals."""
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Member", style="cyan")
    table.add_column("Items", justify="right")
    table.add_column("Tax", justify="right")
    table.add_column("Tip", justify="right")
    table.add_column("Owes", justify="right", style="bold")

    for row in rows:
        name = member_name(members, row.member_id)
        if row.member_id == receipt.payer_id:
            name += " [dim](paid)[/dim]"
        table.add_row(
            name,
            format_money(row.items_total),
            format_money(row.tax_share),
            format_money(row.tip_share),
            format_money(row.final_amount),
        )

    total = sum(row.final_amount for row in rows)
    table.add_section()
    table.add_row(
        "[bold]Total[/bold]",
        format_money(sum(row.items_total for row in rows)),
        format_money(sum(row.tax_share for row in rows)),
        format_money(sum(row.tip_share for row in rows)),
        format_money(total),
    )
    console.print(table)

    if receipt.total is None:
        return
    if total == receipt.total:
        console.print("  [green]✓ Matches receipt total[/green]")
    else:
        console.print(
            f"  [yellow]Receipt total is {format_money(receipt.total)}, "
            f"settlement covers {format_money(total)}[/yellow]"
        )


@app.command("import")
def import_receipt(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Import a receipt from a JSON document.

    The document lists members, line items (cents), optional assignments, tax,
    tip and strategies. It is what the extraction step produces.
    """
    with open_service(verbose) as service:
        document = ReceiptDocument.model_validate_json(path.read_text())
        receipt = service.import_receipt(document)
        console.print(
            f"[green]✓ Imported receipt[/green] [bold]{receipt.id}[/bold] "
            f"({len(document.line_items)} items, status {receipt.status.value})"
        )


@app.command()
def receipts(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List stored receipts."""
    with open_service(verbose) as service:
        stored = service.db.list_receipts()
        if not stored:
            console.print("[yellow]No receipts yet.[/yellow]")
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim")
        table.add_column("Merchant", style="cyan")
        table.add_column("Date")
        table.add_column("Total", justify="right")
        table.add_column("Status")
        for receipt in stored:
            table.add_row(
                receipt.id,
                receipt.merchant_name or "-",
                str(receipt.receipt_date or "-"),
                format_money(receipt.total) if receipt.total is not None else "-",
                receipt.status.value,
            )
        console.print(table)


@app.command()
def show(
    receipt_id: str,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show a receipt's line items and how each one is split."""
    with open_service(verbose) as service:
        receipt = service.get_receipt(receipt_id)
        members = {m.id: m for m in service.db.get_members()}
        assignments = service.db.get_assignments(receipt_id)

        console.print(f"\n[bold]{receipt.merchant_name or 'Receipt'}[/bold]")
        console.print(f"  ID: {receipt.id}   Status: {receipt.status.value}")
        payer = member_name(members, receipt.payer_id) if receipt.payer_id else "-"
        console.print(f"  Paid by: {payer}")
        console.print(
            f"  Tax: {format_money(receipt.tax)} ({receipt.tax_strategy.value})   "
            f"Tip: {format_money(receipt.tip)} ({receipt.tip_strategy.value})"
        )

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Item", style="cyan")
        table.add_column("Total", justify="right")
        table.add_column("Mode", style="dim")
        table.add_column("Split")

        for item in service.db.get_line_items(receipt_id, valid_only=False):
            item_assignments = [a for a in assignments if a.line_item_id == item.id]
            label = f"{item.name or item.id} [dim]({item.id})[/dim]"
            if not item.is_valid:
                table.add_row(
                    f"[strike]{label}[/strike]", format_money(item.line_total), "", ""
                )
                continue
            if not item_assignments:
                table.add_row(
                    label,
                    format_money(item.line_total),
                    "",
                    "[yellow]unassigned[/yellow]",
                )
                continue

            mode, shares = describe_split(item, item_assignments)
            split = ", ".join(
                f"{member_name(members, member_id)} {format_money(cents)}"
                for member_id, cents in shares
            )
            table.add_row(label, format_money(item.line_total), mode.value, split)

        console.print(table)


@app.command()
def assign(
    receipt_id: str,
    item_id: str,
    member_ids: list[str] = typer.Argument(..., help="Members sharing the item"),
    weights: str | None = typer.Option(
        None, "--weights", "-w", help="Ratio weights, e.g. 2,1"
    ),
    amounts: str | None = typer.Option(
        None, "--amounts", "-a", help="Exact cents per member, e.g. 500,499"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Assign a line item to one or more members.

    Without --weights or --amounts the item is split evenly.
    """
    weight_list = parse_int_list(weights, "--weights")
    amount_list = parse_int_list(amounts, "--amounts")

    with open_service(verbose) as service:
        rows = service.assign_item(
            receipt_id, item_id, member_ids, weights=weight_list, amounts=amount_list
        )
        console.print(
            f"[green]✓ Item {item_id} split between {len(rows)} member(s)[/green]"
        )


@app.command()
def exclude(
    receipt_id: str,
    item_id: str,
    undo: bool = typer.Option(False, "--undo", help="Include the item again"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Exclude a misread line item from splitting (or include it again)."""
    with open_service(verbose) as service:
        service.exclude_item(receipt_id, item_id, excluded=not undo)
        state = "included" if undo else "excluded"
        console.print(f"[green]✓ Item {item_id} {state}[/green]")


@app.command()
def edit(
    receipt_id: str,
    tax: int | None = typer.Option(None, "--tax", help="Tax in cents"),
    tip: int | None = typer.Option(None, "--tip", help="Tip in cents"),
    total: int | None = typer.Option(None, "--total", help="Receipt total in cents"),
    subtotal: int | None = typer.Option(None, "--subtotal", help="Subtotal in cents"),
    merchant: str | None = typer.Option(None, "--merchant", help="Merchant name"),
    receipt_date: datetime | None = typer.Option(
        None, "--date", formats=["%Y-%m-%d"], help="Receipt date (YYYY-MM-DD)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Correct the receipt header: amounts, merchant or date."""
    with open_service(verbose) as service:
        receipt = service.update_receipt_amounts(
            receipt_id,
            tax=tax,
            tip=tip,
            total=total,
            subtotal=subtotal,
            merchant_name=merchant,
            receipt_date=receipt_date.date() if receipt_date else None,
        )
        console.print(
            f"[green]✓ Receipt {receipt.id} updated[/green] "
            f"(tax {format_money(receipt.tax)}, tip {format_money(receipt.tip)})"
        )


@app.command("edit-item")
def edit_item(
    receipt_id: str,
    item_id: str,
    name: str | None = typer.Option(None, "--name", help="Item name"),
    total: int | None = typer.Option(None, "--total", help="Line total in cents"),
    quantity: int | None = typer.Option(None, "--quantity", "-q", help="Quantity"),
    unit_price: int | None = typer.Option(
        None, "--unit-price", help="Unit price in cents"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Correct a misread line item."""
    with open_service(verbose) as service:
        item = service.update_line_item(
            receipt_id,
            item_id,
            name=name,
            line_total=total,
            quantity=quantity,
            unit_price=unit_price,
        )
        console.print(
            f"[green]✓ Item {item.id} updated[/green] "
            f"({item.name or item.id}, {format_money(item.line_total)})"
        )


@app.command("add-item")
def add_item(
    receipt_id: str,
    name: str,
    total: int = typer.Argument(..., help="Line total in cents"),
    quantity: int = typer.Option(1, "--quantity", "-q", help="Quantity"),
    unit_price: int | None = typer.Option(
        None, "--unit-price", help="Unit price in cents"
    ),
    item_id: str | None = typer.Option(None, "--id", help="Item ID to use"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Add a line item the receipt scan missed."""
    with open_service(verbose) as service:
        item = service.add_line_item(
            receipt_id,
            name,
            total,
            quantity=quantity,
            unit_price=unit_price,
            line_item_id=item_id,
        )
        console.print(
            f"[green]✓ Added item[/green] [bold]{item.id}[/bold] "
            f"({item.name}, {format_money(item.line_total)})"
        )


@app.command("remove-item")
def remove_item(
    receipt_id: str,
    item_id: str,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Delete a line item and its assignments."""
    with open_service(verbose) as service:
        service.remove_line_item(receipt_id, item_id)
        console.print(f"[green]✓ Item {item_id} removed[/green]")


@app.command()
def strategy(
    receipt_id: str,
    tax: Strategy | None = typer.Option(None, "--tax", case_sensitive=False),
    tip: Strategy | None = typer.Option(None, "--tip", case_sensitive=False),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Choose how tax and tip are allocated (PROPORTIONAL or EQUAL)."""
    with open_service(verbose) as service:
        receipt = service.set_strategies(receipt_id, tax_strategy=tax, tip_strategy=tip)
        console.print(
            f"[green]✓ Tax: {receipt.tax_strategy.value}, "
            f"tip: {receipt.tip_strategy.value}[/green]"
        )


@app.command()
def payer(
    receipt_id: str,
    member_id: str,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Set the member who paid the receipt."""
    with open_service(verbose) as service:
        service.set_payer(receipt_id, member_id)
        console.print(f"[green]✓ Payer set to {member_id}[/green]")


@app.command()
def preview(
    receipt_id: str,
    tax_strategy: Strategy | None = typer.Option(
        None, "--tax-strategy", case_sensitive=False, help="Try another tax strategy"
    ),
    tip_strategy: Strategy | None = typer.Option(
        None, "--tip-strategy", case_sensitive=False, help="Try another tip strategy"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show what everyone would owe, without saving anything."""
    with open_service(verbose) as service:
        receipt = service.get_receipt(receipt_id)
        rows = service.preview(receipt_id, tax_strategy, tip_strategy)
        if not rows:
            console.print("[yellow]No items assigned yet.[/yellow]")
            return

        members = {m.id: m for m in service.db.get_members()}
        display_settlement(receipt, rows, members, title="Settlement Preview")


@app.command()
def settle(
    receipt_id: str,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Compute and save the settlement, replacing any previous one."""
    with open_service(verbose) as service:
        rows = service.settle(receipt_id)
        receipt = service.get_receipt(receipt_id)
        members = {m.id: m for m in service.db.get_members()}
        display_settlement(receipt, rows, members)
        console.print("\n[bold green]✓ Receipt settled![/bold green]")
        console.print(
            f"\n[bold]To send it to Splitwise, run:[/bold]\n"
            f"  [cyan]receipt-split export {receipt_id}[/cyan]\n"
        )


@app.command()
def settlement(
    receipt_id: str,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show the stored settlement of a receipt."""
    with open_service(verbose) as service:
        receipt = service.get_receipt(receipt_id)
        rows = service.get_settlement(receipt_id)
        if not rows:
            console.print(
                f"[yellow]Receipt {receipt_id} has not been settled yet.[/yellow]"
            )
            return

        members = {m.id: m for m in service.db.get_members()}
        display_settlement(receipt, rows, members)
        if receipt.status not in (ReceiptStatus.SETTLED, ReceiptStatus.EXPORTED):
            console.print(
                "  [yellow]The receipt changed since it was settled; "
                "run settle again before exporting.[/yellow]"
            )
        elif receipt.splitwise_expense_id:
            console.print(
                f"  Exported as Splitwise expense {receipt.splitwise_expense_id}"
            )


@app.command()
def connect(
    token: str = typer.Argument(..., help="Splitwise API key or OAuth token"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Verify and store a Splitwise token."""
    with open_service(verbose) as service:
        user = service.save_splitwise_token(token)
        console.print(f"[green]✓ Connected as {user.display_name}[/green]")


@app.command()
def friends(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List Splitwise friends and their user IDs."""
    with open_service(verbose) as service:
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("User ID", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Email")
        for friend in service.list_friends():
            table.add_row(str(friend.id), friend.display_name, friend.email or "")
        console.print(table)


@app.command()
def groups(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List Splitwise groups and their IDs."""
    with open_service(verbose) as service:
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Group ID", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Members", justify="right")
        for group in service.list_groups():
            table.add_row(str(group.id), group.name, str(len(group.members)))
        console.print(table)


@app.command("import-group")
def import_group(
    group_id: int,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Create members from a Splitwise group, already linked to Splitwise."""
    with open_service(verbose) as service:
        members = service.import_splitwise_group(group_id)

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Member ID", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Splitwise user", justify="right")
        for member in members:
            table.add_row(member.id, member.name, str(member.splitwise_user_id))
        console.print(table)
        console.print(f"[green]✓ {len(members)} member(s) ready[/green]")


@app.command("map-member")
def map_member(
    member_id: str,
    splitwise_user_id: int | None = typer.Argument(
        None, help="Splitwise user ID; omit to pick from your friends"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Link a member to a Splitwise account."""
    with open_service(verbose) as service:
        member = service.db.get_member(member_id)
        if member is None:
            console.print(f"[yellow]Member {member_id} not found.[/yellow]")
            return

        if splitwise_user_id is None:
            splitwise_user_id = select_friend_interactive(
                service.list_friends(), member.name
            )
            if splitwise_user_id is None:
                console.print("[yellow]No friend selected.[/yellow]")
                return

        service.map_member(member_id, splitwise_user_id)
        console.print(
            f"[green]✓ {member.name} linked to Splitwise user "
            f"{splitwise_user_id}[/green]"
        )


@app.command()
def export(
    receipt_id: str,
    group_id: int | None = typer.Option(
        None, "--group-id", "-g", help="Splitwise group for the expense"
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Show the expense without creating it"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Create a Splitwise expense from a settled receipt."""
    with open_service(verbose) as service:
        expense = service.build_export(receipt_id, group_id)

        table = Table(
            title=f"{expense.description} ({expense.expense_date})",
            show_header=True,
            header_style="bold magenta",
        )
        table.add_column("Splitwise user", style="dim")
        table.add_column("Paid", justify="right")
        table.add_column("Owed", justify="right")
        for user in expense.users:
            table.add_row(
                str(user.user_id), f"${user.paid_share:.2f}", f"${user.owed_share:.2f}"
            )
        console.print(table)
        console.print(f"  Cost: ${expense.cost:.2f} {expense.currency_code}")

        if dry_run:
            console.print("\n[yellow]Dry run: nothing was sent.[/yellow]")
            return

        if not yes and not confirm_export(expense.description, f"{expense.cost:.2f}"):
            console.print("[yellow]Cancelled.[/yellow]")
            return

        expense_id = service.export_to_splitwise(receipt_id, group_id)
        console.print(
            f"\n[bold green]✓ Created Splitwise expense {expense_id}[/bold green]"
        )


if __name__ == "__main__":
    app()
