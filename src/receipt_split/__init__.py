"""ReceiptSplit - Split shared receipts to the cent and settle up on Splitwise."""

__version__ = "0.1.0"

from .config import Settings, load_settings
from .db import Database
from .engine import compute_settlements
from .models import (
    Assignment,
    LineItem,
    ReceiptDocument,
    SettlementRow,
    SplitMode,
    Strategy,
)
from .service import SettlementService

__all__ = [
    "Settings",
    "load_settings",
    "Database",
    "compute_settlements",
    "Assignment",
    "LineItem",
    "ReceiptDocument",
    "SettlementRow",
    "SplitMode",
    "Strategy",
    "SettlementService",
]
