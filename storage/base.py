"""Interface of the booking ledger stores."""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Sequence

from processor.models import (
    DEFAULT_SCHEMA,
    LEDGER_HEADERS,
    BookingRecord,
    LedgerSchema,
    ReconciliationPlan,
    StoredBooking,
    SyncResult,
)

logger = logging.getLogger(__name__)


class LedgerStore(ABC):
    """Keyed view of the persisted booking ledger."""

    def __init__(self, schema: LedgerSchema = DEFAULT_SCHEMA):
        self.schema = schema

    @abstractmethod
    def load_existing(self) -> Dict[str, StoredBooking]:
        """
        Read the whole ledger keyed by UID.

        Rows with a blank UID are logged and left out.
        """

    @abstractmethod
    def apply_plan(self, plan: ReconciliationPlan) -> SyncResult:
        """
        Materialize a reconciliation plan.

        Inserts are appended, updates rewrite the record at its location and
        absence marks rewrite only status and last updated. A failed write is
        recorded in SyncResult.errors without undoing the others.
        """

    def ensure_header(self) -> None:
        """Repair the header row; stores without one need not override."""

    def sort_by_check_out(self) -> None:
        """Order the ledger by check-out date; unordered stores need not override."""
        logger.debug(f"{type(self).__name__} keeps no row order, skipping sort")


def record_from_row(row: Sequence[Any]) -> Optional[BookingRecord]:
    """
    Build a BookingRecord from ledger cells in column order.

    Returns:
        BookingRecord or None when the UID cell is blank
    """
    cells = list(row) + [''] * (len(LEDGER_HEADERS) - len(row))
    uid = str(cells[0]).strip() if cells[0] is not None else ''
    if not uid:
        return None

    try:
        nights = int(cells[6])
    except (TypeError, ValueError):
        nights = 0

    return BookingRecord(
        uid=uid,
        property_name=_text(cells[1]),
        status=_text(cells[2]),
        guest_info=_text(cells[3]),
        check_in=_text(cells[4]),
        check_out=_text(cells[5]),
        nights=nights,
        last_updated=_text(cells[7])
    )


def _text(value: Any) -> str:
    return '' if value is None else str(value)
