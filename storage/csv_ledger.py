"""CSV file ledger with spreadsheet-style row locations."""
import csv
import logging
import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Dict, List

from processor.models import (
    DEFAULT_SCHEMA,
    ConfigurationError,
    LedgerSchema,
    ReconciliationPlan,
    StoredBooking,
    SyncResult,
)
from storage.base import LedgerStore, record_from_row

logger = logging.getLogger(__name__)


class CsvLedgerStore(LedgerStore):
    """
    Booking ledger kept in a CSV file.

    Row 1 is the header; a booking's location is its 1-based row number,
    so the first booking lives at row 2.
    """

    def __init__(self, path: str, schema: LedgerSchema = DEFAULT_SCHEMA):
        """
        Args:
            path: Path of an existing (possibly empty) CSV file

        Raises:
            ConfigurationError: If the file does not exist
        """
        super().__init__(schema)
        self.path = Path(path)
        if not self.path.is_file():
            raise ConfigurationError(
                f"Ledger file not found at {path}. Create it (an empty file is fine)."
            )
        logger.info(f"Initialized CsvLedgerStore for file: {path}")

    def load_existing(self) -> Dict[str, StoredBooking]:
        self.ensure_header()
        rows = self._read_rows()
        bookings = {}

        for index, row in enumerate(rows[1:], start=2):
            record = record_from_row(row)
            if record is None:
                logger.warning(f"Skipping ledger row {index}: missing or invalid UID")
                continue
            bookings[record.uid] = StoredBooking(record=record, location=index)

        logger.info(f"Loaded {len(bookings)} bookings from {self.path}")
        return bookings

    def apply_plan(self, plan: ReconciliationPlan) -> SyncResult:
        rows = self._read_rows()
        errors = []
        updated = 0
        marked = 0
        status_col = self.schema.column('Status')
        updated_col = self.schema.column('Last Updated')

        for update in plan.to_update:
            if not self._valid_location(update.location, rows):
                msg = f"Skipping update for invalid row {update.location} (UID: {update.record.uid})"
                logger.error(msg)
                errors.append(msg)
                continue
            rows[update.location - 1] = [str(v) for v in update.record.to_row()]
            updated += 1

        for mark in plan.to_mark_absent:
            if not self._valid_location(mark.location, rows):
                msg = f"Skipping absence mark for invalid row {mark.location} (UID: {mark.uid})"
                logger.error(msg)
                errors.append(msg)
                continue
            row = rows[mark.location - 1]
            row.extend([''] * (len(self.schema.headers) - len(row)))
            row[status_col] = mark.status
            row[updated_col] = mark.last_updated
            marked += 1

        for record in plan.to_insert:
            rows.append([str(v) for v in record.to_row()])

        self._write_rows(rows)
        logger.info(
            f"Ledger write complete: {len(plan.to_insert)} inserted, {updated} updated, "
            f"{marked} marked absent"
        )
        return SyncResult(
            inserted=len(plan.to_insert),
            updated=updated,
            marked_absent=marked,
            errors=errors
        )

    def ensure_header(self) -> None:
        rows = self._read_rows()
        expected = list(self.schema.headers)

        if not rows:
            self._write_rows([expected])
            logger.info(f"Ledger {self.path} was empty, wrote header row")
            return

        current = rows[0][:len(expected)]
        if current == expected:
            return

        if self._is_booking_row(rows[0]):
            rows.insert(0, expected)
            self._write_rows(rows)
            logger.warning(f"Ledger {self.path} had no header row, inserted one above the first booking")
            return

        rows[0] = expected + rows[0][len(expected):]
        self._write_rows(rows)
        logger.warning(f"Ledger {self.path} header row was incorrect, replaced it")

    def sort_by_check_out(self) -> None:
        rows = self._read_rows()
        if len(rows) <= 2:
            logger.info(f"Skipping sort of {self.path}: fewer than two bookings")
            return

        check_out_col = self.schema.column('Check-out Date')
        body = sorted(
            rows[1:],
            key=lambda row: row[check_out_col] if len(row) > check_out_col else ''
        )
        self._write_rows([rows[0]] + body)
        logger.info(f"Sorted {self.path} by check-out date")

    def _valid_location(self, location, rows: List[List[str]]) -> bool:
        return isinstance(location, int) and 1 < location <= len(rows)

    def _is_booking_row(self, row: List[str]) -> bool:
        """True when the row carries a UID and a check-in date rather than header labels."""
        labels = {header.lower() for header in self.schema.headers}
        if any(cell.strip().lower() in labels for cell in row):
            return False

        record = record_from_row(row)
        if record is None:
            return False
        try:
            datetime.strptime(record.check_in.strip(), self.schema.date_format)
        except ValueError:
            return False
        return True

    def _read_rows(self) -> List[List[str]]:
        with self.path.open(newline='', encoding='utf-8') as f:
            return list(csv.reader(f))

    def _write_rows(self, rows: List[List[str]]) -> None:
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', newline='', encoding='utf-8') as f:
                csv.writer(f).writerows(rows)
            shutil.copymode(self.path, tmp_path)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
