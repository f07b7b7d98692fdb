"""Data models for booking reconciliation."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class ConfigurationError(Exception):
    """Required configuration, feed table or ledger is missing or invalid."""


LEDGER_HEADERS = (
    'UID',
    'Property Name',
    'Status',
    'Guest Info',
    'Check-in Date',
    'Check-out Date',
    'Nights',
    'Last Updated',
)


@dataclass(frozen=True)
class LedgerSchema:
    """Column layout, status labels and formats of the booking ledger."""
    headers: Tuple[str, ...] = LEDGER_HEADERS
    confirmed_label: str = 'confirmed'
    tentative_label: str = 'tentative'
    cancelled_label: str = 'cancelled'
    possibly_cancelled_label: str = 'possibly cancelled'
    enabled_marker: str = 'enabled'
    date_format: str = '%Y-%m-%d'
    timestamp_format: str = '%Y-%m-%d %H:%M:%S'
    timezone: str = 'UTC'
    stale_after_seconds: int = 3600

    @property
    def status_labels(self) -> Dict[str, str]:
        """Raw iCal STATUS (upper-cased) to display label."""
        return {
            'CONFIRMED': self.confirmed_label,
            'TENTATIVE': self.tentative_label,
            'CANCELLED': self.cancelled_label,
            'POSSIBLY CANCELLED': self.possibly_cancelled_label,
        }

    def column(self, name: str) -> int:
        """0-based index of a header label."""
        return self.headers.index(name)


DEFAULT_SCHEMA = LedgerSchema()


class EventStatus(Enum):
    """Status of a calendar event as published by the feed."""
    CONFIRMED = 'CONFIRMED'
    TENTATIVE = 'TENTATIVE'
    CANCELLED = 'CANCELLED'
    UNKNOWN = 'UNKNOWN'

    @classmethod
    def from_raw(cls, raw: Optional[str]) -> 'EventStatus':
        if not raw:
            return cls.CONFIRMED
        try:
            return cls(raw.strip().upper())
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class RawFeedSource:
    """One configured iCal feed."""
    property_name: str
    url: str
    enabled: bool
    row_number: Optional[int] = None


@dataclass
class CalendarEvent:
    """Parsed VEVENT with normalized UTC start/end."""
    uid: str
    start: datetime
    end: datetime
    summary: Optional[str] = None
    status: Optional[str] = None
    description: Optional[str] = None

    @property
    def event_status(self) -> EventStatus:
        return EventStatus.from_raw(self.status)


@dataclass
class BookingRecord:
    """One row of the booking ledger."""
    uid: str
    property_name: str
    status: str
    guest_info: str
    check_in: str
    check_out: str
    nights: int
    last_updated: str

    def to_row(self) -> List[Any]:
        """Row values in ledger column order."""
        return [
            self.uid,
            self.property_name,
            self.status,
            self.guest_info,
            self.check_in,
            self.check_out,
            self.nights,
            self.last_updated,
        ]


@dataclass
class StoredBooking:
    """Ledger record plus the store's opaque location for it."""
    record: BookingRecord
    location: Any


@dataclass
class RowUpdate:
    """Full rewrite of an existing ledger entry."""
    location: Any
    record: BookingRecord


@dataclass
class AbsenceMark:
    """Status and timestamp rewrite for a booking missing from every feed."""
    uid: str
    location: Any
    status: str
    last_updated: str


@dataclass
class RunStats:
    """Counters describing one reconciliation run."""
    sources_total: int = 0
    sources_skipped: int = 0
    sources_failed: int = 0
    sources_processed: int = 0
    events_parsed: int = 0
    events_skipped: int = 0


@dataclass
class ReconciliationPlan:
    """Writes produced by one reconciliation run."""
    to_insert: List[BookingRecord] = field(default_factory=list)
    to_update: List[RowUpdate] = field(default_factory=list)
    to_mark_absent: List[AbsenceMark] = field(default_factory=list)
    stats: RunStats = field(default_factory=RunStats)

    def is_empty(self) -> bool:
        return not (self.to_insert or self.to_update or self.to_mark_absent)


@dataclass
class SyncResult:
    """Result of applying a plan to the ledger."""
    inserted: int
    updated: int
    marked_absent: int
    errors: List[str]
