"""Reconciliation of iCal booking feeds against the stored ledger."""
import dataclasses
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Set

from feeds.fetcher import IcalFeedFetcher
from processor.date_normalizer import calculate_nights, format_datetime, parse_timestamp
from processor.ical_parser import IcalParser
from processor.models import (
    DEFAULT_SCHEMA,
    AbsenceMark,
    BookingRecord,
    CalendarEvent,
    EventStatus,
    LedgerSchema,
    RawFeedSource,
    ReconciliationPlan,
    RowUpdate,
    StoredBooking,
)

logger = logging.getLogger(__name__)


def translate_status(raw_status: Optional[str], schema: LedgerSchema = DEFAULT_SCHEMA) -> str:
    """
    Map a raw iCal STATUS to its ledger display label.

    Missing status means CONFIRMED; unknown values pass through unchanged.
    """
    status = raw_status or 'CONFIRMED'
    return schema.status_labels.get(status.strip().upper(), status)


def source_skip_reason(source: RawFeedSource) -> Optional[str]:
    """Why a configured source cannot be processed, or None if it can."""
    if not source.enabled:
        return 'not enabled'
    if not source.property_name or not source.property_name.strip():
        return 'missing or invalid property name'
    if not source.url or not source.url.strip().lower().startswith(('http://', 'https://')):
        return 'missing or invalid iCal URL'
    return None


@dataclass
class FeedResult:
    """Fetched and parsed events of one source."""
    source: RawFeedSource
    ok: bool
    events: List[CalendarEvent] = field(default_factory=list)
    events_skipped: int = 0
    error: Optional[str] = None


class Reconciler:
    """Builds a ReconciliationPlan from feed sources and the current ledger."""

    def __init__(
        self,
        fetcher: IcalFeedFetcher,
        parser: Optional[IcalParser] = None,
        schema: LedgerSchema = DEFAULT_SCHEMA,
        max_workers: int = 4,
        now_fn: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize the reconciler.

        Args:
            fetcher: Feed fetcher returning FetchResult objects
            parser: iCal parser (default: IcalParser())
            schema: Ledger schema with labels, formats and timezone
            max_workers: Size of the feed fetch pool
            now_fn: Clock returning an aware datetime (default: UTC now)
        """
        self.fetcher = fetcher
        self.parser = parser or IcalParser()
        self.schema = schema
        self.max_workers = max(1, max_workers)
        self.now_fn = now_fn or (lambda: datetime.now(timezone.utc))

    def reconcile(
        self,
        sources: List[RawFeedSource],
        existing: Dict[str, StoredBooking]
    ) -> ReconciliationPlan:
        """
        Diff all enabled feeds against the existing ledger.

        Feeds are fetched concurrently but merged in configuration order,
        so when two feeds publish the same UID the later one wins. A failing
        feed or event is logged and skipped; the run always returns a plan.

        Args:
            sources: Configured feed sources in configuration order
            existing: Current ledger keyed by UID

        Returns:
            ReconciliationPlan with inserts, updates and absence marks
        """
        plan = ReconciliationPlan()
        plan.stats.sources_total = len(sources)
        now = self.now_fn()
        now_text = format_datetime(now, self.schema.timestamp_format, self.schema.timezone)

        valid_sources = []
        for source in sources:
            reason = source_skip_reason(source)
            if reason:
                logger.info(f"Skipping feed row {source.row_number} ({source.property_name!r}): {reason}")
                plan.stats.sources_skipped += 1
                continue
            valid_sources.append(source)

        merged: Dict[str, BookingRecord] = {}

        for result in self._load_feeds(valid_sources):
            if not result.ok:
                logger.error(
                    f"Skipping feed for {result.source.property_name!r}: {result.error}",
                    extra={'feed_url': result.source.url}
                )
                plan.stats.sources_failed += 1
                continue

            plan.stats.sources_processed += 1
            plan.stats.events_parsed += len(result.events)
            plan.stats.events_skipped += result.events_skipped
            logger.info(f"Parsed {len(result.events)} events for {result.source.property_name!r}")

            for event in result.events:
                try:
                    self._merge_event(result.source, event, existing, merged, now_text)
                except Exception as e:
                    logger.warning(f"Failed to process event {event.uid!r} from {result.source.property_name!r}: {e}")
                    plan.stats.events_skipped += 1

        for uid, record in merged.items():
            stored = existing.get(uid)
            if stored is None:
                plan.to_insert.append(record)
            elif self._records_differ(record, stored.record):
                plan.to_update.append(RowUpdate(location=stored.location, record=record))
            elif self._is_stale(stored.record, now):
                refreshed = dataclasses.replace(stored.record, last_updated=now_text)
                plan.to_update.append(RowUpdate(location=stored.location, record=refreshed))
                logger.debug(f"Refreshing last updated timestamp of {uid}")

        plan.to_mark_absent = self._mark_absent(existing, set(merged), now_text)

        logger.info(
            f"Reconciliation plan: {len(plan.to_insert)} to insert, "
            f"{len(plan.to_update)} to update, "
            f"{len(plan.to_mark_absent)} to mark absent"
        )
        return plan

    def build_record(self, source: RawFeedSource, event: CalendarEvent, now_text: str) -> BookingRecord:
        """Ledger record for an event as published by its feed."""
        if event.event_status is EventStatus.UNKNOWN:
            logger.debug(f"Event {event.uid} has non-standard status {event.status!r}, keeping it as is")
        return BookingRecord(
            uid=event.uid,
            property_name=source.property_name,
            status=translate_status(event.status, self.schema),
            guest_info=event.summary or '',
            check_in=format_datetime(event.start, self.schema.date_format, self.schema.timezone),
            check_out=format_datetime(event.end, self.schema.date_format, self.schema.timezone),
            nights=calculate_nights(event.start, event.end),
            last_updated=now_text
        )

    def _load_feeds(self, sources: List[RawFeedSource]) -> List[FeedResult]:
        if not sources:
            return []
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(sources))) as executor:
            return list(executor.map(self._load_feed, sources))

    def _load_feed(self, source: RawFeedSource) -> FeedResult:
        logger.info(f"Processing feed for {source.property_name!r} from {source.url}")
        try:
            fetched = self.fetcher.fetch(source.url)
            if not fetched.ok:
                return FeedResult(source=source, ok=False, error=fetched.error or 'fetch failed')
            parsed = self.parser.parse_feed(fetched.text)
            return FeedResult(source=source, ok=True, events=parsed.events, events_skipped=parsed.skipped)
        except Exception as e:
            logger.error(f"Error processing feed for {source.property_name!r}: {e}", exc_info=True)
            return FeedResult(source=source, ok=False, error=f"{type(e).__name__}: {e}")

    def _merge_event(
        self,
        source: RawFeedSource,
        event: CalendarEvent,
        existing: Dict[str, StoredBooking],
        merged: Dict[str, BookingRecord],
        now_text: str
    ) -> None:
        """
        Fold one event into the run's per-UID records.

        A UID new to the ledger keeps its first occurrence; a known UID keeps
        the record of the last feed publishing it. Only the merged record is
        compared against the ledger, once per run.
        """
        record = self.build_record(source, event, now_text)

        if event.uid in merged:
            if event.uid not in existing:
                logger.info(
                    f"UID {event.uid} from {source.property_name!r} already queued for insert, skipping duplicate"
                )
                return
            logger.info(f"Replacing earlier feed data for {event.uid} with data from {source.property_name!r}")

        merged[event.uid] = record

    def _mark_absent(
        self,
        existing: Dict[str, StoredBooking],
        seen: Set[str],
        now_text: str
    ) -> List[AbsenceMark]:
        marks = []
        final_labels = (self.schema.cancelled_label, self.schema.possibly_cancelled_label)

        for uid, stored in existing.items():
            if uid in seen:
                continue
            if stored.record.status in final_labels:
                logger.debug(f"Booking {uid} missing from feeds, status already {stored.record.status!r}")
                continue
            marks.append(AbsenceMark(
                uid=uid,
                location=stored.location,
                status=self.schema.possibly_cancelled_label,
                last_updated=now_text
            ))
            logger.info(
                f"Booking {uid} not found in any processed feed, "
                f"marking as {self.schema.possibly_cancelled_label!r}"
            )

        return marks

    def _records_differ(self, current: BookingRecord, stored: BookingRecord) -> bool:
        """
        Compare the feed-derived fields of two records.

        Nights and last_updated are derived or bookkeeping fields and are
        not compared.
        """
        return (
            current.status != stored.status or
            current.check_in != stored.check_in or
            current.check_out != stored.check_out or
            current.guest_info != stored.guest_info or
            current.property_name != stored.property_name
        )

    def _is_stale(self, stored: BookingRecord, now: datetime) -> bool:
        last_updated = parse_timestamp(
            stored.last_updated, self.schema.timestamp_format, self.schema.timezone
        )
        if last_updated is None:
            return True
        return (now - last_updated).total_seconds() > self.schema.stale_after_seconds
