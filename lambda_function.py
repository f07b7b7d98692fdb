"""AWS Lambda handler for iCal booking ledger sync."""
import json
import logging
import time
from typing import Any, Dict, List

from feeds.fetcher import IcalFeedFetcher
from feeds.sources import load_sources_from_csv, load_sources_from_payload
from processor.models import ConfigurationError, LedgerSchema, RawFeedSource
from processor.reconciler import Reconciler
from settings import Settings
from storage.base import LedgerStore
from storage.csv_ledger import CsvLedgerStore
from storage.dynamodb_manager import DynamoDBLedgerStore

# Attributes every LogRecord carries; anything else came in through `extra`.
_RESERVED_LOG_ATTRS = set(vars(logging.LogRecord('', 0, '', 0, '', None, None))) | {'message', 'asctime'}


class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, including fields passed via extra."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in vars(record).items():
            if key not in _RESERVED_LOG_ATTRS and not key.startswith('_'):
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def load_sources(event: Dict[str, Any], settings: Settings, schema: LedgerSchema) -> List[RawFeedSource]:
    """
    Feed sources from the invocation payload, else from FEED_CONFIG_PATH.

    Raises:
        ConfigurationError: If neither is provided
    """
    feeds = event.get('feeds') if isinstance(event, dict) else None
    if feeds is not None:
        if not isinstance(feeds, list):
            raise ConfigurationError("Event field 'feeds' must be a list")
        return load_sources_from_payload(feeds, schema)
    if settings.feed_config_path:
        return load_sources_from_csv(settings.feed_config_path, schema)
    raise ConfigurationError(
        "No feed configuration: pass 'feeds' in the event or set FEED_CONFIG_PATH"
    )


def build_store(settings: Settings, schema: LedgerSchema) -> LedgerStore:
    if settings.ledger_backend == 'csv':
        return CsvLedgerStore(settings.ledger_path, schema=schema)
    return DynamoDBLedgerStore(table_name=settings.table_name, schema=schema)


def _error_response(message: str, error: Exception, start_time: float, **fields: Any) -> Dict[str, Any]:
    body = {
        'message': message,
        'error': str(error),
        'error_type': type(error).__name__,
        'duration_seconds': round(time.time() - start_time, 2)
    }
    body.update(fields)
    return {'statusCode': 500, 'body': json.dumps(body)}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for the booking ledger sync.

    Args:
        event: EventBridge event payload, optionally carrying a 'feeds' list
        context: Lambda context object

    Returns:
        Response dict with statusCode and summary statistics
    """
    setup_logging()
    logger = logging.getLogger(__name__)
    start_time = time.time()

    try:
        try:
            settings = Settings.from_env()
            setup_logging(settings.log_level)
            schema = settings.schema()
            logger.info(
                "Lambda execution started",
                extra={
                    'ledger_backend': settings.ledger_backend,
                    'timeout_seconds': settings.timeout_seconds,
                    'max_workers': settings.max_workers
                }
            )
            sources = load_sources(event, settings, schema)
            store = build_store(settings, schema)
            existing = store.load_existing()
        except ConfigurationError as e:
            logger.error(f"Configuration error, nothing was synced: {e}", extra={'error_type': type(e).__name__})
            return _error_response('Configuration error', e, start_time)

        logger.info(f"Reconciling {len(sources)} feed sources against {len(existing)} stored bookings")
        fetcher = IcalFeedFetcher(
            timeout=settings.timeout_seconds,
            max_retries=settings.max_retries
        )
        reconciler = Reconciler(fetcher, schema=schema, max_workers=settings.max_workers)
        plan = reconciler.reconcile(sources, existing)

        try:
            logger.info("Writing reconciliation plan to ledger")
            sync_result = store.apply_plan(plan)
            store.ensure_header()
            store.sort_by_check_out()
        except Exception as e:
            logger.error(
                f"Error writing reconciliation plan: {e}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            return _error_response(
                'Failed to write reconciliation plan to ledger', e, start_time,
                note='Writes completed before the error are kept'
            )

        duration = time.time() - start_time
        stats = plan.stats
        logger.info(
            "Lambda execution completed successfully",
            extra={
                'duration_seconds': round(duration, 2),
                'bookings_inserted': sync_result.inserted,
                'bookings_updated': sync_result.updated,
                'bookings_marked_absent': sync_result.marked_absent,
                'errors': sync_result.errors
            }
        )

        return {
            'statusCode': 200,
            'body': json.dumps({
                'message': 'Sync completed successfully',
                'statistics': {
                    'sources_configured': stats.sources_total,
                    'sources_processed': stats.sources_processed,
                    'sources_skipped': stats.sources_skipped,
                    'sources_failed': stats.sources_failed,
                    'events_parsed': stats.events_parsed,
                    'events_skipped': stats.events_skipped,
                    'bookings_inserted': sync_result.inserted,
                    'bookings_updated': sync_result.updated,
                    'bookings_marked_absent': sync_result.marked_absent,
                    'duration_seconds': round(duration, 2)
                },
                'errors': sync_result.errors
            })
        }

    except Exception as e:
        logger.error(
            f"Lambda execution failed: {e}",
            extra={
                'duration_seconds': round(time.time() - start_time, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )
        return _error_response('Sync failed', e, start_time)
