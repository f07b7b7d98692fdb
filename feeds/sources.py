"""Loading of the feed source configuration table."""
import csv
import logging
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Sequence

from processor.models import DEFAULT_SCHEMA, ConfigurationError, LedgerSchema, RawFeedSource

logger = logging.getLogger(__name__)


def is_enabled(value: Any, schema: LedgerSchema = DEFAULT_SCHEMA) -> bool:
    """Exact match against the schema's enabled marker; no truthy parsing."""
    if value is None:
        return False
    return str(value).strip() == schema.enabled_marker


def _cell(row: Sequence[Any], index: int) -> str:
    if index < len(row) and row[index] is not None:
        return str(row[index]).strip()
    return ''


def sources_from_rows(rows: Iterable[Sequence[Any]],
                      schema: LedgerSchema = DEFAULT_SCHEMA) -> List[RawFeedSource]:
    """
    Build feed sources from configuration rows (header row excluded).

    Columns are property name, iCal URL, enabled flag. Rows are kept in
    order and numbered from 2, matching their position below the header.
    """
    sources = []
    for offset, row in enumerate(rows):
        sources.append(RawFeedSource(
            property_name=_cell(row, 0),
            url=_cell(row, 1),
            enabled=is_enabled(row[2] if len(row) > 2 else None, schema),
            row_number=offset + 2
        ))
    return sources


def load_sources_from_csv(path: str, schema: LedgerSchema = DEFAULT_SCHEMA) -> List[RawFeedSource]:
    """
    Read feed sources from a CSV configuration table.

    Raises:
        ConfigurationError: If the file does not exist
    """
    config_path = Path(path)
    if not config_path.is_file():
        raise ConfigurationError(
            f"Feed configuration not found at {path}. Create it with columns: "
            f"Property Name, iCal URL, Enabled"
        )

    with config_path.open(newline='', encoding='utf-8-sig') as f:
        rows = list(csv.reader(f))

    sources = sources_from_rows(rows[1:], schema)
    logger.info(f"Loaded {len(sources)} feed sources from {path}")
    return sources


def load_sources_from_payload(items: Iterable[Mapping[str, Any]],
                              schema: LedgerSchema = DEFAULT_SCHEMA) -> List[RawFeedSource]:
    """
    Read feed sources from an invocation payload.

    Args:
        items: Mappings with property_name, url and enabled keys
    """
    rows = []
    for item in items:
        if not isinstance(item, Mapping):
            raise ConfigurationError(f"Feed entry must be an object, got {type(item).__name__}")
        rows.append((item.get('property_name'), item.get('url'), item.get('enabled')))

    sources = sources_from_rows(rows, schema)
    logger.info(f"Loaded {len(sources)} feed sources from event payload")
    return sources
