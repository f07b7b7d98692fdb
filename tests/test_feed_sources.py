"""Unit tests for feed source configuration loading."""
import pytest

from feeds.sources import (
    is_enabled,
    load_sources_from_csv,
    load_sources_from_payload,
    sources_from_rows,
)
from processor.models import ConfigurationError, LedgerSchema, RawFeedSource


def test_is_enabled_exact_match_only():
    """Test that only the literal marker enables a source."""
    assert is_enabled("enabled") is True
    assert is_enabled("  enabled ") is True
    assert is_enabled("Enabled") is False
    assert is_enabled("yes") is False
    assert is_enabled("true") is False
    assert is_enabled(True) is False
    assert is_enabled(None) is False


def test_is_enabled_with_custom_marker():
    """Test a localized enabled marker."""
    schema = LedgerSchema(enabled_marker="是")

    assert is_enabled("是", schema) is True
    assert is_enabled("enabled", schema) is False


def test_sources_from_rows_keeps_order_and_row_numbers():
    """Test rows become sources numbered from the first data row."""
    sources = sources_from_rows([
        ["Beach House", "https://example.com/a.ics", "enabled"],
        ["Cabin", "https://example.com/b.ics", ""],
        ["Loft"],
    ])

    assert sources == [
        RawFeedSource("Beach House", "https://example.com/a.ics", True, 2),
        RawFeedSource("Cabin", "https://example.com/b.ics", False, 3),
        RawFeedSource("Loft", "", False, 4),
    ]


def test_load_sources_from_csv_skips_header(tmp_path):
    """Test reading the configuration table from CSV."""
    path = tmp_path / "feeds.csv"
    path.write_text(
        "Property Name,iCal URL,Enabled\n"
        "Beach House,https://example.com/a.ics,enabled\n"
        "Cabin,https://example.com/b.ics,disabled\n",
        encoding="utf-8"
    )

    sources = load_sources_from_csv(str(path))

    assert len(sources) == 2
    assert sources[0].property_name == "Beach House"
    assert sources[0].enabled is True
    assert sources[1].enabled is False


def test_load_sources_from_csv_missing_file(tmp_path):
    """Test that a missing configuration table is a configuration error."""
    with pytest.raises(ConfigurationError):
        load_sources_from_csv(str(tmp_path / "missing.csv"))


def test_load_sources_from_payload():
    """Test reading sources from the invocation event."""
    sources = load_sources_from_payload([
        {"property_name": "Beach House", "url": "https://example.com/a.ics", "enabled": "enabled"},
        {"property_name": "Cabin", "url": "https://example.com/b.ics"},
    ])

    assert [s.enabled for s in sources] == [True, False]
    assert sources[1].url == "https://example.com/b.ics"


def test_load_sources_from_payload_rejects_non_objects():
    with pytest.raises(ConfigurationError):
        load_sources_from_payload(["https://example.com/a.ics"])
