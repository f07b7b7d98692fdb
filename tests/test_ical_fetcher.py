"""Unit tests for IcalFeedFetcher."""
from unittest.mock import patch

import pytest
import responses
from requests.exceptions import ConnectionError, Timeout

from feeds.fetcher import IcalFeedFetcher


FEED_URL = "https://www.airbnb.com/calendar/ical/12345.ics"
FEED_BODY = "BEGIN:VCALENDAR\r\nEND:VCALENDAR\r\n"


@pytest.fixture(autouse=True)
def no_backoff_sleep():
    """Skip real backoff delays."""
    with patch('feeds.fetcher.time.sleep') as mock_sleep:
        yield mock_sleep


class TestIcalFeedFetcher:
    """Test cases for IcalFeedFetcher class."""

    @responses.activate
    def test_fetch_success(self):
        """Test a successful fetch returns the body."""
        responses.add(responses.GET, FEED_URL, body=FEED_BODY, status=200)

        result = IcalFeedFetcher(timeout=30).fetch(FEED_URL)

        assert result.ok is True
        assert result.text == FEED_BODY
        assert result.status_code == 200
        assert result.error is None

    @responses.activate
    def test_fetch_disables_caching(self):
        """Test cache-busting query parameter and no-cache headers."""
        responses.add(responses.GET, FEED_URL, body=FEED_BODY, status=200)

        IcalFeedFetcher().fetch(FEED_URL)

        request = responses.calls[0].request
        assert "cachebust=" in request.url
        assert request.headers["Cache-Control"] == "no-cache"
        assert request.headers["Pragma"] == "no-cache"

    @responses.activate
    def test_cache_buster_keeps_existing_query(self):
        """Test that the cache buster is appended to an existing query string."""
        url = "https://example.com/export.ics"
        responses.add(responses.GET, url, body=FEED_BODY, status=200)

        result = IcalFeedFetcher().fetch(url + "?s=abc")

        request_url = responses.calls[0].request.url
        assert result.ok is True
        assert "s=abc" in request_url
        assert "&cachebust=" in request_url

    @responses.activate
    def test_decodes_utf8_without_charset(self):
        """Test non-ASCII summaries survive when the server omits a charset."""
        body = "SUMMARY:Zoë Müller\r\n".encode("utf-8")
        responses.add(responses.GET, FEED_URL, body=body, status=200, content_type="text/calendar")

        result = IcalFeedFetcher().fetch(FEED_URL)

        assert result.text == "SUMMARY:Zoë Müller\r\n"

    @responses.activate
    def test_retry_after_server_errors(self, no_backoff_sleep):
        """Test retry logic succeeds after initial 5xx failures."""
        responses.add(responses.GET, FEED_URL, body="Server Error", status=500)
        responses.add(responses.GET, FEED_URL, body="Server Error", status=503)
        responses.add(responses.GET, FEED_URL, body=FEED_BODY, status=200)

        result = IcalFeedFetcher(max_retries=3).fetch(FEED_URL)

        assert result.ok is True
        assert len(responses.calls) == 3
        assert [c.args[0] for c in no_backoff_sleep.call_args_list] == [1, 2]

    @responses.activate
    def test_all_retries_fail_returns_not_ok(self):
        """Test that exhausting retries surfaces ok=False without raising."""
        for _ in range(3):
            responses.add(responses.GET, FEED_URL, body="Server Error", status=500)

        result = IcalFeedFetcher(max_retries=3).fetch(FEED_URL)

        assert result.ok is False
        assert result.status_code == 500
        assert "HTTP 500" in result.error
        assert len(responses.calls) == 3

    @responses.activate
    def test_client_error_is_not_retried(self):
        """Test that a 404 fails immediately."""
        responses.add(responses.GET, FEED_URL, body="Not Found", status=404)

        result = IcalFeedFetcher(max_retries=3).fetch(FEED_URL)

        assert result.ok is False
        assert result.status_code == 404
        assert len(responses.calls) == 1

    @responses.activate
    def test_timeout_is_a_fetch_failure(self):
        """Test timeout handling."""
        for _ in range(3):
            responses.add(responses.GET, FEED_URL, body=Timeout("Request timed out"))

        result = IcalFeedFetcher(max_retries=3).fetch(FEED_URL)

        assert result.ok is False
        assert result.status_code is None
        assert "Timeout" in result.error
        assert len(responses.calls) == 3

    @responses.activate
    def test_connection_error_then_success(self):
        """Test recovery from a transient network error."""
        responses.add(responses.GET, FEED_URL, body=ConnectionError("reset"))
        responses.add(responses.GET, FEED_URL, body=FEED_BODY, status=200)

        result = IcalFeedFetcher(max_retries=2).fetch(FEED_URL)

        assert result.ok is True
        assert len(responses.calls) == 2
