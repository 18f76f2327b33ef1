"""Unit tests for the poll-body event scanner."""
import pytest

from dentalvision.core.entities import CompleteEvent, ErrorEvent, GeneratingEvent
from dentalvision.core.exceptions import DecodeError
from dentalvision.services.event_stream import DEFAULT_ERROR_MESSAGE, scan_events


class TestScanEvents:
    """Test suite for scan_events."""

    def test_generating_only(self):
        assert isinstance(scan_events("event: generating\ndata: null\n\n"), GeneratingEvent)

    def test_heartbeat_counts_as_progress(self):
        assert isinstance(scan_events("event: heartbeat\ndata: null\n"), GeneratingEvent)

    def test_complete_takes_next_data_line(self):
        event = scan_events('event: complete\ndata: ["a", "{}"]\n\n')

        assert event == CompleteEvent(data='["a", "{}"]')

    def test_complete_after_progress_in_same_body(self):
        body = "event: generating\ndata: null\n\nevent: complete\ndata: [1, 2]\n"

        assert scan_events(body) == CompleteEvent(data="[1, 2]")

    def test_error_message_is_unquoted(self):
        assert scan_events('event: error\ndata: "GPU out of memory"\n') == ErrorEvent("GPU out of memory")

    @pytest.mark.parametrize("data", ["null", "", '""'])
    def test_error_without_message_gets_default(self, data):
        assert scan_events(f"event: error\ndata: {data}\n") == ErrorEvent(DEFAULT_ERROR_MESSAGE)

    def test_error_without_data_line(self):
        assert scan_events("event: error\n") == ErrorEvent(DEFAULT_ERROR_MESSAGE)

    def test_error_object_message(self):
        assert scan_events('event: error\ndata: {"error": "bad image"}\n') == ErrorEvent("bad image")

    def test_first_terminal_event_wins(self):
        """Events are processed in body order."""
        body = 'event: error\ndata: "first"\n\nevent: complete\ndata: [1, 2]\n'

        assert scan_events(body) == ErrorEvent("first")

    def test_data_before_any_event_is_ignored(self):
        assert scan_events("data: [1, 2]\nevent: generating\n") == GeneratingEvent()

    def test_unrecognised_body_yields_nothing(self):
        assert scan_events("") is None
        assert scan_events("event: queued\ndata: null\n") is None
        assert scan_events("<html>busy</html>") is None

    def test_case_and_whitespace_tolerant(self):
        assert scan_events("  event:   COMPLETE  \r\n  data:   [0, 1]  \r\n") == CompleteEvent("[0, 1]")

    def test_complete_without_data_is_decode_error(self):
        with pytest.raises(DecodeError) as exc_info:
            scan_events("event: complete\n\n")

        assert exc_info.value.element == "complete event data"
