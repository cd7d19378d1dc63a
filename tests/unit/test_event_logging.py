"""
Unit tests for build event logging (Tier 2) and timestamp helpers.
"""

import json
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from paperbuild.utils.event_logging import get_recent_events, log_build_event, read_events
from paperbuild.utils.timestamp import format_timestamp


@pytest.mark.unit
class TestLogBuildEvent:
    def test_appends_json_lines(self, tmp_path):
        events_file = tmp_path / "events" / "build_events.log"

        log_build_event(
            "build_started", "main", "rendering", events_file=events_file, engine="pdflatex"
        )
        log_build_event("build_completed", "main", "rendering", events_file=events_file)

        lines = events_file.read_text().splitlines()
        assert len(lines) == 2
        first = json.loads(lines[0])
        assert first["event_type"] == "build_started"
        assert first["document"] == "main"
        assert first["source"] == "rendering"
        assert first["engine"] == "pdflatex"
        assert "timestamp" in first

    def test_paths_serialized_as_strings(self, tmp_path):
        events_file = tmp_path / "build_events.log"

        log_build_event(
            "build_completed",
            "main",
            "rendering",
            events_file=events_file,
            pdf_path=Path("/x/main.pdf"),
        )

        assert read_events(events_file)[0]["pdf_path"] == "/x/main.pdf"

    def test_default_file(self, events_file):
        log_build_event("check_completed", "main", "sources")
        assert events_file.exists()


@pytest.mark.unit
class TestGetRecentEvents:
    @pytest.fixture
    def populated(self, tmp_path):
        events_file = tmp_path / "build_events.log"
        for i in range(5):
            log_build_event("build_completed", "main", "rendering", events_file=events_file, run=i)
        log_build_event("build_failed", "appendix", "rendering", events_file=events_file, run=5)
        return events_file

    def test_last_n(self, populated):
        events = get_recent_events(n=3, events_file=populated)
        assert [e["run"] for e in events] == [3, 4, 5]

    def test_filter_by_document_and_type(self, populated):
        appendix = get_recent_events(document="appendix", events_file=populated)
        assert [e["run"] for e in appendix] == [5]
        assert len(get_recent_events(event_type="build_completed", events_file=populated)) == 5

    def test_malformed_lines_skipped(self, populated):
        with open(populated, "a") as f:
            f.write('{"event_type": "build_sta\n\n')

        assert len(read_events(populated)) == 6

    def test_missing_file(self, tmp_path):
        assert get_recent_events(events_file=tmp_path / "none.log") == []

    def test_zero_returns_nothing(self, populated):
        assert get_recent_events(n=0, events_file=populated) == []
        assert get_recent_events(n=-2, events_file=populated) == []

    def test_unknown_event_type_rejected(self, populated):
        with pytest.raises(ValueError, match="Unknown event type"):
            get_recent_events(event_type="build_complete", events_file=populated)


@pytest.mark.unit
class TestFormatTimestamp:
    def test_absolute(self):
        assert format_timestamp("2026-10-18T18:45:40.572549") == "2026-10-18 18:45:40"

    def test_relative(self):
        two_hours_ago = (datetime.now() - timedelta(hours=2, minutes=1)).isoformat()
        assert format_timestamp(two_hours_ago, relative=True) == "2h ago"

    def test_unparseable_returned_unchanged(self):
        assert format_timestamp("yesterday") == "yesterday"
