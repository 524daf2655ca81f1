"""Tests for daemon log reading and classification."""

import pytest

from topicwatch.daemon.logs import classify, parse_timestamp, read_logs


class TestClassify:
    @pytest.mark.parametrize(
        ("line", "expected"),
        [
            ("2026-10-17 09:30:00,123 - topicwatch.daemon.cycle - INFO - Item 2 action succeeded: l", "success"),
            ("2026-10-17 09:30:00,123 - topicwatch.daemon.cycle - INFO - Cycle completed for demo", "success"),
            ("2026-10-17 09:30:00,123 - topicwatch.daemon.cycle - ERROR - boom", "error"),
            ("2026-10-17 09:30:00,123 - topicwatch.daemon.cycle - WARNING - Item 4 action failed: x", "error"),
            ("Traceback (most recent call last):", "error"),
            ("2026-10-17 09:30:00,123 - topicwatch.daemon.cycle - INFO - Found 3 candidate items", ""),
        ],
        ids=["acted", "cycle", "error-level", "action-failed", "traceback", "plain"],
    )
    def test_markers(self, line: str, expected: str) -> None:
        assert classify(line) == expected


class TestParseTimestamp:
    def test_formatted_line(self) -> None:
        line = "2026-10-17 09:30:00,123 - topicwatch - INFO - hi"
        assert parse_timestamp(line) == "2026-10-17T09:30:00.123000"

    def test_unformatted_line(self) -> None:
        assert parse_timestamp('  File "x.py", line 1') is None


class TestReadLogs:
    def test_returns_last_non_empty_lines(self, tmp_path) -> None:
        log = tmp_path / "demo_reply.log"
        lines = [f"2026-10-17 09:30:0{i},000 - topicwatch - INFO - line {i}" for i in range(5)]
        log.write_text("\n\n".join(lines) + "\n")

        entries = read_logs(log, lines=2)

        assert [e.message for e in entries] == [lines[3], lines[4]]
        assert entries[-1].timestamp == "2026-10-17T09:30:04"

    def test_missing_file(self, tmp_path) -> None:
        assert read_logs(tmp_path / "none.log") == []

    def test_zero_lines(self, tmp_path) -> None:
        log = tmp_path / "a.log"
        log.write_text("x\n")
        assert read_logs(log, lines=0) == []

    def test_unstamped_lines_get_read_time(self, tmp_path) -> None:
        log = tmp_path / "a.log"
        log.write_text("Traceback (most recent call last):\n")
        entry = read_logs(log)[0]
        assert entry.classification == "error"
        assert entry.to_dict()["timestamp"]
