"""Unit tests for the per-job log buffer."""
import pytest
from actrunner.worker.log_buffer import LogBuffer


class TestLogBuffer:
    """Tests for LogBuffer."""

    def test_lines_are_kept_per_step(self):
        """Test output of different steps is kept apart."""
        buffer = LogBuffer()
        buffer.write(0, "a")
        buffer.write(1, "b")
        buffer.write(0, "c")

        assert buffer.lines(0) == ["a", "c"]
        assert buffer.text(1) == "b"

    def test_unknown_step_is_empty(self):
        """Test a step without output yields empty text."""
        assert LogBuffer().text(3) == ""

    def test_oldest_lines_dropped_over_budget(self):
        """Test the buffer keeps the newest output within max_bytes."""
        buffer = LogBuffer(max_bytes=10)
        for line in ["1111", "2222", "3333"]:
            buffer.write(0, line)

        assert buffer.lines(0) == ["2222", "3333"]
        assert buffer.is_truncated(0) is True
        assert buffer.text(0).startswith(LogBuffer.TRUNCATION_MARKER)

    def test_oversized_line_keeps_its_tail(self):
        """Test a line longer than the budget is cut to its newest bytes."""
        buffer = LogBuffer(max_bytes=4)
        buffer.write(0, "x" * 100 + "end")

        assert buffer.lines(0) == ["end"]
        assert buffer.is_truncated(0) is True
        assert buffer.text(0) == LogBuffer.TRUNCATION_MARKER + "\nend"

    def test_oversized_line_replaces_older_output(self):
        """Test an oversized line evicts earlier lines and stays within budget."""
        buffer = LogBuffer(max_bytes=8)
        buffer.write(0, "old")
        buffer.write(0, "y" * 50)

        assert buffer.lines(0) == ["y" * 7]

    def test_oversized_line_cut_on_character_boundary(self):
        """Test cutting multi-byte text never leaves half a character."""
        buffer = LogBuffer(max_bytes=6)
        buffer.write(0, "\u00e9" * 10)

        assert buffer.lines(0) == ["\u00e9\u00e9"]

    def test_truncated_flag_from_writer(self):
        """Test a line that lost its head before reaching the buffer marks the step."""
        buffer = LogBuffer()
        buffer.write(0, "partial", truncated=True)

        assert buffer.lines(0) == ["partial"]
        assert buffer.is_truncated(0) is True

    def test_clear(self):
        """Test clear drops everything."""
        buffer = LogBuffer(max_bytes=4)
        buffer.write(0, "12345")
        buffer.write(0, "1")
        buffer.clear()

        assert buffer.lines(0) == []
        assert buffer.is_truncated(0) is False

    def test_max_bytes_must_be_positive(self):
        """Test invalid budget raises ValueError."""
        with pytest.raises(ValueError):
            LogBuffer(max_bytes=0)
