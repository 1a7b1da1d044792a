"""Tests for the text-formatting helpers."""

from unittest.mock import patch
import os

from server_stats.formatting import bytes_h, format_uptime, hr, pct, process_row


class TestPct:
    def test_zero_denominator(self):
        assert pct(5, 0) == "0.00"

    def test_two_decimals(self):
        assert pct(1, 3) == "33.33"
        assert pct(3, 4) == "75.00"


class TestBytesH:
    def test_bytes(self):
        assert bytes_h(0) == "0B"
        assert bytes_h(1023) == "1023B"

    def test_units(self):
        assert bytes_h(1536) == "1.5K"
        assert bytes_h(5 * 1024 ** 2) == "5.0M"
        assert bytes_h(2 * 1024 ** 3) == "2.0G"
        assert bytes_h(3 * 1024 ** 4) == "3.0T"

    def test_terabytes_do_not_roll_over(self):
        assert bytes_h(2048 * 1024 ** 4) == "2048.0T"


class TestHr:
    def test_explicit_width(self):
        assert hr(10) == "-" * 10

    def test_terminal_width(self):
        with patch("server_stats.formatting.shutil.get_terminal_size",
                   return_value=os.terminal_size((42, 24))):
            assert hr() == "-" * 42


class TestFormatUptime:
    def test_minutes_only(self):
        assert format_uptime(0) == "up 0 minutes"
        assert format_uptime(61) == "up 1 minute"

    def test_hours(self):
        assert format_uptime(2 * 3600 + 5 * 60) == "up 2 hours, 5 minutes"

    def test_days(self):
        assert format_uptime(3 * 86400 + 3600 + 120) == "up 3 days, 1 hour, 2 minutes"
        assert format_uptime(86400 + 300) == "up 1 day, 0 hours, 5 minutes"


class TestProcessRow:
    def test_fixed_width_columns(self):
        row = process_row(1, "init", 0.5, 1.2)
        assert row == "1".ljust(7) + " " + "init".ljust(25) + " " + "0.5".rjust(6) + " " + "1.2".rjust(6)
        assert len(row) == 7 + 25 + 6 + 6 + 3
