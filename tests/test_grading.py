"""Tests for answer normalisation and grading (no DB dependency)."""

import pytest

from errors import InvalidInput
from grading import POINTS, auto_grade, normalize, parse_status, points_for


class TestNormalize:
    """Whitespace and case never decide a match."""

    def test_collapses_and_lowercases(self):
        assert normalize("  Den   Haag\t") == "den haag"

    def test_none_is_empty(self):
        assert normalize(None) == ""

    def test_newlines_count_as_whitespace(self):
        assert normalize("New\nYork") == "new york"

    @pytest.mark.parametrize("raw", [
        "",
        "   ",
        "\tParijs\t",
        "Den\n\nHaag",
        "  MiXeD   CaSe\r\n",
        "al genormaliseerd",
    ])
    def test_idempotent(self, raw):
        once = normalize(raw)
        assert normalize(once) == once


class TestAutoGrade:
    """Auto-grading only ever marks correct or leaves the answer for review."""

    def test_exact_match_is_correct(self):
        assert auto_grade("Parijs", "Parijs") == ("goed", 10)

    def test_case_and_spacing_insensitive(self):
        assert auto_grade("  parijs ", "PARIJS") == ("goed", 10)

    def test_mismatch_stays_unknown(self):
        assert auto_grade("Lyon", "Parijs") == ("onbekend", 0)

    def test_near_miss_is_not_a_typo(self):
        status, points = auto_grade("Parys", "Parijs")
        assert status == "onbekend"
        assert points == 0

    def test_missing_correct_answer(self):
        assert auto_grade("", None) == ("onbekend", 0)


class TestStatuses:
    """Teacher statuses and their fixed point values."""

    def test_points_table(self):
        assert POINTS == {"goed": 10, "typfout": 5, "fout": 0, "onbekend": 0}

    def test_points_for_unknown_value(self):
        assert points_for("bogus") == 0

    @pytest.mark.parametrize("raw,expected", [
        ("goed", "goed"),
        ("TYPFOUT", "typfout"),
        (" fout ", "fout"),
        ("correct", "goed"),
        ("typo", "typfout"),
        ("wrong", "fout"),
    ])
    def test_parse_status(self, raw, expected):
        assert parse_status(raw) == expected

    @pytest.mark.parametrize("raw", ["", None, "perfect"])
    def test_parse_status_rejects(self, raw):
        with pytest.raises(InvalidInput):
            parse_status(raw)
