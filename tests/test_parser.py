"""Tests for date expression and description parsing."""

from datetime import date, datetime, time

import pytest

from paperclip.exceptions import DateParseError
from paperclip.parser import DateExpressionParser, DescriptionParser
from paperclip.recurring import RecurrenceType

from conftest import REFERENCE_NOW


def due_day(parser, text, now=REFERENCE_NOW):
    return parser.parse_due(text, now).date()


class TestKeywords:
    """Keyword literals resolve relative to now."""

    def setup_method(self):
        self.parser = DateExpressionParser()

    def test_today_is_end_of_day(self):
        result = self.parser.parse_due("today", REFERENCE_NOW)
        assert result.date() == date(2024, 6, 10)
        assert result.time() == time(23, 59, 59)
        assert result.tzinfo is not None

    def test_tomorrow(self):
        assert due_day(self.parser, "tomorrow") == date(2024, 6, 11)

    def test_yesterday(self):
        assert due_day(self.parser, "yesterday") == date(2024, 6, 9)

    def test_noon_is_midday_today(self):
        result = self.parser.parse_due("noon", REFERENCE_NOW)
        assert result.date() == date(2024, 6, 10)
        assert result.time() == time(12, 0)

    def test_case_and_whitespace_are_ignored(self):
        assert due_day(self.parser, "  ToMoRRow ") == date(2024, 6, 11)

    def test_custom_end_of_day(self):
        parser = DateExpressionParser(end_of_day=time(18, 0))
        assert parser.parse_due("today", REFERENCE_NOW).time() == time(18, 0)


class TestWeekdays:
    """Weekday phrases on Monday 2024-06-10."""

    def setup_method(self):
        self.parser = DateExpressionParser()

    def test_bare_weekday_is_next_occurrence(self):
        assert due_day(self.parser, "friday") == date(2024, 6, 14)

    def test_bare_weekday_matching_today_is_a_week_ahead(self):
        assert due_day(self.parser, "monday") == date(2024, 6, 17)

    def test_next_friday(self):
        assert due_day(self.parser, "next friday") == date(2024, 6, 14)

    def test_next_monday_is_a_week_ahead(self):
        assert due_day(self.parser, "next monday") == date(2024, 6, 17)

    def test_this_friday(self):
        assert due_day(self.parser, "this friday") == date(2024, 6, 14)

    def test_this_monday_is_today(self):
        assert due_day(self.parser, "this monday") == date(2024, 6, 10)

    def test_this_weekday_can_be_in_the_past(self):
        wednesday = datetime(2024, 6, 12, 9, 0).astimezone()
        assert due_day(self.parser, "this monday", wednesday) == date(2024, 6, 10)

    def test_this_week_respects_first_day_of_week(self):
        parser = DateExpressionParser(first_day_of_week=6)
        # Week starts on Sunday 2024-06-09
        assert due_day(parser, "this sunday") == date(2024, 6, 9)
        assert due_day(parser, "this saturday") == date(2024, 6, 15)

    def test_abbreviations(self):
        assert due_day(self.parser, "wed") == date(2024, 6, 12)
        assert due_day(self.parser, "next thurs") == date(2024, 6, 13)


class TestRelative:

    def setup_method(self):
        self.parser = DateExpressionParser()

    def test_in_days(self):
        assert due_day(self.parser, "in 3 days") == date(2024, 6, 13)

    def test_weeks_without_in(self):
        assert due_day(self.parser, "2 weeks") == date(2024, 6, 24)

    def test_short_units(self):
        assert due_day(self.parser, "5d") == date(2024, 6, 15)
        assert due_day(self.parser, "1w") == date(2024, 6, 17)

    def test_months_clamp_day(self):
        jan_31 = datetime(2024, 1, 31, 8, 0).astimezone()
        assert due_day(self.parser, "in 1 month", jan_31) == date(2024, 2, 29)

    def test_years(self):
        assert due_day(self.parser, "in 1 year") == date(2025, 6, 10)

    def test_relative_is_end_of_day(self):
        assert self.parser.parse_due("in 3 days", REFERENCE_NOW).time() == time(23, 59, 59)


class TestCalendar:

    def setup_method(self):
        self.parser = DateExpressionParser()

    def test_iso(self):
        assert due_day(self.parser, "2024-12-25") == date(2024, 12, 25)

    def test_us_long(self):
        assert due_day(self.parser, "12/25/2024") == date(2024, 12, 25)

    def test_us_short_is_two_thousands(self):
        assert due_day(self.parser, "12-25-24") == date(2024, 12, 25)

    def test_month_name_later_this_year(self):
        assert due_day(self.parser, "dec 25") == date(2024, 12, 25)

    def test_month_name_earlier_rolls_to_next_year(self):
        assert due_day(self.parser, "jan 5") == date(2025, 1, 5)

    def test_today_without_year_stays_this_year(self):
        assert due_day(self.parser, "june 10") == date(2024, 6, 10)

    def test_day_before_month(self):
        assert due_day(self.parser, "25 december") == date(2024, 12, 25)
        assert due_day(self.parser, "3rd march") == date(2025, 3, 3)

    def test_month_day_numeric(self):
        assert due_day(self.parser, "12/25") == date(2024, 12, 25)
        assert due_day(self.parser, "5/1") == date(2025, 5, 1)

    def test_explicit_year_with_month_name(self):
        assert due_day(self.parser, "march 3, 2026") == date(2026, 3, 3)

    def test_invalid_day_is_an_error(self):
        with pytest.raises(DateParseError):
            self.parser.parse("2024-02-30", REFERENCE_NOW)
        with pytest.raises(DateParseError):
            self.parser.parse("13/01/2024", REFERENCE_NOW)

    def test_feb_29_without_year_finds_leap_year(self):
        march = datetime(2027, 3, 1, 9, 0).astimezone()
        assert due_day(self.parser, "feb 29", march) == date(2028, 2, 29)


class TestRecurrenceAndFailures:

    def setup_method(self):
        self.parser = DateExpressionParser()

    def test_recurrence_phrase(self):
        result = self.parser.parse("every 2 weeks", REFERENCE_NOW)
        assert result.is_recurrence
        assert result.due is None
        assert result.recurrence.type == RecurrenceType.WEEKLY
        assert result.recurrence.interval == 2

    def test_parse_due_rejects_recurrence(self):
        with pytest.raises(DateParseError):
            self.parser.parse_due("daily", REFERENCE_NOW)

    def test_unknown_text_fails_with_suggestion(self):
        with pytest.raises(DateParseError) as excinfo:
            self.parser.parse("tomorow", REFERENCE_NOW)
        assert excinfo.value.text == "tomorow"
        assert any("tomorrow" in s for s in excinfo.value.suggestions)

    def test_empty_text_fails(self):
        with pytest.raises(DateParseError):
            self.parser.parse("   ", REFERENCE_NOW)

    @pytest.mark.parametrize("text", [
        "in 100000 years",
        "in 99999999999 days",
        "99999 months",
        "0000-01-01",
    ])
    def test_out_of_range_dates_fail_cleanly(self, text):
        with pytest.raises(DateParseError) as excinfo:
            self.parser.parse(text, REFERENCE_NOW)
        assert excinfo.value.text == text

    def test_parsing_is_deterministic(self):
        first = self.parser.parse_due("next friday", REFERENCE_NOW)
        second = self.parser.parse_due("next friday", REFERENCE_NOW)
        assert first == second


class TestDescriptionParser:
    """Inline markers in todo text."""

    def setup_method(self):
        self.parser = DescriptionParser(DateExpressionParser())

    def test_plain_text(self):
        parsed = self.parser.parse("Buy milk", REFERENCE_NOW)
        assert parsed.description == "Buy milk"
        assert parsed.tags == set()
        assert parsed.due_date is None
        assert parsed.errors == []

    def test_tags_and_contexts_keep_their_words(self):
        parsed = self.parser.parse("Fix #Bug in @office printer", REFERENCE_NOW)
        assert parsed.tags == {"bug"}
        assert parsed.contexts == {"office"}
        assert parsed.description == "Fix Bug in office printer"

    def test_due_token_is_removed(self):
        parsed = self.parser.parse("Pay rent due:tomorrow", REFERENCE_NOW)
        assert parsed.description == "Pay rent"
        assert parsed.due_date.date() == date(2024, 6, 11)

    def test_quoted_and_underscored_due(self):
        quoted = self.parser.parse('Call mom due:"next friday"', REFERENCE_NOW)
        underscored = self.parser.parse("Call mom due:next_friday", REFERENCE_NOW)
        assert quoted.due_date == underscored.due_date
        assert quoted.due_date.date() == date(2024, 6, 14)

    def test_priority_and_recurrence(self):
        parsed = self.parser.parse("Water plants ~3 %every_2_days", REFERENCE_NOW)
        assert parsed.description == "Water plants"
        assert parsed.priority == 3
        assert parsed.recurrence.type == RecurrenceType.CUSTOM
        assert parsed.recurrence.interval == 2

    def test_priority_is_clamped(self):
        parsed = self.parser.parse("Urgent ~9", REFERENCE_NOW)
        assert parsed.priority == 5

    def test_bad_due_is_reported_not_raised(self):
        parsed = self.parser.parse("Report due:someday", REFERENCE_NOW)
        assert parsed.description == "Report"
        assert parsed.due_date is None
        assert len(parsed.errors) == 1
        assert parsed.errors[0].text == "someday"

    def test_out_of_range_due_is_reported_not_raised(self):
        parsed = self.parser.parse("Someday due:in_100000_years", REFERENCE_NOW)
        assert parsed.description == "Someday"
        assert parsed.due_date is None
        assert parsed.errors[0].text == "in 100000 years"

    def test_suggest_corrections(self):
        suggestions = self.parser.suggest_corrections(
            "Ship it #relase @ofice", ["release", "bug"], ["office"]
        )
        assert any("#release" in s for s in suggestions)
        assert any("@office" in s for s in suggestions)

    def test_no_suggestions_for_known_labels(self):
        assert self.parser.suggest_corrections("Ship #release", ["release"], []) == []
