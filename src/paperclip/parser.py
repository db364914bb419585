"""Natural language parsing for Paperclip: due dates and todo descriptions."""

import logging
import re
from calendar import monthrange
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Callable, Dict, List, Optional, Set

from fuzzywuzzy import fuzz, process

from .exceptions import DateParseError
from .recurring import RecurrenceParser, RecurrencePattern, add_months
from .todo import clamp_priority
from .utils.datetime import at_time

logger = logging.getLogger(__name__)


DEFAULT_END_OF_DAY = time(23, 59, 59)
NOON = time(12, 0, 0)

WEEKDAYS = {
    'monday': 0, 'mon': 0,
    'tuesday': 1, 'tue': 1, 'tues': 1,
    'wednesday': 2, 'wed': 2,
    'thursday': 3, 'thu': 3, 'thur': 3, 'thurs': 3,
    'friday': 4, 'fri': 4,
    'saturday': 5, 'sat': 5,
    'sunday': 6, 'sun': 6,
}

MONTHS = {
    'january': 1, 'jan': 1,
    'february': 2, 'feb': 2,
    'march': 3, 'mar': 3,
    'april': 4, 'apr': 4,
    'may': 5,
    'june': 6, 'jun': 6,
    'july': 7, 'jul': 7,
    'august': 8, 'aug': 8,
    'september': 9, 'sep': 9, 'sept': 9,
    'october': 10, 'oct': 10,
    'november': 11, 'nov': 11,
    'december': 12, 'dec': 12,
}

UNITS = {
    'day': 'days', 'days': 'days', 'd': 'days',
    'week': 'weeks', 'weeks': 'weeks', 'w': 'weeks',
    'month': 'months', 'months': 'months', 'mo': 'months',
    'year': 'years', 'years': 'years', 'y': 'years',
}

_WEEKDAY_ALT = '|'.join(sorted(WEEKDAYS, key=len, reverse=True))
_MONTH_ALT = '|'.join(sorted(MONTHS, key=len, reverse=True))
_UNIT_ALT = '|'.join(sorted(UNITS, key=len, reverse=True))

WEEKDAY_RE = re.compile(rf'^(?:(next|this)\s+)?({_WEEKDAY_ALT})$')
RELATIVE_RE = re.compile(rf'^(?:in\s+)?(\d+)\s*({_UNIT_ALT})$')
ISO_RE = re.compile(r'^(\d{4})[-/](\d{1,2})[-/](\d{1,2})$')
US_LONG_RE = re.compile(r'^(\d{1,2})/(\d{1,2})/(\d{4})$')
US_SHORT_RE = re.compile(r'^(\d{1,2})[-/](\d{1,2})[-/](\d{2})$')
MONTH_DAY_RE = re.compile(r'^(\d{1,2})[-/](\d{1,2})$')
MONTH_NAME_RE = re.compile(rf'^({_MONTH_ALT})\.?\s+(\d{{1,2}})(?:st|nd|rd|th)?(?:,?\s+(\d{{4}}))?$')
DAY_MONTH_NAME_RE = re.compile(rf'^(\d{{1,2}})(?:st|nd|rd|th)?\s+({_MONTH_ALT})\.?(?:,?\s+(\d{{4}}))?$')


@dataclass
class DateExpression:
    """Result of parsing a due-date phrase: exactly one field is set."""
    due: Optional[datetime] = None
    recurrence: Optional[RecurrencePattern] = None

    @property
    def is_recurrence(self) -> bool:
        return self.recurrence is not None


class DateExpressionParser:
    """Turns a free-text date phrase into a due date or a recurrence rule.

    Categories are tried in a fixed order and the first match wins: keyword
    literals, weekdays, relative quantities, explicit calendar formats, then
    recurrence phrases. Anything else raises DateParseError.

    A month/day without a year resolves to the current year unless that day
    is already before today, in which case it rolls to next year.
    """

    def __init__(self, end_of_day: time = DEFAULT_END_OF_DAY, first_day_of_week: int = 0):
        self.end_of_day = end_of_day
        self.first_day_of_week = first_day_of_week
        self.keywords: Dict[str, Callable[[datetime], datetime]] = {
            'today': lambda now: self._end_of(now),
            'eod': lambda now: self._end_of(now),
            'endofday': lambda now: self._end_of(now),
            'tomorrow': lambda now: self._end_of(now + timedelta(days=1)),
            'yesterday': lambda now: self._end_of(now - timedelta(days=1)),
            'noon': lambda now: at_time(now, NOON),
        }
        self._matchers = [
            self._parse_keyword,
            self._parse_weekday,
            self._parse_relative,
            self._parse_calendar,
        ]

    def parse(self, text: str, now: datetime) -> DateExpression:
        """Parse text against the caller's notion of now.

        Raises:
            DateParseError: If no category recognizes the text
        """
        normalized = ' '.join(text.lower().split())
        if not normalized:
            raise DateParseError(text)

        for matcher in self._matchers:
            try:
                due = matcher(normalized, now)
            except (OverflowError, ValueError):
                logger.debug(f"Date expression out of range: {text!r}")
                raise DateParseError(text, suggestions=["That date is out of range"]) from None
            if due is not None:
                return DateExpression(due=due)

        pattern = RecurrenceParser.parse(normalized)
        if pattern is not None:
            return DateExpression(recurrence=pattern)

        logger.debug(f"Unrecognized date expression: {text!r}")
        raise DateParseError(text, suggestions=self.suggest(normalized))

    def parse_due(self, text: str, now: datetime) -> datetime:
        """Parse text that must name a point in time, not a recurrence."""
        result = self.parse(text, now)
        if result.due is None:
            raise DateParseError(text, suggestions=["Use %<pattern> to set a recurrence"])
        return result.due

    def suggest(self, normalized: str) -> List[str]:
        """Offer close keyword/weekday spellings for an unrecognized phrase."""
        words = list(self.keywords) + [w for w in WEEKDAYS if len(w) > 3]
        matches = process.extractBests(normalized, words, scorer=fuzz.ratio, score_cutoff=75, limit=2)
        return [f"Did you mean '{match[0]}'?" for match in matches]

    def _end_of(self, dt: datetime) -> datetime:
        return at_time(dt, self.end_of_day)

    def _on_day(self, now: datetime, year: int, month: int, day: int) -> Optional[datetime]:
        if not 1 <= month <= 12 or not 1 <= day <= monthrange(year, month)[1]:
            return None
        return self._end_of(now.replace(year=year, month=month, day=day))

    def _parse_keyword(self, text: str, now: datetime) -> Optional[datetime]:
        builder = self.keywords.get(text)
        return builder(now) if builder else None

    def _parse_weekday(self, text: str, now: datetime) -> Optional[datetime]:
        match = WEEKDAY_RE.match(text)
        if not match:
            return None
        modifier, name = match.groups()
        target = WEEKDAYS[name]

        if modifier == 'this':
            week_start_offset = (now.weekday() - self.first_day_of_week) % 7
            target_offset = (target - self.first_day_of_week) % 7
            days_ahead = target_offset - week_start_offset
        else:
            days_ahead = (target - now.weekday()) % 7
            if days_ahead == 0:
                days_ahead = 7

        return self._end_of(now + timedelta(days=days_ahead))

    def _parse_relative(self, text: str, now: datetime) -> Optional[datetime]:
        match = RELATIVE_RE.match(text)
        if not match:
            return None
        amount = int(match.group(1))
        unit = UNITS[match.group(2)]

        if unit == 'days':
            target = now + timedelta(days=amount)
        elif unit == 'weeks':
            target = now + timedelta(weeks=amount)
        elif unit == 'months':
            target = add_months(now, amount)
        else:
            target = add_months(now, 12 * amount)
        return self._end_of(target)

    def _parse_calendar(self, text: str, now: datetime) -> Optional[datetime]:
        match = ISO_RE.match(text)
        if match:
            year, month, day = (int(g) for g in match.groups())
            return self._on_day(now, year, month, day) or self._invalid(text)

        match = US_LONG_RE.match(text)
        if match:
            month, day, year = (int(g) for g in match.groups())
            return self._on_day(now, year, month, day) or self._invalid(text)

        match = US_SHORT_RE.match(text)
        if match:
            month, day, year = (int(g) for g in match.groups())
            return self._on_day(now, 2000 + year, month, day) or self._invalid(text)

        match = MONTH_DAY_RE.match(text)
        if match:
            month, day = (int(g) for g in match.groups())
            return self._without_year(text, now, month, day)

        match = MONTH_NAME_RE.match(text)
        if match:
            month, day, year = MONTHS[match.group(1)], int(match.group(2)), match.group(3)
            if year:
                return self._on_day(now, int(year), month, day) or self._invalid(text)
            return self._without_year(text, now, month, day)

        match = DAY_MONTH_NAME_RE.match(text)
        if match:
            day, month, year = int(match.group(1)), MONTHS[match.group(2)], match.group(3)
            if year:
                return self._on_day(now, int(year), month, day) or self._invalid(text)
            return self._without_year(text, now, month, day)

        return None

    def _without_year(self, text: str, now: datetime, month: int, day: int) -> datetime:
        candidate = self._on_day(now, now.year, month, day)
        if candidate is None or candidate.date() < now.date():
            # Feb 29 may only exist in a later year
            candidate = self._on_day(now, now.year + 1, month, day)
        return candidate or self._invalid(text)

    def _invalid(self, text: str):
        raise DateParseError(text, suggestions=["Check that the day exists in that month"])


@dataclass
class ParsedDescription:
    """A todo description with its inline metadata extracted."""
    raw: str
    description: str
    tags: Set[str] = field(default_factory=set)
    contexts: Set[str] = field(default_factory=set)
    due_date: Optional[datetime] = None
    priority: Optional[int] = None
    recurrence: Optional[RecurrencePattern] = None
    errors: List[DateParseError] = field(default_factory=list)


class DescriptionParser:
    """Extracts #tags, @contexts, due:, ~priority and %recurrence markers."""

    def __init__(self, date_parser: DateExpressionParser):
        self.date_parser = date_parser
        self.patterns = {
            'tags': re.compile(r'#([a-zA-Z0-9_]+)'),
            'contexts': re.compile(r'@([a-zA-Z0-9_]+)'),
            'due': re.compile(r'\bdue:(?:"([^"]*)"|(\S+))', re.IGNORECASE),
            'priority': re.compile(r'(?<!\S)~([0-9])(?!\S)'),
            'recurrence': re.compile(r'(?<!\S)%([a-zA-Z0-9_,-]+)'),
        }

    def parse(self, raw: str, now: datetime) -> ParsedDescription:
        text = raw.strip()
        parsed = ParsedDescription(raw=text, description="")

        due_match = self.patterns['due'].search(text)
        if due_match:
            phrase = due_match.group(1) if due_match.group(1) is not None else due_match.group(2)
            phrase = phrase.replace('_', ' ')
            try:
                expression = self.date_parser.parse(phrase, now)
            except DateParseError as e:
                parsed.errors.append(e)
            else:
                if expression.due is not None:
                    parsed.due_date = expression.due
                else:
                    parsed.recurrence = expression.recurrence
            text = text.replace(due_match.group(0), '', 1)

        priority_match = self.patterns['priority'].search(text)
        if priority_match:
            parsed.priority = clamp_priority(int(priority_match.group(1)))
            text = text.replace(priority_match.group(0), '', 1)

        recurrence_match = self.patterns['recurrence'].search(text)
        if recurrence_match:
            pattern = RecurrenceParser.parse(recurrence_match.group(1))
            if pattern is not None:
                parsed.recurrence = pattern
                text = text.replace(recurrence_match.group(0), '', 1)

        parsed.tags = {tag.lower() for tag in self.patterns['tags'].findall(text)}
        parsed.contexts = {ctx.lower() for ctx in self.patterns['contexts'].findall(text)}

        # Keep the words, drop the markers
        text = self.patterns['tags'].sub(r'\1', text)
        text = self.patterns['contexts'].sub(r'\1', text)
        parsed.description = ' '.join(text.split())
        return parsed

    def suggest_corrections(self, raw: str, known_tags: List[str],
                            known_contexts: List[str]) -> List[str]:
        """Suggest existing tags/contexts for near-miss spellings."""
        suggestions = []

        for tag in {t.lower() for t in self.patterns['tags'].findall(raw)}:
            if known_tags and tag not in known_tags:
                close_matches = process.extractBests(tag, known_tags, scorer=fuzz.ratio,
                                                     score_cutoff=70, limit=1)
                if close_matches:
                    suggestions.append(f"Did you mean #{close_matches[0][0]} instead of #{tag}?")

        for context in {c.lower() for c in self.patterns['contexts'].findall(raw)}:
            if known_contexts and context not in known_contexts:
                close_matches = process.extractBests(context, known_contexts, scorer=fuzz.ratio,
                                                     score_cutoff=70, limit=1)
                if close_matches:
                    suggestions.append(f"Did you mean @{close_matches[0][0]} instead of @{context}?")

        return suggestions

