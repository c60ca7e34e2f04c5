"""
Field validation rules and form calculations.

Every function here is pure: values come in as raw strings, results come
back as ValidationIssue / NamedTuple records. Nothing here touches the
form tree or Streamlit.
"""

import re
import logging
from datetime import date, datetime
from enum import Enum
from typing import Dict, Any, Mapping, NamedTuple, Optional

from dateutil import parser

logger = logging.getLogger(__name__)

REQUIRED_MESSAGE = "This field is required"
INVALID_PHONE_MESSAGE = "Must be 10 digits"
INVALID_OCCURRENCE_MESSAGE = "Must start with PR followed by numbers"
TIME_OFFSET_MESSAGE = "Please specify the time offset"
ORDERING_MESSAGE = "End time must be after start time"
FUTURE_TIME_MESSAGE = "Times cannot be in the future"
FUTURE_DATE_MESSAGE = "Date cannot be in the future"
FUTURE_RETENTION_MESSAGE = "Invalid date: Earliest date cannot be in the future"
INVALID_DATE_MESSAGE = "Enter a valid date"
INVALID_DATETIME_MESSAGE = "Enter a valid date and time"

DEFAULT_EMAIL_DOMAIN = "peelpolice.ca"
DEFAULT_PHONE_DIGITS = 10
DEFAULT_IDENTIFIER_PREFIX = "PR"


class ErrorKind(str, Enum):
    """Kinds of field-level validation failure."""
    REQUIRED_FIELD_MISSING = "required_field_missing"
    FORMAT_INVALID = "format_invalid"
    RANGE_INVALID = "range_invalid"
    ORDERING_INVALID = "ordering_invalid"
    FUTURE_DATE_REJECTED = "future_date_rejected"


class ValidationIssue(NamedTuple):
    kind: ErrorKind
    message: str
    annotation: Optional[str] = None


class FieldResult(NamedTuple):
    """Outcome of checking one field: an issue (or None) plus an optional note shown under the field."""
    issue: Optional[ValidationIssue] = None
    annotation: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.issue is None


class ValidationSettings(NamedTuple):
    email_domain: str = DEFAULT_EMAIL_DOMAIN
    phone_digits: int = DEFAULT_PHONE_DIGITS
    identifier_prefix: str = DEFAULT_IDENTIFIER_PREFIX

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]]) -> 'ValidationSettings':
        section = (config or {}).get('validation', {}) or {}
        return cls(
            email_domain=section.get('email_domain', DEFAULT_EMAIL_DOMAIN),
            phone_digits=int(section.get('phone_digits', DEFAULT_PHONE_DIGITS)),
            identifier_prefix=section.get('identifier_prefix', DEFAULT_IDENTIFIER_PREFIX),
        )


class RetentionInfo(NamedTuple):
    days: Optional[int]
    message: str
    is_urgent: bool


class DurationInfo(NamedTuple):
    hours: int
    minutes: int
    total_minutes: int
    formatted: str


class TimeOffset(NamedTuple):
    hours: int
    minutes: int
    seconds: int
    direction: str
    formatted: str
    total_minutes: float


def is_blank(value: Optional[str]) -> bool:
    return value is None or str(value).strip() == ''


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a date or date-time string into a naive local datetime.

    Args:
        value: Raw field value ('2024-01-15', '2024-01-15T10:00', ...)

    Returns:
        Parsed datetime, or None for a blank value

    Raises:
        ValueError: If the value cannot be parsed
    """
    if is_blank(value):
        return None
    try:
        parsed = parser.parse(str(value).strip())
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Unparseable date value: {value!r}") from e
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'}"


# Individual rules ---------------------------------------------------------

def validate_required(value: Optional[str], message: Optional[str] = None) -> Optional[ValidationIssue]:
    if is_blank(value):
        return ValidationIssue(ErrorKind.REQUIRED_FIELD_MISSING, message or REQUIRED_MESSAGE)
    return None


def validate_email(value: str, domain: str = DEFAULT_EMAIL_DOMAIN) -> Optional[ValidationIssue]:
    pattern = re.compile(rf'^[^\s@]+@{re.escape(domain)}$', re.IGNORECASE)
    if not pattern.match(value.strip()):
        return ValidationIssue(ErrorKind.FORMAT_INVALID, f"Must be a valid @{domain} email")
    return None


def validate_phone(value: str, digits: int = DEFAULT_PHONE_DIGITS) -> Optional[ValidationIssue]:
    digits_only = clean_phone(value)
    if len(digits_only) != digits:
        message = INVALID_PHONE_MESSAGE if digits == DEFAULT_PHONE_DIGITS else f"Must be {digits} digits"
        return ValidationIssue(ErrorKind.FORMAT_INVALID, message)
    return None


def validate_prefix_identifier(value: str, prefix: str = DEFAULT_IDENTIFIER_PREFIX) -> Optional[ValidationIssue]:
    pattern = re.compile(rf'^{re.escape(prefix)}\d+$', re.IGNORECASE)
    if not pattern.match(value.strip()):
        message = (INVALID_OCCURRENCE_MESSAGE if prefix == DEFAULT_IDENTIFIER_PREFIX
                   else f"Must start with {prefix} followed by numbers")
        return ValidationIssue(ErrorKind.FORMAT_INVALID, message)
    return None


def validate_integer_range(value: str, min_value: int, max_value: int,
                           label: str = "Value") -> Optional[ValidationIssue]:
    try:
        number = int(value.strip())
    except ValueError:
        return ValidationIssue(ErrorKind.FORMAT_INVALID, f"{label} must be a number")
    if number < min_value or number > max_value:
        return ValidationIssue(ErrorKind.RANGE_INVALID, f"{label} must be between {min_value} and {max_value}")
    return None


def validate_contains_digit(value: str, message: Optional[str] = None) -> Optional[ValidationIssue]:
    if not re.search(r'\d+', value):
        return ValidationIssue(ErrorKind.FORMAT_INVALID, message or TIME_OFFSET_MESSAGE)
    return None


def validate_not_future(value: str, date_only: bool = False,
                        now: Optional[datetime] = None) -> Optional[ValidationIssue]:
    now = now or datetime.now()
    try:
        parsed = parse_datetime(value)
    except ValueError:
        return ValidationIssue(ErrorKind.FORMAT_INVALID,
                               INVALID_DATE_MESSAGE if date_only else INVALID_DATETIME_MESSAGE)
    if parsed is None:
        return None
    if date_only:
        if parsed.date() > now.date():
            return ValidationIssue(ErrorKind.FUTURE_DATE_REJECTED, FUTURE_DATE_MESSAGE)
    elif parsed > now:
        return ValidationIssue(ErrorKind.FUTURE_DATE_REJECTED, FUTURE_TIME_MESSAGE)
    return None


def validate_after(end_value: str, start_value: Optional[str]) -> Optional[ValidationIssue]:
    """
    Check that an end time falls strictly after its start time.

    A blank or unparseable partner is left to that field's own rules.
    """
    try:
        start = parse_datetime(start_value)
        end = parse_datetime(end_value)
    except ValueError:
        return None
    if start is None or end is None:
        return None
    if end <= start:
        return ValidationIssue(ErrorKind.ORDERING_INVALID, ORDERING_MESSAGE)
    return None


def validate_retention(value: str, today: Optional[date] = None) -> FieldResult:
    try:
        parse_datetime(value)
    except ValueError:
        return FieldResult(ValidationIssue(ErrorKind.FORMAT_INVALID, INVALID_DATE_MESSAGE))

    info = calculate_retention_days(value, today=today)
    if info.days is None and info.message:
        return FieldResult(ValidationIssue(ErrorKind.FUTURE_DATE_REJECTED, info.message))
    return FieldResult(None, info.message or None)


def check_field(definition, value: Optional[str], required: bool,
                related: Optional[Mapping[str, Optional[str]]] = None,
                now: Optional[datetime] = None,
                settings: Optional[ValidationSettings] = None) -> FieldResult:
    """
    Run every rule declared for a field against its current value.

    Args:
        definition: FieldDefinition of the field
        value: Raw current value
        required: Whether the field is required right now (visibility already applied)
        related: Current values of sibling fields referenced by ordering rules
        now: Reference time for future-date checks
        settings: Domain / digit / prefix settings from configuration

    Returns:
        FieldResult with the first failing rule, or an annotation when valid
    """
    settings = settings or ValidationSettings()
    related = related or {}
    now = now or datetime.now()

    if is_blank(value):
        if required:
            return FieldResult(validate_required(value, definition.required_message))
        return FieldResult()

    value = str(value)
    annotation = None

    for rule in definition.rules:
        issue = None
        if rule.type == 'email_domain':
            issue = validate_email(value, rule.domain or settings.email_domain)
        elif rule.type == 'phone':
            issue = validate_phone(value, rule.digits or settings.phone_digits)
        elif rule.type == 'prefix_identifier':
            issue = validate_prefix_identifier(value, rule.prefix or settings.identifier_prefix)
        elif rule.type == 'integer_range':
            issue = validate_integer_range(value, rule.min_value, rule.max_value, definition.label)
        elif rule.type == 'contains_digit':
            issue = validate_contains_digit(value, rule.message)
        elif rule.type == 'not_future':
            issue = validate_not_future(value, date_only=definition.kind.value == 'date', now=now)
        elif rule.type == 'after':
            issue = validate_after(value, related.get(rule.field))
        elif rule.type == 'retention':
            result = validate_retention(value, today=now.date())
            issue, annotation = result.issue, result.annotation

        if issue is not None:
            if rule.message and issue.kind != ErrorKind.REQUIRED_FIELD_MISSING:
                issue = issue._replace(message=rule.message)
            logger.debug(f"Rule '{rule.type}' failed for '{definition.name}': {issue.message}")
            return FieldResult(issue)

    return FieldResult(None, annotation)


# Calculations ---------------------------------------------------------------

def calculate_retention_days(earliest_date: Optional[str], today: Optional[date] = None) -> RetentionInfo:
    """
    Work out how many days of video the DVR still holds.

    Args:
        earliest_date: Earliest date available on the DVR
        today: Reference date (defaults to today)

    Returns:
        RetentionInfo(days, message, is_urgent); days is None for a future date
    """
    if is_blank(earliest_date):
        return RetentionInfo(None, '', False)

    earliest = parse_datetime(earliest_date).date()
    today = today or date.today()
    days = (today - earliest).days

    if days < 0:
        return RetentionInfo(None, FUTURE_RETENTION_MESSAGE, False)
    if days == 0:
        return RetentionInfo(0, "DVR retention: Less than 1 day (CRITICAL - Video may be overwritten today)", True)
    if days == 1:
        return RetentionInfo(1, "DVR retention: 1 day (URGENT - Video will be overwritten tomorrow)", True)
    if days <= 3:
        return RetentionInfo(days, f"DVR retention: {days} days (URGENT - Video will be overwritten soon)", True)
    if days <= 7:
        return RetentionInfo(days, f"DVR retention: {days} days (Video should be recovered within a week)", False)
    return RetentionInfo(days, f"DVR retention: {days} days", False)


def calculate_duration(start_time: Optional[str], end_time: Optional[str]) -> DurationInfo:
    """Length of an extraction time frame, e.g. '2 hours 30 minutes'."""
    if is_blank(start_time) or is_blank(end_time):
        return DurationInfo(0, 0, 0, '')

    start = parse_datetime(start_time)
    end = parse_datetime(end_time)
    total_seconds = (end - start).total_seconds()
    if total_seconds <= 0:
        return DurationInfo(0, 0, 0, 'Invalid duration')

    total_minutes = int(total_seconds // 60)
    hours, minutes = divmod(total_minutes, 60)

    if hours > 0:
        formatted = _plural(hours, 'hour')
        if minutes > 0:
            formatted += f" {_plural(minutes, 'minute')}"
    else:
        formatted = _plural(minutes, 'minute')

    return DurationInfo(hours, minutes, total_minutes, formatted)


def parse_time_offset(offset: Optional[str]) -> TimeOffset:
    """
    Parse a free-text DVR clock offset such as 'DVR is 1hr 5min 30sec AHEAD'.

    Direction defaults to AHEAD unless the text says behind or slow.
    """
    if is_blank(offset):
        return TimeOffset(0, 0, 0, '', '', 0.0)

    text = offset.lower()
    hour_match = re.search(r'(\d+)\s*h(?:ou)?r?s?', text)
    minute_match = re.search(r'(\d+)\s*m(?:in)?(?:ute)?s?', text)
    second_match = re.search(r'(\d+)\s*s(?:ec)?(?:ond)?s?', text)

    hours = int(hour_match.group(1)) if hour_match else 0
    minutes = int(minute_match.group(1)) if minute_match else 0
    seconds = int(second_match.group(1)) if second_match else 0

    direction = 'BEHIND' if ('behind' in text or 'slow' in text) else 'AHEAD'

    parts = []
    if hours > 0:
        parts.append(_plural(hours, 'hour'))
    if minutes > 0:
        parts.append(_plural(minutes, 'minute'))
    if seconds > 0:
        parts.append(_plural(seconds, 'second'))

    formatted = f"DVR is {' '.join(parts)} {direction} of real time" if parts else offset
    return TimeOffset(hours, minutes, seconds, direction, formatted, hours * 60 + minutes + seconds / 60)


def clean_phone(phone: Optional[str]) -> str:
    return re.sub(r'\D', '', phone or '')


def format_phone(phone: Optional[str]) -> str:
    """Format a 10 digit phone number as 905-555-1234; anything else is returned unchanged."""
    digits_only = clean_phone(phone)
    if len(digits_only) == 10:
        return f"{digits_only[:3]}-{digits_only[3:6]}-{digits_only[6:]}"
    return phone or ''
