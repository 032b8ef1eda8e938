"""日期解析与提取工具."""

import email.utils
import re
from collections.abc import Callable
from datetime import UTC, datetime, timedelta, timezone

from bs4 import Tag
from dateutil import parser as dateutil_parser

# 常见时区缩写
TZINFOS = {
    "EST": timezone(timedelta(hours=-5)),
    "EDT": timezone(timedelta(hours=-4)),
    "CST": timezone(timedelta(hours=-6)),
    "CDT": timezone(timedelta(hours=-5)),
    "MST": timezone(timedelta(hours=-7)),
    "MDT": timezone(timedelta(hours=-6)),
    "PST": timezone(timedelta(hours=-8)),
    "PDT": timezone(timedelta(hours=-7)),
    "GMT": UTC,
    "UTC": UTC,
}

MONTHS = {
    "january": 1,
    "february": 2,
    "march": 3,
    "april": 4,
    "may": 5,
    "june": 6,
    "july": 7,
    "august": 8,
    "september": 9,
    "october": 10,
    "november": 11,
    "december": 12,
}

_PREFIX_RE = re.compile(r"^(Published|Posted|Updated|Created|Date|On):?\s*", re.I)
_LEADING_WORD_RE = re.compile(r"^(at|on)\s+", re.I)
_TZ_SUFFIX_RE = re.compile(r"\s+(UTC|GMT|EST|PST|CST|EDT|PDT|CDT)(\s|$)", re.I)

# 12 小时制时间，如 "10:30 PM"
_MERIDIEM_TIME_RE = re.compile(r"\d{1,2}:\d{2}(?::\d{2})?\s*(AM|PM)\b", re.I)

# 日期后面紧跟时间时交给日期加时间阶段处理
_NO_TRAILING_TIME = r"(?!,?\s*(?:at\s+)?\d{1,2}:\d{2})"

_RELATIVE_UNITS: dict[str, timedelta] = {
    "second": timedelta(seconds=1),
    "minute": timedelta(minutes=1),
    "hour": timedelta(hours=1),
    "day": timedelta(days=1),
    "week": timedelta(weeks=1),
    "month": timedelta(days=30),
    "year": timedelta(days=365),
}
_RELATIVE_RE = re.compile(
    r"(\d+)\s+(second|minute|hour|day|week|month|year)s?\s+ago", re.I
)

MONTH_NAME_PATTERN = re.compile(
    r"\b(Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec|January|February|March"
    r"|April|May|June|July|August|September|October|November|December)[a-z]*"
    r"\s+\d{1,2},?\s+\d{4}\b",
    re.I,
)

DATE_CLASS_SELECTOR = (
    '[class*="date" i], [class*="published" i]'
)


def _utc(year: int, month: int, day: int, hour: int = 0, minute: int = 0,
         second: int = 0) -> datetime | None:
    """构造 UTC 时间，非法日期返回 None."""
    try:
        return datetime(year, month, day, hour, minute, second, tzinfo=UTC)
    except ValueError:
        return None


def _ensure_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _month_number(name: str) -> int | None:
    """月份名（全称或缩写，如 Nov / Sept）转为数字."""
    lowered = name.lower().rstrip(".")
    if len(lowered) < 3:
        return None
    for full_name, number in MONTHS.items():
        if full_name.startswith(lowered):
            return number
    return None


def _to_hour24(hour: int, meridiem: str) -> int:
    meridiem = meridiem.upper()
    if meridiem == "PM" and hour != 12:
        return hour + 12
    if meridiem == "AM" and hour == 12:
        return 0
    return hour


def clean_date_string(value: str) -> str:
    """去掉 "Published:" 等前缀以及时区缩写."""
    cleaned = value.strip()
    cleaned = _PREFIX_RE.sub("", cleaned)
    cleaned = _LEADING_WORD_RE.sub("", cleaned)
    cleaned = _TZ_SUFFIX_RE.sub(r"\2", cleaned)
    return cleaned.strip()


def _parse_iso(value: str, now: datetime) -> datetime | None:
    """ISO 8601 与 RFC 822."""
    if value.isdigit():
        return None

    try:
        return _ensure_aware(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        pass

    # RFC 2822 解析会忽略 AM/PM
    if _MERIDIEM_TIME_RE.search(value):
        return None

    try:
        parsed = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    return _ensure_aware(parsed) if parsed else None


def _parse_relative(value: str, now: datetime) -> datetime | None:
    """"2 days ago"、"yesterday"、"today"、"now"."""
    match = _RELATIVE_RE.search(value)
    if match:
        amount = int(match.group(1))
        unit = match.group(2).lower()
        return now - _RELATIVE_UNITS[unit] * amount

    keyword = value.strip().lower()
    if keyword == "yesterday":
        return now - timedelta(days=1)
    if keyword in ("today", "now"):
        return now
    return None


_WRITTEN_PATTERNS: list[tuple[re.Pattern[str], tuple[int, int, int]]] = [
    # (regex, (month_group, day_group, year_group))
    (
        re.compile(r"([A-Za-z]+)\.?\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4})" + _NO_TRAILING_TIME),
        (1, 2, 3),
    ),
    (
        re.compile(r"(\d{1,2})(?:st|nd|rd|th)?\s+([A-Za-z]+)\.?,?\s+(\d{4})" + _NO_TRAILING_TIME),
        (2, 1, 3),
    ),
    (re.compile(r"(\d{1,2})[-/]([A-Za-z]+)[-/](\d{4})"), (2, 1, 3)),
    (re.compile(r"(\d{4})[-/]([A-Za-z]+)[-/](\d{1,2})"), (2, 3, 1)),
]


def _parse_written(value: str, now: datetime) -> datetime | None:
    """"November 24, 2025"、"24 Nov 2025"、"24-Nov-2025"."""
    for regex, (month_idx, day_idx, year_idx) in _WRITTEN_PATTERNS:
        match = regex.search(value)
        if not match:
            continue
        month = _month_number(match.group(month_idx))
        if month is None:
            continue
        parsed = _utc(int(match.group(year_idx)), month, int(match.group(day_idx)))
        if parsed:
            return parsed
    return None


def _day_first(first: int, second: int, year: int) -> datetime | None:
    # DD/MM 优先：first<=31 且 second<=12 时按 DD/MM 解释
    if first <= 31 and second <= 12:
        parsed = _utc(year, second, first)
        if parsed:
            return parsed
    return _utc(year, first, second)


_NUMERIC_PATTERNS: list[tuple[re.Pattern[str], Callable[[re.Match[str]], datetime | None]]] = [
    (
        re.compile(r"(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})(?!\d)" + _NO_TRAILING_TIME),
        lambda m: _utc(int(m.group(1)), int(m.group(2)), int(m.group(3))),
    ),
    (
        re.compile(r"(\d{1,2})[-/.](\d{1,2})[-/.](\d{4})" + _NO_TRAILING_TIME),
        lambda m: _day_first(int(m.group(1)), int(m.group(2)), int(m.group(3))),
    ),
    (
        # 两位年份按 20xx 处理
        re.compile(r"(?<!\d)(\d{1,2})[-/](\d{1,2})[-/](\d{2})(?!\d)" + _NO_TRAILING_TIME),
        lambda m: _utc(2000 + int(m.group(3)), int(m.group(1)), int(m.group(2)))
        or _utc(2000 + int(m.group(3)), int(m.group(2)), int(m.group(1))),
    ),
]


def _parse_numeric(value: str, now: datetime) -> datetime | None:
    """"2025-11-24"、"11/24/2025"、"24.11.2025"、"11/24/25"."""
    for regex, build in _NUMERIC_PATTERNS:
        match = regex.search(value)
        if match:
            parsed = build(match)
            if parsed:
                return parsed
    return None


def _clock(m: re.Match[str], hour_idx: int) -> tuple[int, int, int]:
    """取出 (时, 分, 秒)，hour_idx 之后依次为分、秒、AM/PM 分组."""
    hour = int(m.group(hour_idx))
    meridiem = m.group(hour_idx + 3)
    if meridiem:
        hour = _to_hour24(hour, meridiem)
    return hour, int(m.group(hour_idx + 1)), int(m.group(hour_idx + 2) or 0)


def _parse_written_datetime(m: re.Match[str]) -> datetime | None:
    month = _month_number(m.group(1))
    if month is None:
        return None
    return _utc(int(m.group(3)), month, int(m.group(2)), *_clock(m, 4))


def _parse_numeric_datetime(m: re.Match[str]) -> datetime | None:
    first, second, year = int(m.group(1)), int(m.group(2)), int(m.group(3))
    # 带 AM/PM 的按美式 MM/DD，否则沿用 DD/MM 优先规则
    if m.group(7):
        date = _utc(year, first, second)
    else:
        date = _day_first(first, second, year)
    if date is None:
        return None
    return _utc(date.year, date.month, date.day, *_clock(m, 4))


_DATETIME_PATTERNS: list[tuple[re.Pattern[str], Callable[[re.Match[str]], datetime | None]]] = [
    (
        re.compile(
            r"([A-Za-z]+)\.?\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4}),?\s+(?:at\s+)?"
            r"(\d{1,2}):(\d{2})(?::(\d{2}))?\s*(AM|PM)?",
            re.I,
        ),
        _parse_written_datetime,
    ),
    (
        re.compile(
            r"(\d{4})[-/.](\d{1,2})[-/.](\d{1,2}),?\s+(?:at\s+)?"
            r"(\d{1,2}):(\d{2})(?::(\d{2}))?\s*(AM|PM)?",
            re.I,
        ),
        lambda m: _utc(int(m.group(1)), int(m.group(2)), int(m.group(3)), *_clock(m, 4)),
    ),
    (
        re.compile(
            r"(\d{1,2})[-/.](\d{1,2})[-/.](\d{4}),?\s+(?:at\s+)?"
            r"(\d{1,2}):(\d{2})(?::(\d{2}))?\s*(AM|PM)?",
            re.I,
        ),
        _parse_numeric_datetime,
    ),
]


def _parse_datetime(value: str, now: datetime) -> datetime | None:
    """"November 24, 2025 at 10:30 AM" 等日期加时间格式."""
    for regex, build in _DATETIME_PATTERNS:
        match = regex.search(value)
        if match:
            parsed = build(match)
            if parsed:
                return parsed
    return None


def _parse_timestamp(value: str, now: datetime) -> datetime | None:
    """10 位（秒）或 13 位（毫秒）Unix 时间戳."""
    if not re.fullmatch(r"\d{10,13}", value):
        return None
    timestamp = int(value)
    seconds = timestamp if timestamp < 10_000_000_000 else timestamp / 1000
    try:
        return datetime.fromtimestamp(seconds, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None


def _parse_fallback(value: str, now: datetime) -> datetime | None:
    """最后兜底：交给 dateutil 宽松解析."""
    # 纯数字不是日期（评论数、页码等）
    if value.isdigit():
        return None
    try:
        return _ensure_aware(dateutil_parser.parse(value, tzinfos=TZINFOS))
    except (ValueError, OverflowError):
        return None


DATE_PARSERS: list[Callable[[str, datetime], datetime | None]] = [
    _parse_iso,
    _parse_relative,
    _parse_written,
    _parse_numeric,
    _parse_datetime,
    _parse_timestamp,
    _parse_fallback,
]


def parse_date(value: str | None, now: datetime | None = None) -> datetime | None:
    """
    从各种格式的文本中解析日期.

    按顺序尝试 ISO/RFC 822、相对时间、英文月份写法、纯数字写法、
    日期加时间、Unix 时间戳，最后交给 dateutil。第一个成功的结果即为答案。

    Args:
        value: 日期文本
        now: 计算相对时间时使用的当前时间，默认取 UTC 当前时间

    Returns:
        带时区的 datetime；无法解析时返回 None
    """
    if not value or not value.strip():
        return None

    cleaned = clean_date_string(value)
    if not cleaned:
        return None

    reference = _ensure_aware(now) if now else datetime.now(UTC)
    for parse in DATE_PARSERS:
        parsed = parse(cleaned, reference)
        if parsed is not None:
            return parsed
    return None


def _element_text(element: Tag) -> str:
    return " ".join(element.get_text(" ").split())


def extract_date_from_element(
    element: Tag,
    date_selector: str | None = None,
    now: datetime | None = None,
) -> datetime | None:
    """
    从 HTML 元素中提取日期.

    依次尝试：配置的选择器 → <time datetime> → class 含 date/published 的元素
    → 子树中任何形如 "Nov 24, 2025" 的文本。
    """
    if date_selector:
        date_el = element.select_one(date_selector)
        if date_el is not None:
            text = _element_text(date_el)
            if text:
                parsed = parse_date(text, now)
                if parsed:
                    return parsed

    time_el = element.select_one("time[datetime]")
    if time_el is not None:
        datetime_attr = time_el.get("datetime")
        if isinstance(datetime_attr, str) and datetime_attr:
            parsed = parse_date(datetime_attr, now)
            if parsed:
                return parsed

    for date_el in element.select(DATE_CLASS_SELECTOR):
        text = _element_text(date_el)
        if text:
            parsed = parse_date(text, now)
            if parsed:
                return parsed

    for candidate in element.find_all(True):
        text = _element_text(candidate)
        if text and MONTH_NAME_PATTERN.search(text):
            parsed = parse_date(text, now)
            if parsed:
                return parsed

    return None
