from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any, Callable
from zoneinfo import ZoneInfo

from dateutil import parser as date_parser

from records.time_utils import to_instant, utc_now


_RELATIVE_DAY_OFFSETS = (
    ("yesterday", -1),
    ("tomorrow", 1),
    ("tonight", 0),
    ("today", 0),
    ("tmr", 1),
)
_KEYWORD_TAIL_RE = re.compile(r"^[,\s]*")
_BARE_HOUR_RE = re.compile(r"^\d{1,2}$")
_SENTINEL_TIME = time(13, 37)


def _coerce_tz(value: tzinfo | str | None) -> tzinfo:
    if value is None:
        return timezone.utc
    if isinstance(value, str):
        return ZoneInfo(value) if value.strip().upper() != "UTC" else timezone.utc
    return value


class DateTimeResolver:
    """Resolves loose date/time text to a canonical UTC instant string.

    Relative words ("today", "tonight", "tomorrow"/"tmr", "yesterday") anchor
    the date in the local timezone and must be followed by a time of day; a
    bare relative word resolves to ``None`` instead of guessing a time. The same
    holds for any text without a time of day, such as "Monday" or "2025-03-10".
    Out-of-range values also resolve to ``None``; nothing here raises.
    """

    def __init__(
        self,
        *,
        tz: tzinfo | str | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.tz = _coerce_tz(tz)
        self._now = now or utc_now

    def local_now(self) -> datetime:
        current = self._now()
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        return current.astimezone(self.tz)

    def now_instant(self) -> str:
        return to_instant(self.local_now())

    def resolve(self, value: Any) -> str | None:
        parsed = self.resolve_datetime(value)
        return to_instant(parsed) if parsed else None

    def resolve_datetime(self, value: Any) -> datetime | None:
        if not isinstance(value, str):
            return None
        text = value.strip()
        if not text:
            return None

        today = self.local_now().date()
        lowered = text.lower()
        for keyword, offset in _RELATIVE_DAY_OFFSETS:
            if not lowered.startswith(keyword):
                continue
            remainder = _KEYWORD_TAIL_RE.sub("", text[len(keyword) :]).strip()
            if not remainder:
                return None
            combined = self._combine(today + timedelta(days=offset), remainder)
            if combined:
                return combined
            break

        # An absolute date-time ignores the default date; a bare time lands on today.
        return self._combine(today, text)

    def _combine(self, day: date, fragment: str) -> datetime | None:
        if _BARE_HOUR_RE.fullmatch(fragment):
            fragment = f"{fragment}:00"
        try:
            parsed = date_parser.parse(fragment, default=datetime.combine(day, time(0, 0)))
            shifted = date_parser.parse(fragment, default=datetime.combine(day, _SENTINEL_TIME))
            if (parsed.hour, parsed.minute) != (shifted.hour, shifted.minute):
                # No time of day in the text; "Monday" or "2025-03-10" alone is not a schedule.
                return None
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=self.tz)
            # Both the local and the UTC rendering must stay inside datetime's range.
            parsed.astimezone(self.tz)
            return parsed.astimezone(timezone.utc)
        except (ValueError, OverflowError):
            return None
