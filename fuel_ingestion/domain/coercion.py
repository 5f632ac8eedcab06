"""
Coercion of loosely typed legacy values into Decimal, date and time. Pure.

Spreadsheet exports deliver numbers as ints, floats or strings with
thousands separators or a decimal comma ("12,5"; "1,250" is read as
thousands), and dates either as date objects, ISO strings or the Latin
American DD/MM/YY form. Anything that cannot be read raises a
``ParseError`` naming the field; the caller binds it to the source row.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any

from fuel_kernel.exceptions import ParseError

_THOUSANDS = re.compile(r"^-?\d{1,3}(,\d{3})+(\.\d+)?$")
_COMMA_DECIMAL = re.compile(r"^-?\d+,\d+$")
_TIME = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def coerce_text(value: Any) -> str | None:
    if is_blank(value):
        return None
    return str(value).strip()


def coerce_decimal(value: Any, field: str, *, allow_negative: bool = False) -> Decimal | None:
    """
    Read a quantity. Blank -> None.

    Raises:
        ParseError: INVALID_NUMBER for unreadable values, NEGATIVE_QUANTITY
            for values below zero unless ``allow_negative``.
    """
    if is_blank(value):
        return None
    if isinstance(value, bool):
        raise ParseError("INVALID_NUMBER", f"{field}: boolean is not a number", field=field, value=value)

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        s = str(value).strip().replace(" ", "")
        if _THOUSANDS.match(s):
            s = s.replace(",", "")
        elif _COMMA_DECIMAL.match(s):
            s = s.replace(",", ".")
        try:
            result = Decimal(s)
        except (InvalidOperation, ValueError):
            raise ParseError(
                "INVALID_NUMBER", f"{field}: cannot read {value!r} as a number", field=field, value=value
            ) from None

    if not result.is_finite():
        raise ParseError("INVALID_NUMBER", f"{field}: {value!r} is not finite", field=field, value=value)
    if result < 0 and not allow_negative:
        raise ParseError(
            "NEGATIVE_QUANTITY", f"{field}: negative value {result} not allowed", field=field, value=value
        )
    return result


def coerce_date(value: Any, field: str = "date", *, pivot: int = 50) -> date | None:
    """
    Read a date. Blank -> None.

    Accepts date/datetime objects, ISO ``YYYY-MM-DD`` (optionally followed by
    a time part) and ``DD/MM/YY`` / ``DD/MM/YYYY``. Two-digit years below
    ``pivot`` land in the 2000s, the rest in the 1900s.
    """
    if is_blank(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    s = str(value).strip()
    try:
        if "/" in s:
            parts = s.split("/")
            if len(parts) != 3:
                raise ValueError(s)
            day, month, year = (int(p) for p in parts)
            if year < 100:
                year += 2000 if year < pivot else 1900
            return date(year, month, day)
        return date.fromisoformat(s[:10])
    except ValueError:
        raise ParseError(
            "INVALID_DATE", f"{field}: cannot read {value!r} as a date", field=field, value=value
        ) from None


def coerce_time(value: Any, field: str = "time") -> str | None:
    """Read a time of day as zero-padded ``HH:MM``. Blank -> None."""
    if is_blank(value):
        return None
    if isinstance(value, (time, datetime)):
        return f"{value.hour:02d}:{value.minute:02d}"

    m = _TIME.match(str(value).strip())
    if m:
        hour, minute = int(m.group(1)), int(m.group(2))
        if hour < 24 and minute < 60:
            return f"{hour:02d}:{minute:02d}"
    raise ParseError("INVALID_TIME", f"{field}: cannot read {value!r} as a time", field=field, value=value)


def coerce_row_number(value: Any, default: int) -> int:
    if is_blank(value) or isinstance(value, bool):
        return default
    try:
        return int(Decimal(str(value).strip()))
    except (InvalidOperation, ValueError):
        return default
