"""Decoding of PDF text strings and dates (ISO 32000-1, sections 7.9.2 and 7.9.4)."""

from __future__ import annotations

import codecs
import datetime
import re
from typing import Any


def decode_text(value: Any) -> str | None:
    """Decodes a PDF text string (section 7.9.2.2): UTF-16BE or UTF-8 when
    prefixed with a byte order mark, PDFDocEncoding otherwise.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if not isinstance(value, bytes):
        return str(value)
    if value.startswith(codecs.BOM_UTF16_BE):
        return value[2:].decode("utf-16-be", errors="replace")
    if value.startswith(codecs.BOM_UTF8):
        return value[3:].decode("utf-8", errors="replace")
    # PDFDocEncoding agrees with Latin-1 for all printable characters that
    # appear in practice
    return value.decode("latin-1")


_DATE_RE = re.compile(
    r"(?:D:)?(?P<year>\d{4})(?P<month>\d{2})?(?P<day>\d{2})?(?P<hour>\d{2})?"
    r"(?P<minute>\d{2})?(?P<second>\d{2})?"
    r"(?P<tz>[Zz]|[+-]\d{2}(?:'?\d{2}'?)?)?"
)


def parse_pdf_date(value: Any) -> datetime.datetime | None:
    """Parses a PDF date string such as ``D:20230401120000+02'00'`` into an aware
    datetime. Dates without an offset are taken to be in UTC. Returns
    :const:`None` if the value is not a date.
    """
    text = decode_text(value)
    if not text:
        return None
    match = _DATE_RE.match(text.strip())
    if not match:
        return None

    tz = match.group("tz")
    tzinfo = datetime.timezone.utc
    if tz and tz not in "Zz":
        digits = tz[1:].replace("'", "")
        offset = datetime.timedelta(
            hours=int(digits[:2]), minutes=int(digits[2:4] or 0)
        )
        tzinfo = datetime.timezone(offset if tz[0] == "+" else -offset)

    try:
        return datetime.datetime(
            int(match.group("year")),
            int(match.group("month") or 1),
            int(match.group("day") or 1),
            int(match.group("hour") or 0),
            int(match.group("minute") or 0),
            int(match.group("second") or 0),
            tzinfo=tzinfo,
        )
    except ValueError:
        return None
