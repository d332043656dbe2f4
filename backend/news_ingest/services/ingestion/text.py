"""
Text helpers shared by the feed parsers: HTML stripping, summary
extraction and tolerant date parsing.
"""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from html import unescape
from typing import Any, Optional
import re

_TAG_RE = re.compile(r"<[^>]+>")
_IMG_SRC_RE = re.compile(r"""<img[^>]+src=["']([^"']+)["']""", re.IGNORECASE)

ELLIPSIS = "..."


def strip_html(html: Optional[str]) -> str:
    """Strip tags, decode entities and normalize whitespace."""
    if not html:
        return ""

    clean = _TAG_RE.sub(" ", html)
    clean = unescape(clean)
    return " ".join(clean.split())


def find_inline_image(html: Optional[str]) -> Optional[str]:
    """First <img src> inside an HTML fragment."""
    if not html:
        return None
    match = _IMG_SRC_RE.search(html)
    return match.group(1).strip() if match else None


def extract_summary(content: Optional[str], max_length: int = 200) -> str:
    """
    Plain-text summary of at most ``max_length`` characters (plus ellipsis).

    Prefers cutting after the last full sentence when that keeps more than
    70% of the budget; otherwise cuts at the last word boundary.
    """
    text = strip_html(content)
    if len(text) <= max_length:
        return text

    truncated = text[:max_length]
    last_sentence = truncated.rfind(".")
    if last_sentence > max_length * 0.7:
        return truncated[: last_sentence + 1]

    last_space = truncated.rfind(" ")
    if last_space > 0:
        return truncated[:last_space] + ELLIPSIS
    return truncated + ELLIPSIS


def _with_tz(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_date(value: Any) -> Optional[datetime]:
    """
    Parse RFC 822 (RSS), ISO 8601 (Atom/JSON) or epoch timestamps.

    Returns None when the value cannot be interpreted.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        return _with_tz(value)

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if value > 1e11 else value  # epoch millis
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if not isinstance(value, str):
        return None

    date_str = value.strip()
    if not date_str:
        return None

    try:
        return _with_tz(parsedate_to_datetime(date_str))
    except (ValueError, TypeError, IndexError):
        pass

    try:
        return _with_tz(datetime.fromisoformat(date_str.replace("Z", "+00:00")))
    except ValueError:
        pass

    try:
        # Drop fractional seconds / odd offsets
        return _with_tz(datetime.fromisoformat(date_str[:19]))
    except ValueError:
        return None
