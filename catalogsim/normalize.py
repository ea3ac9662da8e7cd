import math
import re
from datetime import datetime, timezone
from typing import Any, FrozenSet, List

from bs4 import BeautifulSoup

MULTI_VALUE_SEPARATORS = re.compile(r"[,;]")
WORD_PATTERN = re.compile(r"[a-z0-9]+(?:[-_.][a-z0-9]+)*")


def normalize_text(s: str) -> str:
    return " ".join(s.strip().lower().split())


def is_missing(value: Any) -> bool:
    """True when a record does not supply a usable value."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, float):
        return math.isnan(value)
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return len(value) == 0
    return False


def split_values(value: Any) -> List[str]:
    """Split a multi-valued field into normalized members.

    Strings are split on ',' and ';'. Lists are flattened one level.
    """
    if isinstance(value, str):
        parts = MULTI_VALUE_SEPARATORS.split(value)
    elif isinstance(value, (list, tuple, set, frozenset)):
        parts = []
        for item in value:
            if isinstance(item, str):
                parts.extend(MULTI_VALUE_SEPARATORS.split(item))
            elif item is not None:
                parts.append(str(item))
    else:
        parts = [str(value)]
    return [normalize_text(p) for p in parts if p and p.strip()]


def strip_markup(text: str) -> str:
    """Drop HTML/XML markup that catalog abstracts often carry."""
    if "<" not in text:
        return text
    return BeautifulSoup(text, "html.parser").get_text(" ")


def tokenize(text: Any) -> FrozenSet[str]:
    if not isinstance(text, str):
        text = " ".join(split_values(text))
    return frozenset(WORD_PATTERN.findall(strip_markup(text).lower()))


def to_float(value: Any) -> float:
    """Coerce a numeric feature value. Raises ValueError/TypeError when it is not one."""
    if isinstance(value, bool):
        raise TypeError(f"Boolean is not a numeric value: {value!r}")
    if isinstance(value, str):
        value = value.strip()
    result = float(value)
    if math.isnan(result) or math.isinf(result):
        raise ValueError(f"Non-finite numeric value: {value!r}")
    return result


def to_timestamp(value: Any) -> float:
    """Coerce a temporal value to epoch seconds.

    Numbers are epoch milliseconds (the catalog's *TimeLong fields); strings
    are ISO-8601 dates or datetimes, naive ones taken as UTC.
    """
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, str) and not _looks_numeric(value):
        moment = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    else:
        return to_float(value) / 1000.0
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.timestamp()


def _looks_numeric(value: str) -> bool:
    try:
        float(value)
        return True
    except ValueError:
        return False
