"""Reference-range classification for lab result entry.

A measured value is compared against the free-text reference range printed on
the test template ("40 - 70", "<200", ">40") and labelled normal, abnormal or
critical. Values more than 20% beyond a bound are critical; the margin is
multiplicative and must stay that way for existing templates.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

CRITICAL_LOW_FACTOR = 0.8
CRITICAL_HIGH_FACTOR = 1.2

NUM = r"\d+\.?\d*"

# Tried in this order; the first pattern found anywhere in the text decides.
RANGE_BOUNDED = re.compile(rf"(?P<low>{NUM})\s*-\s*(?P<high>{NUM})")
# Comparator and bound are written together, "<200" not "< 200"
RANGE_UPPER = re.compile(rf"<(?P<high>{NUM})")
RANGE_LOWER = re.compile(rf">(?P<low>{NUM})")

# Leading number of an entered value; trailing units or markers ("90 mg/dL", "90H") are ignored
VALUE_PREFIX = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


class RangeStatus(str, Enum):
    NORMAL = "normal"
    ABNORMAL = "abnormal"
    CRITICAL = "critical"


class Direction(str, Enum):
    BELOW = "below"
    ABOVE = "above"


# Codes written to the result sheet next to each parameter
FLAG_CODES = {
    RangeStatus.NORMAL: "",
    RangeStatus.ABNORMAL: "H/L",
    RangeStatus.CRITICAL: "C",
}


@dataclass(frozen=True)
class ReferenceRange:
    kind: str  # "bounded" | "upper" | "lower"
    low: float | None = None
    high: float | None = None


@dataclass(frozen=True)
class Classification:
    status: RangeStatus
    direction: Direction | None = None
    range_kind: str | None = None
    # Why the value was not evaluated; the clinical status stays "normal"
    reason: str | None = None

    @property
    def flag(self) -> str:
        return FLAG_CODES[self.status]

    @property
    def is_flagged(self) -> bool:
        return self.status is not RangeStatus.NORMAL

    def as_dict(self) -> dict[str, str | None]:
        return {
            "status": self.status.value,
            "direction": self.direction.value if self.direction else None,
            "flag": self.flag,
            "range_kind": self.range_kind,
            "reason": self.reason,
        }


def _to_float(s: str) -> float | None:
    try:
        v = float(s)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(v):
        return None
    return v


def _leading_float(s: str) -> float | None:
    m = VALUE_PREFIX.match(s)
    return _to_float(m.group(0)) if m else None


def parse_reference_range(text: str | None) -> ReferenceRange | None:
    """Parse the first recognizable range in ``text``.

    Returns ``None`` when no pattern matches or a captured bound is not a
    usable number.
    """
    if not text:
        return None
    m = RANGE_BOUNDED.search(text)
    if m:
        low, high = _to_float(m.group("low")), _to_float(m.group("high"))
        if low is None or high is None:
            return None
        return ReferenceRange(kind="bounded", low=low, high=high)
    m = RANGE_UPPER.search(text)
    if m:
        high = _to_float(m.group("high"))
        return ReferenceRange(kind="upper", high=high) if high is not None else None
    m = RANGE_LOWER.search(text)
    if m:
        low = _to_float(m.group("low"))
        return ReferenceRange(kind="lower", low=low) if low is not None else None
    return None


def _outside(status: RangeStatus, direction: Direction, kind: str) -> Classification:
    return Classification(status=status, direction=direction, range_kind=kind)


def classify_against(v: float, rng: ReferenceRange) -> Classification:
    """Classify an already-parsed value against an already-parsed range."""
    if rng.kind == "bounded":
        low, high = rng.low, rng.high
        if low <= v <= high:
            return Classification(status=RangeStatus.NORMAL, range_kind=rng.kind)
        direction = Direction.BELOW if v < low else Direction.ABOVE
        if v < low * CRITICAL_LOW_FACTOR or v > high * CRITICAL_HIGH_FACTOR:
            return _outside(RangeStatus.CRITICAL, direction, rng.kind)
        return _outside(RangeStatus.ABNORMAL, direction, rng.kind)

    if rng.kind == "upper":
        if v < rng.high:
            return Classification(status=RangeStatus.NORMAL, range_kind=rng.kind)
        if v >= rng.high * CRITICAL_HIGH_FACTOR:
            return _outside(RangeStatus.CRITICAL, Direction.ABOVE, rng.kind)
        return _outside(RangeStatus.ABNORMAL, Direction.ABOVE, rng.kind)

    # lower bound only
    if v > rng.low:
        return Classification(status=RangeStatus.NORMAL, range_kind=rng.kind)
    if v <= rng.low * CRITICAL_LOW_FACTOR:
        return _outside(RangeStatus.CRITICAL, Direction.BELOW, rng.kind)
    return _outside(RangeStatus.ABNORMAL, Direction.BELOW, rng.kind)


def classify(value: str | float | None, reference_range: str | None) -> Classification:
    """Classify a raw result value against a free-text reference range.

    Only the leading number of the value is read, so "90 mg/dL" counts as 90.
    Inconclusive input (blank value, blank range, value without a leading
    number, range text with no recognizable pattern) is reported as normal. The ``reason`` field
    records which of those happened so callers can surface bad template data.
    """
    raw = "" if value is None else str(value).strip()
    if not raw:
        return Classification(status=RangeStatus.NORMAL, reason="missing_value")
    if not reference_range or not reference_range.strip():
        return Classification(status=RangeStatus.NORMAL, reason="missing_range")

    v = _leading_float(raw)
    if v is None:
        return Classification(status=RangeStatus.NORMAL, reason="non_numeric_value")

    rng = parse_reference_range(reference_range)
    if rng is None:
        logger.debug(f"Reference range not recognized: {reference_range!r}")
        return Classification(status=RangeStatus.NORMAL, reason="unparsed_range")

    return classify_against(v, rng)
