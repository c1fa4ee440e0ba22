from __future__ import annotations

import math
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any


class Direction(str, Enum):
    ABOVE = "above"
    BELOW = "below"


@dataclass(frozen=True, slots=True)
class Alert:
    """
    Threshold alert on one instrument. Fires once, inclusive at the boundary:
    - above → price >= threshold
    - below → price <= threshold
    """
    id: str
    instrument_id: str
    direction: Direction
    threshold: float
    created_at_ms: int

    def is_triggered_by(self, price: float) -> bool:
        if self.direction is Direction.ABOVE:
            return price >= self.threshold
        return price <= self.threshold

    def with_updates(self, *, direction: Direction | None = None, threshold: float | None = None) -> "Alert":
        return replace(
            self,
            direction=self.direction if direction is None else Direction(direction),
            threshold=self.threshold if threshold is None else validate_threshold(threshold),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "instrument_id": self.instrument_id,
            "direction": self.direction.value,
            "threshold": self.threshold,
            "created_at_ms": self.created_at_ms,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "Alert":
        return cls(
            id=str(d["id"]),
            instrument_id=str(d["instrument_id"]),
            direction=Direction(d["direction"]),
            threshold=validate_threshold(d["threshold"]),
            created_at_ms=int(d["created_at_ms"]),
        )


# ---- threshold input (alert entry form rules) ----

MAX_DECIMALS = 8
MAX_INPUT_LEN = 20

_NON_DECIMAL = re.compile(r"[^\d.]")


def validate_threshold(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError("threshold must be a number")
    v = float(value)
    if not math.isfinite(v) or v <= 0:
        raise ValueError("threshold must be a finite number > 0")
    return v


def sanitize_threshold_input(text: str) -> str:
    """
    Keep digits and a single decimal point, at most 8 decimals and 20 chars:
    "$1,234.5.6" -> "1234.56"
    """
    s = _NON_DECIMAL.sub("", text)
    parts = s.split(".")
    if len(parts) > 2:
        s = parts[0] + "." + "".join(parts[1:])
        parts = s.split(".")
    if len(parts) == 2 and len(parts[1]) > MAX_DECIMALS:
        s = parts[0] + "." + parts[1][:MAX_DECIMALS]
    return s[:MAX_INPUT_LEN]


def parse_threshold(text: str) -> float:
    """Sanitize then validate; raises ValueError with a user-facing message."""
    cleaned = sanitize_threshold_input(text)
    if cleaned in ("", "."):
        raise ValueError("Please enter a valid price")
    return validate_threshold(cleaned)
