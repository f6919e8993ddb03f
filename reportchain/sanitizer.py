"""
Response sanitization.

Per-field cleanup of decoded ledger data. Each method returns a FieldResult
holding the usable value, whether the raw value was accepted unchanged, and
the reason when it was not. Nothing here touches the network.

An address is plausible when it is 0x plus 40 hex digits, not all-zero and
not a small integer (decoding a tuple offset as an address produces values
such as 0x...0060). Implausible addresses become the "unavailable" sentinel,
never a zero address.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from reportchain.ledger import UNDECODABLE

UNAVAILABLE = "unavailable"

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
# anything below this decodes from a word whose upper 18 bytes are zero
MIN_PLAUSIBLE_ADDRESS = 1 << 16
_RAW_HEX_RE = re.compile(r"0x[0-9a-fA-F]{8,}|\b[0-9a-fA-F]{40,}\b")
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

DEFAULT_MARKERS = ("rusak", "corrupted", "unavailable", "overflow", "encoding", "decode error")


def is_address(value: Any) -> bool:
    return isinstance(value, str) and bool(ADDRESS_RE.match(value))


def normalize_address(value: Any) -> Optional[str]:
    """Lower-cased address, or None when the value is not address-shaped."""
    return value.lower() if is_address(value) else None


def same_address(a: Any, b: Any) -> bool:
    na, nb = normalize_address(a), normalize_address(b)
    return na is not None and na == nb


def is_plausible_address(value: Any) -> bool:
    return is_address(value) and int(value, 16) >= MIN_PLAUSIBLE_ADDRESS


@dataclass
class FieldResult:
    value: Any
    ok: bool = True
    issue: Optional[str] = None

    @classmethod
    def rejected(cls, value: Any, issue: str) -> "FieldResult":
        return cls(value=value, ok=False, issue=issue)


class ResponseSanitizer:
    """Independent per-field sanitization of decoded responses."""

    def __init__(
        self,
        corruption_markers: Iterable[str] = DEFAULT_MARKERS,
        max_text_length: int = 2000,
        min_timestamp: int = 1_500_000_000,
        max_clock_skew: int = 86_400,
    ):
        self.corruption_markers = tuple(m.lower() for m in corruption_markers)
        self.max_text_length = max_text_length
        self.min_timestamp = min_timestamp
        self.max_clock_skew = max_clock_skew

    @classmethod
    def from_config(cls, config: Any) -> "ResponseSanitizer":
        section = config.sanitizer
        return cls(
            corruption_markers=section.corruption_markers.get(),
            max_text_length=section.max_description_length.get(),
            min_timestamp=section.min_timestamp.get(),
        )

    def address(self, raw: Any) -> FieldResult:
        if raw is UNDECODABLE:
            return FieldResult.rejected(UNAVAILABLE, "address undecodable")
        if not is_address(raw):
            return FieldResult.rejected(UNAVAILABLE, "address malformed")
        if int(raw, 16) == 0:
            return FieldResult.rejected(UNAVAILABLE, "address is zero")
        if not is_plausible_address(raw):
            return FieldResult.rejected(UNAVAILABLE, f"address {raw} is not a plausible account")
        return FieldResult(raw.lower())

    def text(self, raw: Any) -> FieldResult:
        if raw is UNDECODABLE or not isinstance(raw, str):
            return FieldResult.rejected(UNAVAILABLE, "text undecodable")

        lowered = raw.lower()
        for marker in self.corruption_markers:
            if marker in lowered:
                return FieldResult.rejected(UNAVAILABLE, f"text carries corruption marker '{marker}'")
        if "�" in raw:
            return FieldResult.rejected(UNAVAILABLE, "text has invalid encoding")
        if _RAW_HEX_RE.search(raw):
            return FieldResult.rejected(UNAVAILABLE, "text contains raw hex")

        cleaned = _CONTROL_RE.sub("", raw).strip()
        issue = None
        if cleaned != raw.strip():
            issue = "control characters removed"
        if len(cleaned) > self.max_text_length:
            cleaned = cleaned[: self.max_text_length - 3].rstrip() + "..."
            issue = f"text truncated to {self.max_text_length} characters"

        if issue:
            return FieldResult.rejected(cleaned, issue)
        return FieldResult(cleaned)

    def flag(self, raw: Any) -> FieldResult:
        if isinstance(raw, bool):
            return FieldResult(raw)
        return FieldResult.rejected(None, "flag undecodable")

    def timestamp(self, raw: Any, now: Optional[float] = None) -> FieldResult:
        if raw is UNDECODABLE or isinstance(raw, bool) or not isinstance(raw, int):
            return FieldResult.rejected(None, "timestamp undecodable")
        now = time.time() if now is None else now
        if raw < self.min_timestamp or raw > now + self.max_clock_skew:
            return FieldResult.rejected(None, f"timestamp {raw} out of range")
        return FieldResult(raw)
