"""
Rejection classification.

Maps a ledger rejection reason to an ErrorKind using the ordered rule table
in data/rejection_reasons.yaml. Matching is a case-insensitive substring
test; the first matching rule wins and anything unmatched falls back to the
table's default kind.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from reportchain.config import ConfigError
from reportchain.errors import ErrorKind
from reportchain.ledger import LedgerCallError, LedgerDecodeError, LedgerError, LedgerTransportError, Registry
from reportchain.observability import Layer, get_logger
from reportchain.schema import DATA_DIR, load_yaml, validate_document

log = get_logger("classifier", Layer.CLASSIFICATION)

DEFAULT_TABLE = DATA_DIR / "rejection_reasons.yaml"


@dataclass(frozen=True)
class ClassificationRule:
    rule_id: str
    kind: ErrorKind
    match: Tuple[str, ...]
    rejecting_registry: Optional[Registry] = None
    caller_registry: Optional[Registry] = None

    def matches(self, reason: str) -> bool:
        lowered = reason.lower()
        return any(m.lower() in lowered for m in self.match)


@dataclass(frozen=True)
class Classification:
    kind: ErrorKind
    reason: str
    rule_id: Optional[str] = None
    rejecting_registry: Optional[Registry] = None
    caller_registry: Optional[Registry] = None

    @property
    def registry_pair(self) -> Optional[Tuple[str, str]]:
        """(caller, rejecting) registry names when both are known."""
        if self.caller_registry and self.rejecting_registry:
            return (self.caller_registry.value, self.rejecting_registry.value)
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "reason": self.reason,
            "rule_id": self.rule_id,
            "rejecting_registry": self.rejecting_registry.value if self.rejecting_registry else None,
            "caller_registry": self.caller_registry.value if self.caller_registry else None,
        }


def load_rejection_table(path: Union[str, Path] = DEFAULT_TABLE) -> Tuple[List[ClassificationRule], ErrorKind]:
    """Parse and validate a rejection table file."""
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Rejection table not found: {path}")
    data = load_yaml(path)
    errors = validate_document(data, "rejection-table.schema.json")
    if errors:
        raise ConfigError(f"invalid rejection table {path}: {errors[0]}")

    rules = [
        ClassificationRule(
            rule_id=entry["id"],
            kind=ErrorKind(entry["kind"]),
            match=tuple(entry["match"]),
            rejecting_registry=Registry(entry["rejecting_registry"]) if entry.get("rejecting_registry") else None,
            caller_registry=Registry(entry["caller_registry"]) if entry.get("caller_registry") else None,
        )
        for entry in data["rules"]
    ]
    return rules, ErrorKind(data.get("default", ErrorKind.UNKNOWN.value))


class RejectionClassifier:
    """First-match classifier over an ordered rule table."""

    def __init__(self, rules: List[ClassificationRule], default: ErrorKind = ErrorKind.UNKNOWN):
        self.rules = list(rules)
        self.default = default

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "RejectionClassifier":
        rules, default = load_rejection_table(path)
        return cls(rules, default)

    @classmethod
    def default_table(cls) -> "RejectionClassifier":
        return _default_classifier()

    def classify(self, reason: str, registry: Optional[Registry] = None) -> Classification:
        """
        Classify a raw rejection reason.

        registry is the registry the call was addressed to; it is used as
        the rejecting registry when the matched rule does not name one.
        """
        reason = reason or ""
        for rule in self.rules:
            if rule.matches(reason):
                return Classification(
                    kind=rule.kind,
                    reason=reason,
                    rule_id=rule.rule_id,
                    rejecting_registry=rule.rejecting_registry or registry,
                    caller_registry=rule.caller_registry,
                )
        log.debug("unmatched rejection reason", reason=reason)
        return Classification(kind=self.default, reason=reason, rejecting_registry=registry)

    def classify_exception(self, exc: LedgerError) -> Classification:
        if isinstance(exc, LedgerTransportError):
            return Classification(kind=ErrorKind.NETWORK_ERROR, reason=str(exc), rule_id="transport")
        if isinstance(exc, LedgerCallError):
            return self.classify(exc.reason, exc.registry)
        if isinstance(exc, LedgerDecodeError):
            return Classification(kind=ErrorKind.UNKNOWN, reason=str(exc), rejecting_registry=exc.registry)
        return self.classify(str(exc))


@lru_cache(maxsize=1)
def _default_classifier() -> RejectionClassifier:
    return RejectionClassifier.from_file(DEFAULT_TABLE)
