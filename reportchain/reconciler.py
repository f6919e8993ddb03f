"""
Validation reconciliation.

Combines a report's status (authoritative for valid/invalid) with the
validator registry's verdict record (sometimes undecodable) into one
verdict tagged with its provenance:

    clean          record decoded and agrees with the status
    reconstructed  some fields were sanitized, or the status overrode the record
    fallback       the record was unreadable; verdict synthesized from status

Reconstructed and fallback verdicts never carry an address or hex text that
was not read cleanly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from reportchain.errors import NetworkError, PreconditionError, UnreadableState
from reportchain.ledger import LedgerCallError, LedgerDecodeError, LedgerTransportError, Registry
from reportchain.lifecycle import ReportStatus
from reportchain.observability import Layer, correlation_scope, get_logger
from reportchain.registry import RegistryReader
from reportchain.sanitizer import UNAVAILABLE, ResponseSanitizer

log = get_logger("reconciler", Layer.RECONCILER)


class Provenance(Enum):
    CLEAN = "clean"
    RECONSTRUCTED = "reconstructed"
    FALLBACK = "fallback"


@dataclass
class ValidationVerdict:
    validator: str
    is_valid: Optional[bool]
    description: str
    timestamp: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "validator": self.validator,
            "is_valid": self.is_valid,
            "description": self.description,
            "timestamp": self.timestamp,
        }


@dataclass
class ReconciledVerdict:
    report_id: int
    verdict: Optional[ValidationVerdict]
    provenance: Provenance
    status: ReportStatus
    issues: List[str] = field(default_factory=list)
    absent: bool = False

    @property
    def is_clean(self) -> bool:
        return self.provenance is Provenance.CLEAN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "report_id": self.report_id,
            "status": self.status.value,
            "provenance": self.provenance.value,
            "absent": self.absent,
            "verdict": self.verdict.to_dict() if self.verdict else None,
            "issues": list(self.issues),
        }


class ValidationReconciler:
    """Produces a ReconciledVerdict for a report."""

    def __init__(self, reader: RegistryReader, sanitizer: Optional[ResponseSanitizer] = None):
        self.reader = reader
        self.sanitizer = sanitizer or ResponseSanitizer()

    async def get_reconciled_verdict(self, report_id: int) -> ReconciledVerdict:
        with correlation_scope():
            try:
                result = await self._reconcile(report_id)
            except LedgerTransportError as e:
                raise NetworkError(str(e), action="get_reconciled_verdict") from e
            if not result.is_clean:
                log.warning("verdict not clean", report_id=report_id,
                            provenance=result.provenance.value, issues=result.issues)
            return result

    async def _reconcile(self, report_id: int) -> ReconciledVerdict:
        try:
            report = await self.reader.report(report_id)
        except (LedgerDecodeError, LedgerCallError):
            raise UnreadableState("report status", report_id) from None
        if not report.exists:
            raise PreconditionError("REPORT_NOT_FOUND", f"report {report_id} does not exist",
                                    action="get_reconciled_verdict")
        status = report.status
        if status is None:
            raise UnreadableState("report status", report_id)

        if status is ReportStatus.PENDING:
            try:
                validated = await self.reader.is_validated(report_id)
            except (LedgerDecodeError, LedgerCallError):
                raise UnreadableState("validation flag", report_id) from None
            if not validated:
                return ReconciledVerdict(report_id, None, Provenance.CLEAN, status, absent=True)

        derived = status.derived_validity
        try:
            raw = await self.reader.verdict_record(report_id)
        except (LedgerDecodeError, LedgerCallError) as e:
            return self._fallback(report_id, status, f"verdict record unreadable: {e}")

        validator_raw, flag_raw, description_raw, timestamp_raw = raw
        validator = self.sanitizer.address(validator_raw)
        flag = self.sanitizer.flag(flag_raw)
        description = self.sanitizer.text(description_raw)
        timestamp = self.sanitizer.timestamp(timestamp_raw)

        fields = {"validator": validator, "is_valid": flag, "description": description, "timestamp": timestamp}
        if not any(r.ok for r in fields.values()):
            return self._fallback(report_id, status, "every verdict field failed sanitization")

        issues = [f"{name}: {r.issue}" for name, r in fields.items() if not r.ok]
        is_valid = derived
        if flag.ok and derived is not None and flag.value != derived:
            issues.append(f"is_valid: record says {flag.value}, status {status.ledger_label!r} overrides")
        elif derived is None:
            is_valid = flag.value

        verdict = ValidationVerdict(
            validator=validator.value,
            is_valid=is_valid,
            description=description.value,
            timestamp=timestamp.value,
        )
        provenance = Provenance.RECONSTRUCTED if issues else Provenance.CLEAN
        return ReconciledVerdict(report_id, verdict, provenance, status, issues)

    def _fallback(self, report_id: int, status: ReportStatus, issue: str) -> ReconciledVerdict:
        verdict = ValidationVerdict(
            validator=UNAVAILABLE,
            is_valid=status.derived_validity,
            description=UNAVAILABLE,
        )
        log.debug("verdict synthesized from status", report_id=report_id, registry=Registry.VALIDATOR.value)
        return ReconciledVerdict(report_id, verdict, Provenance.FALLBACK, status, [issue])
