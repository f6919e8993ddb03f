"""
Report Ledger Client Errors

Failure taxonomy shared by the orchestrator, the diagnosis engine and the
read paths. Client-detected problems raise PreconditionError before anything
is sent to the ledger. Ledger-side rejections raise a TransactionFailed
subclass whose kind says which class of problem the ledger reported.

    ReportChainError
    ├── PreconditionError              (client side, nothing submitted)
    ├── UnreadableState                (authoritative field could not be decoded)
    └── TransactionFailed
        ├── AuthorizationRejected
        ├── PreconditionViolatedOnChain
        ├── InsufficientFunds
        ├── CrossRegistryMisconfiguration
        ├── NetworkError
        └── UnknownFailure

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple, Type

if TYPE_CHECKING:
    from reportchain.diagnosis import Diagnosis


class ErrorKind(Enum):
    """Classification of a failed interaction."""
    PRECONDITION = "precondition"
    AUTHORIZATION_REJECTED = "authorization_rejected"
    PRECONDITION_VIOLATED_ON_CHAIN = "precondition_violated_on_chain"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    CROSS_REGISTRY_MISCONFIGURATION = "cross_registry_misconfiguration"
    NETWORK_ERROR = "network_error"
    UNKNOWN = "unknown"

    @property
    def title(self) -> str:
        return _TITLES[self]

    @property
    def is_retryable(self) -> bool:
        """Whether a manual retry can succeed without a deployment change."""
        return self in (ErrorKind.NETWORK_ERROR, ErrorKind.INSUFFICIENT_FUNDS)


_TITLES = {
    ErrorKind.PRECONDITION: "PreconditionError",
    ErrorKind.AUTHORIZATION_REJECTED: "AuthorizationRejected",
    ErrorKind.PRECONDITION_VIOLATED_ON_CHAIN: "PreconditionViolatedOnChain",
    ErrorKind.INSUFFICIENT_FUNDS: "InsufficientFunds",
    ErrorKind.CROSS_REGISTRY_MISCONFIGURATION: "CrossRegistryMisconfiguration",
    ErrorKind.NETWORK_ERROR: "NetworkError",
    ErrorKind.UNKNOWN: "Unknown",
}


class ReportChainError(Exception):
    """Base class for all client errors."""
    kind: ErrorKind = ErrorKind.UNKNOWN

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "message": str(self)}


class PreconditionError(ReportChainError):
    """
    Client-detected precondition failure.

    Raised before any network submission. The code is stable and
    machine-readable (e.g. WRONG_STATE, NOT_REPORTER).
    """
    kind = ErrorKind.PRECONDITION

    def __init__(
        self,
        code: str,
        message: str,
        action: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.code = code
        self.message = message
        self.action = action
        self.details = details or {}
        prefix = f"{action}: " if action else ""
        super().__init__(f"[{self.kind.title}:{code}] {prefix}{message}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "code": self.code,
            "action": self.action,
            "message": self.message,
            "details": self.details,
        }


class UnreadableState(ReportChainError):
    """An authoritative ledger field could not be decoded."""

    def __init__(self, what: str, report_id: Optional[int] = None):
        self.what = what
        self.report_id = report_id
        where = f" for report {report_id}" if report_id is not None else ""
        super().__init__(f"{what} is unreadable{where}")


class TransactionFailed(ReportChainError):
    """
    Ledger-side failure of a proposed transaction or read.

    Carries the raw rejection reason, the registry that rejected the call
    (when known), the action and any diagnosis produced for it.
    """

    def __init__(
        self,
        reason: str,
        action: Optional[str] = None,
        registry: Optional[str] = None,
        diagnosis: Optional["Diagnosis"] = None,
        tx_hash: Optional[str] = None,
    ):
        self.reason = reason
        self.action = action
        self.registry = registry
        self.diagnosis = diagnosis
        self.tx_hash = tx_hash
        super().__init__(self._format())

    def _format(self) -> str:
        parts = [f"[{self.kind.title}]"]
        if self.action:
            parts.append(f"{self.action}:")
        parts.append(self.reason or "no reason given")
        if self.registry:
            parts.append(f"(rejected by {self.registry})")
        return " ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "reason": self.reason,
            "action": self.action,
            "registry": self.registry,
            "tx_hash": self.tx_hash,
            "diagnosis": self.diagnosis.to_dict() if self.diagnosis else None,
        }


class AuthorizationRejected(TransactionFailed):
    kind = ErrorKind.AUTHORIZATION_REJECTED


class PreconditionViolatedOnChain(TransactionFailed):
    kind = ErrorKind.PRECONDITION_VIOLATED_ON_CHAIN


class InsufficientFunds(TransactionFailed):
    kind = ErrorKind.INSUFFICIENT_FUNDS


class CrossRegistryMisconfiguration(TransactionFailed):
    """
    One registry rejects calls initiated by another registry.

    registry_pair is (initiating registry, rejecting registry).
    """
    kind = ErrorKind.CROSS_REGISTRY_MISCONFIGURATION

    def __init__(
        self,
        reason: str,
        registry_pair: Optional[Tuple[str, str]] = None,
        **kwargs: Any,
    ):
        self.registry_pair = registry_pair
        if registry_pair and not kwargs.get("registry"):
            kwargs["registry"] = registry_pair[1]
        super().__init__(reason, **kwargs)

    def _format(self) -> str:
        base = super()._format()
        if self.registry_pair:
            base += f" [{self.registry_pair[0]} -> {self.registry_pair[1]}]"
        return base

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["registry_pair"] = list(self.registry_pair) if self.registry_pair else None
        return d


class NetworkError(TransactionFailed):
    kind = ErrorKind.NETWORK_ERROR


class UnknownFailure(TransactionFailed):
    kind = ErrorKind.UNKNOWN


FAILURE_TYPES: Dict[ErrorKind, Type[TransactionFailed]] = {
    ErrorKind.AUTHORIZATION_REJECTED: AuthorizationRejected,
    ErrorKind.PRECONDITION_VIOLATED_ON_CHAIN: PreconditionViolatedOnChain,
    ErrorKind.INSUFFICIENT_FUNDS: InsufficientFunds,
    ErrorKind.CROSS_REGISTRY_MISCONFIGURATION: CrossRegistryMisconfiguration,
    ErrorKind.NETWORK_ERROR: NetworkError,
    ErrorKind.UNKNOWN: UnknownFailure,
}


def failure_for(
    kind: ErrorKind,
    reason: str,
    registry_pair: Optional[Tuple[str, str]] = None,
    **kwargs: Any,
) -> TransactionFailed:
    """Build the TransactionFailed subclass for a classification."""
    if kind is ErrorKind.CROSS_REGISTRY_MISCONFIGURATION:
        return CrossRegistryMisconfiguration(reason, registry_pair=registry_pair, **kwargs)
    cls = FAILURE_TYPES.get(kind, UnknownFailure)
    return cls(reason, **kwargs)
