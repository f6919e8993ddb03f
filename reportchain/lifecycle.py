"""Report lifecycle state machine.

Pure transition rules for a report:

    (new) ──create──► Pending ──validate──► Valid
                         │
                         └──validate──► Invalid ──appeal──► Appealed ──finalize──► Valid | Invalid

The model never reads the ledger. Callers build a LifecycleContext from a
live snapshot and ask for violations; check() raises the first one as a
PreconditionError so nothing outside these edges is ever submitted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Set, Tuple

from reportchain.errors import PreconditionError


class ReportStatus(Enum):
    PENDING = "pending"
    VALID = "valid"
    INVALID = "invalid"
    APPEALED = "appealed"

    @property
    def ledger_label(self) -> str:
        return _LEDGER_LABELS[self]

    @classmethod
    def from_label(cls, label: Any) -> Optional["ReportStatus"]:
        """Status for a ledger label, None for anything unrecognized."""
        if not isinstance(label, str):
            return None
        return _BY_LABEL.get(label.strip().lower())

    @property
    def derived_validity(self) -> Optional[bool]:
        """Verdict boolean implied by the status alone."""
        if self is ReportStatus.VALID:
            return True
        if self in (ReportStatus.INVALID, ReportStatus.APPEALED):
            return False
        return None


_LEDGER_LABELS = {
    ReportStatus.PENDING: "Menunggu",
    ReportStatus.VALID: "Valid",
    ReportStatus.INVALID: "Tidak Valid",
    ReportStatus.APPEALED: "Banding",
}
_BY_LABEL = {label.lower(): status for status, label in _LEDGER_LABELS.items()}
_BY_LABEL.update({status.value: status for status in ReportStatus})


class LifecycleAction(Enum):
    CREATE_REPORT = "create_report"
    VALIDATE = "validate_report"
    APPEAL = "appeal"
    FINALIZE_APPEAL = "finalize_appeal"


class AssignmentPolicy(Enum):
    ASSIGNED = "assigned"
    INSTITUTION = "institution"


class ViolationCategory(Enum):
    INPUT = "input"
    STATE = "state"
    AUTHORIZATION = "authorization"
    FUNDS = "funds"


@dataclass(frozen=True)
class TransitionRule:
    action: LifecycleAction
    source: Optional[ReportStatus]
    targets: FrozenSet[ReportStatus]
    actor: str


TRANSITIONS: Tuple[TransitionRule, ...] = (
    TransitionRule(LifecycleAction.CREATE_REPORT, None, frozenset({ReportStatus.PENDING}), "reporter"),
    TransitionRule(LifecycleAction.VALIDATE, ReportStatus.PENDING,
                   frozenset({ReportStatus.VALID, ReportStatus.INVALID}), "validator"),
    TransitionRule(LifecycleAction.APPEAL, ReportStatus.INVALID, frozenset({ReportStatus.APPEALED}), "reporter"),
    TransitionRule(LifecycleAction.FINALIZE_APPEAL, ReportStatus.APPEALED,
                   frozenset({ReportStatus.VALID, ReportStatus.INVALID}), "admin"),
)

_RULES: Dict[LifecycleAction, TransitionRule] = {r.action: r for r in TRANSITIONS}


def rule_for(action: LifecycleAction) -> TransitionRule:
    return _RULES[action]


def allowed_targets(status: Optional[ReportStatus]) -> Set[ReportStatus]:
    out: Set[ReportStatus] = set()
    for r in TRANSITIONS:
        if r.source == status:
            out.update(r.targets)
    return out


def is_allowed(source: Optional[ReportStatus], target: ReportStatus) -> bool:
    return target in allowed_targets(source)


def _same(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and a.lower() == b.lower()  # type: ignore[union-attr]


def _unset(address: Optional[str]) -> bool:
    if not address or not isinstance(address, str):
        return True
    try:
        return int(address, 16) == 0
    except ValueError:
        return True


@dataclass
class Violation:
    code: str
    message: str
    category: ViolationCategory

    def to_error(self, action: LifecycleAction) -> PreconditionError:
        return PreconditionError(self.code, self.message, action=action.value,
                                 details={"category": self.category.value})


@dataclass
class LifecycleContext:
    """Live snapshot a lifecycle decision is made against."""
    caller: str
    report_exists: bool = True
    status: Optional[ReportStatus] = None
    reporter: Optional[str] = None
    assigned_validator: Optional[str] = None
    institution_exists: bool = True
    institution_admin: Optional[str] = None
    caller_is_validator: bool = False
    caller_is_reporter: bool = False
    already_appealed: bool = False
    caller_balance: int = 0
    required_stake: int = 0
    extra: Dict[str, Any] = field(default_factory=dict)


class ReportLifecycleModel:
    """Guards every lifecycle action before it reaches the ledger."""

    def __init__(self, policy: AssignmentPolicy = AssignmentPolicy.ASSIGNED):
        self.policy = policy

    def target_state(self, action: LifecycleAction, params: Mapping[str, Any]) -> ReportStatus:
        if action is LifecycleAction.CREATE_REPORT:
            return ReportStatus.PENDING
        if action is LifecycleAction.VALIDATE:
            return ReportStatus.VALID if params.get("is_valid") else ReportStatus.INVALID
        if action is LifecycleAction.APPEAL:
            return ReportStatus.APPEALED
        return ReportStatus.VALID if params.get("reporter_wins") else ReportStatus.INVALID

    def violations(
        self,
        action: LifecycleAction,
        ctx: LifecycleContext,
        params: Mapping[str, Any],
    ) -> List[Violation]:
        """All precondition violations for an action, state problems first."""
        if action is LifecycleAction.CREATE_REPORT:
            return self._creation_violations(ctx, params)

        out: List[Violation] = []
        if not ctx.report_exists:
            return [Violation("REPORT_NOT_FOUND", "report does not exist", ViolationCategory.STATE)]

        rule = _RULES[action]
        target = self.target_state(action, params)
        reappeal = action is LifecycleAction.APPEAL and (ctx.already_appealed or ctx.status is ReportStatus.APPEALED)
        if reappeal:
            # one appeal per report, whatever state the first one left behind
            out.append(Violation("ALREADY_APPEALED", "report has already been appealed", ViolationCategory.STATE))
        elif ctx.status is None:
            out.append(Violation("STATE_UNREADABLE", "report status could not be read", ViolationCategory.STATE))
        elif ctx.status != rule.source or not is_allowed(ctx.status, target):
            out.append(Violation(
                "WRONG_STATE",
                f"report is {ctx.status.value}; {action.value} requires {rule.source.value if rule.source else 'no report'}",
                ViolationCategory.STATE,
            ))

        if action is LifecycleAction.VALIDATE:
            out.extend(self._validator_violations(ctx))
        elif action is LifecycleAction.APPEAL:
            if not _same(ctx.caller, ctx.reporter):
                out.append(Violation("NOT_REPORTER", "only the original reporter may appeal",
                                     ViolationCategory.AUTHORIZATION))
            if ctx.caller_balance < ctx.required_stake:
                out.append(Violation(
                    "INSUFFICIENT_STAKE",
                    f"appeal requires a stake of {ctx.required_stake}, balance is {ctx.caller_balance}",
                    ViolationCategory.FUNDS,
                ))
        elif action is LifecycleAction.FINALIZE_APPEAL:
            if not _same(ctx.caller, ctx.institution_admin):
                out.append(Violation("NOT_ADMIN", "only the institution admin may finalize an appeal",
                                     ViolationCategory.AUTHORIZATION))
        return out

    def _creation_violations(self, ctx: LifecycleContext, params: Mapping[str, Any]) -> List[Violation]:
        out: List[Violation] = []
        if not ctx.institution_exists:
            out.append(Violation("INSTITUTION_NOT_FOUND", "institution does not exist", ViolationCategory.STATE))
        elif not ctx.caller_is_reporter:
            out.append(Violation("NOT_REGISTERED_REPORTER", "caller is not a registered reporter of the institution",
                                 ViolationCategory.AUTHORIZATION))
        for name in ("title", "description"):
            value = params.get(name)
            if not isinstance(value, str) or not value.strip():
                out.append(Violation("EMPTY_FIELD", f"{name} must not be blank", ViolationCategory.INPUT))
        return out

    def _validator_violations(self, ctx: LifecycleContext) -> List[Violation]:
        out: List[Violation] = []
        assigned = ctx.assigned_validator
        if not ctx.caller_is_validator:
            out.append(Violation("NOT_VALIDATOR", "caller is not a registered validator of the institution",
                                 ViolationCategory.AUTHORIZATION))
        if self.policy is AssignmentPolicy.ASSIGNED and not _unset(assigned) and not _same(ctx.caller, assigned):
            out.append(Violation("NOT_ASSIGNED_VALIDATOR", f"report is assigned to {assigned}",
                                 ViolationCategory.AUTHORIZATION))
        return out

    def check(self, action: LifecycleAction, ctx: LifecycleContext, params: Mapping[str, Any]) -> ReportStatus:
        """Raise the first violation; return the target state otherwise."""
        found = self.violations(action, ctx, params)
        if found:
            raise found[0].to_error(action)
        return self.target_state(action, params)
