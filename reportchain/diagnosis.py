"""
Fault diagnosis.

Read-only probes that explain why an action fails (or would fail). Probes
run in a fixed order and each yields one DiagnosticCheck:

    authorization   membership the action requires, re-read from the ledger
    role_freshness  cached role against a fresh resolution
    lifecycle       the lifecycle precondition (claim state for rewards) against fresh state
    cross_registry  references on the action's call path against the deployment
    funds           pooled, caller and staked balances the action needs
    simulation      read-only execution of the exact call

A cross-reference mismatch on the call path decides the classification.
Otherwise a classified simulation rejection does, and failing that the
highest-priority kind among failing checks. Nothing here mutates state or
retries.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

from reportchain import contracts
from reportchain.actions import ACTION_SPECS, Action, build_request, load_context, validate_params
from reportchain.classification import RejectionClassifier
from reportchain.errors import ErrorKind, UnreadableState
from reportchain.ledger import (
    LedgerAdapter,
    LedgerCallError,
    LedgerDecodeError,
    LedgerTransportError,
    Registry,
)
from reportchain.lifecycle import ReportLifecycleModel, ReportStatus, Violation, ViolationCategory
from reportchain.observability import Layer, correlation_scope, get_logger
from reportchain.registry import RegistryReader
from reportchain.roles import RoleResolver
from reportchain.sanitizer import same_address

log = get_logger("diagnosis", Layer.DIAGNOSIS)


class CheckStatus(Enum):
    PASS = "pass"
    FAIL = "fail"
    WARN = "warn"
    SKIP = "skip"


@dataclass
class DiagnosticCheck:
    name: str
    status: CheckStatus
    detail: str = ""
    kind: Optional[ErrorKind] = None
    registry_pair: Optional[Tuple[str, str]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def failed(self) -> bool:
        return self.status is CheckStatus.FAIL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "detail": self.detail,
            "kind": self.kind.value if self.kind else None,
            "registry_pair": list(self.registry_pair) if self.registry_pair else None,
            "metadata": self.metadata,
        }


@dataclass
class Diagnosis:
    action: str
    params: Dict[str, Any]
    caller: str
    checks: List[DiagnosticCheck]
    classification: Optional[ErrorKind] = None
    rejecting_registry: Optional[str] = None
    registry_pair: Optional[Tuple[str, str]] = None
    reason: Optional[str] = None
    recommendation: str = ""
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def ok(self) -> bool:
        return self.classification is None

    def check(self, name: str) -> Optional[DiagnosticCheck]:
        for c in self.checks:
            if c.name == name:
                return c
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "params": self.params,
            "caller": self.caller,
            "classification": self.classification.value if self.classification else None,
            "rejecting_registry": self.rejecting_registry,
            "registry_pair": list(self.registry_pair) if self.registry_pair else None,
            "reason": self.reason,
            "recommendation": self.recommendation,
            "timestamp": self.timestamp,
            "checks": [c.to_dict() for c in self.checks],
        }


# Highest priority first
_PRIORITY = (
    ErrorKind.CROSS_REGISTRY_MISCONFIGURATION,
    ErrorKind.AUTHORIZATION_REJECTED,
    ErrorKind.PRECONDITION_VIOLATED_ON_CHAIN,
    ErrorKind.INSUFFICIENT_FUNDS,
    ErrorKind.NETWORK_ERROR,
    ErrorKind.UNKNOWN,
)

def recommendation_for(kind: Optional[ErrorKind], pair: Optional[Tuple[str, str]] = None) -> str:
    if kind is None:
        return "No fault found; the action is expected to succeed."
    if kind is ErrorKind.CROSS_REGISTRY_MISCONFIGURATION:
        caller, rejecting = pair or ("the calling registry", "the rejecting registry")
        return (f"{rejecting} does not accept calls from {caller}. Re-point {rejecting}'s reference "
                f"to the {caller} address of this deployment or route the call through the registry "
                f"{rejecting} trusts. This needs a deployment change; retrying will not help.")
    if kind is ErrorKind.AUTHORIZATION_REJECTED:
        return ("The caller lacks the role this action requires. Use an account that holds it, "
                "or have the institution admin register the caller.")
    if kind is ErrorKind.PRECONDITION_VIOLATED_ON_CHAIN:
        return "The report's current state does not permit this action. Refresh the report and pick a permitted action."
    if kind is ErrorKind.INSUFFICIENT_FUNDS:
        return ("Top up the token balance or approve the reward manager for the required amount, then retry. "
                "A short reward pool is refilled with deposit_reward_pool.")
    if kind is ErrorKind.NETWORK_ERROR:
        return "The ledger could not be reached. Check the RPC endpoint and retry."
    return "The rejection is unclassified. Inspect the raw reason."


class FaultDiagnosisEngine:
    """Runs the probe sequence for one proposed action."""

    def __init__(
        self,
        reader: RegistryReader,
        adapter: LedgerAdapter,
        deployment: Mapping[Registry, str],
        roles: Optional[RoleResolver] = None,
        lifecycle: Optional[ReportLifecycleModel] = None,
        classifier: Optional[RejectionClassifier] = None,
        decimals: int = 18,
    ):
        self.reader = reader
        self.adapter = adapter
        self.deployment = {r: (a or "").lower() for r, a in deployment.items()}
        self.roles = roles
        self.lifecycle = lifecycle or ReportLifecycleModel()
        self.classifier = classifier or RejectionClassifier.default_table()
        self.decimals = decimals

    async def diagnose(self, action: Any, params: Mapping[str, Any], caller: str) -> Diagnosis:
        action = Action.parse(action)
        values = validate_params(action, params, self.decimals)
        caller = caller.lower()

        with correlation_scope():
            checks: List[DiagnosticCheck] = []
            violations: List[Violation] = []
            lifecycle_error: Optional[DiagnosticCheck] = None

            spec = ACTION_SPECS[action]
            if spec.lifecycle is not None:
                try:
                    ctx = await load_context(self.reader, spec.lifecycle, values, caller)
                    violations = self.lifecycle.violations(spec.lifecycle, ctx, values)
                except UnreadableState as e:
                    lifecycle_error = DiagnosticCheck("lifecycle", CheckStatus.FAIL, str(e),
                                                      ErrorKind.PRECONDITION_VIOLATED_ON_CHAIN)
                except LedgerTransportError as e:
                    lifecycle_error = DiagnosticCheck("lifecycle", CheckStatus.FAIL, str(e), ErrorKind.NETWORK_ERROR)
                except (LedgerDecodeError, LedgerCallError) as e:
                    lifecycle_error = DiagnosticCheck("lifecycle", CheckStatus.WARN,
                                                      f"probe could not read the ledger: {e}")

            checks.append(await self._probe("authorization", lambda: self._authorization(action, values, caller, violations)))
            checks.append(await self._probe("role_freshness", lambda: self._role_freshness(caller)))
            if action is Action.CLAIM_REWARD:
                checks.append(await self._probe("lifecycle", lambda: self._claim_state(values, caller)))
            else:
                checks.append(lifecycle_error or self._lifecycle(action, violations))
            checks.append(await self._probe("cross_registry", lambda: self._cross_registry(action)))
            checks.append(await self._probe("funds", lambda: self._funds(action, values, caller, violations)))
            checks.append(await self._probe("simulation", lambda: self._simulation(action, values, caller)))

            diagnosis = self._conclude(action, values, caller, checks)
            log.info(
                "diagnosis complete",
                operation="diagnose",
                action=action.value,
                classification=diagnosis.classification.value if diagnosis.classification else None,
                failing=[c.name for c in checks if c.failed],
            )
            return diagnosis

    async def _probe(self, name: str, fn: Callable[[], Awaitable[DiagnosticCheck]]) -> DiagnosticCheck:
        try:
            return await fn()
        except LedgerTransportError as e:
            return DiagnosticCheck(name, CheckStatus.FAIL, str(e), ErrorKind.NETWORK_ERROR)
        except (LedgerDecodeError, LedgerCallError) as e:
            return DiagnosticCheck(name, CheckStatus.WARN, f"probe could not read the ledger: {e}")

    # -------------------------------------------------------------------------
    # Probes
    # -------------------------------------------------------------------------

    async def _authorization(
        self,
        action: Action,
        values: Mapping[str, Any],
        caller: str,
        violations: List[Violation],
    ) -> DiagnosticCheck:
        denied = [v for v in violations if v.category is ViolationCategory.AUTHORIZATION]
        if denied:
            return DiagnosticCheck("authorization", CheckStatus.FAIL, "; ".join(v.message for v in denied),
                                   ErrorKind.AUTHORIZATION_REJECTED, metadata={"codes": [v.code for v in denied]})

        if action in (Action.REGISTER_VALIDATOR, Action.REGISTER_REPORTER, Action.REMOVE_VALIDATOR):
            institution = await self.reader.institution(values["institution_id"])
            if not same_address(institution.admin, caller):
                return DiagnosticCheck("authorization", CheckStatus.FAIL,
                                       f"caller is not the admin of institution {values['institution_id']}",
                                       ErrorKind.AUTHORIZATION_REJECTED)
        elif action is Action.RESIGN_FROM_INSTITUTION:
            if not await self.reader.is_validator(values["institution_id"], caller):
                return DiagnosticCheck("authorization", CheckStatus.FAIL,
                                       f"caller is not a validator of institution {values['institution_id']}",
                                       ErrorKind.AUTHORIZATION_REJECTED)
        elif action is Action.CLAIM_REWARD:
            validator = (await self.reader.verdict_record(values["report_id"]))[0]
            if not same_address(validator, caller):
                return DiagnosticCheck("authorization", CheckStatus.FAIL,
                                       f"report {values['report_id']} was not validated by the caller",
                                       ErrorKind.AUTHORIZATION_REJECTED)
        elif ACTION_SPECS[action].lifecycle is None:
            return DiagnosticCheck("authorization", CheckStatus.SKIP, "no membership requirement")
        return DiagnosticCheck("authorization", CheckStatus.PASS, "caller holds the required role")

    async def _role_freshness(self, caller: str) -> DiagnosticCheck:
        if self.roles is None:
            return DiagnosticCheck("role_freshness", CheckStatus.SKIP, "no role resolver")
        cached = self.roles.cached_role(caller)
        if cached is None:
            return DiagnosticCheck("role_freshness", CheckStatus.SKIP, "no cached role")
        fresh = await self.roles.fresh_role(caller)
        if fresh is not cached:
            return DiagnosticCheck("role_freshness", CheckStatus.WARN,
                                   f"cached role {cached.value} is stale; ledger says {fresh.value}",
                                   metadata={"cached": cached.value, "fresh": fresh.value})
        return DiagnosticCheck("role_freshness", CheckStatus.PASS, f"cached role {cached.value} is current")

    def _lifecycle(self, action: Action, violations: List[Violation]) -> DiagnosticCheck:
        if ACTION_SPECS[action].lifecycle is None:
            return DiagnosticCheck("lifecycle", CheckStatus.SKIP, "not a lifecycle action")
        blocking = [v for v in violations if v.category in (ViolationCategory.STATE, ViolationCategory.INPUT)]
        if blocking:
            return DiagnosticCheck("lifecycle", CheckStatus.FAIL, "; ".join(v.message for v in blocking),
                                   ErrorKind.PRECONDITION_VIOLATED_ON_CHAIN,
                                   metadata={"codes": [v.code for v in blocking]})
        return DiagnosticCheck("lifecycle", CheckStatus.PASS, "transition permitted")

    async def _claim_state(self, values: Mapping[str, Any], caller: str) -> DiagnosticCheck:
        report_id = values["report_id"]
        report, claimed = await asyncio.gather(
            self.reader.report(report_id),
            self.reader.has_claimed_reward(report_id, caller),
        )
        codes, problems = [], []
        if not report.exists:
            codes.append("REPORT_NOT_FOUND")
            problems.append(f"report {report_id} does not exist")
        elif report.status is not ReportStatus.VALID:
            status = report.status.value if report.status else "unreadable"
            codes.append("WRONG_STATE")
            problems.append(f"report {report_id} is {status}; rewards are paid for valid reports")
        if claimed:
            codes.append("ALREADY_CLAIMED")
            problems.append(f"reward for report {report_id} was already claimed")
        if problems:
            return DiagnosticCheck("lifecycle", CheckStatus.FAIL, "; ".join(problems),
                                   ErrorKind.PRECONDITION_VIOLATED_ON_CHAIN, metadata={"codes": codes})
        return DiagnosticCheck("lifecycle", CheckStatus.PASS, "reward claimable")

    async def _cross_registry(self, action: Action) -> DiagnosticCheck:
        path = ACTION_SPECS[action].references
        if not path:
            return DiagnosticCheck("cross_registry", CheckStatus.SKIP, "no cross-registry calls")

        pairs = [(h, g, t) for h, g, t in contracts.REFERENCES if (h, g) in path and self.deployment.get(t)]
        actual = await asyncio.gather(*(self.reader.reference(h, g) for h, g, _ in pairs))

        mismatches = []
        for (holder, getter, target), value in zip(pairs, actual):
            if not same_address(value, self.deployment[target]):
                mismatches.append({
                    "holder": holder.value,
                    "getter": getter,
                    "expected": self.deployment[target],
                    "actual": value if isinstance(value, str) else None,
                    # the holder rejects calls coming from the registry it mis-references
                    "pair": (target.value, holder.value),
                })
        if not mismatches:
            return DiagnosticCheck("cross_registry", CheckStatus.PASS, f"{len(pairs)} references consistent")

        first = mismatches[0]
        detail = "; ".join(f"{m['holder']}.{m['getter']}() is {m['actual']}, expected {m['expected']}"
                           for m in mismatches)
        return DiagnosticCheck("cross_registry", CheckStatus.FAIL, detail,
                               ErrorKind.CROSS_REGISTRY_MISCONFIGURATION, first["pair"],
                               metadata={"mismatches": mismatches})

    async def _funds(
        self,
        action: Action,
        values: Mapping[str, Any],
        caller: str,
        violations: List[Violation],
    ) -> DiagnosticCheck:
        pool = self.adapter.address_of(Registry.REWARD_MANAGER)
        problems: List[str] = [v.message for v in violations if v.category is ViolationCategory.FUNDS]
        facts: Dict[str, Any] = {}

        if action is Action.FINALIZE_APPEAL:
            stake, pooled = await asyncio.gather(self.reader.appeal_stake(), self.reader.token_balance(pool))
            facts.update(appeal_stake=stake, pooled=pooled)
            if pooled < stake:
                problems.append(f"reward manager holds {pooled}, cannot return the {stake} appeal stake")
        elif action is Action.APPEAL:
            stake, allowance = await asyncio.gather(self.reader.appeal_stake(), self.reader.allowance(caller, pool))
            facts.update(appeal_stake=stake, allowance=allowance)
            if allowance < stake:
                problems.append(f"reward manager allowance {allowance} is below the {stake} appeal stake")
        elif action in (Action.STAKE, Action.DEPOSIT_REWARD_POOL, Action.TRANSFER):
            balance = await self.reader.token_balance(caller)
            facts.update(balance=balance)
            if balance < values["amount"]:
                problems.append(f"balance {balance} is below {values['amount']}")
            if action is not Action.TRANSFER:
                allowance = await self.reader.allowance(caller, pool)
                facts.update(allowance=allowance)
                if allowance < values["amount"]:
                    problems.append(f"reward manager allowance {allowance} is below {values['amount']}")
        elif action is Action.UNSTAKE:
            staked = await self.reader.staked_amount(caller)
            facts.update(staked=staked)
            if staked < values["amount"]:
                problems.append(f"staked {staked} is below {values['amount']}")
        elif action is Action.CLAIM_REWARD:
            staked, minimum = await asyncio.gather(self.reader.staked_amount(caller), self.reader.min_stake())
            facts.update(staked=staked, min_stake=minimum)
            if staked < minimum:
                problems.append(f"staked {staked} is below the {minimum} minimum")
        elif not problems:
            return DiagnosticCheck("funds", CheckStatus.SKIP, "no funds requirement")

        if problems:
            return DiagnosticCheck("funds", CheckStatus.FAIL, "; ".join(problems), ErrorKind.INSUFFICIENT_FUNDS,
                                   metadata=facts)
        return DiagnosticCheck("funds", CheckStatus.PASS, "funds sufficient", metadata=facts)

    async def _simulation(self, action: Action, values: Mapping[str, Any], caller: str) -> DiagnosticCheck:
        request = build_request(action, values, caller)
        try:
            await self.adapter.simulate(request)
        except LedgerCallError as e:
            result = self.classifier.classify(e.reason, request.registry)
            return DiagnosticCheck(
                "simulation", CheckStatus.FAIL, e.reason, result.kind, result.registry_pair,
                metadata={
                    "rule_id": result.rule_id,
                    "rejecting_registry": result.rejecting_registry.value if result.rejecting_registry else None,
                    "target": request.registry.value,
                },
            )
        return DiagnosticCheck("simulation", CheckStatus.PASS, f"{request.registry.value}.{request.function} succeeds")

    # -------------------------------------------------------------------------
    # Conclusion
    # -------------------------------------------------------------------------

    def _conclude(
        self,
        action: Action,
        values: Mapping[str, Any],
        caller: str,
        checks: List[DiagnosticCheck],
    ) -> Diagnosis:
        diagnosis = Diagnosis(action=action.value, params=dict(values), caller=caller, checks=checks)
        failing = [c for c in checks if c.failed]
        if not failing:
            diagnosis.recommendation = recommendation_for(None)
            return diagnosis

        cross = diagnosis.check("cross_registry")
        simulation = diagnosis.check("simulation")
        if cross is not None and cross.failed and cross.kind is ErrorKind.CROSS_REGISTRY_MISCONFIGURATION:
            chosen = cross
        elif simulation is not None and simulation.failed and simulation.kind not in (None, ErrorKind.UNKNOWN):
            # the ledger's own rejection names the cause
            chosen = simulation
        else:
            kinds = {c.kind or ErrorKind.UNKNOWN for c in failing}
            top = next(k for k in _PRIORITY if k in kinds)
            chosen = next(c for c in failing if (c.kind or ErrorKind.UNKNOWN) is top)
        kind = chosen.kind or ErrorKind.UNKNOWN

        diagnosis.classification = kind
        if kind is ErrorKind.CROSS_REGISTRY_MISCONFIGURATION:
            diagnosis.registry_pair = chosen.registry_pair
            if diagnosis.registry_pair:
                diagnosis.rejecting_registry = diagnosis.registry_pair[1]
        if simulation is not None and simulation.failed:
            diagnosis.reason = simulation.detail
            diagnosis.rejecting_registry = diagnosis.rejecting_registry or simulation.metadata.get("rejecting_registry")
        else:
            diagnosis.reason = chosen.detail
        diagnosis.recommendation = recommendation_for(kind, diagnosis.registry_pair)
        return diagnosis

