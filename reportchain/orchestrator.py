"""
Contract call orchestration.

execute() runs one action through a fixed sequence:

    1. shape check of the parameters, then (lifecycle actions) the
       lifecycle precondition against live ledger state
    2. advisory pre-flight diagnosis for risky actions
    3. cost ceiling: estimate plus safety margin, or the complexity-class
       fallback ceiling when estimation fails
    4. submission; a pending TransactionHandle is returned at once
    5. classification of a synchronous rejection into a TransactionFailed

Nothing is retried. A reverted receipt observed through
TransactionHandle.wait() is classified by simulating the same call, since
the receipt does not carry the revert reason.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import asyncio
import math
import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from reportchain.actions import ACTION_SPECS, Action, ActionSpec, build_request, load_context, validate_params
from reportchain.classification import RejectionClassifier
from reportchain.config import ReportChainConfig, get_config
from reportchain.diagnosis import Diagnosis, FaultDiagnosisEngine
from reportchain.errors import ErrorKind, NetworkError, TransactionFailed, UnreadableState, failure_for
from reportchain.ledger import (
    CallRequest,
    LedgerAdapter,
    LedgerCallError,
    LedgerDecodeError,
    LedgerError,
    LedgerTransportError,
    TransactionReceipt,
)
from reportchain.lifecycle import AssignmentPolicy, ReportLifecycleModel
from reportchain.observability import Layer, correlation_scope, get_logger
from reportchain.registry import RegistryReader

log = get_logger("orchestrator", Layer.ORCHESTRATOR)

RegistryChangeListener = Callable[[Action, Dict[str, Any]], None]


class CostSource(Enum):
    ESTIMATE = "estimate"
    FALLBACK = "fallback"


class TransactionStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass
class CostPlan:
    ceiling: int
    source: CostSource
    estimate: Optional[int] = None
    margin: Optional[Decimal] = None
    estimate_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ceiling": self.ceiling,
            "source": self.source.value,
            "estimate": self.estimate,
            "margin": str(self.margin) if self.margin is not None else None,
            "estimate_error": self.estimate_error,
        }


def plan_cost(estimate: int, margin: Decimal) -> int:
    """Estimate plus margin, rounded up to a whole unit."""
    return int(math.ceil(Decimal(estimate) * (Decimal(1) + margin)))


@dataclass
class TransactionHandle:
    """A submitted transaction. Not awaiting wait() leaves it to settle on its own."""
    tx_hash: str
    action: Action
    params: Dict[str, Any]
    request: CallRequest
    cost: CostPlan
    submitted_at: float = field(default_factory=time.time)
    preflight: Optional[Diagnosis] = None
    correlation_id: str = ""
    status: TransactionStatus = TransactionStatus.PENDING
    receipt: Optional[TransactionReceipt] = None
    _orchestrator: Optional["ContractCallOrchestrator"] = field(default=None, repr=False, compare=False)

    @property
    def cost_ceiling(self) -> int:
        return self.cost.ceiling

    @property
    def cost_source(self) -> CostSource:
        return self.cost.source

    async def wait(self, timeout: Optional[float] = None, poll_interval: Optional[float] = None) -> TransactionReceipt:
        """Poll for the receipt; raise the classified failure when it reverted."""
        if self._orchestrator is None:
            raise RuntimeError("handle is not bound to an orchestrator")
        return await self._orchestrator.wait_for(self, timeout, poll_interval)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "action": self.action.value,
            "params": self.params,
            "status": self.status.value,
            "cost": self.cost.to_dict(),
            "submitted_at": self.submitted_at,
            "correlation_id": self.correlation_id,
            "preflight": self.preflight.to_dict() if self.preflight else None,
            "receipt": self.receipt.to_dict() if self.receipt else None,
        }


class ContractCallOrchestrator:
    """Guards, prices, submits and classifies actions."""

    def __init__(
        self,
        adapter: LedgerAdapter,
        sender: str,
        reader: Optional[RegistryReader] = None,
        lifecycle: Optional[ReportLifecycleModel] = None,
        classifier: Optional[RejectionClassifier] = None,
        diagnosis: Optional[FaultDiagnosisEngine] = None,
        config: Optional[ReportChainConfig] = None,
    ):
        self.adapter = adapter
        self.sender = sender.lower()
        self.reader = reader or RegistryReader(adapter)
        self.config = config or get_config()
        self.lifecycle = lifecycle or ReportLifecycleModel(
            AssignmentPolicy(self.config.lifecycle.assignment_policy.get())
        )
        self.classifier = classifier or RejectionClassifier.default_table()
        self.diagnosis = diagnosis
        self._listeners: List[RegistryChangeListener] = []

    def on_registry_change(self, listener: RegistryChangeListener) -> None:
        """Called after a registration action is submitted."""
        self._listeners.append(listener)

    # -------------------------------------------------------------------------
    # Execute
    # -------------------------------------------------------------------------

    async def execute(self, action: Any, params: Mapping[str, Any]) -> TransactionHandle:
        action = Action.parse(action)
        spec = ACTION_SPECS[action]
        decimals = self.config.deployment.token_decimals.get()

        with correlation_scope() as cid:
            started = time.perf_counter()
            values = validate_params(action, params, decimals)
            request = build_request(action, values, self.sender)

            if spec.lifecycle is not None:
                try:
                    ctx = await load_context(self.reader, spec.lifecycle, values, self.sender)
                except LedgerTransportError as e:
                    raise NetworkError(str(e), action=action.value) from e
                except LedgerDecodeError as e:
                    raise UnreadableState(e.function or "ledger state") from e
                except LedgerCallError as e:
                    raise await self._classified_failure(action, values, e) from e
                target = self.lifecycle.check(spec.lifecycle, ctx, values)
                log.debug("precondition satisfied", action=action.value, target=target.value)

            preflight = await self._preflight(spec, values)
            cost = await self._plan(spec, request)

            try:
                tx_hash = await self.adapter.submit(request, cost.ceiling)
            except LedgerError as e:
                failure = await self._classified_failure(action, values, e)
                log.operation("execute", (time.perf_counter() - started) * 1000, success=False,
                              action=action.value, kind=failure.kind.value, cost_source=cost.source.value)
                raise failure from e

            handle = TransactionHandle(
                tx_hash=tx_hash,
                action=action,
                params=values,
                request=request,
                cost=cost,
                preflight=preflight,
                correlation_id=cid,
                _orchestrator=self,
            )
            log.operation("execute", (time.perf_counter() - started) * 1000,
                          action=action.value, tx_hash=tx_hash,
                          cost_source=cost.source.value, cost_ceiling=cost.ceiling)

            if spec.registry_change:
                self._emit_registry_change(action, values)
            return handle

    async def _preflight(self, spec: ActionSpec, values: Dict[str, Any]) -> Optional[Diagnosis]:
        if not spec.risky or self.diagnosis is None:
            return None
        if not self.config.orchestrator.preflight_risky_actions.get():
            return None
        diagnosis = await self.diagnosis.diagnose(spec.action, values, self.sender)
        if not diagnosis.ok:
            log.warning("pre-flight found a likely failure", action=spec.action.value,
                        classification=diagnosis.classification.value if diagnosis.classification else None,
                        reason=diagnosis.reason)
        return diagnosis

    async def _plan(self, spec: ActionSpec, request: CallRequest) -> CostPlan:
        margin = self.config.orchestrator.safety_margin.get()
        try:
            estimate = await self.adapter.estimate_cost(request)
        except LedgerError as e:
            ceiling = self.config.fallback_ceilings()[spec.complexity.value]
            log.warning("estimation failed, using fallback ceiling", action=spec.action.value,
                        complexity=spec.complexity.value, ceiling=ceiling, error=str(e))
            return CostPlan(ceiling=ceiling, source=CostSource.FALLBACK, estimate_error=str(e))
        return CostPlan(ceiling=plan_cost(estimate, margin), source=CostSource.ESTIMATE,
                        estimate=estimate, margin=margin)

    def _emit_registry_change(self, action: Action, values: Dict[str, Any]) -> None:
        for listener in self._listeners:
            listener(action, values)

    async def _classified_failure(
        self,
        action: Action,
        values: Dict[str, Any],
        error: LedgerError,
        tx_hash: Optional[str] = None,
    ) -> TransactionFailed:
        result = self.classifier.classify_exception(error)
        diagnosis = None
        if self.diagnosis is not None and result.kind is not ErrorKind.NETWORK_ERROR:
            diagnosis = await self.diagnosis.diagnose(action, values, self.sender)

        kind, pair = result.kind, result.registry_pair
        registry = result.rejecting_registry.value if result.rejecting_registry else None
        if diagnosis is not None and diagnosis.classification is not None:
            cross = diagnosis.check("cross_registry")
            # a mis-pointed reference on the call path names the pair better than the revert string
            if kind is ErrorKind.UNKNOWN or (cross is not None and cross.failed
                                             and cross.kind is ErrorKind.CROSS_REGISTRY_MISCONFIGURATION):
                kind, pair = diagnosis.classification, diagnosis.registry_pair
                registry = diagnosis.rejecting_registry or registry
        reason = error.reason if isinstance(error, LedgerCallError) else str(error)

        log.error("action rejected", error_code=kind.value, action=action.value,
                  reason=reason, registry=registry)
        return failure_for(kind, reason, registry_pair=pair, action=action.value,
                           registry=registry, diagnosis=diagnosis, tx_hash=tx_hash)

    # -------------------------------------------------------------------------
    # Receipts
    # -------------------------------------------------------------------------

    async def wait_for(
        self,
        handle: TransactionHandle,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ) -> TransactionReceipt:
        settings = self.config.orchestrator
        timeout = settings.receipt_timeout_seconds.get() if timeout is None else timeout
        poll_interval = settings.receipt_poll_seconds.get() if poll_interval is None else poll_interval
        deadline = time.monotonic() + timeout

        with correlation_scope(handle.correlation_id or None):
            while True:
                try:
                    receipt = await self.adapter.get_receipt(handle.tx_hash)
                except LedgerTransportError as e:
                    handle.status = TransactionStatus.FAILED
                    raise NetworkError(str(e), action=handle.action.value, tx_hash=handle.tx_hash) from e
                if receipt is not None:
                    break
                if time.monotonic() >= deadline:
                    handle.status = TransactionStatus.FAILED
                    raise NetworkError(f"no receipt after {timeout:g}s", action=handle.action.value,
                                       tx_hash=handle.tx_hash)
                await asyncio.sleep(poll_interval)

            handle.receipt = receipt
            if receipt.succeeded:
                handle.status = TransactionStatus.CONFIRMED
                log.info("transaction confirmed", tx_hash=handle.tx_hash, block=receipt.block_number)
                return receipt

            handle.status = TransactionStatus.FAILED
            raise await self._reverted(handle)

    async def _reverted(self, handle: TransactionHandle) -> TransactionFailed:
        """Recover the revert reason by simulating the same call."""
        try:
            await self.adapter.simulate(handle.request)
        except LedgerError as e:
            return await self._classified_failure(handle.action, handle.params, e, handle.tx_hash)
        # state moved on since the revert; nothing more specific to report
        reason = str(handle.receipt.metadata.get("reason") or "transaction reverted") if handle.receipt else "transaction reverted"
        return failure_for(ErrorKind.UNKNOWN, reason, action=handle.action.value,
                           registry=handle.request.registry.value, tx_hash=handle.tx_hash)
