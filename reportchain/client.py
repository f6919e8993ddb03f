"""
Consumer API.

LedgerClient wires the components for one session (one signing identity):

    resolve_role(address)            -> Role
    execute(action, params)          -> TransactionHandle
    diagnose(action, params)         -> Diagnosis
    get_reconciled_verdict(report)   -> ReconciledVerdict

Example:
    client = LedgerClient.from_config(account=Account.from_key(key))
    handle = await client.execute("appeal", {"report_id": 7})
    receipt = await handle.wait()
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from eth_account.signers.local import LocalAccount

from reportchain.classification import RejectionClassifier
from reportchain.config import ConfigError, ReportChainConfig, get_config
from reportchain.diagnosis import Diagnosis, FaultDiagnosisEngine
from reportchain.errors import NetworkError
from reportchain.ledger import LedgerAdapter, LedgerTransportError, Registry
from reportchain.lifecycle import AssignmentPolicy, ReportLifecycleModel
from reportchain.memory import InMemoryLedger
from reportchain.orchestrator import ContractCallOrchestrator, TransactionHandle
from reportchain.reconciler import ReconciledVerdict, ValidationReconciler
from reportchain.registry import RegistryReader
from reportchain.roles import InstitutionRoles, Role, RoleResolver
from reportchain.sanitizer import ResponseSanitizer


class LedgerClient:
    """One session against one deployment."""

    def __init__(
        self,
        adapter: LedgerAdapter,
        sender: str,
        config: Optional[ReportChainConfig] = None,
        classifier: Optional[RejectionClassifier] = None,
        owner: Optional[str] = None,
    ):
        self.adapter = adapter
        self.sender = sender.lower()
        self.config = config or get_config()
        cfg = self.config

        deployment = {}
        for registry in Registry:
            configured = getattr(cfg.deployment, registry.config_key).get()
            deployment[registry] = configured or adapter.address_of(registry)

        self.reader = RegistryReader(adapter)
        self.classifier = classifier or RejectionClassifier.default_table()
        self.lifecycle = ReportLifecycleModel(AssignmentPolicy(cfg.lifecycle.assignment_policy.get()))
        self.roles = RoleResolver(
            self.reader,
            owner_address=owner or cfg.deployment.owner_address.get(),
            use_index=cfg.roles.use_index.get(),
            cache_ttl_seconds=cfg.roles.cache_ttl_seconds.get(),
        )
        self.diagnosis = FaultDiagnosisEngine(
            self.reader,
            adapter,
            deployment,
            roles=self.roles,
            lifecycle=self.lifecycle,
            classifier=self.classifier,
            decimals=cfg.deployment.token_decimals.get(),
        )
        self.orchestrator = ContractCallOrchestrator(
            adapter,
            self.sender,
            reader=self.reader,
            lifecycle=self.lifecycle,
            classifier=self.classifier,
            diagnosis=self.diagnosis,
            config=cfg,
        )
        self.reconciler = ValidationReconciler(self.reader, ResponseSanitizer.from_config(cfg))
        self.orchestrator.on_registry_change(self._on_registry_change)

    def _on_registry_change(self, action: Any, params: Mapping[str, Any]) -> None:
        # membership changes touch the named address, or the sender when none is named
        self.roles.invalidate(params.get("address") or self.sender)

    @classmethod
    def from_config(
        cls,
        config: Optional[ReportChainConfig] = None,
        account: Optional[LocalAccount] = None,
        sender: Optional[str] = None,
    ) -> "LedgerClient":
        """Client over JSON-RPC using the configured deployment."""
        from reportchain.web3_adapter import Web3LedgerAdapter

        config = config or get_config()
        sender = account.address if account is not None else sender
        if not sender:
            raise ConfigError("a signing account or sender address is required")
        return cls(Web3LedgerAdapter.from_config(config, account), sender, config)

    @classmethod
    def for_ledger(
        cls,
        ledger: InMemoryLedger,
        sender: str,
        config: Optional[ReportChainConfig] = None,
    ) -> "LedgerClient":
        """Client over an in-memory ledger; the ledger's owner is the platform owner."""
        return cls(ledger, sender, config or ReportChainConfig(), owner=ledger.owner)

    # -------------------------------------------------------------------------
    # API
    # -------------------------------------------------------------------------

    async def resolve_role(self, address: Any) -> Role:
        return await self.roles.resolve_role(address)

    async def roles_by_institution(self, address: Any) -> Dict[int, InstitutionRoles]:
        try:
            return await self.roles.roles_by_institution(address)
        except LedgerTransportError as e:
            raise NetworkError(str(e), action="roles_by_institution") from e

    async def execute(self, action: Any, params: Mapping[str, Any]) -> TransactionHandle:
        return await self.orchestrator.execute(action, params)

    async def diagnose(self, action: Any, params: Mapping[str, Any], caller: Optional[str] = None) -> Diagnosis:
        return await self.diagnosis.diagnose(action, params, caller or self.sender)

    async def get_reconciled_verdict(self, report_id: int) -> ReconciledVerdict:
        return await self.reconciler.get_reconciled_verdict(report_id)
