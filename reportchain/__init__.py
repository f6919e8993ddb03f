"""
reportchain: client-side orchestration for the report ledger

A report lifecycle spans five independently deployed registries:
institutions, reports, validation verdicts, stakes and rewards, and the
token. No single transaction enforces the lifecycle, one registry refuses
settlement initiated by another, and some verdict records decode to garbage.
This package is the layer between product code and those registries.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │  client.py        LedgerClient: resolve_role / execute / diagnose /     │
    │                   get_reconciled_verdict                                 │
    │                                                                          │
    │  orchestrator.py  precondition, cost ceiling, submission, classification │
    │  diagnosis.py     ordered read-only probes with a recommendation         │
    │  reconciler.py    status + verdict record -> verdict with provenance    │
    │  roles.py         owner > admin > validator > reporter                  │
    │  lifecycle.py     Pending -> Valid | Invalid -> Appealed -> final       │
    │  sanitizer.py     per-field cleanup of decoded responses                 │
    │                                                                          │
    │  registry.py      typed reads        classification.py  rejection table │
    │  ledger.py        adapter boundary   memory.py          in-memory ledger│
    │  web3_adapter.py  JSON-RPC adapter   codec.py           tolerant decode │
    └─────────────────────────────────────────────────────────────────────────┘

Copyright (c) 2026 Momentum. All rights reserved.
"""

__version__ = "0.3.0"

# Lazy imports to avoid circular dependencies


def __getattr__(name):
    """Lazy import client modules on first access."""

    if name in ("LedgerClient",):
        from reportchain import client
        return getattr(client, name)

    if name in ("Role", "RoleResolver", "RoleIndex", "InstitutionRoles"):
        from reportchain import roles
        return getattr(roles, name)

    if name in ("ReportStatus", "ReportLifecycleModel", "LifecycleAction", "AssignmentPolicy"):
        from reportchain import lifecycle
        return getattr(lifecycle, name)

    if name in ("Action", "parse_amount", "format_amount"):
        from reportchain import actions
        return getattr(actions, name)

    if name in ("ContractCallOrchestrator", "TransactionHandle", "CostSource"):
        from reportchain import orchestrator
        return getattr(orchestrator, name)

    if name in ("FaultDiagnosisEngine", "Diagnosis", "DiagnosticCheck", "CheckStatus"):
        from reportchain import diagnosis
        return getattr(diagnosis, name)

    if name in ("ValidationReconciler", "ReconciledVerdict", "ValidationVerdict", "Provenance"):
        from reportchain import reconciler
        return getattr(reconciler, name)

    if name in ("ResponseSanitizer", "UNAVAILABLE"):
        from reportchain import sanitizer
        return getattr(sanitizer, name)

    if name in ("InMemoryLedger",):
        from reportchain import memory
        return getattr(memory, name)

    if name in ("Registry", "LedgerAdapter", "UNDECODABLE"):
        from reportchain import ledger
        return getattr(ledger, name)

    if name in ("ReportChainError", "PreconditionError", "TransactionFailed", "AuthorizationRejected",
                "PreconditionViolatedOnChain", "InsufficientFunds", "CrossRegistryMisconfiguration",
                "NetworkError", "UnknownFailure", "UnreadableState", "ErrorKind"):
        from reportchain import errors
        return getattr(errors, name)

    raise AttributeError(f"module 'reportchain' has no attribute '{name}'")


__all__ = [
    "__version__",
    # Client
    "LedgerClient",
    # Roles
    "Role",
    "RoleResolver",
    "RoleIndex",
    "InstitutionRoles",
    # Lifecycle
    "ReportStatus",
    "ReportLifecycleModel",
    "LifecycleAction",
    "AssignmentPolicy",
    # Actions
    "Action",
    "parse_amount",
    "format_amount",
    # Orchestration
    "ContractCallOrchestrator",
    "TransactionHandle",
    "CostSource",
    # Diagnosis
    "FaultDiagnosisEngine",
    "Diagnosis",
    "DiagnosticCheck",
    "CheckStatus",
    # Reconciliation
    "ValidationReconciler",
    "ReconciledVerdict",
    "ValidationVerdict",
    "Provenance",
    "ResponseSanitizer",
    "UNAVAILABLE",
    # Ledger
    "InMemoryLedger",
    "Registry",
    "LedgerAdapter",
    "UNDECODABLE",
    # Errors
    "ReportChainError",
    "PreconditionError",
    "TransactionFailed",
    "AuthorizationRejected",
    "PreconditionViolatedOnChain",
    "InsufficientFunds",
    "CrossRegistryMisconfiguration",
    "NetworkError",
    "UnknownFailure",
    "UnreadableState",
    "ErrorKind",
]
