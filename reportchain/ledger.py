"""
Ledger adapter boundary.

Everything the client knows about the ledger passes through a LedgerAdapter:
typed reads, cost estimation, submission, read-only simulation and receipt
lookup. Two adapters exist: Web3LedgerAdapter for a JSON-RPC node and
InMemoryLedger for tests and offline simulation.

Reads return the registry's tuple shape. Any single field that cannot be
decoded comes back as UNDECODABLE instead of failing the whole read.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Protocol, Sequence, Tuple


# =============================================================================
# REGISTRIES
# =============================================================================

class Registry(Enum):
    """Independently deployed ledger contracts."""
    INSTITUTION = "institusi"
    REPORT = "user"
    VALIDATOR = "validator"
    REWARD_MANAGER = "rewardManager"
    TOKEN = "rtkToken"

    @property
    def label(self) -> str:
        return _REGISTRY_LABELS[self]

    @property
    def config_key(self) -> str:
        """Name of the deployment config entry holding this registry's address."""
        return _REGISTRY_CONFIG_KEYS[self]

    @classmethod
    def parse(cls, value: Any) -> "Registry":
        if isinstance(value, Registry):
            return value
        for reg in cls:
            if value in (reg.value, reg.name, reg.name.lower(), reg.config_key):
                return reg
        raise ValueError(f"unknown registry: {value!r}")


_REGISTRY_LABELS = {
    Registry.INSTITUTION: "institution registry",
    Registry.REPORT: "report registry",
    Registry.VALIDATOR: "validator registry",
    Registry.REWARD_MANAGER: "reward manager",
    Registry.TOKEN: "token",
}

_REGISTRY_CONFIG_KEYS = {
    Registry.INSTITUTION: "institution_registry",
    Registry.REPORT: "report_registry",
    Registry.VALIDATOR: "validator_registry",
    Registry.REWARD_MANAGER: "reward_manager",
    Registry.TOKEN: "token",
}


ZERO_ADDRESS = "0x" + "0" * 40


class _Undecodable:
    """Marker for a response field that could not be decoded."""
    _instance: Optional["_Undecodable"] = None

    def __new__(cls) -> "_Undecodable":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDECODABLE"

    def __bool__(self) -> bool:
        return False


UNDECODABLE = _Undecodable()


# =============================================================================
# EXCEPTIONS
# =============================================================================

class LedgerError(Exception):
    """Base class for adapter-level failures."""
    pass


class LedgerCallError(LedgerError):
    """The ledger rejected a call or transaction; reason is its revert string."""

    def __init__(self, reason: str, registry: Optional[Registry] = None, function: str = ""):
        self.reason = reason
        self.registry = registry
        self.function = function
        where = f"{registry.value}.{function}: " if registry else ""
        super().__init__(f"{where}{reason}")


class LedgerTransportError(LedgerError):
    """The ledger could not be reached or did not answer in time."""
    pass


class LedgerDecodeError(LedgerError):
    """A response could not be decoded at all."""

    def __init__(self, message: str, registry: Optional[Registry] = None, function: str = ""):
        self.registry = registry
        self.function = function
        super().__init__(message)


# =============================================================================
# REQUESTS AND RECEIPTS
# =============================================================================

@dataclass(frozen=True)
class CallRequest:
    """A single contract entry point invocation."""
    registry: Registry
    function: str
    args: Tuple[Any, ...] = ()
    sender: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "registry": self.registry.value,
            "function": self.function,
            "args": list(self.args),
            "sender": self.sender,
        }


class ReceiptStatus(Enum):
    SUCCESS = "success"
    REVERTED = "reverted"


@dataclass
class TransactionReceipt:
    tx_hash: str
    status: ReceiptStatus
    block_number: int = 0
    cost_used: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status is ReceiptStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "status": self.status.value,
            "block_number": self.block_number,
            "cost_used": self.cost_used,
        }


# =============================================================================
# ADAPTER PROTOCOL
# =============================================================================

class LedgerAdapter(Protocol):
    """
    Protocol for ledger adapters.

    All methods are coroutines. Implementations translate their transport's
    failures into LedgerCallError, LedgerTransportError or LedgerDecodeError.
    """

    def address_of(self, registry: Registry) -> str:
        """Deployed address of a registry."""
        ...

    async def call(
        self,
        registry: Registry,
        function: str,
        args: Sequence[Any] = (),
        sender: Optional[str] = None,
    ) -> Any:
        """
        Read-only call.

        Tuple outputs are returned as tuples, single outputs as the bare value.
        """
        ...

    async def estimate_cost(self, request: CallRequest) -> int:
        """Estimate the execution cost of a transaction."""
        ...

    async def submit(self, request: CallRequest, cost_ceiling: int) -> str:
        """Submit a transaction and return its hash without waiting."""
        ...

    async def simulate(self, request: CallRequest) -> None:
        """
        Execute a transaction read-only.

        Returns None when it would succeed; raises LedgerCallError with the
        most specific rejection reason otherwise.
        """
        ...

    async def get_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        """Receipt of a mined transaction, or None while pending."""
        ...
