"""
Contract entry points.

One row per function the client uses: registry, name, positional input
types, output types and whether it mutates state. The JSON ABI handed to
the web3 adapter is generated from this table.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Tuple

from reportchain.ledger import Registry


@dataclass(frozen=True)
class ContractFunction:
    registry: Registry
    name: str
    inputs: Tuple[str, ...] = ()
    outputs: Tuple[str, ...] = ()
    mutating: bool = False
    output_names: Tuple[str, ...] = ()

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def returns_tuple(self) -> bool:
        return len(self.outputs) > 1

    def abi_entry(self) -> Dict[str, Any]:
        names = self.output_names or tuple("" for _ in self.outputs)
        return {
            "type": "function",
            "name": self.name,
            "stateMutability": "nonpayable" if self.mutating else "view",
            "inputs": [{"name": f"arg{i}", "type": t} for i, t in enumerate(self.inputs)],
            "outputs": [{"name": n, "type": t} for n, t in zip(names, self.outputs)],
        }


_I = Registry.INSTITUTION
_R = Registry.REPORT
_V = Registry.VALIDATOR
_M = Registry.REWARD_MANAGER
_T = Registry.TOKEN

FUNCTIONS: Tuple[ContractFunction, ...] = (
    # institution registry
    ContractFunction(_I, "institusiCounter", (), ("uint256",)),
    ContractFunction(_I, "getInstitusiData", ("uint256",), ("string", "address", "address"),
                     output_names=("nama", "admin", "treasury")),
    ContractFunction(_I, "isValidatorTerdaftar", ("uint256", "address"), ("bool",)),
    ContractFunction(_I, "isPelaporTerdaftar", ("uint256", "address"), ("bool",)),
    ContractFunction(_I, "getValidatorList", ("uint256",), ("address[]",)),
    ContractFunction(_I, "userContract", (), ("address",)),
    ContractFunction(_I, "rewardManager", (), ("address",)),
    ContractFunction(_I, "validatorContract", (), ("address",)),
    ContractFunction(_I, "validatorReputation", ("address",), ("uint256",)),
    ContractFunction(_I, "daftarInstitusi", ("string", "address"), mutating=True),
    ContractFunction(_I, "tambahValidator", ("uint256", "address"), mutating=True),
    ContractFunction(_I, "tambahPelapor", ("uint256", "address"), mutating=True),
    ContractFunction(_I, "removeValidator", ("uint256", "address"), mutating=True),
    ContractFunction(_I, "adminFinalisasiBanding", ("uint256", "bool"), mutating=True),
    # report registry
    ContractFunction(_R, "laporanCounter", (), ("uint256",)),
    ContractFunction(
        _R, "laporan", ("uint256",),
        ("uint256", "uint256", "address", "string", "string", "string", "address", "address", "uint64"),
        output_names=("laporanId", "institusiId", "pelapor", "judul", "deskripsi", "status",
                      "validatorAddress", "assignedValidator", "creationTimestamp"),
    ),
    ContractFunction(_R, "isBanding", ("uint256",), ("bool",)),
    ContractFunction(_R, "STAKE_BANDING_AMOUNT", (), ("uint256",)),
    ContractFunction(_R, "institusiContract", (), ("address",)),
    ContractFunction(_R, "rewardManager", (), ("address",)),
    ContractFunction(_R, "buatLaporan", ("uint256", "string", "string"), mutating=True),
    ContractFunction(_R, "ajukanBanding", ("uint256",), mutating=True),
    # validator registry
    ContractFunction(_V, "hasilValidasi", ("uint256",), ("address", "bool", "string", "uint256"),
                     output_names=("validator", "isValid", "deskripsi", "timestamp")),
    ContractFunction(_V, "laporanSudahDivalidasi", ("uint256",), ("bool",)),
    ContractFunction(_V, "validasiLaporan", ("uint256", "bool", "string"), mutating=True),
    ContractFunction(_V, "resignFromInstitusi", ("uint256",), mutating=True),
    # reward manager
    ContractFunction(_M, "getStakedAmount", ("address",), ("uint256",)),
    ContractFunction(_M, "MIN_STAKE_AMOUNT", (), ("uint256",)),
    ContractFunction(_M, "institusiContract", (), ("address",)),
    ContractFunction(_M, "hasValidatorClaimedReward", ("uint256", "address"), ("bool",)),
    ContractFunction(_M, "userContract", (), ("address",)),
    ContractFunction(_M, "stake", ("uint256",), mutating=True),
    ContractFunction(_M, "unstake", ("uint256",), mutating=True),
    ContractFunction(_M, "claimReward", ("uint256",), mutating=True),
    ContractFunction(_M, "depositRTK", ("uint256",), mutating=True),
    # token
    ContractFunction(_T, "balanceOf", ("address",), ("uint256",)),
    ContractFunction(_T, "allowance", ("address", "address"), ("uint256",)),
    ContractFunction(_T, "approve", ("address", "uint256"), mutating=True),
    ContractFunction(_T, "transfer", ("address", "uint256"), mutating=True),
)

_BY_KEY: Dict[Tuple[Registry, str], ContractFunction] = {(f.registry, f.name): f for f in FUNCTIONS}


# Cross-references each registry holds: (holder, getter, registry it should point at)
REFERENCES: Tuple[Tuple[Registry, str, Registry], ...] = (
    (_R, "institusiContract", _I),
    (_R, "rewardManager", _M),
    (_I, "userContract", _R),
    (_I, "rewardManager", _M),
    (_I, "validatorContract", _V),
    (_M, "institusiContract", _I),
    (_M, "userContract", _R),
)


def lookup(registry: Registry, name: str) -> ContractFunction:
    try:
        return _BY_KEY[(registry, name)]
    except KeyError:
        raise KeyError(f"no entry point {registry.value}.{name}") from None


@lru_cache(maxsize=None)
def _abi(registry: Registry) -> Tuple[Dict[str, Any], ...]:
    return tuple(f.abi_entry() for f in FUNCTIONS if f.registry is registry)


def abi_for(registry: Registry) -> List[Dict[str, Any]]:
    """JSON ABI of the entry points the client uses on one registry."""
    return [dict(entry) for entry in _abi(registry)]
