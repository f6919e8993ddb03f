"""
Typed read accessors over a LedgerAdapter.

Each accessor issues exactly one ledger read and returns a small view
object. Fields keep the UNDECODABLE marker when the adapter could not decode
them; interpretation is left to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from reportchain.codec import normalize_value
from reportchain.ledger import UNDECODABLE, LedgerAdapter, LedgerDecodeError, Registry
from reportchain.lifecycle import ReportStatus


@dataclass
class InstitutionView:
    institution_id: int
    name: Any
    admin: Any
    treasury: Any

    @property
    def exists(self) -> bool:
        return isinstance(self.admin, str) and int(self.admin, 16) != 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "institution_id": self.institution_id,
            "name": self.name if self.name is not UNDECODABLE else None,
            "admin": self.admin if self.admin is not UNDECODABLE else None,
            "treasury": self.treasury if self.treasury is not UNDECODABLE else None,
        }


@dataclass
class ReportView:
    report_id: int
    stored_id: Any
    institution_id: Any
    reporter: Any
    title: Any
    description: Any
    status_label: Any
    validator_address: Any
    assigned_validator: Any
    created_at: Any

    @property
    def exists(self) -> bool:
        # unset slots decode as all-zero, including the stored id
        return isinstance(self.stored_id, int) and self.stored_id != 0

    @property
    def status(self) -> Optional[ReportStatus]:
        return ReportStatus.from_label(self.status_label)


_REPORT_FIELDS = 9
_VERDICT_FIELDS = 4


def _fields(value: Any, count: int, registry: Registry, function: str) -> Tuple[Any, ...]:
    if not isinstance(value, tuple) or len(value) != count:
        raise LedgerDecodeError(f"{function} returned {type(value).__name__}", registry, function)
    return tuple(normalize_value(v) for v in value)


class RegistryReader:
    """Read side of the five registries."""

    def __init__(self, adapter: LedgerAdapter):
        self.adapter = adapter

    async def _call(self, registry: Registry, function: str, *args: Any) -> Any:
        return normalize_value(await self.adapter.call(registry, function, args))

    async def _uint(self, registry: Registry, function: str, *args: Any) -> int:
        value = await self._call(registry, function, *args)
        if isinstance(value, bool) or not isinstance(value, int):
            raise LedgerDecodeError(f"{function} undecodable", registry, function)
        return value

    async def _flag(self, registry: Registry, function: str, *args: Any) -> bool:
        value = await self._call(registry, function, *args)
        if not isinstance(value, bool):
            raise LedgerDecodeError(f"{function} undecodable", registry, function)
        return value

    # -- institutions ------------------------------------------------------

    async def institution_count(self) -> int:
        return await self._uint(Registry.INSTITUTION, "institusiCounter")

    async def institution(self, institution_id: int) -> InstitutionView:
        raw = await self.adapter.call(Registry.INSTITUTION, "getInstitusiData", (institution_id,))
        name, admin, treasury = _fields(raw, 3, Registry.INSTITUTION, "getInstitusiData")
        return InstitutionView(institution_id, name, admin, treasury)

    async def is_validator(self, institution_id: int, address: str) -> bool:
        return await self._flag(Registry.INSTITUTION, "isValidatorTerdaftar", institution_id, address)

    async def is_reporter(self, institution_id: int, address: str) -> bool:
        return await self._flag(Registry.INSTITUTION, "isPelaporTerdaftar", institution_id, address)

    async def validator_list(self, institution_id: int) -> List[str]:
        value = await self._call(Registry.INSTITUTION, "getValidatorList", institution_id)
        if value is UNDECODABLE:
            raise LedgerDecodeError("validator list undecodable", Registry.INSTITUTION, "getValidatorList")
        return [v for v in value if isinstance(v, str)]

    async def validator_reputation(self, address: str) -> int:
        return await self._uint(Registry.INSTITUTION, "validatorReputation", address)

    # -- reports -----------------------------------------------------------

    async def report_count(self) -> int:
        return await self._uint(Registry.REPORT, "laporanCounter")

    async def report(self, report_id: int) -> ReportView:
        raw = await self.adapter.call(Registry.REPORT, "laporan", (report_id,))
        values = _fields(raw, _REPORT_FIELDS, Registry.REPORT, "laporan")
        return ReportView(report_id, *values)

    async def is_appealed(self, report_id: int) -> bool:
        return await self._flag(Registry.REPORT, "isBanding", report_id)

    async def appeal_stake(self) -> int:
        return await self._uint(Registry.REPORT, "STAKE_BANDING_AMOUNT")

    # -- verdicts ----------------------------------------------------------

    async def verdict_record(self, report_id: int) -> Tuple[Any, Any, Any, Any]:
        """Raw (validator, isValid, description, timestamp) tuple."""
        raw = await self.adapter.call(Registry.VALIDATOR, "hasilValidasi", (report_id,))
        return _fields(raw, _VERDICT_FIELDS, Registry.VALIDATOR, "hasilValidasi")  # type: ignore[return-value]

    async def is_validated(self, report_id: int) -> bool:
        return await self._flag(Registry.VALIDATOR, "laporanSudahDivalidasi", report_id)

    # -- funds -------------------------------------------------------------

    async def token_balance(self, address: str) -> int:
        return await self._uint(Registry.TOKEN, "balanceOf", address)

    async def allowance(self, owner: str, spender: str) -> int:
        return await self._uint(Registry.TOKEN, "allowance", owner, spender)

    async def staked_amount(self, address: str) -> int:
        return await self._uint(Registry.REWARD_MANAGER, "getStakedAmount", address)

    async def min_stake(self) -> int:
        return await self._uint(Registry.REWARD_MANAGER, "MIN_STAKE_AMOUNT")

    async def has_claimed_reward(self, report_id: int, validator: str) -> bool:
        return await self._flag(Registry.REWARD_MANAGER, "hasValidatorClaimedReward", report_id, validator)

    # -- wiring ------------------------------------------------------------

    async def reference(self, holder: Registry, getter: str) -> Any:
        """Address one registry holds for another (UNDECODABLE when unreadable)."""
        return await self._call(holder, getter)
