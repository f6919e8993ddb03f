"""
In-memory ledger.

Deterministic in-process stand-in for the five registries, implementing the
LedgerAdapter protocol. It enforces the same rules and revert strings the
deployed registries produce, including the settlement defect: the reward
manager only accepts stake returns from the registry it references as its
institution contract, while settlement is routed through the report
registry unless configured otherwise.

Fault injection:
    corrupt()          override one field of one read
    break_read()       make one read undecodable as a whole
    set_reference()    re-point one registry's cross-reference
    go_offline()       every call raises LedgerTransportError
    fail_estimates     cost estimation raises, execution still works

Used by the test-suite and by the CLI's --simulate mode.
"""

from __future__ import annotations

import asyncio
import copy
import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from reportchain import contracts
from reportchain.ledger import (
    ZERO_ADDRESS,
    CallRequest,
    LedgerCallError,
    LedgerDecodeError,
    LedgerTransportError,
    ReceiptStatus,
    Registry,
    TransactionReceipt,
)
from reportchain.lifecycle import ReportStatus

DEFAULT_ADDRESSES: Dict[Registry, str] = {
    Registry.INSTITUTION: "0x" + "1a" * 20,
    Registry.REPORT: "0x" + "2b" * 20,
    Registry.VALIDATOR: "0x" + "3c" * 20,
    Registry.REWARD_MANAGER: "0x" + "4d" * 20,
    Registry.TOKEN: "0x" + "5e" * 20,
}

UNIT = 10 ** 18

_BASE_COST = 45_000
_BYTE_COST = 68


class _Revert(Exception):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


def _require(condition: Any, reason: str) -> None:
    if not condition:
        raise _Revert(reason)


def _addr(value: Optional[str]) -> str:
    return (value or ZERO_ADDRESS).lower()


# =============================================================================
# STATE
# =============================================================================

@dataclass
class InstitutionRecord:
    name: str
    admin: str
    treasury: str
    validators: List[str] = field(default_factory=list)
    reporters: Set[str] = field(default_factory=set)


@dataclass
class ReportRecord:
    report_id: int
    institution_id: int
    reporter: str
    title: str
    description: str
    status: str
    validator_address: str = ZERO_ADDRESS
    assigned_validator: str = ZERO_ADDRESS
    created_at: int = 0


@dataclass
class VerdictRecord:
    validator: str
    is_valid: bool
    description: str
    timestamp: int


@dataclass
class LedgerState:
    references: Dict[Tuple[Registry, str], str]
    institutions: Dict[int, InstitutionRecord] = field(default_factory=dict)
    reports: Dict[int, ReportRecord] = field(default_factory=dict)
    verdicts: Dict[int, VerdictRecord] = field(default_factory=dict)
    appealed: Set[int] = field(default_factory=set)
    claimed: Set[int] = field(default_factory=set)
    balances: Dict[str, int] = field(default_factory=dict)
    allowances: Dict[Tuple[str, str], int] = field(default_factory=dict)
    stakes: Dict[str, int] = field(default_factory=dict)
    reputation: Dict[str, int] = field(default_factory=dict)
    institution_counter: int = 0
    report_counter: int = 0
    assignment_cursor: Dict[int, int] = field(default_factory=dict)


# =============================================================================
# LEDGER
# =============================================================================

class InMemoryLedger:
    """LedgerAdapter backed by in-process state."""

    def __init__(
        self,
        owner: str,
        addresses: Optional[Dict[Registry, str]] = None,
        appeal_stake: int = 10 * UNIT,
        min_stake: int = 100 * UNIT,
        reward_per_report: int = 5 * UNIT,
        settlement_via: Registry = Registry.INSTITUTION,
        revert_on_submit: bool = True,
        confirm_after_polls: int = 0,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.owner = _addr(owner)
        self.addresses = {r: _addr(a) for r, a in (addresses or DEFAULT_ADDRESSES).items()}
        self.appeal_stake = appeal_stake
        self.min_stake = min_stake
        self.reward_per_report = reward_per_report
        self.settlement_via = settlement_via
        self.revert_on_submit = revert_on_submit
        self.confirm_after_polls = confirm_after_polls
        self.fail_estimates = False
        self._clock = clock or time.time
        self._online = True

        self.state = LedgerState(references={
            (holder, getter): self.addresses[target] for holder, getter, target in contracts.REFERENCES
        })
        self._corruptions: Dict[Tuple[Registry, str, Tuple[Any, ...]], Dict[int, Any]] = {}
        self._broken: Set[Tuple[Registry, str, Tuple[Any, ...]]] = set()
        self._receipts: Dict[str, TransactionReceipt] = {}
        self._polls: Dict[str, int] = {}
        self.submitted: List[Tuple[CallRequest, int]] = []
        self.calls: List[Tuple[Registry, str, Tuple[Any, ...]]] = []

        self._views: Dict[Tuple[Registry, str], Callable[..., Any]] = {
            (Registry.INSTITUTION, "institusiCounter"): lambda s: s.institution_counter,
            (Registry.INSTITUTION, "getInstitusiData"): self._v_institution,
            (Registry.INSTITUTION, "isValidatorTerdaftar"): self._v_is_validator,
            (Registry.INSTITUTION, "isPelaporTerdaftar"): self._v_is_reporter,
            (Registry.INSTITUTION, "getValidatorList"): self._v_validator_list,
            (Registry.INSTITUTION, "validatorReputation"): lambda s, a: s.reputation.get(_addr(a), 0),
            (Registry.REPORT, "laporanCounter"): lambda s: s.report_counter,
            (Registry.REPORT, "laporan"): self._v_report,
            (Registry.REPORT, "isBanding"): lambda s, rid: rid in s.appealed,
            (Registry.REPORT, "STAKE_BANDING_AMOUNT"): lambda s: self.appeal_stake,
            (Registry.VALIDATOR, "hasilValidasi"): self._v_verdict,
            (Registry.VALIDATOR, "laporanSudahDivalidasi"): lambda s, rid: rid in s.verdicts,
            (Registry.REWARD_MANAGER, "getStakedAmount"): lambda s, a: s.stakes.get(_addr(a), 0),
            (Registry.REWARD_MANAGER, "MIN_STAKE_AMOUNT"): lambda s: self.min_stake,
            (Registry.REWARD_MANAGER, "hasValidatorClaimedReward"): self._v_has_claimed,
            (Registry.TOKEN, "balanceOf"): lambda s, a: s.balances.get(_addr(a), 0),
            (Registry.TOKEN, "allowance"): lambda s, o, sp: s.allowances.get((_addr(o), _addr(sp)), 0),
        }
        for holder, getter, _ in contracts.REFERENCES:
            self._views[(holder, getter)] = lambda s, key=(holder, getter): s.references[key]

        self._writes: Dict[Tuple[Registry, str], Callable[..., None]] = {
            (Registry.INSTITUTION, "daftarInstitusi"): self._w_register_institution,
            (Registry.INSTITUTION, "tambahValidator"): self._w_add_validator,
            (Registry.INSTITUTION, "tambahPelapor"): self._w_add_reporter,
            (Registry.INSTITUTION, "removeValidator"): self._w_remove_validator,
            (Registry.INSTITUTION, "adminFinalisasiBanding"): self._w_finalize_appeal,
            (Registry.REPORT, "buatLaporan"): self._w_create_report,
            (Registry.REPORT, "ajukanBanding"): self._w_appeal,
            (Registry.VALIDATOR, "validasiLaporan"): self._w_validate,
            (Registry.VALIDATOR, "resignFromInstitusi"): self._w_resign,
            (Registry.REWARD_MANAGER, "stake"): self._w_stake,
            (Registry.REWARD_MANAGER, "unstake"): self._w_unstake,
            (Registry.REWARD_MANAGER, "claimReward"): self._w_claim_reward,
            (Registry.REWARD_MANAGER, "depositRTK"): self._w_deposit,
            (Registry.TOKEN, "approve"): self._w_approve,
            (Registry.TOKEN, "transfer"): self._w_transfer,
        }

    # -------------------------------------------------------------------------
    # Seeding
    # -------------------------------------------------------------------------

    def add_institution(
        self,
        name: str,
        admin: str,
        treasury: Optional[str] = None,
        institution_id: Optional[int] = None,
    ) -> int:
        s = self.state
        iid = institution_id or s.institution_counter + 1
        s.institutions[iid] = InstitutionRecord(name, _addr(admin), _addr(treasury or admin))
        s.institution_counter = max(s.institution_counter, iid)
        return iid

    def add_validator(self, institution_id: int, address: str) -> None:
        self.state.institutions[institution_id].validators.append(_addr(address))

    def add_reporter(self, institution_id: int, address: str) -> None:
        self.state.institutions[institution_id].reporters.add(_addr(address))

    def add_report(
        self,
        institution_id: int,
        reporter: str,
        title: str = "Laporan",
        description: str = "Deskripsi laporan",
        status: ReportStatus = ReportStatus.PENDING,
        assigned_validator: Optional[str] = None,
        report_id: Optional[int] = None,
        created_at: Optional[int] = None,
    ) -> int:
        s = self.state
        rid = report_id or s.report_counter + 1
        s.reports[rid] = ReportRecord(
            report_id=rid,
            institution_id=institution_id,
            reporter=_addr(reporter),
            title=title,
            description=description,
            status=status.ledger_label,
            assigned_validator=_addr(assigned_validator),
            created_at=created_at if created_at is not None else int(self._clock()),
        )
        s.report_counter = max(s.report_counter, rid)
        if status is ReportStatus.APPEALED:
            s.appealed.add(rid)
        return rid

    def set_verdict(
        self,
        report_id: int,
        validator: str,
        is_valid: bool,
        description: str = "",
        timestamp: Optional[int] = None,
    ) -> None:
        self.state.verdicts[report_id] = VerdictRecord(
            _addr(validator), is_valid, description,
            timestamp if timestamp is not None else int(self._clock()),
        )
        self.state.reports[report_id].validator_address = _addr(validator)

    def mint(self, address: str, amount: int) -> None:
        key = _addr(address)
        self.state.balances[key] = self.state.balances.get(key, 0) + amount

    def set_allowance(self, owner: str, spender: str, amount: int) -> None:
        self.state.allowances[(_addr(owner), _addr(spender))] = amount

    def set_stake(self, address: str, amount: int) -> None:
        self.state.stakes[_addr(address)] = amount

    def set_reputation(self, address: str, score: int) -> None:
        self.state.reputation[_addr(address)] = score

    @classmethod
    def from_fixture(cls, data: Dict[str, Any]) -> "InMemoryLedger":
        """Build a ledger from a fixture mapping (see tests/fixtures/ledger.yaml)."""
        addresses = None
        if data.get("addresses"):
            addresses = {Registry.parse(k): v for k, v in data["addresses"].items()}
        ledger = cls(
            owner=data["owner"],
            addresses=addresses,
            settlement_via=Registry.parse(data.get("settlement_via", Registry.INSTITUTION.value)),
        )
        for inst in data.get("institutions", []):
            iid = ledger.add_institution(inst["name"], inst["admin"], inst.get("treasury"), inst.get("id"))
            for v in inst.get("validators", []):
                ledger.add_validator(iid, v)
            for r in inst.get("reporters", []):
                ledger.add_reporter(iid, r)
        for rep in data.get("reports", []):
            rid = ledger.add_report(
                rep["institution"], rep["reporter"], rep.get("title", "Laporan"),
                rep.get("description", ""), ReportStatus(rep.get("status", "pending")),
                rep.get("assigned_validator"), rep.get("id"),
            )
            if rep.get("verdict"):
                v = rep["verdict"]
                ledger.set_verdict(rid, v["validator"], v["is_valid"], v.get("description", ""), v.get("timestamp"))
        for address, amount in (data.get("balances") or {}).items():
            ledger.mint(address, int(amount))
        for entry in data.get("allowances", []):
            ledger.set_allowance(entry["owner"], entry["spender"], int(entry["amount"]))
        for address, amount in (data.get("stakes") or {}).items():
            ledger.set_stake(address, int(amount))
        for address, score in (data.get("reputation") or {}).items():
            ledger.set_reputation(address, int(score))
        return ledger

    # -------------------------------------------------------------------------
    # Fault injection
    # -------------------------------------------------------------------------

    def corrupt(self, registry: Registry, function: str, args: Sequence[Any], index: int, value: Any) -> None:
        self._corruptions.setdefault((registry, function, tuple(args)), {})[index] = value

    def break_read(self, registry: Registry, function: str, args: Sequence[Any]) -> None:
        self._broken.add((registry, function, tuple(args)))

    def set_reference(self, holder: Registry, getter: str, address: str) -> None:
        if (holder, getter) not in self.state.references:
            raise KeyError(f"{holder.value} has no reference {getter}")
        self.state.references[(holder, getter)] = _addr(address)

    def go_offline(self) -> None:
        self._online = False

    def go_online(self) -> None:
        self._online = True

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    def status_of(self, report_id: int) -> Optional[ReportStatus]:
        report = self.state.reports.get(report_id)
        return ReportStatus.from_label(report.status) if report else None

    def balance_of(self, address: str) -> int:
        return self.state.balances.get(_addr(address), 0)

    # -------------------------------------------------------------------------
    # LedgerAdapter
    # -------------------------------------------------------------------------

    def address_of(self, registry: Registry) -> str:
        return self.addresses[registry]

    def _check_online(self, what: str) -> None:
        if not self._online:
            raise LedgerTransportError(f"{what}: connection refused")

    async def call(
        self,
        registry: Registry,
        function: str,
        args: Sequence[Any] = (),
        sender: Optional[str] = None,
    ) -> Any:
        await asyncio.sleep(0)
        key = (registry, function, tuple(args))
        self._check_online(f"{registry.value}.{function}")
        self.calls.append(key)
        if key in self._broken:
            raise LedgerDecodeError(f"could not decode result of {function}", registry, function)

        view = self._views.get((registry, function))
        if view is None:
            if (registry, function) in self._writes:
                await self.simulate(CallRequest(registry, function, tuple(args), sender))
                return None
            raise LedgerCallError("function selector was not recognized", registry, function)

        try:
            value = view(self.state, *args)
        except _Revert as e:
            raise LedgerCallError(e.reason, registry, function) from None

        overrides = self._corruptions.get(key)
        if overrides:
            if isinstance(value, tuple):
                fields = list(value)
                for index, replacement in overrides.items():
                    fields[index] = replacement
                value = tuple(fields)
            else:
                value = overrides.get(0, value)
        return value

    def _run(self, request: CallRequest) -> LedgerState:
        """Execute against a copy of the state; raise LedgerCallError on revert."""
        handler = self._writes.get((request.registry, request.function))
        if handler is None:
            raise LedgerCallError("function selector was not recognized", request.registry, request.function)
        if not request.sender:
            raise LedgerCallError("sender required", request.registry, request.function)
        draft = copy.deepcopy(self.state)
        try:
            handler(draft, _addr(request.sender), *request.args)
        except _Revert as e:
            raise LedgerCallError(e.reason, request.registry, request.function) from None
        return draft

    def _cost(self, request: CallRequest) -> int:
        payload = sum(len(a.encode()) for a in request.args if isinstance(a, str))
        return _BASE_COST + _BYTE_COST * payload

    async def estimate_cost(self, request: CallRequest) -> int:
        await asyncio.sleep(0)
        self._check_online("estimateGas")
        if self.fail_estimates:
            raise LedgerCallError("cannot estimate gas; transaction may fail or may require manual gas limit",
                                  request.registry, request.function)
        self._run(request)
        return self._cost(request)

    async def simulate(self, request: CallRequest) -> None:
        await asyncio.sleep(0)
        self._check_online("eth_call")
        self._run(request)

    async def submit(self, request: CallRequest, cost_ceiling: int) -> str:
        await asyncio.sleep(0)
        self._check_online("sendTransaction")
        tx_hash = "0x" + secrets.token_hex(32)
        self.submitted.append((request, cost_ceiling))

        reason = ""
        try:
            if cost_ceiling < self._cost(request):
                raise LedgerCallError("out of gas", request.registry, request.function)
            draft = self._run(request)
        except LedgerCallError as e:
            if self.revert_on_submit:
                raise
            reason = e.reason
            draft = None

        if draft is not None:
            self.state = draft
        self._receipts[tx_hash] = TransactionReceipt(
            tx_hash=tx_hash,
            status=ReceiptStatus.SUCCESS if draft is not None else ReceiptStatus.REVERTED,
            block_number=len(self._receipts) + 1,
            cost_used=min(self._cost(request), cost_ceiling),
            metadata={"reason": reason} if reason else {},
        )
        return tx_hash

    async def get_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        await asyncio.sleep(0)
        self._check_online("getTransactionReceipt")
        polls = self._polls.get(tx_hash, 0)
        self._polls[tx_hash] = polls + 1
        if polls < self.confirm_after_polls:
            return None
        return self._receipts.get(tx_hash)

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    def _v_institution(self, s: LedgerState, iid: int) -> Tuple[str, str, str]:
        inst = s.institutions.get(iid)
        if inst is None:
            return ("", ZERO_ADDRESS, ZERO_ADDRESS)
        return (inst.name, inst.admin, inst.treasury)

    def _v_is_validator(self, s: LedgerState, iid: int, address: str) -> bool:
        inst = s.institutions.get(iid)
        return inst is not None and _addr(address) in inst.validators

    def _v_is_reporter(self, s: LedgerState, iid: int, address: str) -> bool:
        inst = s.institutions.get(iid)
        return inst is not None and _addr(address) in inst.reporters

    def _v_validator_list(self, s: LedgerState, iid: int) -> List[str]:
        inst = s.institutions.get(iid)
        return list(inst.validators) if inst else []

    def _v_report(self, s: LedgerState, rid: int) -> Tuple[Any, ...]:
        r = s.reports.get(rid)
        if r is None:
            return (0, 0, ZERO_ADDRESS, "", "", "", ZERO_ADDRESS, ZERO_ADDRESS, 0)
        return (r.report_id, r.institution_id, r.reporter, r.title, r.description, r.status,
                r.validator_address, r.assigned_validator, r.created_at)

    def _v_verdict(self, s: LedgerState, rid: int) -> Tuple[Any, ...]:
        v = s.verdicts.get(rid)
        if v is None:
            return (ZERO_ADDRESS, False, "", 0)
        return (v.validator, v.is_valid, v.description, v.timestamp)

    def _v_has_claimed(self, s: LedgerState, rid: int, validator: str) -> bool:
        verdict = s.verdicts.get(rid)
        return rid in s.claimed and verdict is not None and verdict.validator == _addr(validator)

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def _institution_of(self, s: LedgerState, iid: int) -> InstitutionRecord:
        inst = s.institutions.get(iid)
        _require(inst is not None, "Institusi tidak ditemukan")
        return inst  # type: ignore[return-value]

    def _report_of(self, s: LedgerState, rid: int) -> ReportRecord:
        report = s.reports.get(rid)
        _require(report is not None, "Laporan tidak ditemukan")
        return report  # type: ignore[return-value]

    def _move(self, s: LedgerState, source: str, target: str, amount: int) -> None:
        _require(s.balances.get(source, 0) >= amount, "ERC20: transfer amount exceeds balance")
        s.balances[source] = s.balances.get(source, 0) - amount
        s.balances[target] = s.balances.get(target, 0) + amount

    def _pull(self, s: LedgerState, owner: str, amount: int) -> None:
        spender = self.addresses[Registry.REWARD_MANAGER]
        _require(s.balances.get(owner, 0) >= amount, "ERC20: transfer amount exceeds balance")
        _require(s.allowances.get((owner, spender), 0) >= amount, "ERC20: insufficient allowance")
        s.allowances[(owner, spender)] -= amount
        self._move(s, owner, spender, amount)

    def _w_register_institution(self, s: LedgerState, sender: str, name: str, treasury: str) -> None:
        _require(isinstance(name, str) and name.strip(), "Nama institusi tidak boleh kosong")
        iid = s.institution_counter + 1
        s.institutions[iid] = InstitutionRecord(name, sender, _addr(treasury))
        s.institution_counter = iid

    def _w_add_validator(self, s: LedgerState, sender: str, iid: int, address: str) -> None:
        inst = self._institution_of(s, iid)
        _require(inst.admin == sender, "Hanya admin dari institusi terkait")
        _require(_addr(address) not in inst.validators, "Validator sudah terdaftar")
        inst.validators.append(_addr(address))

    def _w_add_reporter(self, s: LedgerState, sender: str, iid: int, address: str) -> None:
        inst = self._institution_of(s, iid)
        _require(inst.admin == sender, "Hanya admin dari institusi terkait")
        _require(_addr(address) not in inst.reporters, "Pelapor sudah terdaftar")
        inst.reporters.add(_addr(address))

    def _w_remove_validator(self, s: LedgerState, sender: str, iid: int, address: str) -> None:
        inst = self._institution_of(s, iid)
        _require(inst.admin == sender, "Hanya admin dari institusi terkait")
        _require(_addr(address) in inst.validators, "Validator tidak terdaftar")
        inst.validators.remove(_addr(address))

    def _w_resign(self, s: LedgerState, sender: str, iid: int) -> None:
        inst = self._institution_of(s, iid)
        _require(sender in inst.validators, "Bukan validator institusi ini")
        inst.validators.remove(sender)

    def _w_create_report(self, s: LedgerState, sender: str, iid: int, title: str, description: str) -> None:
        inst = self._institution_of(s, iid)
        _require(sender in inst.reporters, "Hanya pelapor terdaftar")
        _require(title.strip() and description.strip(), "Judul dan deskripsi wajib diisi")
        assigned = ZERO_ADDRESS
        if inst.validators:
            cursor = s.assignment_cursor.get(iid, 0)
            assigned = inst.validators[cursor % len(inst.validators)]
            s.assignment_cursor[iid] = cursor + 1
        rid = s.report_counter + 1
        s.reports[rid] = ReportRecord(rid, iid, sender, title, description,
                                      ReportStatus.PENDING.ledger_label,
                                      assigned_validator=assigned, created_at=int(self._clock()))
        s.report_counter = rid

    def _w_validate(self, s: LedgerState, sender: str, rid: int, is_valid: bool, description: str) -> None:
        report = self._report_of(s, rid)
        _require(report.status == ReportStatus.PENDING.ledger_label, "Laporan sudah divalidasi")
        inst = self._institution_of(s, report.institution_id)
        _require(sender in inst.validators, "Hanya validator terdaftar")
        _require(report.assigned_validator in (ZERO_ADDRESS, sender), "Bukan validator yang ditugaskan")
        s.verdicts[rid] = VerdictRecord(sender, bool(is_valid), description, int(self._clock()))
        report.validator_address = sender
        report.status = (ReportStatus.VALID if is_valid else ReportStatus.INVALID).ledger_label

    def _w_appeal(self, s: LedgerState, sender: str, rid: int) -> None:
        report = self._report_of(s, rid)
        _require(report.reporter == sender, "Hanya pelapor laporan ini")
        _require(rid not in s.appealed, "Banding sudah diajukan")
        _require(report.status == ReportStatus.INVALID.ledger_label, "Laporan tidak dapat dibanding")
        self._pull(s, sender, self.appeal_stake)
        s.appealed.add(rid)
        report.status = ReportStatus.APPEALED.ledger_label

    def _w_finalize_appeal(self, s: LedgerState, sender: str, rid: int, reporter_wins: bool) -> None:
        report = self._report_of(s, rid)
        inst = self._institution_of(s, report.institution_id)
        _require(inst.admin == sender, "Hanya admin dari institusi terkait")
        _require(report.status == ReportStatus.APPEALED.ledger_label, "Laporan tidak dalam status banding")

        # institution registry -> report registry
        _require(s.references[(Registry.REPORT, "institusiContract")] == self.addresses[Registry.INSTITUTION],
                 "Hanya kontrak institusi")
        # settlement caller -> reward manager
        settler = self.addresses[self.settlement_via]
        _require(s.references[(Registry.REWARD_MANAGER, "institusiContract")] == settler,
                 "Hanya Institusi Contract")

        pool = self.addresses[Registry.REWARD_MANAGER]
        recipient = report.reporter if reporter_wins else inst.treasury
        self._move(s, pool, recipient, self.appeal_stake)
        report.status = (ReportStatus.VALID if reporter_wins else ReportStatus.INVALID).ledger_label

    def _w_stake(self, s: LedgerState, sender: str, amount: int) -> None:
        _require(amount > 0, "Jumlah harus lebih dari 0")
        self._pull(s, sender, amount)
        s.stakes[sender] = s.stakes.get(sender, 0) + amount

    def _w_deposit(self, s: LedgerState, sender: str, amount: int) -> None:
        _require(amount > 0, "Jumlah harus lebih dari 0")
        self._pull(s, sender, amount)

    def _w_unstake(self, s: LedgerState, sender: str, amount: int) -> None:
        _require(amount > 0, "Jumlah harus lebih dari 0")
        _require(s.stakes.get(sender, 0) >= amount, "Stake tidak cukup")
        s.stakes[sender] -= amount
        self._move(s, self.addresses[Registry.REWARD_MANAGER], sender, amount)

    def _w_claim_reward(self, s: LedgerState, sender: str, rid: int) -> None:
        report = self._report_of(s, rid)
        _require(report.status == ReportStatus.VALID.ledger_label, "Laporan belum valid")
        verdict = s.verdicts.get(rid)
        _require(verdict is not None and verdict.validator == sender, "Bukan validator laporan ini")
        _require(rid not in s.claimed, "Reward sudah diklaim")
        _require(s.stakes.get(sender, 0) >= self.min_stake, "Stake tidak cukup")
        self._move(s, self.addresses[Registry.REWARD_MANAGER], sender, self.reward_per_report)
        s.claimed.add(rid)

    def _w_approve(self, s: LedgerState, sender: str, spender: str, amount: int) -> None:
        s.allowances[(sender, _addr(spender))] = amount

    def _w_transfer(self, s: LedgerState, sender: str, to: str, amount: int) -> None:
        _require(_addr(to) != ZERO_ADDRESS, "ERC20: transfer to the zero address")
        self._move(s, sender, _addr(to), amount)
