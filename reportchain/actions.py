"""
Action catalogue.

Every action a client can execute: the registry entry point it maps to, its
parameter shape, its complexity class (which picks the fallback cost
ceiling), whether it is a lifecycle transition and whether it is risky
enough to warrant an advisory pre-flight diagnosis.

Also builds the live LifecycleContext for lifecycle actions. Reads go to the
ledger every time; nothing here consults a cache.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, localcontext
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from reportchain.errors import PreconditionError, UnreadableState
from reportchain.ledger import CallRequest, LedgerDecodeError, Registry
from reportchain.lifecycle import LifecycleAction, LifecycleContext
from reportchain.registry import RegistryReader
from reportchain.sanitizer import is_address


class Complexity(Enum):
    SIMPLE = "simple"
    STANDARD = "standard"
    COMPLEX = "complex"


class Action(Enum):
    CREATE_REPORT = "create_report"
    VALIDATE_REPORT = "validate_report"
    APPEAL = "appeal"
    FINALIZE_APPEAL = "finalize_appeal"
    STAKE = "stake"
    UNSTAKE = "unstake"
    TRANSFER = "transfer"
    APPROVE = "approve"
    CLAIM_REWARD = "claim_reward"
    REGISTER_INSTITUTION = "register_institution"
    REGISTER_VALIDATOR = "register_validator"
    REGISTER_REPORTER = "register_reporter"
    REMOVE_VALIDATOR = "remove_validator"
    RESIGN_FROM_INSTITUTION = "resign_from_institution"
    DEPOSIT_REWARD_POOL = "deposit_reward_pool"

    @classmethod
    def parse(cls, value: Any) -> "Action":
        if isinstance(value, Action):
            return value
        try:
            return cls(str(value).strip().lower().replace("-", "_"))
        except ValueError:
            raise PreconditionError("UNKNOWN_ACTION", f"unknown action {value!r}") from None


@dataclass(frozen=True)
class ParamSpec:
    name: str
    kind: str  # id | bool | text | address | amount
    required: bool = True
    default: Any = None


@dataclass(frozen=True)
class ActionSpec:
    action: Action
    registry: Registry
    function: str
    complexity: Complexity
    params: Tuple[ParamSpec, ...]
    lifecycle: Optional[LifecycleAction] = None
    risky: bool = False
    registry_change: bool = False
    # (holder, getter) cross-references the call path relies on
    references: Tuple[Tuple[Registry, str], ...] = ()


_REPORT_ID = ParamSpec("report_id", "id")
_INSTITUTION_ID = ParamSpec("institution_id", "id")
_AMOUNT = ParamSpec("amount", "amount")

_I, _R, _M = Registry.INSTITUTION, Registry.REPORT, Registry.REWARD_MANAGER

ACTION_SPECS: Dict[Action, ActionSpec] = {s.action: s for s in (
    ActionSpec(Action.CREATE_REPORT, Registry.REPORT, "buatLaporan", Complexity.STANDARD,
               (_INSTITUTION_ID, ParamSpec("title", "text"), ParamSpec("description", "text")),
               lifecycle=LifecycleAction.CREATE_REPORT,
               references=((_R, "institusiContract"), (_I, "userContract"))),
    ActionSpec(Action.VALIDATE_REPORT, Registry.VALIDATOR, "validasiLaporan", Complexity.STANDARD,
               (_REPORT_ID, ParamSpec("is_valid", "bool"), ParamSpec("description", "text", False, "")),
               lifecycle=LifecycleAction.VALIDATE,
               references=((_I, "validatorContract"), (_I, "userContract"))),
    ActionSpec(Action.APPEAL, Registry.REPORT, "ajukanBanding", Complexity.COMPLEX,
               (_REPORT_ID,), lifecycle=LifecycleAction.APPEAL, risky=True,
               references=((_R, "rewardManager"), (_M, "userContract"))),
    ActionSpec(Action.FINALIZE_APPEAL, Registry.INSTITUTION, "adminFinalisasiBanding", Complexity.COMPLEX,
               (_REPORT_ID, ParamSpec("reporter_wins", "bool")),
               lifecycle=LifecycleAction.FINALIZE_APPEAL, risky=True,
               references=((_I, "userContract"), (_I, "rewardManager"), (_R, "institusiContract"),
                           (_R, "rewardManager"), (_M, "institusiContract"), (_M, "userContract"))),
    ActionSpec(Action.STAKE, Registry.REWARD_MANAGER, "stake", Complexity.SIMPLE, (_AMOUNT,)),
    ActionSpec(Action.UNSTAKE, Registry.REWARD_MANAGER, "unstake", Complexity.SIMPLE, (_AMOUNT,)),
    ActionSpec(Action.TRANSFER, Registry.TOKEN, "transfer", Complexity.SIMPLE,
               (ParamSpec("to", "address"), _AMOUNT)),
    ActionSpec(Action.APPROVE, Registry.TOKEN, "approve", Complexity.SIMPLE,
               (ParamSpec("spender", "address"), _AMOUNT)),
    ActionSpec(Action.CLAIM_REWARD, Registry.REWARD_MANAGER, "claimReward", Complexity.STANDARD,
               (_REPORT_ID,), risky=True,
               references=((_M, "userContract"), (_M, "institusiContract"))),
    ActionSpec(Action.REGISTER_INSTITUTION, Registry.INSTITUTION, "daftarInstitusi", Complexity.STANDARD,
               (ParamSpec("name", "text"), ParamSpec("treasury", "address")), registry_change=True),
    ActionSpec(Action.REGISTER_VALIDATOR, Registry.INSTITUTION, "tambahValidator", Complexity.SIMPLE,
               (_INSTITUTION_ID, ParamSpec("address", "address")), registry_change=True),
    ActionSpec(Action.REGISTER_REPORTER, Registry.INSTITUTION, "tambahPelapor", Complexity.SIMPLE,
               (_INSTITUTION_ID, ParamSpec("address", "address")), registry_change=True),
    ActionSpec(Action.REMOVE_VALIDATOR, Registry.INSTITUTION, "removeValidator", Complexity.SIMPLE,
               (_INSTITUTION_ID, ParamSpec("address", "address")), registry_change=True),
    ActionSpec(Action.RESIGN_FROM_INSTITUTION, Registry.VALIDATOR, "resignFromInstitusi", Complexity.SIMPLE,
               (_INSTITUTION_ID,), registry_change=True, references=((_I, "validatorContract"),)),
    ActionSpec(Action.DEPOSIT_REWARD_POOL, Registry.REWARD_MANAGER, "depositRTK", Complexity.SIMPLE, (_AMOUNT,)),
)}


# =============================================================================
# AMOUNTS
# =============================================================================

def parse_amount(value: Any, decimals: int = 18) -> int:
    """
    Base-unit integer for an amount.

    ints are taken as base units; strings and Decimals are display units
    ("12.5" with 18 decimals is 12500000000000000000).
    """
    if isinstance(value, bool):
        raise ValueError("amount must be a number")
    if isinstance(value, int):
        base = value
    else:
        try:
            display = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"not an amount: {value!r}") from None
        with localcontext() as ctx:
            ctx.prec = 100
            scaled = display.scaleb(decimals)
        if not scaled.is_finite() or scaled != scaled.to_integral_value():
            raise ValueError(f"{value} has more than {decimals} decimals")
        base = int(scaled)
    if base < 0:
        raise ValueError("amount must not be negative")
    return base


def format_amount(value: int, decimals: int = 18) -> str:
    """Display string for a base-unit amount, trailing zeros dropped."""
    with localcontext() as ctx:
        ctx.prec = 100
        display = Decimal(value).scaleb(-decimals).normalize()
    return format(display, "f")


# =============================================================================
# PARAMETERS
# =============================================================================

_TRUE = {"true", "yes", "1", "y"}
_FALSE = {"false", "no", "0", "n"}


def _coerce(spec: ParamSpec, value: Any, decimals: int) -> Any:
    if spec.kind == "id":
        if isinstance(value, str) and value.strip().isdigit():
            value = int(value.strip())
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValueError("must be a positive integer")
        return value
    if spec.kind == "bool":
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ValueError("must be true or false")
    if spec.kind == "address":
        if not is_address(value):
            raise ValueError("must be a 0x-prefixed 20-byte hex address")
        return value.lower()
    if spec.kind == "amount":
        return parse_amount(value, decimals)
    if not isinstance(value, str):
        raise ValueError("must be text")
    return value


def validate_params(action: Action, params: Mapping[str, Any], decimals: int = 18) -> Dict[str, Any]:
    """Shape-check and coerce parameters; raises PreconditionError."""
    spec = ACTION_SPECS[action]
    known = {p.name for p in spec.params}
    unexpected = sorted(set(params) - known)
    if unexpected:
        raise PreconditionError("INVALID_PARAM", f"unexpected parameter(s): {', '.join(unexpected)}",
                                action=action.value)

    out: Dict[str, Any] = {}
    for p in spec.params:
        if p.name not in params or params[p.name] is None:
            if p.required:
                raise PreconditionError("MISSING_PARAM", f"parameter '{p.name}' is required",
                                        action=action.value)
            out[p.name] = p.default
            continue
        try:
            out[p.name] = _coerce(p, params[p.name], decimals)
        except ValueError as e:
            raise PreconditionError("INVALID_PARAM", f"{p.name} {e}", action=action.value,
                                    details={"param": p.name}) from None
    return out


def build_request(action: Action, params: Mapping[str, Any], sender: Optional[str]) -> CallRequest:
    """Entry point call for validated parameters, in declaration order."""
    spec = ACTION_SPECS[action]
    args = tuple(params[p.name] for p in spec.params)
    return CallRequest(spec.registry, spec.function, args, sender)


# =============================================================================
# LIVE CONTEXT
# =============================================================================

async def load_context(
    reader: RegistryReader,
    action: LifecycleAction,
    params: Mapping[str, Any],
    caller: str,
) -> LifecycleContext:
    """Fresh LifecycleContext for one lifecycle action."""
    ctx = LifecycleContext(caller=caller.lower())

    if action is LifecycleAction.CREATE_REPORT:
        institution_id = params["institution_id"]
        try:
            institution = await reader.institution(institution_id)
        except LedgerDecodeError:
            raise UnreadableState(f"institution {institution_id}") from None
        ctx.institution_exists = institution.exists
        if institution.exists:
            ctx.caller_is_reporter = await reader.is_reporter(institution_id, caller)
        return ctx

    report_id = params["report_id"]
    try:
        report = await reader.report(report_id)
    except LedgerDecodeError:
        raise UnreadableState("report", report_id) from None

    ctx.report_exists = report.exists
    if not report.exists:
        return ctx
    ctx.status = report.status
    ctx.reporter = report.reporter if isinstance(report.reporter, str) else None
    ctx.assigned_validator = report.assigned_validator if isinstance(report.assigned_validator, str) else None
    institution_id = report.institution_id if isinstance(report.institution_id, int) else None

    try:
        await _load_action_fields(reader, action, ctx, report_id, institution_id, caller)
    except LedgerDecodeError as e:
        raise UnreadableState(e.function or "ledger field", report_id) from None
    ctx.extra["institution_id"] = institution_id
    return ctx


async def _load_action_fields(
    reader: RegistryReader,
    action: LifecycleAction,
    ctx: LifecycleContext,
    report_id: int,
    institution_id: Optional[int],
    caller: str,
) -> None:
    if action is LifecycleAction.VALIDATE:
        if institution_id is not None:
            ctx.caller_is_validator = await reader.is_validator(institution_id, caller)
    elif action is LifecycleAction.APPEAL:
        ctx.already_appealed, ctx.required_stake, ctx.caller_balance = await asyncio.gather(
            reader.is_appealed(report_id),
            reader.appeal_stake(),
            reader.token_balance(caller),
        )
    elif action is LifecycleAction.FINALIZE_APPEAL:
        if institution_id is not None:
            institution = await reader.institution(institution_id)
            ctx.institution_exists = institution.exists
            ctx.institution_admin = institution.admin if isinstance(institution.admin, str) else None
