"""
Tests for contract call orchestration.

Covers cost planning, submission, classification of rejections and
receipt waiting against the in-memory ledger.
"""

import asyncio
from decimal import Decimal

import pytest

from reportchain.actions import Action
from reportchain.errors import (
    AuthorizationRejected,
    CrossRegistryMisconfiguration,
    ErrorKind,
    InsufficientFunds,
    NetworkError,
    PreconditionError,
    PreconditionViolatedOnChain,
    UnknownFailure,
    UnreadableState,
)
from reportchain.ledger import UNDECODABLE, LedgerCallError, ReceiptStatus, Registry
from reportchain.lifecycle import ReportStatus
from reportchain.memory import UNIT
from reportchain.orchestrator import CostSource, TransactionStatus, plan_cost
from reportchain.roles import Role


# =============================================================================
# COST PLANNING
# =============================================================================

class TestCostPlanning:
    """Estimate plus margin, or the complexity fallback."""

    def test_plan_cost_rounds_up(self):
        assert plan_cost(45_000, Decimal("0.20")) == 54_000
        assert plan_cost(45_001, Decimal("0.20")) == 54_002

    def test_estimated_ceiling(self, world):
        world.report(ReportStatus.INVALID, verdict=False, report_id=7)
        client = world.client(world.REPORTER)

        handle = asyncio.run(client.execute("appeal", {"report_id": 7}))
        assert handle.cost_source is CostSource.ESTIMATE
        assert handle.cost.estimate == 45_000
        assert handle.cost_ceiling == 54_000
        assert world.ledger.submitted[0][1] == 54_000

    def test_fallback_when_estimation_fails(self, world):
        world.ledger.fail_estimates = True
        report_id = world.report(ReportStatus.PENDING, assigned_validator=world.VALIDATOR)
        client = world.client(world.VALIDATOR)

        handle = asyncio.run(client.execute("validate_report", {"report_id": report_id, "is_valid": True}))
        assert handle.cost_source is CostSource.FALLBACK
        assert handle.cost_ceiling == 300_000
        assert "cannot estimate gas" in handle.cost.estimate_error
        assert world.ledger.status_of(report_id) is ReportStatus.VALID

    def test_fallback_by_complexity(self, world):
        world.ledger.fail_estimates = True
        client = world.client(world.REPORTER)

        handle = asyncio.run(client.execute("approve", {"spender": world.OUTSIDER, "amount": "1"}))
        assert handle.cost_ceiling == 100_000

        world.report(ReportStatus.INVALID, verdict=False, report_id=3)
        handle = asyncio.run(client.execute("appeal", {"report_id": 3}))
        assert handle.cost_ceiling == 800_000


# =============================================================================
# EXECUTE
# =============================================================================

class TestExecute:
    """Submission and classification."""

    def test_returns_pending_handle(self, world):
        world.report(ReportStatus.INVALID, verdict=False, report_id=7)
        client = world.client(world.REPORTER)

        handle = asyncio.run(client.execute("appeal", {"report_id": 7}))
        assert handle.status is TransactionStatus.PENDING
        assert handle.action is Action.APPEAL
        assert handle.request.registry is Registry.REPORT
        assert handle.request.function == "ajukanBanding"
        assert handle.correlation_id
        assert handle.preflight is not None and handle.preflight.ok

    def test_appeal_pulls_stake(self, world):
        world.report(ReportStatus.INVALID, verdict=False, report_id=7)
        client = world.client(world.REPORTER)

        asyncio.run(client.execute("appeal", {"report_id": 7}))
        assert world.ledger.balance_of(world.REPORTER) == 90 * UNIT
        assert world.ledger.balance_of(world.pool) == 1010 * UNIT

    def test_unknown_action(self, world):
        client = world.client(world.REPORTER)
        with pytest.raises(PreconditionError) as exc:
            asyncio.run(client.execute("withdraw_everything", {}))
        assert exc.value.code == "UNKNOWN_ACTION"

    def test_missing_parameter(self, world):
        client = world.client(world.REPORTER)
        with pytest.raises(PreconditionError) as exc:
            asyncio.run(client.execute("appeal", {}))
        assert exc.value.code == "MISSING_PARAM"
        assert world.ledger.submitted == []

    def test_invalid_amount(self, world):
        client = world.client(world.REPORTER)
        with pytest.raises(PreconditionError) as exc:
            asyncio.run(client.execute("stake", {"amount": "1.5x"}))
        assert exc.value.code == "INVALID_PARAM"

    def test_unauthorized_registration(self, world):
        client = world.client(world.OUTSIDER)

        with pytest.raises(AuthorizationRejected) as exc:
            asyncio.run(client.execute("register_validator", {
                "institution_id": world.institution_id, "address": world.OUTSIDER,
            }))
        assert exc.value.reason == "Hanya admin dari institusi terkait"
        assert exc.value.registry == "institusi"
        assert exc.value.diagnosis is not None
        assert exc.value.diagnosis.classification is ErrorKind.AUTHORIZATION_REJECTED

    def test_missing_allowance(self, world):
        world.report(ReportStatus.INVALID, verdict=False, report_id=7)
        world.ledger.set_allowance(world.REPORTER, world.pool, 0)
        client = world.client(world.REPORTER)

        with pytest.raises(InsufficientFunds) as exc:
            asyncio.run(client.execute("appeal", {"report_id": 7}))
        assert "insufficient allowance" in exc.value.reason
        assert world.ledger.status_of(7) is ReportStatus.INVALID

    def test_preflight_does_not_block(self, world):
        world.report(ReportStatus.INVALID, verdict=False, report_id=7)
        world.ledger.set_allowance(world.REPORTER, world.pool, 0)
        world.ledger.revert_on_submit = False
        client = world.client(world.REPORTER)

        handle = asyncio.run(client.execute("appeal", {"report_id": 7}))
        assert handle.preflight is not None
        assert handle.preflight.classification is ErrorKind.INSUFFICIENT_FUNDS
        assert len(world.ledger.submitted) == 1

    def test_on_chain_precondition(self, world):
        client = world.client(world.ADMIN)

        with pytest.raises(PreconditionViolatedOnChain) as exc:
            asyncio.run(client.execute("register_validator", {
                "institution_id": world.institution_id, "address": world.VALIDATOR,
            }))
        assert exc.value.reason == "Validator sudah terdaftar"

    def test_claim_without_stake(self, world):
        report_id = world.report(ReportStatus.VALID, verdict=True)
        client = world.client(world.VALIDATOR)

        with pytest.raises(InsufficientFunds) as exc:
            asyncio.run(client.execute("claim_reward", {"report_id": report_id}))
        assert exc.value.reason == "Stake tidak cukup"
        assert exc.value.diagnosis.check("funds").failed

    def test_network_failure(self, world):
        world.report(ReportStatus.INVALID, verdict=False, report_id=7)
        client = world.client(world.REPORTER)
        world.ledger.go_offline()

        with pytest.raises(NetworkError):
            asyncio.run(client.execute("appeal", {"report_id": 7}))
        assert world.ledger.submitted == []

    def test_second_appeal(self, world):
        world.report(ReportStatus.INVALID, verdict=False, report_id=7)
        client = world.client(world.REPORTER)
        asyncio.run(client.execute("appeal", {"report_id": 7}))

        with pytest.raises(PreconditionError) as exc:
            asyncio.run(client.execute("appeal", {"report_id": 7}))
        assert exc.value.code == "ALREADY_APPEALED"
        assert len(world.ledger.submitted) == 1

    def test_unreadable_institution(self, world):
        world.ledger.break_read(Registry.INSTITUTION, "getInstitusiData", (world.institution_id,))
        client = world.client(world.REPORTER)

        with pytest.raises(UnreadableState):
            asyncio.run(client.execute("create_report", {
                "institution_id": world.institution_id, "title": "Limbah", "description": "Sungai tercemar",
            }))
        assert world.ledger.submitted == []

    def test_unreadable_appeal_flag(self, world):
        world.report(ReportStatus.INVALID, verdict=False, report_id=7)
        world.ledger.corrupt(Registry.REPORT, "isBanding", (7,), 0, UNDECODABLE)
        client = world.client(world.REPORTER)

        with pytest.raises(UnreadableState) as exc:
            asyncio.run(client.execute("appeal", {"report_id": 7}))
        assert exc.value.report_id == 7
        assert world.ledger.submitted == []

    def test_rejected_context_read(self, world, monkeypatch):
        world.report(ReportStatus.INVALID, verdict=False, report_id=7)
        call = world.ledger.call

        async def rejecting(registry, function, args=(), sender=None):
            if function == "isBanding":
                raise LedgerCallError("execution reverted", registry, function)
            return await call(registry, function, args, sender)

        monkeypatch.setattr(world.ledger, "call", rejecting)
        client = world.client(world.REPORTER)

        with pytest.raises(UnknownFailure) as exc:
            asyncio.run(client.execute("appeal", {"report_id": 7}))
        assert exc.value.reason == "execution reverted"
        assert exc.value.registry == "user"
        assert world.ledger.submitted == []


class TestCrossRegistry:
    """Settlement rejected by a registry that refuses the caller."""

    def test_mismatched_reference(self, world):
        world.report(ReportStatus.APPEALED, verdict=False, report_id=4)
        world.ledger.set_reference(Registry.REWARD_MANAGER, "institusiContract", world.OUTSIDER)
        client = world.client(world.ADMIN)

        with pytest.raises(CrossRegistryMisconfiguration) as exc:
            asyncio.run(client.execute("finalize_appeal", {"report_id": 4, "reporter_wins": True}))
        assert exc.value.registry_pair == ("institusi", "rewardManager")
        assert exc.value.registry == "rewardManager"
        assert exc.value.reason == "Hanya Institusi Contract"
        assert exc.value.diagnosis.check("cross_registry").failed
        assert world.ledger.status_of(4) is ReportStatus.APPEALED

    def test_settlement_routed_through_report_registry(self, make_world):
        world = make_world(settlement_via=Registry.REPORT)
        world.report(ReportStatus.APPEALED, verdict=False, report_id=4)
        client = world.client(world.ADMIN)

        with pytest.raises(CrossRegistryMisconfiguration) as exc:
            asyncio.run(client.execute("finalize_appeal", {"report_id": 4, "reporter_wins": False}))
        assert exc.value.reason == "Hanya Institusi Contract"
        assert "[user -> rewardManager]" in str(exc.value)
        assert exc.value.to_dict()["registry_pair"] == ["user", "rewardManager"]


class TestRegistryChange:
    """Registrations notify listeners."""

    def test_listener_called(self, world):
        client = world.client(world.ADMIN)
        seen = []
        client.orchestrator.on_registry_change(lambda action, values: seen.append((action, values)))

        asyncio.run(client.execute("register_reporter", {
            "institution_id": world.institution_id, "address": world.OUTSIDER,
        }))
        assert seen == [(Action.REGISTER_REPORTER, {
            "institution_id": world.institution_id, "address": world.OUTSIDER,
        })]

    def test_listener_not_called_for_other_actions(self, world):
        client = world.client(world.REPORTER)
        seen = []
        client.orchestrator.on_registry_change(lambda action, values: seen.append(action))

        asyncio.run(client.execute("approve", {"spender": world.pool, "amount": 5}))
        assert seen == []


class TestMembershipAndPool:
    """Removals, resignations and reward pool deposits."""

    def test_deposit_reward_pool(self, world):
        client = world.client(world.REPORTER)

        asyncio.run(client.execute("deposit_reward_pool", {"amount": "5"}))
        assert world.ledger.balance_of(world.pool) == 1005 * UNIT
        assert world.ledger.balance_of(world.REPORTER) == 95 * UNIT

    def test_remove_validator(self, world):
        client = world.client(world.ADMIN)
        assert asyncio.run(client.resolve_role(world.VALIDATOR)) is Role.VALIDATOR

        asyncio.run(client.execute("remove_validator", {
            "institution_id": world.institution_id, "address": world.VALIDATOR,
        }))
        assert client.roles.cached_role(world.VALIDATOR) is None
        assert asyncio.run(client.resolve_role(world.VALIDATOR)) is Role.REPORTER

    def test_remove_unregistered_validator(self, world):
        client = world.client(world.ADMIN)

        with pytest.raises(PreconditionViolatedOnChain) as exc:
            asyncio.run(client.execute("remove_validator", {
                "institution_id": world.institution_id, "address": world.OUTSIDER,
            }))
        assert exc.value.reason == "Validator tidak terdaftar"

    def test_resign(self, world):
        client = world.client(world.VALIDATOR)
        asyncio.run(client.resolve_role(world.VALIDATOR))

        asyncio.run(client.execute("resign_from_institution", {"institution_id": world.institution_id}))
        assert client.roles.cached_role(world.VALIDATOR) is None
        assert asyncio.run(client.resolve_role(world.VALIDATOR)) is Role.REPORTER

    def test_resign_without_membership(self, world):
        client = world.client(world.REPORTER)

        with pytest.raises(AuthorizationRejected) as exc:
            asyncio.run(client.execute("resign_from_institution", {"institution_id": world.institution_id}))
        assert exc.value.reason == "Bukan validator institusi ini"
        assert exc.value.registry == "validator"


# =============================================================================
# RECEIPTS
# =============================================================================

class TestWait:
    """Receipt polling."""

    def test_confirmed(self, world):
        world.report(ReportStatus.INVALID, verdict=False, report_id=7)
        client = world.client(world.REPORTER)

        async def run():
            handle = await client.execute("appeal", {"report_id": 7})
            receipt = await handle.wait(timeout=1, poll_interval=0)
            return handle, receipt

        handle, receipt = asyncio.run(run())
        assert receipt.status is ReceiptStatus.SUCCESS
        assert handle.status is TransactionStatus.CONFIRMED
        assert handle.to_dict()["receipt"]["tx_hash"] == handle.tx_hash

    def test_confirmed_after_polls(self, make_world):
        world = make_world(confirm_after_polls=2)
        world.report(ReportStatus.INVALID, verdict=False, report_id=7)
        client = world.client(world.REPORTER)

        async def run():
            handle = await client.execute("appeal", {"report_id": 7})
            return await handle.wait(timeout=5, poll_interval=0)

        assert asyncio.run(run()).succeeded

    def test_timeout(self, make_world):
        world = make_world(confirm_after_polls=10_000)
        world.report(ReportStatus.INVALID, verdict=False, report_id=7)
        client = world.client(world.REPORTER)

        async def run():
            handle = await client.execute("appeal", {"report_id": 7})
            try:
                await handle.wait(timeout=0.05, poll_interval=0.01)
            finally:
                assert handle.status is TransactionStatus.FAILED

        with pytest.raises(NetworkError) as exc:
            asyncio.run(run())
        assert "no receipt" in exc.value.reason

    def test_revert_is_classified(self, make_world):
        world = make_world(settlement_via=Registry.REPORT, revert_on_submit=False)
        world.report(ReportStatus.APPEALED, verdict=False, report_id=4)
        client = world.client(world.ADMIN)

        async def run():
            handle = await client.execute("finalize_appeal", {"report_id": 4, "reporter_wins": True})
            await handle.wait(timeout=1, poll_interval=0)

        with pytest.raises(CrossRegistryMisconfiguration) as exc:
            asyncio.run(run())
        assert exc.value.tx_hash is not None
        assert exc.value.registry_pair == ("user", "rewardManager")
        assert world.ledger.status_of(4) is ReportStatus.APPEALED
