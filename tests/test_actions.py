"""Tests for the action catalogue: amounts, parameter coercion and call building."""

import pytest

from reportchain import contracts
from reportchain.actions import (
    ACTION_SPECS,
    Action,
    Complexity,
    build_request,
    format_amount,
    parse_amount,
    validate_params,
)
from reportchain.errors import PreconditionError
from reportchain.ledger import Registry

REPORTER = "0x" + "c3" * 20


class TestAmounts:
    @pytest.mark.parametrize("value,expected", [
        ("1", 10 ** 18),
        ("12.5", 12_500_000_000_000_000_000),
        ("0.000000000000000001", 1),
        (42, 42),
    ])
    def test_parse(self, value, expected):
        assert parse_amount(value) == expected

    @pytest.mark.parametrize("value", ["abc", "-1", "0.0000000000000000001", True])
    def test_rejected(self, value):
        with pytest.raises(ValueError):
            parse_amount(value)

    def test_decimals(self):
        assert parse_amount("1.5", decimals=2) == 150

    def test_format(self):
        assert format_amount(12_500_000_000_000_000_000) == "12.5"
        assert format_amount(10 * 10 ** 18) == "10"
        assert format_amount(0) == "0"


class TestParams:
    def test_string_coercion(self):
        params = validate_params(Action.FINALIZE_APPEAL, {"report_id": "4", "reporter_wins": "yes"})
        assert params == {"report_id": 4, "reporter_wins": True}

    def test_default_applied(self):
        params = validate_params(Action.VALIDATE_REPORT, {"report_id": 3, "is_valid": False})
        assert params["description"] == ""

    def test_address_lowered(self):
        params = validate_params(Action.TRANSFER, {"to": REPORTER.upper().replace("0X", "0x"), "amount": "2"})
        assert params == {"to": REPORTER, "amount": 2 * 10 ** 18}

    @pytest.mark.parametrize("action,params,code", [
        (Action.APPEAL, {}, "MISSING_PARAM"),
        (Action.APPEAL, {"report_id": 0}, "INVALID_PARAM"),
        (Action.APPEAL, {"report_id": True}, "INVALID_PARAM"),
        (Action.APPEAL, {"report_id": 1, "reason": "x"}, "INVALID_PARAM"),
        (Action.TRANSFER, {"to": "0x1234", "amount": "1"}, "INVALID_PARAM"),
        (Action.FINALIZE_APPEAL, {"report_id": 1, "reporter_wins": "maybe"}, "INVALID_PARAM"),
    ])
    def test_invalid(self, action, params, code):
        with pytest.raises(PreconditionError) as exc:
            validate_params(action, params)
        assert exc.value.code == code
        assert exc.value.action == action.value


class TestCatalogue:
    def test_every_action_described(self):
        assert set(ACTION_SPECS) == set(Action)

    def test_parse(self):
        assert Action.parse("Finalize-Appeal") is Action.FINALIZE_APPEAL
        with pytest.raises(PreconditionError) as exc:
            Action.parse("withdraw")
        assert exc.value.code == "UNKNOWN_ACTION"

    def test_appeal_is_complex_and_risky(self):
        spec = ACTION_SPECS[Action.APPEAL]
        assert spec.complexity is Complexity.COMPLEX
        assert spec.risky

    def test_build_request(self):
        params = validate_params(Action.FINALIZE_APPEAL, {"report_id": 4, "reporter_wins": False})
        request = build_request(Action.FINALIZE_APPEAL, params, REPORTER)
        assert request.registry is Registry.INSTITUTION
        assert request.function == "adminFinalisasiBanding"
        assert request.args == (4, False)
        assert request.sender == REPORTER

    def test_registry_changes(self):
        changing = {a for a, s in ACTION_SPECS.items() if s.registry_change}
        assert changing == {
            Action.REGISTER_INSTITUTION,
            Action.REGISTER_VALIDATOR,
            Action.REGISTER_REPORTER,
            Action.REMOVE_VALIDATOR,
            Action.RESIGN_FROM_INSTITUTION,
        }

    def test_call_paths_name_known_references(self):
        known = {(holder, getter) for holder, getter, _ in contracts.REFERENCES}
        for spec in ACTION_SPECS.values():
            assert set(spec.references) <= known, spec.action
        assert ACTION_SPECS[Action.TRANSFER].references == ()
        assert (Registry.REWARD_MANAGER, "institusiContract") in ACTION_SPECS[Action.FINALIZE_APPEAL].references

    def test_entry_points_are_mutating(self):
        for spec in ACTION_SPECS.values():
            assert contracts.lookup(spec.registry, spec.function).mutating, spec.action
