"""
Tests for validation reconciliation.

Status is authoritative for the verdict boolean; the verdict record supplies
validator, description and timestamp when they survive sanitization.
"""

import asyncio

import pytest

from reportchain.errors import NetworkError, PreconditionError, UnreadableState
from reportchain.ledger import UNDECODABLE, Registry
from reportchain.lifecycle import ReportStatus
from reportchain.reconciler import Provenance, ValidationReconciler
from reportchain.registry import RegistryReader
from reportchain.sanitizer import UNAVAILABLE


OFFSET_AS_ADDRESS = "0x" + "0" * 38 + "60"


class TestClean:
    """Records that decode cleanly."""

    def test_invalid_report(self, world):
        report_id = world.report(ReportStatus.INVALID, verdict=False)
        client = world.client(world.REPORTER)

        result = asyncio.run(client.get_reconciled_verdict(report_id))
        assert result.provenance is Provenance.CLEAN
        assert result.is_clean
        assert result.status is ReportStatus.INVALID
        assert result.verdict.validator == world.VALIDATOR
        assert result.verdict.is_valid is False
        assert result.verdict.description == "Hasil pemeriksaan lapangan"
        assert result.issues == []

    def test_appealed_report_reads_as_invalid(self, world):
        report_id = world.report(ReportStatus.APPEALED, verdict=False)
        client = world.client(world.REPORTER)

        result = asyncio.run(client.get_reconciled_verdict(report_id))
        assert result.is_clean
        assert result.verdict.is_valid is False

    def test_pending_report_has_no_verdict(self, world):
        report_id = world.report(ReportStatus.PENDING)
        client = world.client(world.REPORTER)

        result = asyncio.run(client.get_reconciled_verdict(report_id))
        assert result.absent
        assert result.verdict is None
        assert result.provenance is Provenance.CLEAN
        assert result.to_dict()["verdict"] is None

    def test_validated_through_client(self, world):
        report_id = world.report(ReportStatus.PENDING, assigned_validator=world.VALIDATOR)
        validator = world.client(world.VALIDATOR)
        asyncio.run(validator.execute("validate_report", {
            "report_id": report_id, "is_valid": True, "description": "Terbukti",
        }))

        result = asyncio.run(validator.get_reconciled_verdict(report_id))
        assert result.is_clean
        assert result.verdict.is_valid is True
        assert result.verdict.description == "Terbukti"


class TestReconstructed:
    """Records with individual bad fields."""

    def test_offset_decoded_as_address(self, world):
        report_id = world.report(ReportStatus.INVALID, verdict=False)
        world.ledger.corrupt(Registry.VALIDATOR, "hasilValidasi", (report_id,), 0, OFFSET_AS_ADDRESS)
        client = world.client(world.REPORTER)

        result = asyncio.run(client.get_reconciled_verdict(report_id))
        assert result.provenance is Provenance.RECONSTRUCTED
        assert result.verdict.validator == UNAVAILABLE
        assert result.verdict.is_valid is False
        assert result.verdict.description == "Hasil pemeriksaan lapangan"
        assert any(issue.startswith("validator:") for issue in result.issues)

    def test_raw_hex_description(self, world):
        report_id = world.report(ReportStatus.VALID, verdict=True)
        world.ledger.corrupt(Registry.VALIDATOR, "hasilValidasi", (report_id,), 2,
                             "0x000000000000000000000000000000000000000000000020")
        client = world.client(world.REPORTER)

        result = asyncio.run(client.get_reconciled_verdict(report_id))
        assert result.provenance is Provenance.RECONSTRUCTED
        assert result.verdict.description == UNAVAILABLE
        assert result.verdict.validator == world.VALIDATOR

    def test_status_overrides_record(self, world):
        report_id = world.report(ReportStatus.VALID, verdict=False)
        client = world.client(world.REPORTER)

        result = asyncio.run(client.get_reconciled_verdict(report_id))
        assert result.provenance is Provenance.RECONSTRUCTED
        assert result.verdict.is_valid is True
        assert any("overrides" in issue for issue in result.issues)

    def test_undecodable_flag_takes_status(self, world):
        report_id = world.report(ReportStatus.INVALID, verdict=False)
        world.ledger.corrupt(Registry.VALIDATOR, "hasilValidasi", (report_id,), 1, 7)
        client = world.client(world.REPORTER)

        result = asyncio.run(client.get_reconciled_verdict(report_id))
        assert result.provenance is Provenance.RECONSTRUCTED
        assert result.verdict.is_valid is False

    def test_no_raw_values_leak(self, world):
        report_id = world.report(ReportStatus.INVALID, verdict=False)
        world.ledger.corrupt(Registry.VALIDATOR, "hasilValidasi", (report_id,), 0, OFFSET_AS_ADDRESS)
        world.ledger.corrupt(Registry.VALIDATOR, "hasilValidasi", (report_id,), 2, "deadbeef" * 6)
        client = world.client(world.REPORTER)

        out = asyncio.run(client.get_reconciled_verdict(report_id)).to_dict()
        assert OFFSET_AS_ADDRESS not in str(out["verdict"])
        assert "deadbeef" not in str(out["verdict"])


class TestFallback:
    """Unreadable records are synthesized from status."""

    def test_undecodable_record(self, world):
        report_id = world.report(ReportStatus.INVALID, verdict=False)
        world.ledger.break_read(Registry.VALIDATOR, "hasilValidasi", (report_id,))
        client = world.client(world.REPORTER)

        result = asyncio.run(client.get_reconciled_verdict(report_id))
        assert result.provenance is Provenance.FALLBACK
        assert result.verdict.validator == UNAVAILABLE
        assert result.verdict.description == UNAVAILABLE
        assert result.verdict.is_valid is False
        assert result.verdict.timestamp is None

    def test_every_field_rejected(self, world):
        report_id = world.report(ReportStatus.VALID, verdict=True)
        key = (report_id,)
        world.ledger.corrupt(Registry.VALIDATOR, "hasilValidasi", key, 0, OFFSET_AS_ADDRESS)
        world.ledger.corrupt(Registry.VALIDATOR, "hasilValidasi", key, 1, 2)
        world.ledger.corrupt(Registry.VALIDATOR, "hasilValidasi", key, 2, "data rusak")
        world.ledger.corrupt(Registry.VALIDATOR, "hasilValidasi", key, 3, 0)
        client = world.client(world.REPORTER)

        result = asyncio.run(client.get_reconciled_verdict(report_id))
        assert result.provenance is Provenance.FALLBACK
        assert result.verdict.is_valid is True


class TestFailures:
    """Errors that cannot be reconciled."""

    def test_missing_report(self, world):
        client = world.client(world.REPORTER)
        with pytest.raises(PreconditionError) as exc:
            asyncio.run(client.get_reconciled_verdict(404))
        assert exc.value.code == "REPORT_NOT_FOUND"

    def test_unreadable_status(self, world):
        report_id = world.report(ReportStatus.INVALID, verdict=False)
        world.ledger.corrupt(Registry.REPORT, "laporan", (report_id,), 5, "Dibatalkan")
        client = world.client(world.REPORTER)

        with pytest.raises(UnreadableState):
            asyncio.run(client.get_reconciled_verdict(report_id))

    def test_undecodable_report(self, world):
        report_id = world.report(ReportStatus.INVALID, verdict=False)
        world.ledger.break_read(Registry.REPORT, "laporan", (report_id,))

        reconciler = ValidationReconciler(RegistryReader(world.ledger))
        with pytest.raises(UnreadableState):
            asyncio.run(reconciler.get_reconciled_verdict(report_id))

    def test_undecodable_validation_flag(self, world):
        report_id = world.report(ReportStatus.PENDING, assigned_validator=world.VALIDATOR)
        world.ledger.break_read(Registry.VALIDATOR, "laporanSudahDivalidasi", (report_id,))
        client = world.client(world.REPORTER)

        with pytest.raises(UnreadableState) as exc:
            asyncio.run(client.get_reconciled_verdict(report_id))
        assert exc.value.what == "validation flag"
        assert exc.value.report_id == report_id

    def test_garbled_validation_flag_is_not_false(self, world):
        report_id = world.report(ReportStatus.PENDING, assigned_validator=world.VALIDATOR)
        world.ledger.corrupt(Registry.VALIDATOR, "laporanSudahDivalidasi", (report_id,), 0, UNDECODABLE)
        client = world.client(world.REPORTER)

        with pytest.raises(UnreadableState):
            asyncio.run(client.get_reconciled_verdict(report_id))

    def test_offline(self, world):
        report_id = world.report(ReportStatus.INVALID, verdict=False)
        client = world.client(world.REPORTER)
        world.ledger.go_offline()

        with pytest.raises(NetworkError):
            asyncio.run(client.get_reconciled_verdict(report_id))
