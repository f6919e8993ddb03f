"""Tests for rejection-reason classification."""

import pytest
import yaml

from reportchain.classification import RejectionClassifier, load_rejection_table
from reportchain.config import ConfigError
from reportchain.errors import (
    AuthorizationRejected,
    CrossRegistryMisconfiguration,
    ErrorKind,
    InsufficientFunds,
    UnknownFailure,
    failure_for,
)
from reportchain.ledger import LedgerCallError, LedgerDecodeError, LedgerTransportError, Registry


@pytest.fixture
def classifier():
    return RejectionClassifier.default_table()


class TestDefaultTable:
    """The shipped rule table."""

    @pytest.mark.parametrize("reason,kind", [
        ("Hanya admin dari institusi terkait", ErrorKind.AUTHORIZATION_REJECTED),
        ("Hanya pelapor laporan ini", ErrorKind.AUTHORIZATION_REJECTED),
        ("Bukan validator yang ditugaskan", ErrorKind.AUTHORIZATION_REJECTED),
        ("Ownable: caller is not the owner", ErrorKind.AUTHORIZATION_REJECTED),
        ("ERC20: insufficient allowance", ErrorKind.INSUFFICIENT_FUNDS),
        ("ERC20: transfer amount exceeds balance", ErrorKind.INSUFFICIENT_FUNDS),
        ("Stake tidak cukup", ErrorKind.INSUFFICIENT_FUNDS),
        ("Laporan sudah divalidasi", ErrorKind.PRECONDITION_VIOLATED_ON_CHAIN),
        ("Banding sudah diajukan", ErrorKind.PRECONDITION_VIOLATED_ON_CHAIN),
        ("Laporan belum valid", ErrorKind.PRECONDITION_VIOLATED_ON_CHAIN),
        ("Judul dan deskripsi wajib diisi", ErrorKind.PRECONDITION_VIOLATED_ON_CHAIN),
        ("request timed out", ErrorKind.NETWORK_ERROR),
        ("Hanya Institusi Contract", ErrorKind.CROSS_REGISTRY_MISCONFIGURATION),
        ("Hanya kontrak institusi", ErrorKind.CROSS_REGISTRY_MISCONFIGURATION),
        ("something nobody anticipated", ErrorKind.UNKNOWN),
        ("", ErrorKind.UNKNOWN),
    ])
    def test_kind(self, classifier, reason, kind):
        assert classifier.classify(reason).kind is kind

    def test_case_insensitive(self, classifier):
        assert classifier.classify("HANYA ADMIN DARI INSTITUSI TERKAIT").kind is ErrorKind.AUTHORIZATION_REJECTED

    def test_settlement_pair(self, classifier):
        result = classifier.classify("Hanya Institusi Contract", Registry.INSTITUTION)
        assert result.rule_id == "settlement-caller"
        assert result.rejecting_registry is Registry.REWARD_MANAGER
        assert result.registry_pair == ("user", "rewardManager")

    def test_report_registry_pair(self, classifier):
        result = classifier.classify("Hanya kontrak institusi")
        assert result.registry_pair == ("institusi", "user")

    def test_target_registry_used_when_rule_is_silent(self, classifier):
        result = classifier.classify("Hanya validator terdaftar", Registry.VALIDATOR)
        assert result.rejecting_registry is Registry.VALIDATOR
        assert result.registry_pair is None

    def test_cross_registry_checked_before_authorization(self, classifier):
        # authorization reasons also start with "Hanya"
        assert classifier.classify("Hanya Institusi Contract").rule_id == "settlement-caller"


class TestExceptions:
    def test_transport(self, classifier):
        result = classifier.classify_exception(LedgerTransportError("connection refused"))
        assert result.kind is ErrorKind.NETWORK_ERROR

    def test_call(self, classifier):
        error = LedgerCallError("ERC20: insufficient allowance", Registry.REPORT, "ajukanBanding")
        result = classifier.classify_exception(error)
        assert result.kind is ErrorKind.INSUFFICIENT_FUNDS
        assert result.rejecting_registry is Registry.REPORT

    def test_decode(self, classifier):
        error = LedgerDecodeError("bad tuple", Registry.VALIDATOR, "hasilValidasi")
        assert classifier.classify_exception(error).kind is ErrorKind.UNKNOWN


class TestCustomTable:
    def _write(self, tmp_path, data):
        path = tmp_path / "rules.yaml"
        path.write_text(yaml.safe_dump(data))
        return path

    def test_load(self, tmp_path):
        path = self._write(tmp_path, {
            "version": 1,
            "default": "precondition_violated_on_chain",
            "rules": [{"id": "custom", "kind": "authorization_rejected", "match": ["ditolak"]}],
        })
        classifier = RejectionClassifier.from_file(path)
        assert classifier.classify("Akses ditolak").kind is ErrorKind.AUTHORIZATION_REJECTED
        assert classifier.classify("lain").kind is ErrorKind.PRECONDITION_VIOLATED_ON_CHAIN

    def test_invalid_kind(self, tmp_path):
        path = self._write(tmp_path, {
            "version": 1,
            "rules": [{"id": "bad", "kind": "catastrophic", "match": ["x"]}],
        })
        with pytest.raises(ConfigError):
            load_rejection_table(path)

    def test_missing(self, tmp_path):
        with pytest.raises(ConfigError):
            load_rejection_table(tmp_path / "nope.yaml")


class TestFailureFor:
    def test_subclass_per_kind(self):
        assert isinstance(failure_for(ErrorKind.AUTHORIZATION_REJECTED, "x"), AuthorizationRejected)
        assert isinstance(failure_for(ErrorKind.INSUFFICIENT_FUNDS, "x"), InsufficientFunds)
        assert isinstance(failure_for(ErrorKind.UNKNOWN, "x"), UnknownFailure)

    def test_cross_registry_carries_pair(self):
        failure = failure_for(ErrorKind.CROSS_REGISTRY_MISCONFIGURATION, "Hanya Institusi Contract",
                              registry_pair=("user", "rewardManager"), action="finalize_appeal")
        assert isinstance(failure, CrossRegistryMisconfiguration)
        assert failure.registry == "rewardManager"
        assert str(failure) == ("[CrossRegistryMisconfiguration] finalize_appeal: Hanya Institusi Contract "
                                "(rejected by rewardManager) [user -> rewardManager]")

    def test_retryable(self):
        assert ErrorKind.NETWORK_ERROR.is_retryable
        assert not ErrorKind.CROSS_REGISTRY_MISCONFIGURATION.is_retryable
