import os
import pathlib
import sys
import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import reportchain`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from reportchain.config import ConfigManager  # noqa: E402


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "network: tests that need a live JSON-RPC node (skipped unless REPORTCHAIN_RUN_NETWORK=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_network = _env_flag('REPORTCHAIN_RUN_NETWORK')

    for item in items:
        if 'network' in item.keywords and not run_network:
            item.add_marker(pytest.mark.skip(reason='network tests skipped; set REPORTCHAIN_RUN_NETWORK=1 to enable'))


@pytest.fixture(autouse=True)
def _fresh_config(request, monkeypatch):
    """Every test starts from default configuration with no REPORTCHAIN_* overrides.

    Network tests keep the environment; it is where the node settings live.
    """
    live = request.node.get_closest_marker("network") is not None
    for name in [] if live else list(os.environ):
        if name.startswith("REPORTCHAIN_") and not name.startswith("REPORTCHAIN_RUN_"):
            monkeypatch.delenv(name, raising=False)
    ConfigManager.reset()
    yield
    ConfigManager.reset()


# ─────────────────────────────────────────────────────────────────────────────
# Ledger world
# ─────────────────────────────────────────────────────────────────────────────

class World:
    """One seeded in-memory deployment with a fixed cast of addresses."""

    OWNER = "0x" + "0a" * 20
    ADMIN = "0x" + "a1" * 20
    VALIDATOR = "0x" + "b2" * 20
    REPORTER = "0x" + "c3" * 20
    TREASURY = "0x" + "d4" * 20
    OUTSIDER = "0x" + "e5" * 20

    def __init__(self, **ledger_kwargs):
        from reportchain.ledger import Registry
        from reportchain.memory import UNIT, InMemoryLedger

        self.ledger = InMemoryLedger(owner=self.OWNER, **ledger_kwargs)
        self.pool = self.ledger.address_of(Registry.REWARD_MANAGER)
        self.institution_id = self.ledger.add_institution("Dinas Lingkungan", self.ADMIN, self.TREASURY)
        self.ledger.add_validator(self.institution_id, self.VALIDATOR)
        self.ledger.add_reporter(self.institution_id, self.REPORTER)
        self.ledger.mint(self.REPORTER, 100 * UNIT)
        self.ledger.set_allowance(self.REPORTER, self.pool, 100 * UNIT)
        self.ledger.mint(self.pool, 1000 * UNIT)

    def report(self, status, verdict=None, **kwargs):
        """Add a report by REPORTER; verdict is the recorded isValid for non-pending reports."""
        report_id = self.ledger.add_report(self.institution_id, self.REPORTER, status=status, **kwargs)
        if verdict is not None:
            self.ledger.set_verdict(report_id, self.VALIDATOR, verdict, "Hasil pemeriksaan lapangan")
        return report_id

    def client(self, sender, config=None):
        from reportchain.client import LedgerClient

        return LedgerClient.for_ledger(self.ledger, sender, config)


@pytest.fixture
def world():
    return World()


@pytest.fixture
def make_world():
    return World
