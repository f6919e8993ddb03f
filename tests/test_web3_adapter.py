"""
Tests for the JSON-RPC ledger adapter.

The node is replaced by a stub ``eth`` namespace; only the network-marked
test talks to a real endpoint (REPORTCHAIN_RPC_URL).
"""

import asyncio
import os
from types import SimpleNamespace

import pytest
from eth_abi import encode
from web3 import Web3
from web3.exceptions import ContractLogicError, ProviderConnectionError, TransactionNotFound

from reportchain.ledger import (
    UNDECODABLE,
    CallRequest,
    LedgerCallError,
    LedgerTransportError,
    ReceiptStatus,
    Registry,
)
from reportchain.memory import DEFAULT_ADDRESSES
from reportchain.web3_adapter import Web3LedgerAdapter, revert_reason

VALIDATOR = "0x" + "b2" * 20
REPORTER = "0x" + "c3" * 20


def make_adapter(**eth):
    adapter = Web3LedgerAdapter(dict(DEFAULT_ADDRESSES), rpc_url="http://127.0.0.1:1", chain_id=31337)
    adapter._w3 = SimpleNamespace(eth=SimpleNamespace(**eth))
    return adapter


def returning(value):
    async def fn(*args, **kwargs):
        return value
    return fn


def raising(exc):
    async def fn(*args, **kwargs):
        raise exc
    return fn


class TestRevertReason:
    @pytest.mark.parametrize("message,expected", [
        ("execution reverted: Hanya pelapor laporan ini", "Hanya pelapor laporan ini"),
        ("execution reverted: 'Hanya Institusi Contract'", "Hanya Institusi Contract"),
        ("VM Exception while processing transaction: reverted with reason string 'Stake tidak cukup'",
         "Stake tidak cukup"),
        ("ERC20: insufficient allowance", "ERC20: insufficient allowance"),
        ("execution reverted", "execution reverted"),
        (None, "execution reverted"),
    ])
    def test_strips_boilerplate(self, message, expected):
        assert revert_reason(message) == expected


class TestConstruction:
    def test_requires_every_address(self):
        addresses = dict(DEFAULT_ADDRESSES)
        addresses[Registry.TOKEN] = ""
        with pytest.raises(ValueError, match="rtkToken"):
            Web3LedgerAdapter(addresses, rpc_url="http://127.0.0.1:1", chain_id=31337)

    def test_calldata(self):
        adapter = make_adapter()
        tx = adapter._tx(CallRequest(Registry.REPORT, "ajukanBanding", (7,), REPORTER))
        selector = Web3.keccak(text="ajukanBanding(uint256)")[:4].hex()
        assert tx["data"].lower().endswith(selector.replace("0x", "") + encode(["uint256"], [7]).hex())
        assert tx["to"] == Web3.to_checksum_address(DEFAULT_ADDRESSES[Registry.REPORT])
        assert tx["from"] == Web3.to_checksum_address(REPORTER)


class TestCalls:
    """Results and failures translated to the adapter vocabulary."""

    def test_tuple_read(self):
        payload = encode(["address", "bool", "string", "uint256"], [VALIDATOR, False, "Tidak terbukti", 1_700_000_000])
        adapter = make_adapter(call=returning(payload))

        result = asyncio.run(adapter.call(Registry.VALIDATOR, "hasilValidasi", (3,)))
        assert result[0].lower() == VALIDATOR
        assert result[1:] == (False, "Tidak terbukti", 1_700_000_000)

    def test_corrupt_slot_survives(self):
        payload = bytearray(encode(["address", "bool", "string", "uint256"], [VALIDATOR, True, "ok", 1_700_000_000]))
        payload[63] = 9
        adapter = make_adapter(call=returning(bytes(payload)))

        result = asyncio.run(adapter.call(Registry.VALIDATOR, "hasilValidasi", (3,)))
        assert result[1] is UNDECODABLE
        assert result[2] == "ok"

    def test_revert(self):
        adapter = make_adapter(call=raising(ContractLogicError("execution reverted: Hanya pelapor laporan ini")))
        request = CallRequest(Registry.REPORT, "ajukanBanding", (7,), REPORTER)

        with pytest.raises(LedgerCallError) as exc:
            asyncio.run(adapter.simulate(request))
        assert exc.value.reason == "Hanya pelapor laporan ini"
        assert exc.value.registry is Registry.REPORT

    def test_connection_failure(self):
        adapter = make_adapter(estimate_gas=raising(ProviderConnectionError("connection refused")))
        request = CallRequest(Registry.TOKEN, "approve", (VALIDATOR, 1), REPORTER)

        with pytest.raises(LedgerTransportError):
            asyncio.run(adapter.estimate_cost(request))

    def test_estimate(self):
        adapter = make_adapter(estimate_gas=returning(51_234))
        request = CallRequest(Registry.TOKEN, "approve", (VALIDATOR, 1), REPORTER)
        assert asyncio.run(adapter.estimate_cost(request)) == 51_234


class TestReceipts:
    def test_not_found_is_pending(self):
        adapter = make_adapter(get_transaction_receipt=raising(TransactionNotFound("unknown transaction")))
        assert asyncio.run(adapter.get_receipt("0x" + "00" * 32)) is None

    def test_reverted(self):
        adapter = make_adapter(get_transaction_receipt=returning({"status": 0, "blockNumber": 12, "gasUsed": 50_000}))
        receipt = asyncio.run(adapter.get_receipt("0x" + "01" * 32))
        assert receipt.status is ReceiptStatus.REVERTED
        assert receipt.block_number == 12
        assert receipt.cost_used == 50_000

    def test_submit_with_node_signing(self):
        sent = {}

        async def send_transaction(tx):
            sent.update(tx)
            return bytes.fromhex("ab" * 32)

        adapter = make_adapter(send_transaction=send_transaction)
        request = CallRequest(Registry.REPORT, "ajukanBanding", (7,), REPORTER)
        tx_hash = asyncio.run(adapter.submit(request, 54_000))
        assert tx_hash == "0x" + "ab" * 32
        assert sent["gas"] == 54_000
        assert sent["chainId"] == 31337


@pytest.mark.network
def test_live_node_counter():
    """Reads the institution counter from a configured node."""
    addresses = {r: os.environ.get(f"REPORTCHAIN_{r.config_key.upper()}", "") for r in Registry}
    adapter = Web3LedgerAdapter(addresses, rpc_url=os.environ.get("REPORTCHAIN_RPC_URL", "http://127.0.0.1:8545"),
                                chain_id=int(os.environ.get("REPORTCHAIN_CHAIN_ID", "31337")))
    count = asyncio.run(adapter.call(Registry.INSTITUTION, "institusiCounter"))
    assert isinstance(count, int)
