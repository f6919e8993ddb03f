"""
JSON-RPC ledger adapter.

Talks to an EVM node through web3.py's AsyncWeb3. Calldata is encoded from
the entry-point ABI; results are decoded field by field so a corrupted slot
does not take the whole read down. Signing uses an eth-account LocalAccount
when one is supplied, otherwise the node signs for the sender address.
"""

from __future__ import annotations

import asyncio
import re
from typing import Any, Dict, Optional, Sequence

from eth_account.signers.local import LocalAccount
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import (
    ContractLogicError,
    ProviderConnectionError,
    TimeExhausted,
    TransactionNotFound,
    Web3Exception,
)

from reportchain import contracts
from reportchain.codec import decode_output
from reportchain.config import ReportChainConfig
from reportchain.ledger import (
    CallRequest,
    LedgerCallError,
    LedgerTransportError,
    ReceiptStatus,
    Registry,
    TransactionReceipt,
)
from reportchain.observability import Layer, get_logger

log = get_logger("web3", Layer.LEDGER)

_REVERT_PREFIX = re.compile(r"^\s*(execution reverted:?|VM Exception while processing transaction: reverted with reason string)\s*", re.I)


def revert_reason(message: Any) -> str:
    """Strip node boilerplate from a revert message, keeping the contract's string."""
    text = str(message or "").strip()
    text = _REVERT_PREFIX.sub("", text).strip().strip("'\"")
    return text or "execution reverted"


class Web3LedgerAdapter:
    """LedgerAdapter over a JSON-RPC endpoint."""

    def __init__(
        self,
        addresses: Dict[Registry, str],
        rpc_url: str,
        chain_id: int,
        account: Optional[LocalAccount] = None,
        w3: Optional[AsyncWeb3] = None,
        request_timeout: float = 30.0,
    ):
        missing = [r.value for r in Registry if not addresses.get(r)]
        if missing:
            raise ValueError(f"registry addresses not configured: {', '.join(missing)}")
        self._addresses = {r: Web3.to_checksum_address(a) for r, a in addresses.items()}
        self._chain_id = chain_id
        self._account = account
        self._w3 = w3 or AsyncWeb3(AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout}))
        self._contracts = {
            r: self._w3.eth.contract(address=a, abi=contracts.abi_for(r))
            for r, a in self._addresses.items()
        }

    @classmethod
    def from_config(cls, config: ReportChainConfig, account: Optional[LocalAccount] = None) -> "Web3LedgerAdapter":
        deployment = config.deployment
        addresses = {r: getattr(deployment, r.config_key).get() for r in Registry}
        return cls(
            addresses,
            rpc_url=deployment.rpc_url.get(),
            chain_id=deployment.chain_id.get(),
            account=account,
        )

    def address_of(self, registry: Registry) -> str:
        return self._addresses[registry]

    def _tx(self, request: CallRequest) -> Dict[str, Any]:
        args = [
            Web3.to_checksum_address(a) if isinstance(a, str) and Web3.is_address(a) else a
            for a in request.args
        ]
        calldata = self._contracts[request.registry].encode_abi(request.function, args=args)
        tx: Dict[str, Any] = {"to": self._addresses[request.registry], "data": calldata}
        sender = request.sender or (self._account.address if self._account else None)
        if sender:
            tx["from"] = Web3.to_checksum_address(sender)
        return tx

    async def _guard(self, request: CallRequest, coro: Any) -> Any:
        try:
            return await coro
        except ContractLogicError as e:
            raise LedgerCallError(revert_reason(e.message), request.registry, request.function) from e
        except (ProviderConnectionError, TimeExhausted, asyncio.TimeoutError, OSError) as e:
            raise LedgerTransportError(f"{request.registry.value}.{request.function}: {e}") from e
        except Web3Exception as e:
            raise LedgerCallError(revert_reason(e), request.registry, request.function) from e

    async def call(
        self,
        registry: Registry,
        function: str,
        args: Sequence[Any] = (),
        sender: Optional[str] = None,
    ) -> Any:
        fn = contracts.lookup(registry, function)
        request = CallRequest(registry, function, tuple(args), sender)
        raw = await self._guard(request, self._w3.eth.call(self._tx(request)))
        return decode_output(fn.outputs, bytes(raw))

    async def estimate_cost(self, request: CallRequest) -> int:
        return int(await self._guard(request, self._w3.eth.estimate_gas(self._tx(request))))

    async def simulate(self, request: CallRequest) -> None:
        await self._guard(request, self._w3.eth.call(self._tx(request)))

    async def submit(self, request: CallRequest, cost_ceiling: int) -> str:
        tx = self._tx(request)
        tx["gas"] = cost_ceiling
        tx["chainId"] = self._chain_id

        if self._account is None:
            tx_hash = await self._guard(request, self._w3.eth.send_transaction(tx))
        else:
            tx["nonce"] = await self._guard(
                request, self._w3.eth.get_transaction_count(self._account.address, "pending")
            )
            tx["gasPrice"] = await self._guard(request, self._w3.eth.gas_price)
            signed = self._account.sign_transaction(tx)
            tx_hash = await self._guard(request, self._w3.eth.send_raw_transaction(signed.raw_transaction))

        tx_hex = Web3.to_hex(tx_hash)
        log.debug("Transaction sent", operation="submit", tx_hash=tx_hex, gas=cost_ceiling)
        return tx_hex

    async def get_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        try:
            receipt = await self._w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        except (ProviderConnectionError, asyncio.TimeoutError, OSError) as e:
            raise LedgerTransportError(f"receipt {tx_hash}: {e}") from e

        return TransactionReceipt(
            tx_hash=tx_hash,
            status=ReceiptStatus.SUCCESS if receipt["status"] == 1 else ReceiptStatus.REVERTED,
            block_number=int(receipt["blockNumber"]),
            cost_used=int(receipt["gasUsed"]),
        )
