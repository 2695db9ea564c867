"""Async EVM access for the oracle bot.

All outbound transactions go through one `TransactionSigner`, which holds a
process-wide lock from nonce lookup until the receipt is mined. Reads are not
serialized.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import aiohttp
from eth_account import Account
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3RPCError

from bitredict.config import ChainSettings
from bitredict.shared.errors import ChainRevertError, FatalError, TransientError

logger = logging.getLogger(__name__)

OnSent = Callable[[str], Awaitable[None]]

_TRANSPORT_ERRORS = (
    aiohttp.ClientError,
    asyncio.TimeoutError,
    ConnectionError,
    OSError,
)


@dataclass(frozen=True)
class TxResult:
    tx_hash: str
    block_number: int
    receipt: Any


def _hex(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    text = str(value)
    return text if text.startswith("0x") else "0x" + text


def _revert_from(exc: ContractLogicError, method: str) -> ChainRevertError:
    reason = getattr(exc, "message", None) or str(exc)
    if reason.startswith("execution reverted: "):
        reason = reason[len("execution reverted: "):]
    return ChainRevertError(reason, data=getattr(exc, "data", None), method=method)


def _rpc_error(exc: Web3RPCError, method: str) -> Exception:
    payload = exc.rpc_response.get("error", {}) if isinstance(exc.rpc_response, dict) else {}
    message = str(payload.get("message") or exc)
    if "revert" in message.lower():
        return ChainRevertError(message, code=payload.get("code"), data=payload.get("data"), method=method)
    return TransientError(f"{method}: {message}")


class TransactionSigner:
    """Holds the oracle bot key and serializes every transaction it signs."""

    def __init__(self, private_key: str) -> None:
        self.account = Account.from_key(private_key)
        self.address: str = self.account.address
        self.lock = asyncio.Lock()

    def sign(self, tx: Dict[str, Any]) -> bytes:
        return self.account.sign_transaction(tx).raw_transaction


class ChainClient:
    def __init__(
        self,
        settings: ChainSettings,
        *,
        w3: Optional[AsyncWeb3] = None,
        signer: Optional[TransactionSigner] = None,
    ) -> None:
        self.settings = settings
        self.w3 = w3 or AsyncWeb3(
            AsyncHTTPProvider(
                settings.rpc_url,
                request_kwargs={"timeout": aiohttp.ClientTimeout(total=settings.request_timeout_seconds)},
            )
        )
        if signer is None and settings.private_key:
            signer = TransactionSigner(settings.private_key)
        self.signer = signer
        self._chain_id: Optional[int] = settings.chain_id

    def contract(self, address: str, abi: Sequence[Dict[str, Any]]) -> Any:
        return self.w3.eth.contract(address=AsyncWeb3.to_checksum_address(address), abi=list(abi))

    async def block_number(self) -> int:
        try:
            return int(await self.w3.eth.block_number)
        except _TRANSPORT_ERRORS as exc:
            raise TransientError(f"eth_blockNumber failed: {exc}") from exc

    async def block_timestamp(self, block_number: int) -> int:
        try:
            block = await self.w3.eth.get_block(block_number)
        except Web3RPCError as exc:
            raise TransientError(f"eth_getBlockByNumber {block_number} failed: {exc}") from exc
        except _TRANSPORT_ERRORS as exc:
            raise TransientError(f"eth_getBlockByNumber {block_number} failed: {exc}") from exc
        return int(block["timestamp"])

    async def get_logs(self, from_block: int, to_block: int, addresses: Sequence[str]) -> List[Any]:
        params = {
            "fromBlock": from_block,
            "toBlock": to_block,
            "address": [AsyncWeb3.to_checksum_address(a) for a in addresses],
        }
        try:
            return list(await self.w3.eth.get_logs(params))
        except Web3RPCError as exc:
            raise TransientError(f"eth_getLogs {from_block}-{to_block} failed: {exc}") from exc
        except _TRANSPORT_ERRORS as exc:
            raise TransientError(f"eth_getLogs {from_block}-{to_block} failed: {exc}") from exc

    async def call(self, fn: Any, *, method: str) -> Any:
        """Run a view function, mapping node failures onto the error taxonomy."""
        try:
            return await fn.call()
        except ContractLogicError as exc:
            raise _revert_from(exc, method) from exc
        except Web3RPCError as exc:
            raise _rpc_error(exc, method) from exc
        except _TRANSPORT_ERRORS as exc:
            raise TransientError(f"{method} call failed: {exc}") from exc

    async def transact(self, fn: Any, *, method: str, on_sent: Optional[OnSent] = None) -> TxResult:
        """Sign, send and wait for a contract transaction.

        `on_sent` runs with the transaction hash before the receipt is awaited,
        so callers can persist the hash of anything left in the mempool.
        """
        if self.signer is None:
            raise FatalError("chain.private_key is not configured; cannot send transactions")
        signer = self.signer
        async with signer.lock:
            try:
                chain_id = await self._get_chain_id()
                estimate = await fn.estimate_gas({"from": signer.address})
                nonce = await self.w3.eth.get_transaction_count(signer.address, "pending")
                tx = await fn.build_transaction(
                    {
                        "from": signer.address,
                        "nonce": nonce,
                        "chainId": chain_id,
                        "gas": self._gas_for(int(estimate)),
                    }
                )
                tx_hash = _hex(await self.w3.eth.send_raw_transaction(signer.sign(tx)))
            except ContractLogicError as exc:
                raise _revert_from(exc, method) from exc
            except Web3RPCError as exc:
                raise _rpc_error(exc, method) from exc
            except _TRANSPORT_ERRORS as exc:
                raise TransientError(f"{method} send failed: {exc}") from exc

            logger.info({"tx_sent": {"method": method, "tx_hash": tx_hash, "nonce": nonce}})
            if on_sent is not None:
                await on_sent(tx_hash)

            try:
                receipt = await self.w3.eth.wait_for_transaction_receipt(
                    tx_hash, timeout=self.settings.receipt_timeout_seconds
                )
            except TimeExhausted as exc:
                raise TransientError(f"{method} receipt timeout for {tx_hash}") from exc
            except _TRANSPORT_ERRORS as exc:
                raise TransientError(f"{method} receipt lookup failed for {tx_hash}: {exc}") from exc

        if int(receipt["status"]) != 1:
            raise ChainRevertError("transaction reverted on-chain", data=tx_hash, method=method)
        block_number = int(receipt["blockNumber"])
        logger.info({"tx_mined": {"method": method, "tx_hash": tx_hash, "block": block_number}})
        return TxResult(tx_hash=tx_hash, block_number=block_number, receipt=receipt)

    def _gas_for(self, estimate: int) -> int:
        # 20% headroom, capped by the configured limit unless the estimate already exceeds it
        if estimate >= self.settings.gas_limit:
            return estimate
        return min(int(estimate * 1.2), self.settings.gas_limit)

    async def _get_chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = int(await self.w3.eth.chain_id)
        return self._chain_id

    async def ping(self) -> bool:
        return await self.block_number() >= 0

    async def close(self) -> None:
        await self.w3.provider.disconnect()


__all__ = ["ChainClient", "TransactionSigner", "TxResult", "OnSent"]
