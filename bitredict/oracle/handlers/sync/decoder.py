"""Maps raw logs onto the mirrored contract events."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from eth_abi.exceptions import DecodingError
from eth_utils import event_abi_to_log_topic
from web3 import AsyncWeb3
from web3.exceptions import LogTopicError, MismatchedABI

from bitredict.chain.abi import ODDYSSEY_ABI, POOL_CORE_ABI
from bitredict.chain.codec import to_hex
from bitredict.shared.errors import PermanentError

logger = logging.getLogger(__name__)


POOL_EVENTS = ("PoolCreated", "BetPlaced", "LiquidityAdded", "PoolSettled", "PoolRefunded")
ODDYSSEY_EVENTS = ("CycleStarted", "SlipPlaced", "CycleResolved")

_DECODE_ERRORS = (DecodingError, LogTopicError, MismatchedABI, KeyError, TypeError, ValueError)


@dataclass(frozen=True)
class DecodedEvent:
    name: str
    args: Mapping[str, Any]
    address: str
    tx_hash: str
    log_index: int
    block_number: int

    @property
    def key(self) -> Tuple[str, int]:
        return self.tx_hash, self.log_index


@dataclass(frozen=True)
class _Binding:
    name: str
    event: Any


class EventDecoder:
    """Resolves (address, topic0) to a contract event and decodes its args."""

    def __init__(self) -> None:
        self._bindings: Dict[Tuple[str, bytes], _Binding] = {}

    def bind(self, contract: Any, names: Sequence[str], abi: Sequence[Dict[str, Any]]) -> "EventDecoder":
        address = str(contract.address).lower()
        by_name = {item["name"]: item for item in abi if item.get("type") == "event"}
        for name in names:
            topic = bytes(event_abi_to_log_topic(by_name[name]))
            self._bindings[(address, topic)] = _Binding(name=name, event=getattr(contract.events, name)())
        return self

    @property
    def addresses(self) -> List[str]:
        return sorted({AsyncWeb3.to_checksum_address(a) for a, _ in self._bindings})

    def decode(self, log: Mapping[str, Any]) -> Optional[DecodedEvent]:
        topics = log.get("topics") or []
        if not topics:
            return None
        binding = self._bindings.get((str(log["address"]).lower(), bytes(topics[0])))
        if binding is None:
            return None
        try:
            data = binding.event.process_log(log)
            return DecodedEvent(
                name=binding.name,
                args=dict(data["args"]),
                address=str(log["address"]),
                tx_hash=to_hex(bytes(log["transactionHash"])),
                log_index=int(log["logIndex"]),
                block_number=int(log["blockNumber"]),
            )
        except _DECODE_ERRORS as exc:
            raise PermanentError(f"cannot decode {binding.name} log: {exc}") from exc

    def decode_all(self, logs: Iterable[Mapping[str, Any]]) -> List[DecodedEvent]:
        """Decode a chunk of logs. A log that does not match its ABI is logged and dropped."""
        events: List[DecodedEvent] = []
        for log in logs:
            try:
                event = self.decode(log)
            except PermanentError as exc:
                logger.error(
                    {
                        "event_decode_failed": {
                            "address": log.get("address"),
                            "log_index": log.get("logIndex"),
                            "block": log.get("blockNumber"),
                            "error": str(exc),
                        }
                    }
                )
                continue
            if event is not None:
                events.append(event)
        events.sort(key=lambda e: (e.block_number, e.log_index))
        return events


def build_decoder(*, pool_contracts: Sequence[Any], oddyssey: Optional[Any]) -> EventDecoder:
    """Pool events may come from the pool core and the settlement contract."""
    decoder = EventDecoder()
    for contract in pool_contracts:
        decoder.bind(contract, POOL_EVENTS, POOL_CORE_ABI)
    if oddyssey is not None:
        decoder.bind(oddyssey, ODDYSSEY_EVENTS, ODDYSSEY_ABI)
    return decoder


__all__ = ["DecodedEvent", "EventDecoder", "build_decoder", "POOL_EVENTS", "ODDYSSEY_EVENTS"]
