"""EVM access: ABI fragments, bytes32 codec, transaction client and contract wrappers."""

from .client import ChainClient, TransactionSigner, TxResult
from .codec import ZERO_BYTES32, decode_bytes32, encode_bytes32
from .contracts import GuidedOracle, OddysseyContract, PoolCore

__all__ = [
    "ChainClient",
    "TransactionSigner",
    "TxResult",
    "ZERO_BYTES32",
    "decode_bytes32",
    "encode_bytes32",
    "GuidedOracle",
    "OddysseyContract",
    "PoolCore",
]
