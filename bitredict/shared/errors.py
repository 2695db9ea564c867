"""Error taxonomy shared by providers, chain access and the pipelines.

Per-record errors (provider semantic, format mismatch, data integrity) are
caught by the handler that owns the record and turned into a skip. Transient
errors are retried with backoff and then surface to the next tick. Fatal
errors stop the process.
"""

from __future__ import annotations

from typing import Any, Optional

EXPECTED_REVERT_REASONS = ("Already settled", "Already refunded")


class OracleError(Exception):
    """Base class for errors raised inside the oracle service."""


class TransientError(OracleError):
    """Network timeout, RPC disconnect, provider 5xx/429. Safe to retry."""


class PermanentError(OracleError):
    """Provider 404, auth failure or malformed payload. Retrying will not help."""


class ProviderSemanticError(PermanentError):
    """Provider returned data that cannot be used (missing fields, impossible scores)."""

    def __init__(self, message: str, *, record_id: Any = None) -> None:
        super().__init__(message)
        self.record_id = record_id


class ChainRevertError(OracleError):
    """A contract call reverted."""

    def __init__(
        self,
        reason: str,
        *,
        code: Optional[int] = None,
        data: Any = None,
        method: Optional[str] = None,
    ) -> None:
        super().__init__(reason)
        self.reason = reason
        self.code = code
        self.data = data
        self.method = method

    @property
    def expected(self) -> bool:
        return any(marker in (self.reason or "") for marker in EXPECTED_REVERT_REASONS)

    def as_log(self) -> dict[str, Any]:
        return {
            "method": self.method,
            "reason": self.reason,
            "code": self.code,
            "data": self.data if isinstance(self.data, (str, int, type(None))) else str(self.data),
        }


class FormatMismatchError(OracleError):
    """A prediction string does not map onto a known outcome alphabet."""


class DataIntegrityError(OracleError):
    """Mirror rows disagree with each other or with the chain."""


class FatalError(OracleError):
    """Unrecoverable infrastructure failure; the process should exit non-zero."""


__all__ = [
    "EXPECTED_REVERT_REASONS",
    "OracleError",
    "TransientError",
    "PermanentError",
    "ProviderSemanticError",
    "ChainRevertError",
    "FormatMismatchError",
    "DataIntegrityError",
    "FatalError",
]
