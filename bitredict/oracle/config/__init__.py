from .params import (
    DEFAULT_ORACLE_PARAMS,
    IngestParams,
    OddysseyParams,
    OracleParams,
    SettlementParams,
    SyncParams,
    get_oracle_params,
)

__all__ = [
    "DEFAULT_ORACLE_PARAMS",
    "IngestParams",
    "OddysseyParams",
    "OracleParams",
    "SettlementParams",
    "SyncParams",
    "get_oracle_params",
]
