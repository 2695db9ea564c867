from __future__ import annotations

from typing import Dict

from pydantic import BaseModel, Field


class CoinpaprikaConfig(BaseModel):
    base_url: str = "https://api.coinpaprika.com/v1"
    quote_currency: str = "USD"
    # Preferred ids for tickers that several coins share on Coinpaprika.
    pinned_ids: Dict[str, str] = Field(
        default_factory=lambda: {
            "BTC": "btc-bitcoin",
            "ETH": "eth-ethereum",
            "SOL": "sol-solana",
            "ADA": "ada-cardano",
            "MATIC": "matic-polygon",
            "AVAX": "avax-avalanche",
            "DOT": "dot-polkadot",
            "LINK": "link-chainlink",
            "UNI": "uni-uniswap",
            "LTC": "ltc-litecoin",
        }
    )


__all__ = ["CoinpaprikaConfig"]
