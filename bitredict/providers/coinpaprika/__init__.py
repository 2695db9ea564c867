"""Coinpaprika spot-price provider."""

from .client import CoinpaprikaClient
from .config import CoinpaprikaConfig

__all__ = ["CoinpaprikaClient", "CoinpaprikaConfig"]
