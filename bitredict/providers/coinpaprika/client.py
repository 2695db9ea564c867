from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional

import httpx

from bitredict.shared.errors import PermanentError, ProviderSemanticError, TransientError

from ..ratelimit import TokenBucket
from ..records import SpotPrice
from .config import CoinpaprikaConfig

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CoinpaprikaClient:
    """
    Async HTTP client for Coinpaprika spot prices.

    Symbol to coin-id lookups are cached for the lifetime of the client.
    Prices are read at call time; deadline handling belongs to the caller.
    """

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        config: Optional[CoinpaprikaConfig] = None,
        timeout_seconds: float = 15.0,
        max_retries: int = 2,
        rate_per_minute: int = 60,
        bucket: Optional[TokenBucket] = None,
        now_fn: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.api_key = api_key or os.getenv("COINPAPRIKA_API_KEY")
        self.config = config or CoinpaprikaConfig()
        self.max_retries = max_retries
        self.bucket = bucket or TokenBucket(rate_per_minute)
        self._now = now_fn
        self._symbol_cache: Dict[str, str] = {}
        self._catalog: Optional[List[dict]] = None
        self._client = httpx.AsyncClient(base_url=self.config.base_url, timeout=timeout_seconds)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "CoinpaprikaClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def resolve_symbol(self, symbol: str) -> str:
        key = (symbol or "").strip().upper()
        if not key:
            raise PermanentError("empty symbol")
        cached = self._symbol_cache.get(key)
        if cached:
            return cached

        coin_id = self.config.pinned_ids.get(key)
        if coin_id is None:
            coin_id = self._pick_coin(await self._load_catalog(), key)
        if coin_id is None:
            raise PermanentError(f"unknown symbol {key}")
        self._symbol_cache[key] = coin_id
        logger.debug({"coinpaprika_symbol_resolved": {"symbol": key, "coin_id": coin_id}})
        return coin_id

    async def fetch_spot_price(self, coin_id: str, *, symbol: Optional[str] = None) -> SpotPrice:
        currency = self.config.quote_currency
        payload = await self._get_json(f"/tickers/{coin_id}", params={"quotes": currency})
        try:
            raw_price = payload["quotes"][currency]["price"]
            price = Decimal(str(raw_price))
        except (KeyError, TypeError, InvalidOperation) as exc:
            raise ProviderSemanticError(f"missing {currency} price for {coin_id}", record_id=coin_id) from exc
        if price <= 0:
            raise ProviderSemanticError(f"non-positive price for {coin_id}", record_id=coin_id)
        return SpotPrice(
            symbol=(symbol or payload.get("symbol") or "").upper(),
            coin_id=coin_id,
            price_usd=price,
            fetched_at=self._now(),
        )

    async def fetch_symbol_price(self, symbol: str) -> SpotPrice:
        coin_id = await self.resolve_symbol(symbol)
        return await self.fetch_spot_price(coin_id, symbol=symbol)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _load_catalog(self) -> List[dict]:
        if self._catalog is None:
            payload = await self._get_json("/coins")
            self._catalog = [item for item in payload or [] if isinstance(item, dict)]
        return self._catalog

    @staticmethod
    def _pick_coin(catalog: List[dict], symbol: str) -> Optional[str]:
        matches = [
            item
            for item in catalog
            if str(item.get("symbol", "")).upper() == symbol and item.get("is_active", True)
        ]
        if not matches:
            return None
        # rank 0 means unranked on Coinpaprika
        matches.sort(key=lambda item: (int(item.get("rank") or 0) <= 0, int(item.get("rank") or 0)))
        return str(matches[0]["id"])

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = self.api_key
        attempt = 0
        backoff = 0.5
        while True:
            await self.bucket.acquire()
            try:
                resp = await self._client.get(path, params=params or {}, headers=headers)
                resp.raise_for_status()
                return resp.json()
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                if status == 404:
                    logger.debug({"coinpaprika_http_404": {"path": path}})
                    raise PermanentError(f"not found: {path}") from exc
                if 400 <= status < 500 and status != 429:
                    raise PermanentError(f"http {status} for {path}") from exc
                if attempt >= self.max_retries:
                    raise TransientError(f"http {status} for {path}") from exc
            except (httpx.RequestError, httpx.TimeoutException) as exc:
                if attempt >= self.max_retries:
                    raise TransientError(f"request failed for {path}: {exc}") from exc
            except ValueError as exc:
                raise PermanentError(f"malformed json for {path}") from exc
            await asyncio.sleep(backoff)
            attempt += 1
            backoff *= 2


__all__ = ["CoinpaprikaClient"]
