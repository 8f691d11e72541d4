import logging
import time
from datetime import date
from typing import Callable, Optional

import httpx

from claimflow.core.config import settings


logger = logging.getLogger("uvicorn.error")

FALLBACK_RATES = {"USD": 75.0, "EUR": 85.0}

CURRENCY_SYMBOLS = {"INR": "₹", "USD": "$", "EUR": "€", "GBP": "£"}


class CurrencyConverter:
    """INR conversion backed by exchangerate.host with a short-lived rate cache."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        cache_seconds: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.api_key = settings.EXCHANGERATE_API_KEY if api_key is None else api_key
        self.base_url = (base_url or settings.EXCHANGERATE_BASE_URL).rstrip("/")
        self.cache_seconds = settings.FX_CACHE_SECONDS if cache_seconds is None else cache_seconds
        self._transport = transport
        self._clock = clock
        self._cache: dict[tuple[str, str], tuple[float, float]] = {}

    def _cached(self, key: tuple[str, str]) -> Optional[float]:
        hit = self._cache.get(key)
        if hit is None:
            return None
        if self._clock() - hit[1] < self.cache_seconds:
            return hit[0]
        del self._cache[key]
        return None

    def _store(self, key: tuple[str, str], rate: float) -> None:
        now = self._clock()
        for stale in [k for k, (_, at) in self._cache.items() if now - at >= self.cache_seconds]:
            del self._cache[stale]
        self._cache[key] = (rate, now)

    async def _fetch_rate(self, currency: str, on: Optional[date]) -> float:
        if not self.api_key:
            raise RuntimeError("EXCHANGERATE_API_KEY is not configured")
        params = {"access_key": self.api_key, "currencies": "INR", "source": currency}
        if on:
            endpoint = "/historical"
            params["date"] = on.isoformat()
        else:
            endpoint = "/live"
        async with httpx.AsyncClient(base_url=self.base_url, transport=self._transport, timeout=10.0) as client:
            resp = await client.get(endpoint, params=params)
            resp.raise_for_status()
            data = resp.json()
        if not data.get("success"):
            info = (data.get("error") or {}).get("info") or "unknown error"
            raise RuntimeError(f"Exchange rate lookup failed: {info}")
        rate = (data.get("quotes") or {}).get(f"{currency}INR")
        if not rate:
            raise RuntimeError(f"No INR quote for {currency}")
        return float(rate)

    async def historical_rate(self, currency: str, on: Optional[date] = None) -> float:
        currency = (currency or "INR").upper()
        if currency == "INR":
            return 1.0
        key = (currency, on.isoformat() if on else "latest")
        cached = self._cached(key)
        if cached is not None:
            return cached
        try:
            rate = await self._fetch_rate(currency, on)
        except (httpx.HTTPError, RuntimeError, ValueError) as e:
            rate = FALLBACK_RATES.get(currency, 1.0)
            logger.warning("FX lookup for %s on %s failed, using fallback %s: %s", currency, key[1], rate, e)
            # Fallbacks are not cached so the next call retries the API
            return rate
        self._store(key, rate)
        return rate

    async def convert_to_inr(self, amount: float, currency: str, on: Optional[date] = None) -> dict:
        rate = await self.historical_rate(currency, on)
        return {
            "amount": amount,
            "currency": (currency or "INR").upper(),
            "rate": rate,
            "amount_in_inr": round(amount * rate, 2),
        }

    def clear(self) -> None:
        self._cache.clear()


_converter: Optional[CurrencyConverter] = None


def get_currency_converter() -> CurrencyConverter:
    global _converter
    if _converter is None:
        _converter = CurrencyConverter()
    return _converter


def format_currency(amount: float, currency: str = "INR") -> str:
    code = (currency or "INR").upper()
    symbol = CURRENCY_SYMBOLS.get(code)
    if symbol:
        return f"{symbol}{amount:,.2f}"
    return f"{code} {amount:,.2f}"
