"""Birdeye OHLCV async client — candle source for the price analyzer."""

import logging
import time
from typing import Optional

import httpx

from solscalp.analysis.analyzer import analyze_candles
from solscalp.analysis.models import Candle, PriceAnalysis
from solscalp.config import Config
from solscalp.errors import MarketDataError
from solscalp.http_retry import request_with_retry

logger = logging.getLogger("solscalp.market")

BIRDEYE_BASE_URL = "https://public-api.birdeye.so"

SUPPORTED_INTERVALS = {"1m", "3m", "5m", "15m", "30m", "1H", "2H", "4H", "6H", "8H", "12H", "1D"}


class BirdeyeClient:
    """Async client for Birdeye's ``/defi/v3/ohlcv`` endpoint."""

    def __init__(self, config: Config, base_url: str = BIRDEYE_BASE_URL) -> None:
        self._base_url = base_url
        self._interval = config.candle_interval
        self._lookback_hours = config.candle_lookback_hours
        self._headers = {
            "X-API-KEY": config.birdeye_api_key,
            "x-chain": "solana",
            "accept": "application/json",
        }

    async def fetch_ohlcv(
        self,
        address: str,
        interval: str,
        time_from: int,
        time_to: int,
    ) -> list[Candle]:
        """Fetch OHLCV candles for *address* between two unix timestamps.

        Returns:
            List of ``Candle`` objects ordered oldest-first.

        Raises:
            MarketDataError: transport failure, non-2xx status, or a payload
                without ``success`` / ``data.items``.
        """
        if interval not in SUPPORTED_INTERVALS:
            raise MarketDataError(f"Unsupported candle interval: {interval}")

        url = f"{self._base_url}/defi/v3/ohlcv"
        params = {
            "address": address,
            "type": interval,
            "time_from": time_from,
            "time_to": time_to,
        }

        try:
            resp = await request_with_retry("Birdeye", "get", url, self._headers, params=params)
        except httpx.HTTPError as exc:
            raise MarketDataError(f"Birdeye OHLCV request failed: {exc}") from exc

        try:
            data = resp.json()
        except ValueError as exc:
            raise MarketDataError("Birdeye returned a non-JSON body") from exc

        if not data.get("success") or not isinstance(data.get("data"), dict):
            raise MarketDataError(
                f"Birdeye OHLCV unsuccessful for {address}: {data.get('message', 'no data')}"
            )

        candles: list[Candle] = []
        for item in data["data"].get("items") or []:
            try:
                candles.append(
                    Candle(
                        open=float(item["o"]),
                        high=float(item["h"]),
                        low=float(item["l"]),
                        close=float(item["c"]),
                        volume=float(item.get("v") or 0.0),
                        timestamp=int(item["unixTime"]),
                    )
                )
            except (KeyError, TypeError, ValueError) as exc:
                raise MarketDataError(f"Malformed Birdeye candle: {item!r}") from exc

        candles.sort(key=lambda c: c.timestamp)
        logger.debug("Fetched %d %s candles for %s", len(candles), interval, address)
        return candles

    async def fetch_recent_candles(
        self,
        address: str,
        now: Optional[int] = None,
    ) -> list[Candle]:
        """Fetch the configured trailing window (e.g. 24h of 15m candles)."""
        time_to = int(now if now is not None else time.time())
        time_from = time_to - self._lookback_hours * 3600
        return await self.fetch_ohlcv(address, self._interval, time_from, time_to)

    async def analyze_token(self, address: str) -> PriceAnalysis:
        """Fetch recent candles and run the full analysis.

        Raises:
            MarketDataError: the candle fetch failed.
            InsufficientDataError: fewer than 10 candles came back.
        """
        candles = await self.fetch_recent_candles(address)
        return analyze_candles(candles)
