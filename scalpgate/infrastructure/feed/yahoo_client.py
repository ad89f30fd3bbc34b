"""
ScalpGate – Yahoo Finance Chart Client
========================================
Cliente HTTP del endpoint público de charts de Yahoo Finance.

  GET {base}/v8/finance/chart/{ticker}?interval=1m&range=1d

Respuesta: chart.result[0] con
  - timestamp[]                  (epoch segundos)
  - indicators.quote[0].{open,high,low,close,volume}[]
  - meta (regularMarketPrice, previousClose, marketState, ...)

Las filas con algún null se descartan. Cualquier fallo (red, timeout,
HTTP, payload malformado) se traduce a FeedUnavailableError; el Feed
Adapter decide el fallback.
"""

from __future__ import annotations

import time
from typing import List, Optional, Tuple

import httpx

from scalpgate.domain.entities.candle import Candle, Quote
from scalpgate.shared.logging.logger import get_logger

logger = get_logger("yahoo_client")


class FeedUnavailableError(Exception):
    """Fallo transitorio del proveedor. Nunca sale del Feed Adapter."""


class YahooChartClient:
    """Cliente async sobre httpx.AsyncClient con timeout fijo."""

    def __init__(
        self,
        base_url: str = "https://query1.finance.yahoo.com",
        timeout: float = 10.0,
        user_agent: str = "Mozilla/5.0",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._headers = {"User-Agent": user_agent}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        self._requests = 0
        self._errors = 0

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers=self._headers,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ════════════════════════════════════════════════════════════════
    #  FETCH
    # ════════════════════════════════════════════════════════════════

    async def fetch_chart(self, ticker: str, interval: str, range_: str) -> dict:
        """Descargar chart.result[0] o lanzar FeedUnavailableError."""
        self._requests += 1
        try:
            response = await self._get_client().get(
                f"/v8/finance/chart/{ticker}",
                params={"interval": interval, "range": range_},
            )
            response.raise_for_status()
            payload = response.json()
            if not isinstance(payload, dict):
                raise ValueError("payload no es un objeto JSON")
        except (httpx.HTTPError, ValueError) as e:
            self._errors += 1
            raise FeedUnavailableError(f"{ticker} {interval}/{range_}: {e}") from e

        chart = payload.get("chart") or {}
        results = chart.get("result") or []
        if chart.get("error") or not results:
            self._errors += 1
            raise FeedUnavailableError(f"{ticker}: respuesta sin resultados ({chart.get('error')})")
        return results[0]

    async def fetch_candles(self, ticker: str, interval: str, range_: str) -> Tuple[List[Candle], dict]:
        result = await self.fetch_chart(ticker, interval, range_)
        return self.parse_candles(result), result.get("meta") or {}

    # ════════════════════════════════════════════════════════════════
    #  PARSING
    # ════════════════════════════════════════════════════════════════

    @staticmethod
    def parse_candles(result: dict) -> List[Candle]:
        """Filas válidas de chart.result[0], ordenadas y sin duplicados."""
        try:
            timestamps = result.get("timestamp") or []
            quote = result["indicators"]["quote"][0]
        except (KeyError, IndexError, TypeError) as e:
            raise FeedUnavailableError(f"Payload malformado: {e}") from e

        opens = quote.get("open") or []
        highs = quote.get("high") or []
        lows = quote.get("low") or []
        closes = quote.get("close") or []
        volumes = quote.get("volume") or []

        candles: List[Candle] = []
        last_ts: Optional[float] = None
        for i, ts in enumerate(timestamps):
            try:
                row = (opens[i], highs[i], lows[i], closes[i])
            except IndexError:
                break
            if ts is None or any(v is None for v in row):
                continue
            if last_ts is not None and ts <= last_ts:
                continue
            volume = volumes[i] if i < len(volumes) and volumes[i] is not None else 0
            o, h, l, c = (float(v) for v in row)
            candles.append(Candle(
                timestamp=float(ts),
                open=o,
                high=max(h, o, c),
                low=min(l, o, c),
                close=c,
                volume=float(volume),
            ))
            last_ts = ts
        return candles

    @staticmethod
    def parse_quote(symbol: str, meta: dict, candles: List[Candle]) -> Quote:
        """Snapshot desde el bloque meta; la última vela completa huecos."""
        last = candles[-1] if candles else None
        price = meta.get("regularMarketPrice") or (last.close if last else None)
        if price is None:
            raise FeedUnavailableError(f"{symbol}: meta sin precio")
        prev_close = meta.get("previousClose") or meta.get("chartPreviousClose") or price
        return Quote(
            instrument=symbol,
            last_price=float(price),
            prev_close=float(prev_close),
            day_open=float(meta.get("regularMarketOpen") or (candles[0].open if candles else prev_close)),
            day_high=float(meta.get("regularMarketDayHigh") or price),
            day_low=float(meta.get("regularMarketDayLow") or price),
            volume=float(meta.get("regularMarketVolume") or 0),
            session_state=str(meta.get("marketState") or "CLOSED"),
            timestamp=float(meta.get("regularMarketTime") or time.time()),
            is_live=True,
        )

    @property
    def stats(self) -> dict:
        return {"requests": self._requests, "errors": self._errors}
