"""
Market Data Providers
---------------------

Concrete implementations of the `IMarketDataSource` port, one per
provider. Each one normalizes the provider's field names into `Candle`
objects and returns them sorted oldest -> newest.

The active provider is picked from configuration by
`create_market_data_source`.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from .domain import Candle
from .errors import ConfigurationError, DataFetchError
from .ports import IMarketDataSource

logger = logging.getLogger(__name__)


def _parse_time(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class _HttpMarketDataSource(IMarketDataSource):
    """
    Private base class holding the shared HTTP client and the
    request/decode plumbing.
    """

    provider_name = "market-data"

    def __init__(self,
                 api_key: str,
                 base_url: str,
                 http_client: Optional[httpx.AsyncClient] = None,
                 timeout: float = 30.0):
        self._api_key = api_key
        self._base_url = base_url
        # Use a single, persistent async client
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)

    async def _get_json(self, params: Dict[str, str]) -> Any:
        logger.info(f"Requesting candles from {self.provider_name}: {params.get('symbol') or params.get('from_symbol')}")
        try:
            response = await self._http_client.get(self._base_url, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise DataFetchError(
                f"{self.provider_name} request failed with status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise DataFetchError(f"{self.provider_name} request failed: {e}") from e
        except ValueError as e:
            raise DataFetchError(f"{self.provider_name} returned invalid JSON") from e

    async def close(self):
        """Closes the underlying HTTP client."""
        await self._http_client.aclose()


class AlphaVantageDataSource(_HttpMarketDataSource):
    """FX intraday series from AlphaVantage."""

    provider_name = "AlphaVantage"

    def __init__(self, api_key: str, base_url: str = "https://www.alphavantage.co/query", **kwargs):
        super().__init__(api_key=api_key, base_url=base_url, **kwargs)

    async def fetch(self, symbol: str, interval: str = "5min", size: str = "compact") -> List[Candle]:
        data = await self._get_json({
            "function": "FX_INTRADAY",
            "from_symbol": symbol[:3],
            "to_symbol": symbol[3:],
            "interval": interval,
            "outputsize": size,
            "apikey": self._api_key,
        })

        series = data.get(f"Time Series FX ({interval})") if isinstance(data, dict) else None
        if not isinstance(series, dict):
            raise DataFetchError("Unexpected AlphaVantage payload")

        try:
            candles = [
                Candle(
                    time=_parse_time(time),
                    open=float(values["1. open"]),
                    high=float(values["2. high"]),
                    low=float(values["3. low"]),
                    close=float(values["4. close"]),
                    volume=float(values.get("5. volume", "0")),
                )
                for time, values in series.items()
            ]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise DataFetchError(f"Unexpected AlphaVantage candle format: {e}") from e

        return sorted(candles, key=lambda c: c.time)


class TwelveDataSource(_HttpMarketDataSource):
    """Time series from Twelve Data."""

    provider_name = "TwelveData"

    def __init__(self, api_key: str, base_url: str = "https://api.twelvedata.com/time_series", **kwargs):
        super().__init__(api_key=api_key, base_url=base_url, **kwargs)

    async def fetch(self, symbol: str, interval: str = "5min", size: str = "compact") -> List[Candle]:
        data = await self._get_json({
            "symbol": symbol,
            "interval": interval,
            "apikey": self._api_key,
            "outputsize": "5000" if size == "full" else "100",
        })

        values = data.get("values") if isinstance(data, dict) else None
        if not isinstance(values, list):
            raise DataFetchError("Unexpected TwelveData payload")

        try:
            candles = [
                Candle(
                    time=_parse_time(entry["datetime"]),
                    open=float(entry["open"]),
                    high=float(entry["high"]),
                    low=float(entry["low"]),
                    close=float(entry["close"]),
                    volume=float(entry.get("volume") or 0),
                )
                for entry in values
            ]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise DataFetchError(f"Unexpected TwelveData candle format: {e}") from e

        return sorted(candles, key=lambda c: c.time)


PROVIDERS = {
    "alphavantage": AlphaVantageDataSource,
    "twelve-data": TwelveDataSource,
}


def create_market_data_source(provider: str,
                              api_key: Optional[str],
                              **kwargs) -> _HttpMarketDataSource:
    """Selects the market-data implementation by provider name."""
    source_cls = PROVIDERS.get(provider)
    if source_cls is None:
        raise ConfigurationError(f"Unknown market data provider: {provider!r}")
    if not api_key:
        raise ConfigurationError(f"An API key is required for market data provider {provider!r}")
    return source_cls(api_key=api_key, **kwargs)
