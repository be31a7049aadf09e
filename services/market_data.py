"""
Market data service used to value holdings at current prices.
Enhanced with tenacity for retry logic and resilience.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from functools import lru_cache
from typing import Dict, Iterable, Optional

import pandas as pd
import yfinance as yf
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from config import get_settings
from services.common import StableValueRegistry, normalize_symbol

logger = logging.getLogger(__name__)


class MarketDataService:
    """
    Default market data provider backed by yfinance.
    Crypto symbols are quoted against the configured quote currency (e.g., "BTC-USD").
    """

    @staticmethod
    def to_ticker(symbol: str) -> str:
        """Convert an asset symbol to its yfinance ticker."""
        symbol = normalize_symbol(symbol)
        quote = get_settings().quote_currency.upper()
        if symbol.endswith(f"-{quote}"):
            return symbol
        return f"{symbol}-{quote}"

    @staticmethod
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(Exception),
        reraise=True
    )
    def _fetch_ticker_history(ticker_symbol: str, period: str = "1d") -> pd.DataFrame:
        """Fetch ticker history with retry logic."""
        ticker = yf.Ticker(ticker_symbol)
        return ticker.history(period=period)

    @staticmethod
    @lru_cache(maxsize=256)
    def get_current_price(symbol: str) -> Optional[float]:
        """Fetch the current price of an asset with caching and retry logic."""
        registry = StableValueRegistry()
        if registry.is_stable_value(symbol):
            return registry.price

        try:
            ticker_symbol = MarketDataService.to_ticker(symbol)
            hist = MarketDataService._fetch_ticker_history(ticker_symbol, period="1d")
            if hist.empty:
                return None
            price = hist['Close'].iloc[-1]
            if pd.isna(price):
                return None
            return float(price)

        except Exception as e:
            logger.error(f"Error fetching price for {symbol}: {e}")
            return None

    @staticmethod
    def get_current_prices_batch(symbols: Iterable[str],
                                 max_workers: Optional[int] = None) -> Dict[str, Optional[float]]:
        """
        Fetch current prices for several assets in parallel.

        Args:
            symbols: Asset symbols
            max_workers: Thread pool size (default: from settings)

        Returns:
            Mapping of normalized symbol to price (None when unavailable)
        """
        symbols = sorted({normalize_symbol(s) for s in symbols if s})
        if not symbols:
            return {}
        max_workers = max_workers or get_settings().price_fetch_workers

        prices: Dict[str, Optional[float]] = {}
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            future_to_symbol = {
                executor.submit(MarketDataService.get_current_price, symbol): symbol
                for symbol in symbols
            }
            for future in as_completed(future_to_symbol):
                symbol = future_to_symbol[future]
                try:
                    prices[symbol] = future.result()
                except Exception as e:
                    logger.error(f"Error fetching price for {symbol}: {e}")
                    prices[symbol] = None
        return prices

    @staticmethod
    def clear_cache():
        """Drop cached prices so the next valuation fetches fresh quotes."""
        MarketDataService.get_current_price.cache_clear()
