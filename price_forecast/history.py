import yfinance as yf
import numpy as np
import pandas as pd
import time
import logging
from typing import List

from .entities import PricePoint
from .exceptions import InvalidInputError


def prices_from_frame(df: pd.DataFrame, price_col: str = "Close") -> List[PricePoint]:
    """
    Convert a price DataFrame indexed by date into PricePoints

    Rows without a price are dropped, the result is sorted by timestamp
    (epoch milliseconds) and duplicate timestamps keep the last row.
    """
    if df is None or df.empty:
        return []

    series = df[price_col].dropna()
    index = pd.to_datetime(series.index)
    if index.tz is None:
        index = index.tz_localize("UTC")

    epoch = pd.Timestamp("1970-01-01", tz="UTC")
    timestamps = (index.tz_convert("UTC") - epoch) // pd.Timedelta(milliseconds=1)
    frame = pd.DataFrame({"timestamp": np.asarray(timestamps, dtype=np.int64), "price": series.to_numpy(dtype=float)})
    frame = frame.drop_duplicates(subset="timestamp", keep="last").sort_values("timestamp")

    return [PricePoint(timestamp=int(ts), price=float(price))
            for ts, price in zip(frame["timestamp"], frame["price"])]


class YFinanceHistorySource:
    """Daily price history from yfinance with retry"""

    def __init__(self, max_retries: int = 3, backoff: float = 1.0):
        self.max_retries = max_retries
        self.backoff = backoff
        self.logger = logging.getLogger(__name__)

    def fetch_history(self, symbol: str = "BTC-USD", days: int = 365) -> List[PricePoint]:
        """Fetch the last ``days`` daily closes for ``symbol``, oldest first"""

        for attempt in range(self.max_retries):
            try:
                ticker_obj = yf.Ticker(symbol)
                df = ticker_obj.history(
                    period=f"{days}d",
                    interval="1d",
                    auto_adjust=False
                )

                if df is None or df.empty:
                    raise InvalidInputError(f"No price history returned for {symbol}")

                points = prices_from_frame(df)
                self.logger.info(f"{symbol}: {len(points)} daily prices fetched")
                return points

            except InvalidInputError:
                self.logger.warning(f"No data for {symbol}")
                raise

            except Exception as e:
                self.logger.warning(
                    f"Attempt {attempt + 1}/{self.max_retries} failed for {symbol}: {e}"
                )

                if attempt < self.max_retries - 1:
                    sleep_time = self.backoff * (2 ** attempt)
                    time.sleep(sleep_time)
                else:
                    self.logger.error(f"Failed to fetch {symbol} after {self.max_retries} attempts")
                    raise
        return []
