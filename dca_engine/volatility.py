# volatility.py
from __future__ import annotations
from typing import Optional, Tuple
import numpy as np
import pandas as pd

from dca_engine.config import ATR_PERIODS, DEFAULT_ATR_PERCENT


def _ohlc_columns(candles: pd.DataFrame) -> Tuple[str, str, str]:
    """Map High/Low/Close case-insensitively (lowercase exchange klines or capitalised OHLC frames)."""
    lookup = {str(c).lower(): c for c in candles.columns}
    try:
        return lookup["high"], lookup["low"], lookup["close"]
    except KeyError as e:
        raise ValueError(f"Candles are missing column {e.args[0]!r}") from None


def compute_atr_percent(candles: pd.DataFrame, periods: int = ATR_PERIODS) -> Optional[float]:
    """
    ATR as a percentage of the last close.

    TR = max(H - L, |H - prevC|, |L - prevC|); ATR is the simple mean of the
    last ``periods`` true ranges (the first row only seeds prevC).
    Returns None when there is not enough data to measure volatility.
    """
    if periods < 1:
        raise ValueError(f"periods ({periods}) must be >= 1")
    if candles is None or len(candles) < 2:
        return None

    high_col, low_col, close_col = _ohlc_columns(candles)
    high = candles[high_col].astype(float)
    low = candles[low_col].astype(float)
    close = candles[close_col].astype(float)
    prev_close = close.shift(1)

    true_range = pd.concat(
        [high - low, (high - prev_close).abs(), (low - prev_close).abs()], axis=1
    ).max(axis=1, skipna=False).iloc[1:]
    true_range = true_range.dropna().tail(periods)
    if true_range.empty:
        return None

    last_close = float(close.iloc[-1])
    if not np.isfinite(last_close) or last_close <= 0:
        return None

    atr = float(true_range.mean())
    return atr / last_close * 100.0


def resolve_atr_percent(value: Optional[float], default: float = DEFAULT_ATR_PERCENT) -> Tuple[float, bool]:
    """Return (atr_percent, substituted). Missing, NaN or non-positive ATR falls back to ``default``."""
    if value is None:
        return default, True
    try:
        atr = float(value)
    except (TypeError, ValueError):
        return default, True
    if np.isnan(atr) or not np.isfinite(atr) or atr <= 0:
        return default, True
    return atr, False
