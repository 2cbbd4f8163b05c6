"""
Technical indicators computed from bar series

These formulas feed the confidence scoring of every evaluator, so they are
kept exact rather than delegated to a TA library with different seeding.
"""
from dataclasses import dataclass
from typing import Dict, Sequence

import numpy as np
import pandas as pd

from hedgefund.core.types import Bar


def bars_to_frame(bars: Sequence[Bar]) -> pd.DataFrame:
    """Convert bars to a DataFrame indexed by timestamp, ascending"""
    frame = pd.DataFrame(
        {
            "timestamp": [b.timestamp for b in bars],
            "open": [float(b.open) for b in bars],
            "high": [float(b.high) for b in bars],
            "low": [float(b.low) for b in bars],
            "close": [float(b.close) for b in bars],
            "volume": [float(b.volume) for b in bars],
        }
    )
    return frame.sort_values("timestamp", kind="mergesort").reset_index(drop=True)


def sma(values: pd.Series, period: int) -> float:
    """Mean of the trailing ``period`` values (all values if fewer)"""
    tail = values.iloc[-period:]
    return float(tail.mean())


def ema_series(values: pd.Series, period: int) -> pd.Series:
    """EMA seeded with the first value, k = 2 / (period + 1)"""
    return values.ewm(span=period, adjust=False).mean()


def ema(values: pd.Series, period: int) -> float:
    return float(ema_series(values, period).iloc[-1])


def rsi(closes: pd.Series, period: int = 14) -> float:
    """
    Wilder RSI.

    Average gain/loss are seeded with the simple mean of the first ``period``
    changes and then smoothed as ``avg = (avg * (period - 1) + x) / period``.
    Returns 50 when there are not enough changes, 100 when there are no losses.
    """
    changes = np.diff(closes.to_numpy(dtype=float))
    if len(changes) < period:
        return 50.0

    gains = np.where(changes > 0, changes, 0.0)
    losses = np.where(changes < 0, -changes, 0.0)

    avg_gain = float(gains[:period].mean())
    avg_loss = float(losses[:period].mean())
    for gain, loss in zip(gains[period:], losses[period:]):
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period

    if avg_loss == 0:
        return 100.0 if avg_gain > 0 else 50.0
    rs = avg_gain / avg_loss
    return float(100 - 100 / (1 + rs))


@dataclass(frozen=True)
class MACD:
    value: float
    signal: float
    histogram: float


def macd(closes: pd.Series) -> MACD:
    """
    MACD line EMA(12) - EMA(26).

    The signal line is EMA(26) itself rather than EMA(9) of the MACD line;
    the confidence thresholds were tuned against this definition.
    """
    ema12 = ema(closes, 12)
    ema26 = ema(closes, 26)
    line = ema12 - ema26
    return MACD(value=line, signal=ema26, histogram=line - ema26)


def true_range(frame: pd.DataFrame) -> pd.Series:
    prev_close = frame["close"].shift(1)
    ranges = pd.concat(
        [
            frame["high"] - frame["low"],
            (frame["high"] - prev_close).abs(),
            (frame["low"] - prev_close).abs(),
        ],
        axis=1,
    )
    # First bar has no previous close
    return ranges.max(axis=1, skipna=False).iloc[1:]


def atr(frame: pd.DataFrame, period: int = 14) -> float:
    """Mean of the trailing ``period`` true ranges"""
    tr = true_range(frame)
    if tr.empty:
        return 0.0
    return float(tr.iloc[-period:].mean())


def volume_ratio(volumes: pd.Series, period: int = 20) -> float:
    avg = float(volumes.iloc[-period:].mean())
    if avg <= 0:
        return 1.0
    return float(volumes.iloc[-1]) / avg


def rate_of_change(closes: pd.Series, period: int) -> float:
    if len(closes) <= period:
        return 0.0
    base = float(closes.iloc[-period - 1])
    if base == 0:
        return 0.0
    return (float(closes.iloc[-1]) - base) / base


def zscore(closes: pd.Series, period: int) -> float:
    """Population z-score of the last close within the trailing window"""
    window = closes.iloc[-period:].to_numpy(dtype=float)
    std = float(window.std())
    if std == 0:
        return 0.0
    return (float(window[-1]) - float(window.mean())) / std


def annualized_volatility(closes: pd.Series, period: int = 20) -> float:
    returns = closes.pct_change().dropna().iloc[-period:].to_numpy(dtype=float)
    if len(returns) == 0:
        return 0.0
    return float(np.sqrt(np.mean(returns ** 2) * 252))


def snapshot(frame: pd.DataFrame) -> Dict[str, float]:
    """Common indicator snapshot shared by the evaluators"""
    closes = frame["close"]
    m = macd(closes)
    return {
        "price": float(closes.iloc[-1]),
        "rsi": rsi(closes, 14),
        "macd": m.value,
        "macd_signal": m.signal,
        "macd_histogram": m.histogram,
        "sma20": sma(closes, 20),
        "sma50": sma(closes, 50),
        "ema12": ema(closes, 12),
        "ema26": ema(closes, 26),
        "atr": atr(frame, 14),
        "volume_ratio": volume_ratio(frame["volume"], 20),
    }


def confidence_bonus(
    action: str,
    rsi_value: float,
    macd_histogram: float,
    trend_agrees: bool,
    volume_ratio_value: float,
) -> float:
    """Sum of the fixed confidence bonuses on top of the 0.5 baseline"""
    bonus = 0.0
    if action == "BUY":
        if rsi_value < 25:
            bonus += 0.15
        elif rsi_value < 35:
            bonus += 0.10
    elif action == "SELL":
        if rsi_value > 75:
            bonus += 0.15
        elif rsi_value > 65:
            bonus += 0.10

    if abs(macd_histogram) > 0.5:
        bonus += 0.10
    if trend_agrees:
        bonus += 0.10
    if volume_ratio_value > 1.5:
        bonus += 0.10
    return bonus
