"""Backtest performance metrics: drawdown, Sharpe, win rate, benchmark."""

from typing import List, Sequence, Union

import numpy as np
import pandas as pd

from models import EquityPoint, SignalAction, Trade

TRADING_DAYS_PER_YEAR = 252

EquityLike = Union[Sequence[float], Sequence[EquityPoint], pd.Series]


def _values(equity: EquityLike) -> np.ndarray:
    items = list(equity)
    if items and isinstance(items[0], EquityPoint):
        items = [p.value for p in items]
    return np.asarray(items, dtype=float)


def max_drawdown(equity: EquityLike) -> float:
    """Largest peak-to-trough decline as a positive fraction (0.25 = 25%)"""
    values = _values(equity)
    if len(values) == 0:
        return 0.0
    peaks = np.maximum.accumulate(values)
    with np.errstate(divide='ignore', invalid='ignore'):
        drawdowns = np.where(peaks > 0, (peaks - values) / peaks, 0.0)
    return float(drawdowns.max())


def daily_returns(equity: EquityLike) -> np.ndarray:
    """Simple returns between consecutive equity values, skipping non-positive bases"""
    values = _values(equity)
    if len(values) < 2:
        return np.array([])
    previous, current = values[:-1], values[1:]
    mask = previous > 0
    return (current[mask] - previous[mask]) / previous[mask]


def sharpe_ratio(equity: EquityLike, periods_per_year: int = TRADING_DAYS_PER_YEAR) -> float:
    """Annualised Sharpe (Rf=0) with the sample standard deviation"""
    returns = daily_returns(equity)
    if len(returns) < 2:
        return 0.0
    std = returns.std(ddof=1)
    if not std > 0:
        return 0.0
    return float(returns.mean() / std * np.sqrt(periods_per_year))


def win_rate(trades: List[Trade]) -> float:
    """
    Share of winning round trips.

    Trades are paired greedily: a BUY immediately followed by a SELL forms one
    round trip, won when the sale value exceeds the purchase value.
    """
    wins = 0
    completed = 0
    i = 0
    while i < len(trades) - 1:
        current, following = trades[i], trades[i + 1]
        if current.action == SignalAction.BUY and following.action == SignalAction.SELL:
            if following.price * following.shares > current.price * current.shares:
                wins += 1
            completed += 1
            i += 2
        else:
            i += 1
    return wins / completed if completed > 0 else 0.0


def benchmark_return(first_close: float, last_close: float) -> float:
    """Buy-and-hold return between two closes"""
    if first_close <= 0:
        return 0.0
    return (last_close - first_close) / first_close
