import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

import pytest
import numpy as np
from datetime import date

from backtest.metrics import benchmark_return, daily_returns, max_drawdown, sharpe_ratio, win_rate
from models import EquityPoint, SignalAction, Trade


def trade(action, price, shares=10, day=1):
    return Trade(action=action, date=date(2024, 1, day), price=price, shares=shares, value=price * shares)


def test_max_drawdown():
    assert max_drawdown([100, 120, 90, 150]) == pytest.approx(0.25)


def test_max_drawdown_accepts_equity_points():
    curve = [EquityPoint(date=date(2024, 1, d + 1), value=v) for d, v in enumerate([100, 120, 90, 150])]
    assert max_drawdown(curve) == pytest.approx(0.25)


@pytest.mark.parametrize("values", [[], [100], [100, 110, 120]])
def test_no_drawdown(values):
    assert max_drawdown(values) == 0.0


def test_sharpe_ratio():
    values = [100, 101, 100.5, 102, 103]
    returns = daily_returns(values)
    expected = returns.mean() / returns.std(ddof=1) * np.sqrt(252)
    assert sharpe_ratio(values) == pytest.approx(expected)


@pytest.mark.parametrize("values", [[100], [100, 110], [100, 100, 100]])
def test_sharpe_degenerate(values):
    """Fewer than two returns or zero variance gives zero"""
    assert sharpe_ratio(values) == 0.0


def test_win_rate_single_win():
    trades = [trade(SignalAction.BUY, 10.0), trade(SignalAction.SELL, 12.0, day=2)]
    assert win_rate(trades) == 1.0


def test_win_rate_pairs_greedily():
    trades = [
        trade(SignalAction.BUY, 10.0),
        trade(SignalAction.SELL, 9.0, day=2),
        trade(SignalAction.SELL, 9.0, day=3),
        trade(SignalAction.BUY, 10.0, day=4),
        trade(SignalAction.SELL, 11.0, day=5),
        trade(SignalAction.BUY, 12.0, day=6),
    ]
    assert win_rate(trades) == pytest.approx(0.5)


def test_win_rate_without_round_trips():
    assert win_rate([]) == 0.0
    assert win_rate([trade(SignalAction.BUY, 10.0)]) == 0.0


def test_benchmark_return():
    assert benchmark_return(100.0, 125.0) == pytest.approx(0.25)
    assert benchmark_return(0.0, 125.0) == 0.0
