"""
Walk-forward backtesting of forecasters
"""

from .engine import BacktestEngine, PortfolioState, step
from .metrics import benchmark_return, max_drawdown, sharpe_ratio, win_rate

__all__ = [
    'BacktestEngine',
    'PortfolioState',
    'step',
    'benchmark_return',
    'max_drawdown',
    'sharpe_ratio',
    'win_rate',
]
