"""
Walk-forward backtest.

For each day of the test window a prediction is made from the trailing
context only; the resulting signal is executed at the next day's open.
"""

import logging
import math
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Tuple

from config import EngineConfig
from errors import DataError
from forecast.base import Forecaster
from forecast.prediction import PredictionEngine, generate_signal
from models import (BacktestResult, EquityPoint, MarketFeatures, PricePoint,
                    SignalAction, Trade, TradingSignal)
from utils.interrupt import CancellationToken
from .metrics import benchmark_return, max_drawdown, sharpe_ratio, win_rate

logger = logging.getLogger(__name__)

# Context passed to each prediction, in multiples of the model window
CONTEXT_WINDOWS = 4

ProgressCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class PortfolioState:
    """Cash, open position and executed trades at one point of the simulation"""
    cash: float
    shares: int = 0
    trades: Tuple[Trade, ...] = ()

    def value(self, price: float) -> float:
        return self.cash + self.shares * price


def step(state: PortfolioState, signal: TradingSignal,
         next_day: PricePoint, cost_rate: float) -> PortfolioState:
    """
    Apply a signal at ``next_day``'s open.

    BUY spends all cash (less the transaction cost) on whole shares; SELL
    liquidates the position. Anything else leaves the state unchanged.
    """
    price = next_day.open
    if signal.action == SignalAction.BUY and state.cash > 0:
        cost = state.cash * cost_rate
        shares = math.floor((state.cash - cost) / price)
        if shares <= 0:
            return state
        value = shares * price
        trade = Trade(action=SignalAction.BUY, date=next_day.date, price=price, shares=shares, value=value)
        return replace(
            state,
            cash=state.cash - value - cost,
            shares=state.shares + shares,
            trades=state.trades + (trade,),
        )

    if signal.action == SignalAction.SELL and state.shares > 0:
        value = state.shares * price
        cost = value * cost_rate
        trade = Trade(action=SignalAction.SELL, date=next_day.date, price=price, shares=state.shares, value=value)
        return replace(
            state,
            cash=state.cash + value - cost,
            shares=0,
            trades=state.trades + (trade,),
        )

    return state


class BacktestEngine:
    """Replays a trained forecaster over the tail of a price history"""

    def __init__(self, prediction_engine: PredictionEngine, config: Optional[EngineConfig] = None,
                 cancel_token: Optional[CancellationToken] = None):
        self.prediction_engine = prediction_engine
        self.config = config or EngineConfig()
        self.cancel_token = cancel_token
        self.logger = logging.getLogger('backtest.engine')

    def start_index(self, history_length: int, days: int, window_size: int) -> int:
        """First simulated day; the test window shrinks when history is short"""
        actual_days = days
        if history_length < window_size + days:
            actual_days = history_length - window_size - 1
        if actual_days <= 0:
            raise DataError(f"Insufficient data to run backtest. Need at least {window_size + 1} points.")
        return history_length - actual_days - 1

    def run(self, symbol: str, forecaster: Forecaster, history: List[PricePoint],
            features: Optional[List[MarketFeatures]] = None,
            days: Optional[int] = None,
            on_progress: Optional[ProgressCallback] = None) -> BacktestResult:
        """
        Run a walk-forward backtest.

        Args:
            symbol: Ticker under test
            forecaster: Trained forecaster
            history: Full quality-checked history, ascending
            features: Market features for the same symbol
            days: Length of the test window (defaults to config.backtest.days)
            on_progress: Called as on_progress(current_day, total_days)

        Returns:
            BacktestResult with equity curve, trades and performance metrics
        """
        days = days if days is not None else self.config.backtest.days
        window_size = forecaster.window_size
        try:
            start = self.start_index(len(history), days, window_size)
        except DataError as e:
            raise DataError(e.message, symbol=symbol) from None

        features = features or []
        initial_value = self.config.backtest.initial_capital
        state = PortfolioState(cash=initial_value)
        equity_curve: List[EquityPoint] = []
        total = len(history) - start

        self.logger.info(f"Backtesting {symbol} over {total} days from {history[start].date}")
        for i in range(start, len(history)):
            if self.cancel_token is not None:
                self.cancel_token.raise_if_cancelled(symbol)
            if on_progress is not None:
                on_progress(i - start + 1, total)

            today = history[i]
            if i < len(history) - 1:
                signal = self._signal_for_day(forecaster, history, features, i)
                state = step(state, signal, history[i + 1], self.config.backtest.transaction_cost)

            equity_curve.append(EquityPoint(date=today.date, value=state.value(today.close)))

        final_value = equity_curve[-1].value if equity_curve else initial_value
        total_return = (final_value - initial_value) / initial_value
        benchmark = benchmark_return(history[start].close, history[-1].close)
        trades = list(state.trades)

        result = BacktestResult(
            equity_curve=equity_curve,
            trades=trades,
            total_return=total_return,
            benchmark_return=benchmark,
            alpha=total_return - benchmark,
            drawdown=max_drawdown(equity_curve),
            sharpe_ratio=sharpe_ratio(equity_curve),
            win_rate=win_rate(trades),
            final_value=final_value,
            initial_value=initial_value,
        )
        self.logger.info(
            f"{symbol}: return={total_return*100:.2f}% vs benchmark={benchmark*100:.2f}%, "
            f"drawdown={result.drawdown*100:.2f}%, sharpe={result.sharpe_ratio:.2f}, trades={len(trades)}"
        )
        return result

    def _signal_for_day(self, forecaster: Forecaster, history: List[PricePoint],
                        features: List[MarketFeatures], index: int) -> TradingSignal:
        context_start = max(0, index + 1 - forecaster.window_size * CONTEXT_WINDOWS)
        context = history[context_start:index + 1]
        first_date, today = context[0].date, context[-1].date
        context_features = [f for f in features if first_date <= f.date <= today]

        prediction = self.prediction_engine.predict(
            forecaster, context, self.config.prediction.days, features=context_features
        )
        signal = generate_signal(prediction, self.config.prediction)
        self.logger.debug(f"{today}: {signal.action.value} ({signal.reason})")
        return signal
