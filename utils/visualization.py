from typing import List, Optional
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from pathlib import Path
import logging

from models import BacktestResult, PredictionResult, PricePoint, SignalAction, points_to_frame

logger = logging.getLogger(__name__)


class BacktestVisualizer:
    """Diagnostic plots for predictions and backtests"""

    def __init__(self, style: str = 'seaborn-v0_8-darkgrid', history_tail: int = 120):
        """
        Initialize visualizer

        Parameters:
        -----------
        style : str
            Matplotlib style to use.
            Available styles can be listed with `plt.style.available`
        history_tail : int
            Number of trailing history points drawn before a forecast
        """
        try:
            plt.style.use(style)
        except OSError:
            try:
                sns.set_theme(style='darkgrid')
            except ValueError:
                plt.style.use('default')
            logger.warning(f"Style '{style}' not found, using seaborn theme")

        self.history_tail = history_tail
        self.colors = sns.color_palette()

    def plot_prediction(self,
                        history: List[PricePoint],
                        prediction: PredictionResult,
                        title: Optional[str] = None,
                        save_path: Optional[Path] = None) -> plt.Figure:
        """
        Plot the history tail, the mean forecast path and its 95% band

        Parameters:
        -----------
        history : list of PricePoint
            Context the prediction was made from
        prediction : PredictionResult
            Forecast with per-day bounds
        title : str, optional
            Plot title
        save_path : Path, optional
            Path to save figure
        """
        if not history or not prediction.predicted_data:
            raise ValueError("Empty input data")

        tail = points_to_frame(history).iloc[-self.history_tail:]
        forecast = pd.DataFrame(
            [(p.date, p.price, p.lower_bound, p.upper_bound) for p in prediction.predicted_data],
            columns=['date', 'price', 'lower', 'upper'],
        )
        forecast['date'] = pd.to_datetime(forecast['date'])

        fig, ax = plt.subplots(figsize=(12, 6))
        ax.plot(tail.index, tail['close'], label='Close', color=self.colors[0])
        ax.plot(forecast['date'], forecast['price'], label='Forecast', color=self.colors[1], linestyle='--')
        ax.fill_between(forecast['date'], forecast['lower'], forecast['upper'],
                        color=self.colors[1], alpha=0.2, label='95% interval')

        ax.set_xlabel('Date')
        ax.set_ylabel('Price')
        ax.set_title(title or f"{prediction.symbol}: {prediction.percent_change*100:+.2f}% "
                              f"(confidence {prediction.confidence*100:.0f}%)")
        ax.legend()
        fig.autofmt_xdate()

        if save_path:
            fig.savefig(save_path)

        return fig

    def plot_equity_curve(self,
                          result: BacktestResult,
                          history: Optional[List[PricePoint]] = None,
                          title: Optional[str] = None,
                          save_path: Optional[Path] = None) -> plt.Figure:
        """
        Plot strategy equity against buy-and-hold, with trade markers

        Parameters:
        -----------
        result : BacktestResult
            Backtest output
        history : list of PricePoint, optional
            Price history; enables the buy-and-hold line
        title : str, optional
            Plot title
        save_path : Path, optional
            Path to save figure
        """
        if not result.equity_curve:
            raise ValueError("Empty equity curve")

        equity = result.to_frame()['value']

        fig, (ax_equity, ax_dd) = plt.subplots(
            2, 1, figsize=(12, 8), sharex=True, gridspec_kw={'height_ratios': [3, 1]}
        )
        ax_equity.plot(equity.index, equity.values, label='Strategy', color=self.colors[0])

        if history:
            closes = points_to_frame(history)['close'].reindex(equity.index)
            if closes.notna().any():
                first = closes.dropna().iloc[0]
                ax_equity.plot(closes.index, result.initial_value * closes / first,
                               label='Buy & hold', color=self.colors[1], alpha=0.8)

        for action, marker, color in ((SignalAction.BUY, '^', 'green'), (SignalAction.SELL, 'v', 'red')):
            dates = pd.to_datetime([t.date for t in result.trades if t.action == action])
            if len(dates):
                values = equity.reindex(dates, method='ffill')
                ax_equity.scatter(dates, values, marker=marker, color=color, label=action.value, zorder=3)

        ax_equity.set_ylabel('Portfolio value')
        ax_equity.set_title(title or f"Return {result.total_return*100:.2f}% "
                                     f"(benchmark {result.benchmark_return*100:.2f}%)")
        ax_equity.legend()

        peaks = np.maximum.accumulate(equity.values)
        drawdown = (equity.values - peaks) / peaks
        ax_dd.fill_between(equity.index, drawdown * 100, 0, color='red', alpha=0.3)
        ax_dd.set_ylabel('Drawdown (%)')
        ax_dd.set_xlabel('Date')

        plt.tight_layout()

        if save_path:
            fig.savefig(save_path)

        return fig

    def close_all(self):
        """Close all open figures"""
        plt.close('all')
