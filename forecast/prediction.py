"""
Uncertainty-quantified multi-day prediction and trading signals.
"""

import logging
from datetime import timedelta
from typing import Callable, List, Optional

import numpy as np
import pandas as pd

from config import PredictionConfig
from errors import PredictionError
from models import (ForecastPoint, MarketFeatures, PredictionResult, PricePoint,
                    SignalAction, TradingSignal)
from utils.interrupt import CancellationToken
from .base import Forecaster

logger = logging.getLogger(__name__)

Z_95 = 1.96
DEFAULT_MAPE = 0.2
MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 0.95

ProgressCallback = Callable[[int, int], None]


def confidence_from_mape(mape: Optional[float]) -> float:
    """clamp(1 - mape, 0.1, 0.95); mape defaults to 0.2 when unknown"""
    if mape is None:
        mape = DEFAULT_MAPE
    return float(min(MAX_CONFIDENCE, max(MIN_CONFIDENCE, 1 - mape)))


def forecast_dates(last_date, horizon: int) -> List:
    """The ``horizon`` business days following ``last_date``"""
    days = pd.bdate_range(start=last_date + timedelta(days=1), periods=horizon)
    return [d.date() for d in days]


class PredictionEngine:
    """Monte-Carlo forecasts from the stochastic predict path of a forecaster"""

    def __init__(self, iterations: int = 30, cancel_token: Optional[CancellationToken] = None):
        """
        Args:
            iterations: Number of sampled paths per prediction
            cancel_token: Checked before each sample
        """
        if iterations < 1:
            raise PredictionError(f"iterations must be >= 1, got {iterations}")
        self.iterations = iterations
        self.cancel_token = cancel_token

    def sample_paths(self, forecaster: Forecaster, history: List[PricePoint], horizon: int,
                     features: Optional[List[MarketFeatures]] = None,
                     on_progress: Optional[ProgressCallback] = None) -> np.ndarray:
        """Stack ``iterations`` stochastic paths into an (iterations x horizon) array"""
        samples = []
        for i in range(self.iterations):
            if self.cancel_token is not None:
                self.cancel_token.raise_if_cancelled(forecaster.symbol)
            path = forecaster.predict(history, horizon, features=features, training=True)
            if len(path) != horizon:
                raise PredictionError(
                    f"Forecaster returned {len(path)} values for a {horizon}-day horizon",
                    symbol=forecaster.symbol,
                )
            if not np.all(np.isfinite(path)):
                raise PredictionError(
                    f"Forecaster returned non-finite prices for {forecaster.symbol}",
                    symbol=forecaster.symbol,
                )
            samples.append(path)
            if on_progress is not None:
                on_progress(i + 1, self.iterations)
        return np.array(samples, dtype=float)

    def predict(self, forecaster: Forecaster, history: List[PricePoint], horizon: int,
                features: Optional[List[MarketFeatures]] = None,
                on_progress: Optional[ProgressCallback] = None) -> PredictionResult:
        """
        Mean path with a 95% interval from repeated stochastic forecasts.

        Args:
            forecaster: Trained single model or ensemble
            history: Context series, the last point is "today"
            horizon: Number of business days to forecast
            features: Market features aligned with ``history``
            on_progress: Called as on_progress(sample, iterations)

        Returns:
            PredictionResult with bounds taken from the final forecast day
        """
        symbol = forecaster.symbol
        if not forecaster.is_trained():
            raise PredictionError(f"Model for {symbol} is not trained", symbol=symbol)
        if len(history) < forecaster.window_size:
            raise PredictionError(
                f"Insufficient data: need at least {forecaster.window_size} points, got {len(history)}",
                symbol=symbol,
            )
        if horizon < 1:
            raise PredictionError(f"Horizon must be >= 1, got {horizon}", symbol=symbol)

        samples = self.sample_paths(forecaster, history, horizon, features, on_progress)
        mean = samples.mean(axis=0)
        std = samples.std(axis=0)
        lower = mean - Z_95 * std
        upper = mean + Z_95 * std

        metadata = forecaster.get_metadata()
        confidence = confidence_from_mape(metadata.mape if metadata is not None else None)

        current_price = history[-1].close
        percent_change = float((mean[-1] - current_price) / current_price)

        dates = forecast_dates(history[-1].date, horizon)
        predicted_data = [
            ForecastPoint(date=d, price=float(p), lower_bound=float(lo), upper_bound=float(hi))
            for d, p, lo, hi in zip(dates, mean, lower, upper)
        ]

        logger.debug(
            f"{symbol}: {horizon}-day forecast {mean[-1]:.2f} "
            f"[{lower[-1]:.2f}, {upper[-1]:.2f}] from {current_price:.2f}, confidence={confidence:.2f}"
        )
        return PredictionResult(
            symbol=symbol,
            current_price=current_price,
            predicted_prices=[float(p) for p in mean],
            lower_bound=float(lower[-1]),
            upper_bound=float(upper[-1]),
            confidence=confidence,
            percent_change=percent_change,
            predicted_data=predicted_data,
        )


def generate_signal(prediction: PredictionResult, thresholds: PredictionConfig) -> TradingSignal:
    """Map a prediction to BUY / SELL / HOLD using the configured thresholds"""
    delta = prediction.percent_change
    confidence = prediction.confidence

    if confidence < thresholds.min_confidence:
        action = SignalAction.HOLD
        reason = f"Low confidence: {confidence * 100:.0f}%"
    elif delta >= thresholds.buy_threshold:
        action = SignalAction.BUY
        reason = f"Expected +{delta * 100:.2f}% gain"
    elif delta <= thresholds.sell_threshold:
        action = SignalAction.SELL
        reason = f"Expected {delta * 100:.2f}% loss"
    else:
        action = SignalAction.HOLD
        reason = "Neutral signal - within thresholds"

    return TradingSignal(action=action, confidence=confidence, delta=delta, reason=reason)
