import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

import pytest
import numpy as np
from datetime import date, timedelta

from forecast.base import Forecaster
from models import ForecastMetrics, ModelMetadata, PricePoint


def make_points(n, start=date(2023, 1, 2), start_price=100.0, daily_return=0.001,
                vol=0.0, seed=42, step_days=1):
    """Daily bars with open = previous close, geometric drift plus optional noise"""
    rng = np.random.default_rng(seed)
    points = []
    close = start_price
    for i in range(n):
        open_ = close
        close = close * (1 + daily_return + (rng.normal(0, vol) if vol > 0 else 0.0))
        points.append(PricePoint(
            date=start + timedelta(days=i * step_days),
            open=open_,
            high=max(open_, close) * 1.005,
            low=min(open_, close) * 0.995,
            close=close,
            adj_close=close,
            volume=1_000_000 + i,
        ))
    return points


class FakeForecaster(Forecaster):
    """Deterministic forecaster: compounds the last close by a fixed daily drift"""

    def __init__(self, symbol='TEST', window_size=10, loss=0.01, mape=0.05,
                 drift=0.0, noise=0.0, seed=0, trained=False):
        super().__init__(symbol, window_size)
        self.loss = loss
        self.mape = mape
        self.drift = drift
        self.noise = noise
        self.rng = np.random.default_rng(seed)
        self.trained = trained
        self.predict_calls = []

    def train(self, series, config=None, on_epoch=None, features=None):
        self.trained = True
        if on_epoch is not None:
            on_epoch(1, self.loss)
        return ForecastMetrics(loss=self.loss, mape=self.mape, is_valid=self.loss < 1,
                               data_points=len(series), window_size=self.window_size)

    def predict(self, series, horizon, features=None, training=False):
        self.predict_calls.append((len(series), series[-1].date, len(features or [])))
        last = series[-1].close
        path = [last * (1 + self.drift) ** (h + 1) for h in range(horizon)]
        if training and self.noise > 0:
            path = [p * (1 + self.rng.normal(0, self.noise)) for p in path]
        return path

    def evaluate(self, series, config=None, features=None):
        return ForecastMetrics(loss=self.loss, mape=self.mape, is_valid=self.loss < 1,
                               data_points=len(series), window_size=self.window_size)

    def is_trained(self):
        return self.trained

    def get_metadata(self):
        if not self.trained:
            return None
        return ModelMetadata(symbol=self.symbol, architecture='fake', loss=self.loss,
                             data_points=0, window_size=self.window_size, mape=self.mape)


@pytest.fixture
def series_factory():
    """Factory for synthetic daily price series"""
    return make_points


@pytest.fixture
def fake_forecaster_cls():
    return FakeForecaster
