import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

import pytest
from datetime import date

from config import PredictionConfig
from errors import OperationCancelled, PredictionError
from forecast.prediction import PredictionEngine, confidence_from_mape, forecast_dates, generate_signal
from models import PredictionResult, SignalAction
from utils.interrupt import CancellationToken


def make_prediction(percent_change, confidence):
    return PredictionResult(
        symbol='TEST',
        current_price=100.0,
        predicted_prices=[100.0 * (1 + percent_change)],
        lower_bound=90.0,
        upper_bound=110.0,
        confidence=confidence,
        percent_change=percent_change,
        predicted_data=[],
    )


@pytest.fixture
def thresholds():
    return PredictionConfig(buy_threshold=0.05, sell_threshold=-0.05, min_confidence=0.6)


@pytest.fixture
def history(series_factory):
    # 2023-01-02 is a Monday; 40 daily points end on Friday 2023-02-10
    return series_factory(40)


def test_buy_signal(thresholds):
    signal = generate_signal(make_prediction(0.10, 0.8), thresholds)
    assert signal.action == SignalAction.BUY
    assert signal.delta == pytest.approx(0.10)
    assert signal.confidence == pytest.approx(0.8)


def test_sell_signal(thresholds):
    signal = generate_signal(make_prediction(-0.08, 0.9), thresholds)
    assert signal.action == SignalAction.SELL


def test_thresholds_inclusive(thresholds):
    assert generate_signal(make_prediction(0.05, 0.6), thresholds).action == SignalAction.BUY
    assert generate_signal(make_prediction(-0.05, 0.6), thresholds).action == SignalAction.SELL


def test_hold_reasons(thresholds):
    low_confidence = generate_signal(make_prediction(0.10, 0.5), thresholds)
    neutral = generate_signal(make_prediction(0.01, 0.9), thresholds)

    assert low_confidence.action == SignalAction.HOLD
    assert 'confidence' in low_confidence.reason.lower()
    assert neutral.action == SignalAction.HOLD
    assert 'neutral' in neutral.reason.lower()


def test_signal_is_pure(thresholds):
    prediction = make_prediction(0.07, 0.7)
    assert generate_signal(prediction, thresholds) == generate_signal(prediction, thresholds)
    assert prediction.percent_change == 0.07


def test_confidence_clamped():
    assert confidence_from_mape(None) == pytest.approx(0.8)
    assert confidence_from_mape(0.0) == pytest.approx(0.95)
    assert confidence_from_mape(2.0) == pytest.approx(0.1)
    assert confidence_from_mape(0.3) == pytest.approx(0.7)


def test_forecast_dates_skip_weekends():
    dates = forecast_dates(date(2023, 2, 10), 3)
    assert dates == [date(2023, 2, 13), date(2023, 2, 14), date(2023, 2, 15)]


def test_deterministic_forecaster_has_zero_width(fake_forecaster_cls, history):
    forecaster = fake_forecaster_cls(drift=0.01, mape=0.1, trained=True)
    result = PredictionEngine(iterations=5).predict(forecaster, history, 3)

    last = history[-1].close
    assert result.current_price == last
    assert result.predicted_prices == pytest.approx([last * 1.01, last * 1.01 ** 2, last * 1.01 ** 3])
    assert result.lower_bound == pytest.approx(result.upper_bound)
    assert result.percent_change == pytest.approx(1.01 ** 3 - 1)
    assert result.confidence == pytest.approx(0.9)
    assert [p.date for p in result.predicted_data] == forecast_dates(history[-1].date, 3)
    assert len(forecaster.predict_calls) == 5


def test_interval_from_samples(fake_forecaster_cls, history):
    forecaster = fake_forecaster_cls(noise=0.02, seed=3, trained=True)
    result = PredictionEngine(iterations=50).predict(forecaster, history, 4)

    assert result.lower_bound < result.predicted_prices[-1] < result.upper_bound
    for point in result.predicted_data:
        assert point.lower_bound <= point.price <= point.upper_bound


def test_sample_statistics(fake_forecaster_cls, history):
    forecaster = fake_forecaster_cls(noise=0.02, seed=3, trained=True)
    engine = PredictionEngine(iterations=20)
    samples = engine.sample_paths(fake_forecaster_cls(noise=0.02, seed=3, trained=True), history, 4)
    result = engine.predict(forecaster, history, 4)

    assert samples.shape == (20, 4)
    assert result.predicted_prices == pytest.approx(samples.mean(axis=0).tolist())
    assert result.upper_bound == pytest.approx(samples[:, -1].mean() + 1.96 * samples[:, -1].std())


def test_progress_callback(fake_forecaster_cls, history):
    calls = []
    forecaster = fake_forecaster_cls(trained=True)
    PredictionEngine(iterations=3).predict(forecaster, history, 2, on_progress=lambda c, t: calls.append((c, t)))
    assert calls == [(1, 3), (2, 3), (3, 3)]


def test_untrained_forecaster_rejected(fake_forecaster_cls, history):
    with pytest.raises(PredictionError, match="not trained") as exc_info:
        PredictionEngine().predict(fake_forecaster_cls(symbol='IBM'), history, 5)
    assert exc_info.value.symbol == 'IBM'


def test_insufficient_history(fake_forecaster_cls, history):
    forecaster = fake_forecaster_cls(window_size=30, trained=True)
    with pytest.raises(PredictionError, match="at least 30"):
        PredictionEngine().predict(forecaster, history[:29], 5)


def test_cancellation(fake_forecaster_cls, history):
    token = CancellationToken()
    token.cancel()
    with pytest.raises(OperationCancelled):
        PredictionEngine(iterations=5, cancel_token=token).predict(
            fake_forecaster_cls(trained=True), history, 3
        )


def test_non_finite_path_rejected(fake_forecaster_cls, history):
    class Diverging(fake_forecaster_cls):
        def predict(self, series, horizon, features=None, training=False):
            return [float('nan')] * horizon

    with pytest.raises(PredictionError, match="non-finite") as exc_info:
        PredictionEngine(iterations=3).predict(Diverging(symbol='NFLX', trained=True), history, 3)
    assert exc_info.value.symbol == 'NFLX'
