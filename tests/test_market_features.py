import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

import pytest
import numpy as np
from datetime import date

from config import FeatureConfig
from data_manager.market_features import MarketFeatureEngineer, feature_matrix, REGIME_ENCODING
from models import MarketRegime, features_to_frame


@pytest.fixture
def engineer():
    return MarketFeatureEngineer()


@pytest.fixture
def market_data(series_factory):
    """Stock, index and VIX series over the same 260 days"""
    index = series_factory(260, start_price=4000.0, daily_return=0.001, vol=0.01, seed=1)
    stock = series_factory(260, start_price=150.0, daily_return=0.0015, vol=0.02, seed=2)
    vix = series_factory(260, start_price=18.0, daily_return=0.0, vol=0.03, seed=3)
    return stock, index, vix


def test_one_row_per_aligned_date(engineer, market_data):
    stock, index, vix = market_data
    features = engineer.calculate_features('AAPL', stock, index, vix)

    # First aligned date has no return yet
    assert len(features) == len(stock) - 1
    assert features[0].date == stock[1].date
    assert all(f.symbol == 'AAPL' for f in features)
    dates = [f.date for f in features]
    assert dates == sorted(dates)


def test_returns_and_vix(engineer, market_data):
    stock, index, vix = market_data
    features = engineer.calculate_features('AAPL', stock, index, vix)

    f = features[9]  # date of stock[10]
    expected_market = index[10].close / index[9].close - 1
    expected_stock = stock[10].close / stock[9].close - 1
    assert f.market_return == pytest.approx(expected_market)
    assert f.relative_return == pytest.approx(expected_stock - expected_market)
    assert f.vix == pytest.approx(vix[10].close)


def test_defaults_before_warm_up(engineer, market_data):
    stock, index, vix = market_data
    first = engineer.calculate_features('AAPL', stock, index, vix)[0]

    assert first.beta == 1.0
    assert first.index_correlation == 0.0
    assert first.volatility_spread == 0.0
    assert first.market_regime == MarketRegime.NEUTRAL
    assert first.distance_from_ma == 0.0


def test_rolling_statistics_after_warm_up(engineer, market_data):
    stock, index, vix = market_data
    features = engineer.calculate_features('AAPL', stock, index, vix)
    late = features[-1]

    assert late.beta != 1.0
    assert -1.0 <= late.index_correlation <= 1.0
    assert np.isfinite(late.volatility_spread)
    assert late.distance_from_ma != 0.0


def test_identical_series_have_unit_beta(engineer, series_factory):
    index = series_factory(80, vol=0.01, seed=7)
    vix = series_factory(80, start_price=20.0, seed=8)
    features = engineer.calculate_features('IDX', index, index, vix)

    late = features[-1]
    assert late.beta == pytest.approx(1.0)
    assert late.index_correlation == pytest.approx(1.0)
    assert late.relative_return == pytest.approx(0.0)
    assert late.volatility_spread == pytest.approx(0.0)


def test_regime_from_moving_averages(engineer, series_factory):
    rising = series_factory(260, daily_return=0.002, seed=4)
    falling = series_factory(260, daily_return=-0.002, seed=5)
    vix = series_factory(260, start_price=20.0, seed=6)

    bull = engineer.calculate_features('X', rising, rising, vix)[-1]
    bear = engineer.calculate_features('X', falling, falling, vix)[-1]

    assert bull.market_regime == MarketRegime.BULL
    assert bull.distance_from_ma > 0
    assert bear.market_regime == MarketRegime.BEAR
    assert bear.distance_from_ma < 0


def test_regime_uses_index_history_before_stock(engineer, series_factory):
    index = series_factory(400, start_price=4000.0, daily_return=0.002, seed=14)
    vix = series_factory(400, start_price=20.0, seed=15)
    stock = series_factory(60, start=index[340].date, vol=0.01, seed=16)

    features = engineer.calculate_features('AAPL', stock, index, vix)

    assert len(features) == 59
    assert all(f.market_regime == MarketRegime.BULL for f in features)
    assert all(f.distance_from_ma > 0 for f in features)


def test_missing_vix_dates_skipped(engineer, market_data):
    stock, index, vix = market_data
    sparse_vix = vix[::2]
    features = engineer.calculate_features('AAPL', stock, index, sparse_vix)

    vix_dates = {p.date for p in sparse_vix}
    assert features
    assert all(f.date in vix_dates for f in features)


def test_alignment_by_date(engineer, market_data):
    """Stock dates missing from the index are dropped, not shifted"""
    stock, index, vix = market_data
    features = engineer.calculate_features('AAPL', stock, index[5:], vix)

    assert features[0].date == index[6].date
    expected = index[7].close / index[6].close - 1
    assert features[1].market_return == pytest.approx(expected)


def test_no_overlap(engineer, market_data):
    stock, index, vix = market_data
    assert engineer.calculate_features('AAPL', stock, [], vix) == []


def test_feature_matrix_toggles(engineer, market_data):
    stock, index, vix = market_data
    features = engineer.calculate_features('AAPL', stock, index, vix)

    full = feature_matrix(features)
    assert list(full.columns) == [
        'market_return', 'relative_return', 'beta', 'index_correlation',
        'vix', 'volatility_spread', 'market_regime', 'distance_from_ma',
    ]
    assert len(full) == len(features)
    assert set(full['market_regime'].unique()) <= set(REGIME_ENCODING.values())

    partial = feature_matrix(features, FeatureConfig(include_vix=False, include_beta=False))
    assert 'vix' not in partial.columns
    assert 'beta' not in partial.columns

    assert feature_matrix(features, FeatureConfig(enabled=False)).empty
    assert feature_matrix([]).empty


def test_features_to_frame(engineer, market_data):
    stock, index, vix = market_data
    features = engineer.calculate_features('AAPL', stock, index, vix)
    df = features_to_frame(features)

    assert len(df) == len(features)
    assert df.index[0].date() == features[0].date
    assert df['market_regime'].iloc[0] == MarketRegime.NEUTRAL.value
