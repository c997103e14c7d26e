"""Common data models used across the project."""

from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

import pandas as pd

PRICE_COLUMNS = ['open', 'high', 'low', 'close', 'adj_close', 'volume']


def to_date(value: Union[str, date, datetime, pd.Timestamp]) -> date:
    """Normalize ISO strings, datetimes and timestamps to a plain date"""
    if isinstance(value, pd.Timestamp):
        return value.date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


@dataclass(frozen=True)
class PricePoint:
    """One daily OHLCV bar for a symbol"""
    date: date
    open: float
    high: float
    low: float
    close: float
    adj_close: float
    volume: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PricePoint':
        """Build a point from provider output (camelCase or snake_case keys)"""
        adj_close = data.get('adj_close', data.get('adjClose', data['close']))
        return cls(
            date=to_date(data['date']),
            open=float(data['open']),
            high=float(data['high']),
            low=float(data['low']),
            close=float(data['close']),
            adj_close=float(adj_close),
            volume=int(data.get('volume', 0)),
        )


@dataclass(frozen=True)
class PriceGap:
    """Calendar gap between two consecutive points"""
    start_index: int
    end_index: int
    gap_days: int


@dataclass(frozen=True)
class DataQualityResult:
    """Repaired series plus quality diagnostics"""
    data: List[PricePoint]
    gaps_detected: int
    interpolated_count: int
    interpolated_indices: List[int]
    interpolated_percent: float
    outlier_count: int
    outlier_indices: List[int]
    missing_days: int
    quality_score: float


class MarketRegime(str, Enum):
    BULL = 'BULL'
    BEAR = 'BEAR'
    NEUTRAL = 'NEUTRAL'


@dataclass(frozen=True)
class MarketFeatures:
    """Index-relative context for one symbol on one date"""
    date: date
    symbol: str
    market_return: float
    relative_return: float
    beta: float
    index_correlation: float
    vix: float
    volatility_spread: float
    market_regime: MarketRegime
    distance_from_ma: float


@dataclass
class ForecastMetrics:
    """Training / evaluation summary owned by a forecaster"""
    loss: float
    is_valid: bool
    data_points: int
    window_size: int
    mape: Optional[float] = None


@dataclass
class ModelMetadata:
    """Descriptive metadata exposed by a trained forecaster"""
    symbol: str
    architecture: str
    loss: float
    data_points: int
    window_size: int
    mape: Optional[float] = None
    metrics: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class ForecastPoint:
    date: date
    price: float
    lower_bound: float
    upper_bound: float


@dataclass
class PredictionResult:
    """Uncertainty-quantified multi-day forecast"""
    symbol: str
    current_price: float
    predicted_prices: List[float]
    lower_bound: float
    upper_bound: float
    confidence: float
    percent_change: float
    predicted_data: List[ForecastPoint]


class SignalAction(str, Enum):
    BUY = 'BUY'
    SELL = 'SELL'
    HOLD = 'HOLD'


@dataclass(frozen=True)
class TradingSignal:
    action: SignalAction
    confidence: float
    delta: float
    reason: str


@dataclass(frozen=True)
class Trade:
    """Executed simulated order"""
    action: SignalAction
    date: date
    price: float
    shares: int
    value: float


@dataclass(frozen=True)
class EquityPoint:
    date: date
    value: float


@dataclass(frozen=True)
class BacktestResult:
    """Outcome of one walk-forward backtest run"""
    equity_curve: List[EquityPoint]
    trades: List[Trade]
    total_return: float
    benchmark_return: float
    alpha: float
    drawdown: float
    sharpe_ratio: float
    win_rate: float
    final_value: float
    initial_value: float

    @property
    def profit(self) -> float:
        return self.final_value - self.initial_value

    def to_frame(self) -> pd.DataFrame:
        """Equity curve as a date-indexed DataFrame"""
        df = pd.DataFrame([asdict(p) for p in self.equity_curve], columns=['date', 'value'])
        df['date'] = pd.to_datetime(df['date'])
        return df.set_index('date')


def points_to_frame(points: List[PricePoint]) -> pd.DataFrame:
    """Convert price points into a DataFrame indexed by timestamp"""
    df = pd.DataFrame([asdict(p) for p in points], columns=['date'] + PRICE_COLUMNS)
    df['date'] = pd.to_datetime(df['date'])
    return df.set_index('date')


def frame_to_points(df: pd.DataFrame) -> List[PricePoint]:
    """Inverse of :func:`points_to_frame`"""
    return [
        PricePoint(
            date=to_date(idx),
            open=float(row['open']),
            high=float(row['high']),
            low=float(row['low']),
            close=float(row['close']),
            adj_close=float(row['adj_close']),
            volume=int(row['volume']),
        )
        for idx, row in df.iterrows()
    ]


def as_points(series: Union[pd.DataFrame, List[Any], None]) -> Optional[List[PricePoint]]:
    """Accept a price DataFrame, provider dicts or PricePoints"""
    if series is None:
        return None
    if isinstance(series, pd.DataFrame):
        return frame_to_points(series)
    return [p if isinstance(p, PricePoint) else PricePoint.from_dict(p) for p in series]


def features_to_frame(features: List[MarketFeatures]) -> pd.DataFrame:
    """Convert market features into a DataFrame indexed by timestamp"""
    records = []
    for feature in features:
        record = asdict(feature)
        record['market_regime'] = feature.market_regime.value
        records.append(record)
    df = pd.DataFrame(records)
    if df.empty:
        return df
    df['date'] = pd.to_datetime(df['date'])
    return df.set_index('date')
