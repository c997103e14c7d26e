"""
Market context features for a single symbol.

Aligns the stock with a benchmark index by date and derives rolling
index-relative statistics plus the prevailing market regime.
"""

import logging
from typing import List, Optional

import numpy as np
import pandas as pd

from config import FeatureConfig
from models import MarketFeatures, MarketRegime, PricePoint

logger = logging.getLogger(__name__)

BETA_WINDOW = 30
CORRELATION_WINDOW = 20
VOLATILITY_WINDOW = 10
SHORT_MA_WINDOW = 50
LONG_MA_WINDOW = 200

REGIME_ENCODING = {
    MarketRegime.BULL: 1.0,
    MarketRegime.NEUTRAL: 0.5,
    MarketRegime.BEAR: 0.0,
}


def _close_series(points: List[PricePoint], name: str) -> pd.Series:
    return pd.Series(
        [p.close for p in points],
        index=pd.to_datetime([p.date for p in points]),
        name=name,
        dtype=float,
    )


class MarketFeatureEngineer:
    """Derives index-relative risk/return signals for one symbol"""

    def __init__(self,
                 beta_window: int = BETA_WINDOW,
                 correlation_window: int = CORRELATION_WINDOW,
                 volatility_window: int = VOLATILITY_WINDOW):
        self.beta_window = beta_window
        self.correlation_window = correlation_window
        self.volatility_window = volatility_window

    def calculate_features(self,
                           symbol: str,
                           stock_data: List[PricePoint],
                           index_data: List[PricePoint],
                           vix_data: List[PricePoint]) -> List[MarketFeatures]:
        """
        Calculate market features for every date shared by stock and index.

        A date is skipped when no return can be computed yet (first shared
        date) or when the volatility index has no close on that exact date.

        Args:
            symbol: Stock symbol the features belong to
            stock_data: Stock daily series
            index_data: Benchmark index daily series
            vix_data: Volatility index daily series

        Returns:
            List of MarketFeatures in ascending date order
        """
        frame = self.build_frame(stock_data, index_data, vix_data)
        if frame.empty:
            logger.warning(f"No overlapping stock/index history for {symbol}")
            return []

        features = []
        for ts, row in frame.iterrows():
            if np.isnan(row['stock_return']) or np.isnan(row['market_return']) or np.isnan(row['vix']):
                continue
            features.append(MarketFeatures(
                date=ts.date(),
                symbol=symbol,
                market_return=float(row['market_return']),
                relative_return=float(row['relative_return']),
                beta=float(row['beta']),
                index_correlation=float(row['index_correlation']),
                vix=float(row['vix']),
                volatility_spread=float(row['volatility_spread']),
                market_regime=MarketRegime(row['market_regime']),
                distance_from_ma=float(row['distance_from_ma']),
            ))

        logger.info(
            f"Calculated {len(features)} market feature rows for {symbol} "
            f"({len(frame)} aligned dates)"
        )
        return features

    def build_frame(self,
                    stock_data: List[PricePoint],
                    index_data: List[PricePoint],
                    vix_data: List[PricePoint]) -> pd.DataFrame:
        """All intermediate columns on the date-aligned stock/index frame"""
        if not stock_data or not index_data:
            return pd.DataFrame()

        market_close = _close_series(index_data, 'market').sort_index()
        frame = pd.concat(
            [_close_series(stock_data, 'stock'), market_close],
            axis=1,
            join='inner',
        ).sort_index()

        vix = _close_series(vix_data, 'vix') if vix_data else pd.Series(dtype=float, name='vix')
        frame['vix'] = vix.reindex(frame.index)

        frame['stock_return'] = frame['stock'].pct_change()
        frame['market_return'] = frame['market'].pct_change()
        frame['relative_return'] = frame['stock_return'] - frame['market_return']

        frame['beta'] = self._rolling_beta(frame['stock_return'], frame['market_return'])
        frame['index_correlation'] = self._rolling_correlation(frame['stock_return'], frame['market_return'])
        frame['volatility_spread'] = self._volatility_spread(frame['stock_return'], frame['market_return'])

        # Moving averages use the full index history, not only the shared dates
        regime, distance = self._market_regime(market_close)
        frame['market_regime'] = regime.reindex(frame.index)
        frame['distance_from_ma'] = distance.reindex(frame.index)
        return frame

    def _rolling_beta(self, stock_returns: pd.Series, market_returns: pd.Series) -> pd.Series:
        """cov(stock, market) / var(market); 1.0 before warm-up or on a flat market"""
        window = self.beta_window
        cov = stock_returns.rolling(window, min_periods=window).cov(market_returns)
        var = market_returns.rolling(window, min_periods=window).var()
        beta = cov / var.where(var > 0)
        return beta.replace([np.inf, -np.inf], np.nan).fillna(1.0)

    def _rolling_correlation(self, stock_returns: pd.Series, market_returns: pd.Series) -> pd.Series:
        """Pearson correlation; 0.0 before warm-up or when either leg is flat"""
        window = self.correlation_window
        corr = stock_returns.rolling(window, min_periods=window).corr(market_returns)
        return corr.replace([np.inf, -np.inf], np.nan).fillna(0.0)

    def _volatility_spread(self, stock_returns: pd.Series, market_returns: pd.Series) -> pd.Series:
        window = self.volatility_window
        stock_vol = stock_returns.rolling(window, min_periods=window).std(ddof=0)
        market_vol = market_returns.rolling(window, min_periods=window).std(ddof=0)
        return (stock_vol - market_vol).fillna(0.0)

    @staticmethod
    def _market_regime(market_close: pd.Series):
        """Regime from price vs MA200 and MA50 vs MA200"""
        ma_short = market_close.rolling(SHORT_MA_WINDOW, min_periods=SHORT_MA_WINDOW).mean()
        ma_long = market_close.rolling(LONG_MA_WINDOW, min_periods=LONG_MA_WINDOW).mean()

        bull = (market_close > ma_long) & (ma_short > ma_long)
        bear = (market_close < ma_long) & (ma_short < ma_long)

        regime = pd.Series(MarketRegime.NEUTRAL.value, index=market_close.index)
        regime[bull] = MarketRegime.BULL.value
        regime[bear] = MarketRegime.BEAR.value

        distance = ((market_close - ma_long) / ma_long).fillna(0.0)
        return regime, distance


def feature_matrix(features: List[MarketFeatures],
                   feature_config: Optional[FeatureConfig] = None) -> pd.DataFrame:
    """
    Numeric feature matrix for forecasters, honouring the per-feature toggles.
    Regime is encoded BULL=1, NEUTRAL=0.5, BEAR=0.
    """
    feature_config = feature_config or FeatureConfig()
    if not feature_config.enabled or not features:
        return pd.DataFrame()

    columns = {
        'market_return': feature_config.include_market_return,
        'relative_return': feature_config.include_relative_return,
        'beta': feature_config.include_beta,
        'index_correlation': feature_config.include_correlation,
        'vix': feature_config.include_vix,
        'volatility_spread': feature_config.include_volatility_spread,
        'market_regime': feature_config.include_regime,
        'distance_from_ma': feature_config.include_distance_from_ma,
    }
    selected = [name for name, enabled in columns.items() if enabled]

    rows = []
    for f in features:
        row = {name: getattr(f, name) for name in selected}
        if 'market_regime' in row:
            row['market_regime'] = REGIME_ENCODING[f.market_regime]
        rows.append(row)

    return pd.DataFrame(rows, index=pd.to_datetime([f.date for f in features]), columns=selected)
