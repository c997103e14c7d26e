"""
Reference forecaster: AR(1) mean with a GARCH-family volatility process.

Log returns (in percent) are modelled with ``arch``. When market features are
supplied, a linear drift on the previous day's features is removed first and
added back to forecasts, decaying the last observed features toward their
training means.
"""

import logging
import warnings
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd
from arch import arch_model

from config import EngineConfig, FeatureConfig
from data_manager.market_features import feature_matrix
from errors import ConfigurationError, DataError, ModelError, PredictionError, wrap_errors
from models import ForecastMetrics, MarketFeatures, ModelMetadata, PricePoint
from .base import EpochCallback, Forecaster, ForecasterKind

logger = logging.getLogger(__name__)

# architecture -> (arch volatility process, asymmetric order o)
VOLATILITY_SPECS = {
    'garch': ('GARCH', 0),
    'egarch': ('EGARCH', 0),
    'gjrgarch': ('GARCH', 1),
}
DISTRIBUTIONS = ('normal', 'studentst')

FEATURE_HALF_LIFE = 10.0
DETERMINISTIC_SIMULATIONS = 500


def log_returns_pct(series: List[PricePoint]) -> pd.Series:
    """Daily log returns in percent, indexed by the later date"""
    closes = pd.Series(
        [p.close for p in series],
        index=pd.to_datetime([p.date for p in series]),
        dtype=float,
    )
    return (np.log(closes).diff() * 100).dropna()


@dataclass
class FeatureDrift:
    """Linear return drift explained by the previous day's market features"""
    columns: List[str]
    coef: np.ndarray
    means: pd.Series

    def design(self, index: pd.DatetimeIndex, frame: pd.DataFrame) -> pd.DataFrame:
        """Features observed on the previous return date, gaps filled with training means"""
        x = frame.reindex(index=index, columns=self.columns).shift(1)
        return x.fillna(self.means)

    def baseline(self) -> float:
        """Drift at the training means"""
        return float(self.coef[0] + self.means.to_numpy(dtype=float) @ self.coef[1:])

    def in_sample(self, index: pd.DatetimeIndex, frame: pd.DataFrame) -> np.ndarray:
        x = self.design(index, frame).to_numpy(dtype=float)
        return self.coef[0] + x @ self.coef[1:]

    def future(self, index: pd.DatetimeIndex, frame: pd.DataFrame, horizon: int) -> np.ndarray:
        last = frame.reindex(index=index, columns=self.columns).iloc[-1].fillna(self.means)
        decay = np.exp(-np.arange(horizon) / FEATURE_HALF_LIFE)
        means = self.means.to_numpy(dtype=float)
        rows = means + np.outer(decay, last.to_numpy(dtype=float) - means)
        return self.coef[0] + rows @ self.coef[1:]


class ArchForecaster(Forecaster):
    """Single AR-GARCH family model for one symbol"""

    kind = ForecasterKind.SINGLE

    def __init__(self, symbol: str,
                 architecture: str = 'garch',
                 distribution: str = 'normal',
                 window_size: int = 30,
                 validation_split: float = 0.2,
                 feature_config: Optional[FeatureConfig] = None,
                 random_seed: Optional[int] = None,
                 min_observations: int = 100):
        """
        Initialize forecaster

        Args:
            symbol: Ticker the model belongs to
            architecture: One of 'garch', 'egarch', 'gjrgarch'
            distribution: Innovation distribution, 'normal' or 'studentst'
            window_size: Minimum history required by prediction callers
            validation_split: Trailing share of returns held out for the loss
            feature_config: Toggles for the market-feature drift
            random_seed: Seed for simulated (training-mode) paths
            min_observations: Minimum number of returns needed to fit
        """
        super().__init__(symbol, window_size)
        if architecture not in VOLATILITY_SPECS:
            raise ConfigurationError(
                f"Unknown architecture '{architecture}', expected one of {sorted(VOLATILITY_SPECS)}"
            )
        if distribution not in DISTRIBUTIONS:
            raise ConfigurationError(f"Unknown distribution '{distribution}'")

        self.architecture = architecture
        self.distribution = distribution
        self.validation_split = validation_split
        self.feature_config = feature_config or FeatureConfig()
        self.min_observations = min_observations
        self.rng = np.random.default_rng(random_seed)

        self.params: Optional[pd.Series] = None
        self.drift: Optional[FeatureDrift] = None
        self.metadata: Optional[ModelMetadata] = None
        self.logger = logging.getLogger('forecast.arch')

    @classmethod
    def from_config(cls, symbol: str, architecture: str, config: EngineConfig) -> 'ArchForecaster':
        return cls(
            symbol=symbol,
            architecture=architecture,
            distribution=config.model.distribution,
            window_size=config.model.window_size,
            validation_split=config.model.validation_split,
            feature_config=config.market.features,
            random_seed=config.model.random_seed,
        )

    def _build_model(self, resid: np.ndarray):
        vol, o = VOLATILITY_SPECS[self.architecture]
        return arch_model(
            resid,
            mean='AR',
            lags=1,
            vol=vol,
            p=1,
            o=o,
            q=1,
            dist=self.distribution,
            rescale=False,
        )

    def _fit(self, resid: np.ndarray):
        with warnings.catch_warnings():
            warnings.simplefilter('ignore')
            return self._build_model(resid).fit(disp='off', show_warning=False, options={'maxiter': 1000})

    def _feature_frame(self, features: Optional[List[MarketFeatures]]) -> pd.DataFrame:
        if not features:
            return pd.DataFrame()
        return feature_matrix(features, self.feature_config)

    def _drift_path(self, index: pd.DatetimeIndex, frame: pd.DataFrame) -> np.ndarray:
        if self.drift is None:
            return np.zeros(len(index))
        if frame.empty:
            return np.full(len(index), self.drift.baseline())
        return self.drift.in_sample(index, frame)

    @staticmethod
    def _fit_drift(returns: pd.Series, frame: pd.DataFrame) -> Optional[FeatureDrift]:
        """Least-squares drift on lagged features; None when no usable rows"""
        if frame.empty:
            return None
        lagged = frame.reindex(returns.index).shift(1)
        usable = lagged.notna().all(axis=1)
        if usable.sum() <= lagged.shape[1] + 1:
            return None

        x = lagged[usable].to_numpy(dtype=float)
        y = returns[usable].to_numpy(dtype=float)
        design = np.column_stack([np.ones(len(x)), x])
        coef = np.linalg.lstsq(design, y, rcond=None)[0]
        return FeatureDrift(columns=list(frame.columns), coef=coef, means=lagged[usable].mean())

    def _one_step_errors(self, series: List[PricePoint], returns: pd.Series,
                         resid: np.ndarray, drift: np.ndarray,
                         params: pd.Series, start: int) -> Tuple[float, float, float]:
        """
        One-step-ahead forecasts for returns[start:] with fixed parameters.

        Returns:
            Tuple of (mse of decimal log returns, price mape, mae of decimal log returns)
        """
        fixed = self._build_model(resid).fix(params)
        forecast = fixed.forecast(horizon=1, start=start - 1, method='analytic', reindex=False)
        n_targets = len(resid) - start
        predicted = forecast.mean.values[:n_targets, 0] + drift[start:]
        actual = returns.to_numpy()[start:]

        errors = (predicted - actual) / 100
        closes = np.array([p.close for p in series], dtype=float)
        previous = closes[start:start + n_targets]
        realised = closes[start + 1:start + 1 + n_targets]
        predicted_prices = previous * np.exp(predicted / 100)
        mape = float(np.mean(np.abs(predicted_prices - realised) / realised))
        return float(np.mean(errors ** 2)), mape, float(np.mean(np.abs(errors)))

    def train(self, series: List[PricePoint],
              config: Optional[EngineConfig] = None,
              on_epoch: Optional[EpochCallback] = None,
              features: Optional[List[MarketFeatures]] = None) -> ForecastMetrics:
        """Fit on the leading share of returns, score the holdout, then refit on everything"""
        if config is not None:
            self.validation_split = config.model.validation_split

        returns = log_returns_pct(series)
        if len(returns) < self.min_observations:
            raise DataError(
                f"Insufficient data: need at least {self.min_observations + 1} points, got {len(series)}",
                symbol=self.symbol,
            )

        n_train = int(len(returns) * (1 - self.validation_split))
        n_train = min(max(n_train, self.min_observations // 2), len(returns) - 1)

        frame = self._feature_frame(features)
        self.drift = self._fit_drift(returns.iloc[:n_train], frame)
        drift = self._drift_path(returns.index, frame)
        resid = returns.to_numpy() - drift

        with wrap_errors(f"{self.architecture} training", self.symbol):
            holdout_fit = self._fit(resid[:n_train])
            loss, mape, mae = self._one_step_errors(series, returns, resid, drift, holdout_fit.params, n_train)
            final_fit = self._fit(resid)

        self.params = final_fit.params
        if on_epoch is not None:
            on_epoch(1, loss)

        self.metadata = ModelMetadata(
            symbol=self.symbol,
            architecture=self.architecture,
            loss=loss,
            mape=mape,
            metrics={'mean_absolute_error': mae, 'log_likelihood': float(final_fit.loglikelihood)},
            data_points=len(series),
            window_size=self.window_size,
        )
        self.logger.info(
            f"Trained {self.architecture}-{self.distribution} for {self.symbol}: "
            f"loss={loss:.6f}, mape={mape:.4f}, holdout={len(returns) - n_train}"
        )
        return ForecastMetrics(
            loss=loss,
            mape=mape,
            is_valid=bool(np.isfinite(loss) and loss < 1),
            data_points=len(series),
            window_size=self.window_size,
        )

    def evaluate(self, series: List[PricePoint],
                 config: Optional[EngineConfig] = None,
                 features: Optional[List[MarketFeatures]] = None) -> ForecastMetrics:
        """Score fitted parameters on the trailing split of ``series``"""
        if not self.is_trained():
            raise ModelError("Model not trained or loaded", symbol=self.symbol)

        split = config.model.validation_split if config is not None else self.validation_split
        returns = log_returns_pct(series)
        start = int(len(returns) * (1 - split))
        if start < 2 or start >= len(returns):
            raise DataError(f"Insufficient data to evaluate: {len(series)} points", symbol=self.symbol)

        frame = self._feature_frame(features)
        drift = self._drift_path(returns.index, frame)
        resid = returns.to_numpy() - drift

        with wrap_errors(f"{self.architecture} evaluation", self.symbol):
            loss, mape, mae = self._one_step_errors(series, returns, resid, drift, self.params, start)

        self.metadata.loss = loss
        self.metadata.mape = mape
        self.metadata.metrics['mean_absolute_error'] = mae
        return ForecastMetrics(
            loss=loss,
            mape=mape,
            is_valid=bool(np.isfinite(loss) and loss < 1),
            data_points=len(series),
            window_size=self.window_size,
        )

    def _standardized_draws(self, size) -> np.ndarray:
        if self.distribution == 'studentst':
            nu = float(self.params['nu'])
            return self.rng.standard_t(nu, size=size) * np.sqrt((nu - 2) / nu)
        return self.rng.standard_normal(size)

    def predict(self, series: List[PricePoint], horizon: int,
                features: Optional[List[MarketFeatures]] = None,
                training: bool = False) -> List[float]:
        """
        Price path for the next ``horizon`` days.

        With ``training`` the path is a single simulated draw from the fitted
        process; otherwise it is the conditional mean path.
        """
        if not self.is_trained():
            raise ModelError("Model not trained or loaded", symbol=self.symbol)

        returns = log_returns_pct(series)
        if len(returns) < 2:
            raise PredictionError("Insufficient data: need at least 3 points", symbol=self.symbol)

        frame = self._feature_frame(features)
        resid = returns.to_numpy() - self._drift_path(returns.index, frame)
        if self.drift is None:
            future_drift = np.zeros(horizon)
        elif frame.empty:
            future_drift = np.full(horizon, self.drift.baseline())
        else:
            future_drift = self.drift.future(returns.index, frame, horizon)

        with wrap_errors(f"{self.architecture} prediction", self.symbol, PredictionError):
            fixed = self._build_model(resid).fix(self.params)
            if training:
                forecast = fixed.forecast(horizon=horizon, method='simulation', simulations=1,
                                          rng=self._standardized_draws, reindex=False)
                path = forecast.simulations.values[-1, 0, :]
            elif self.architecture == 'egarch' and horizon > 1:
                forecast = fixed.forecast(horizon=horizon, method='simulation',
                                          simulations=DETERMINISTIC_SIMULATIONS,
                                          rng=self._standardized_draws, reindex=False)
                path = forecast.mean.values[-1, :]
            else:
                forecast = fixed.forecast(horizon=horizon, method='analytic', reindex=False)
                path = forecast.mean.values[-1, :]

        log_path = (np.asarray(path, dtype=float) + future_drift) / 100
        prices = series[-1].close * np.exp(np.cumsum(log_path))
        return [float(p) for p in prices]

    def is_trained(self) -> bool:
        return self.params is not None

    def get_metadata(self) -> Optional[ModelMetadata]:
        return self.metadata
