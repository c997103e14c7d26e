"""
Inverse-loss weighted ensemble of forecasters.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional

import numpy as np

from config import EngineConfig
from errors import ModelError
from models import ForecastMetrics, MarketFeatures, ModelMetadata, PricePoint
from .base import EpochCallback, Forecaster, ForecasterKind

logger = logging.getLogger(__name__)

MIN_LOSS = 1e-6

ForecasterFactory = Callable[[str], Forecaster]


def inverse_loss_weights(losses: List[float]) -> List[float]:
    """w_i = (1/max(loss_i, eps)) / sum_j (1/max(loss_j, eps))"""
    if not np.all(np.isfinite(losses)):
        raise ModelError(f"Cannot weight non-finite losses: {losses}")
    inverse = np.array([1.0 / max(loss, MIN_LOSS) for loss in losses])
    return (inverse / inverse.sum()).tolist()


class EnsembleCombiner(Forecaster):
    """
    Trains one forecaster per architecture on identical input and blends
    their price paths with weights inversely proportional to validation loss.
    """

    kind = ForecasterKind.ENSEMBLE

    def __init__(self, symbol: str,
                 factory: ForecasterFactory,
                 architectures: List[str],
                 window_size: int = 30,
                 max_workers: Optional[int] = None):
        """
        Initialize ensemble

        Args:
            symbol: Ticker the ensemble belongs to
            factory: Builds an untrained forecaster for an architecture name
            architectures: Variant architectures, one model each
            window_size: Minimum history required by prediction callers
            max_workers: Train variants in a thread pool of this size (None = sequential)
        """
        super().__init__(symbol, window_size)
        if not architectures:
            raise ModelError("Ensemble needs at least one architecture", symbol=symbol)

        self.factory = factory
        self.architectures = list(architectures)
        self.max_workers = max_workers

        self.models: List[Forecaster] = []
        self.weights: List[float] = []
        self.logger = logging.getLogger('forecast.ensemble')

    def _train_variant(self, index: int, architecture: str,
                       series: List[PricePoint],
                       config: Optional[EngineConfig],
                       on_epoch: Optional[EpochCallback],
                       features: Optional[List[MarketFeatures]]):
        model = self.factory(architecture)

        def relay(epoch, loss):
            if on_epoch is not None:
                on_epoch(index + 1, architecture, epoch, loss)

        metrics = model.train(series, config, on_epoch=relay, features=features)
        self.logger.debug(f"{self.symbol} variant {architecture}: loss={metrics.loss:.6f}")
        return model, metrics

    def train(self, series: List[PricePoint],
              config: Optional[EngineConfig] = None,
              on_epoch: Optional[EpochCallback] = None,
              features: Optional[List[MarketFeatures]] = None) -> ForecastMetrics:
        """
        Train every variant and derive blend weights.

        Returns:
            Aggregate metrics: mean loss, mean mape, valid when mean loss < 1
        """
        self.models = []
        self.weights = []

        jobs = list(enumerate(self.architectures))
        if self.max_workers and self.max_workers > 1 and len(jobs) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = [
                    executor.submit(self._train_variant, i, arch, series, config, on_epoch, features)
                    for i, arch in jobs
                ]
                results = [f.result() for f in futures]
        else:
            results = [self._train_variant(i, arch, series, config, on_epoch, features) for i, arch in jobs]

        self.models = [model for model, _ in results]
        metrics = [m for _, m in results]
        for architecture, m in zip(self.architectures, metrics):
            if not np.isfinite(m.loss):
                self.models = []
                raise ModelError(
                    f"Variant {architecture} returned a non-finite loss: {m.loss}",
                    symbol=self.symbol,
                )
        self.weights = inverse_loss_weights([m.loss for m in metrics])

        mean_loss = float(np.mean([m.loss for m in metrics]))
        mean_mape = float(np.mean([m.mape if m.mape is not None else 0.0 for m in metrics]))

        summary = ", ".join(f"{a}={w:.3f}" for a, w in zip(self.architectures, self.weights))
        self.logger.info(f"Ensemble weights for {self.symbol}: {summary}")

        return ForecastMetrics(
            loss=mean_loss,
            mape=mean_mape,
            is_valid=mean_loss < 1,
            data_points=len(series),
            window_size=self.window_size,
        )

    def _require_trained(self):
        if not self.models:
            raise ModelError("ensemble not trained", symbol=self.symbol)

    def predict(self, series: List[PricePoint], horizon: int,
                features: Optional[List[MarketFeatures]] = None,
                training: bool = False) -> List[float]:
        """Per-day weighted sum of the variant paths"""
        self._require_trained()
        paths = np.array([
            model.predict(series, horizon, features=features, training=training)
            for model in self.models
        ], dtype=float)
        return (np.asarray(self.weights) @ paths).tolist()

    def evaluate(self, series: List[PricePoint],
                 config: Optional[EngineConfig] = None,
                 features: Optional[List[MarketFeatures]] = None) -> ForecastMetrics:
        self._require_trained()
        results = [model.evaluate(series, config, features=features) for model in self.models]
        weights = np.asarray(self.weights)
        loss = float(weights @ np.array([r.loss for r in results]))
        mape = float(weights @ np.array([r.mape if r.mape is not None else 0.0 for r in results]))
        return ForecastMetrics(
            loss=loss,
            mape=mape,
            is_valid=loss < 1,
            data_points=len(series),
            window_size=self.window_size,
        )

    def is_trained(self) -> bool:
        return len(self.models) > 0 and all(m.is_trained() for m in self.models)

    def get_metadata(self) -> Optional[ModelMetadata]:
        """Metadata of the highest-weight variant, tagged as the ensemble"""
        if not self.models:
            return None
        best = self.models[int(np.argmax(self.weights))].get_metadata()
        if best is None:
            return None
        return ModelMetadata(
            symbol=best.symbol,
            architecture='ensemble',
            loss=best.loss,
            data_points=best.data_points,
            window_size=best.window_size,
            mape=best.mape,
            metrics=dict(best.metrics),
        )
