"""Forecaster contract shared by single models and ensembles."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, List, Optional

from config import EngineConfig
from models import ForecastMetrics, MarketFeatures, ModelMetadata, PricePoint

# on_epoch(epoch, loss); ensembles prefix the variant: on_epoch(variant_index, architecture, epoch, loss)
EpochCallback = Callable[..., None]


class ForecasterKind(str, Enum):
    SINGLE = 'single'
    ENSEMBLE = 'ensemble'


class Forecaster(ABC):
    """
    One trainable price model.

    Implementations must return horizon-length price paths from ``predict``
    and, when ``training`` is True, a stochastic sample so that repeated
    calls approximate the predictive distribution.
    """

    kind: ForecasterKind = ForecasterKind.SINGLE

    def __init__(self, symbol: str, window_size: int):
        self.symbol = symbol
        self.window_size = window_size

    @abstractmethod
    def train(self, series: List[PricePoint],
              config: Optional[EngineConfig] = None,
              on_epoch: Optional[EpochCallback] = None,
              features: Optional[List[MarketFeatures]] = None) -> ForecastMetrics:
        ...

    @abstractmethod
    def predict(self, series: List[PricePoint], horizon: int,
                features: Optional[List[MarketFeatures]] = None,
                training: bool = False) -> List[float]:
        ...

    @abstractmethod
    def evaluate(self, series: List[PricePoint],
                 config: Optional[EngineConfig] = None,
                 features: Optional[List[MarketFeatures]] = None) -> ForecastMetrics:
        ...

    @abstractmethod
    def is_trained(self) -> bool:
        ...

    @abstractmethod
    def get_metadata(self) -> Optional[ModelMetadata]:
        ...
