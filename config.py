"""Configuration: dataclasses + JSON loading."""

import json
import logging
from dataclasses import dataclass, field, fields, asdict, is_dataclass
from pathlib import Path
from typing import Any, Dict, List, Union

from errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class FeatureConfig:
    """Which market features are fed to forecasters"""
    enabled: bool = True
    include_market_return: bool = True
    include_relative_return: bool = True
    include_beta: bool = True
    include_correlation: bool = True
    include_vix: bool = True
    include_volatility_spread: bool = True
    include_regime: bool = True
    include_distance_from_ma: bool = True


@dataclass
class ModelConfig:
    window_size: int = 30
    architectures: List[str] = field(default_factory=lambda: ['garch', 'egarch', 'gjrgarch'])
    distribution: str = 'normal'
    validation_split: float = 0.2
    random_seed: int = 42


@dataclass
class PredictionConfig:
    days: int = 30
    uncertainty_iterations: int = 30
    buy_threshold: float = 0.05
    sell_threshold: float = -0.05
    min_confidence: float = 0.6


@dataclass
class BacktestConfig:
    initial_capital: float = 10000.0
    transaction_cost: float = 0.001
    days: int = 252


@dataclass
class QualityConfig:
    min_quality_score: float = 60.0
    max_interpolation_percent: float = 0.10
    outlier_window: int = 20
    outlier_threshold: float = 3.0
    business_days: bool = False


@dataclass
class MarketConfig:
    primary_index: str = '^GSPC'
    volatility_index: str = '^VIX'
    features: FeatureConfig = field(default_factory=FeatureConfig)


@dataclass
class EngineConfig:
    model: ModelConfig = field(default_factory=ModelConfig)
    prediction: PredictionConfig = field(default_factory=PredictionConfig)
    backtest: BacktestConfig = field(default_factory=BacktestConfig)
    quality: QualityConfig = field(default_factory=QualityConfig)
    market: MarketConfig = field(default_factory=MarketConfig)

    def validate(self) -> None:
        """Raise ConfigurationError on the first out-of-range value"""
        checks = [
            (10 <= self.model.window_size <= 100, "model.window_size must be within [10, 100]"),
            (len(self.model.architectures) > 0, "model.architectures must not be empty"),
            (0 < self.model.validation_split < 1, "model.validation_split must be within (0, 1)"),
            (1 <= self.prediction.days <= 365, "prediction.days must be within [1, 365]"),
            (self.prediction.uncertainty_iterations >= 1, "prediction.uncertainty_iterations must be >= 1"),
            (0 <= self.prediction.buy_threshold <= 1, "prediction.buy_threshold must be within [0, 1]"),
            (-1 <= self.prediction.sell_threshold <= 0, "prediction.sell_threshold must be within [-1, 0]"),
            (0.5 <= self.prediction.min_confidence <= 1, "prediction.min_confidence must be within [0.5, 1]"),
            (self.backtest.initial_capital > 0, "backtest.initial_capital must be positive"),
            (0 <= self.backtest.transaction_cost <= 0.1, "backtest.transaction_cost must be within [0, 0.1]"),
            (self.backtest.days >= 1, "backtest.days must be >= 1"),
            (0 <= self.quality.min_quality_score <= 100, "quality.min_quality_score must be within [0, 100]"),
            (0 <= self.quality.max_interpolation_percent <= 1,
             "quality.max_interpolation_percent must be within [0, 1]"),
            (self.quality.outlier_window >= 2, "quality.outlier_window must be >= 2"),
            (self.quality.outlier_threshold > 0, "quality.outlier_threshold must be positive"),
        ]
        for ok, message in checks:
            if not ok:
                raise ConfigurationError(message)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _build(cls, values: Dict[str, Any], path: str):
    """Recursively instantiate a dataclass, rejecting unknown keys"""
    if not isinstance(values, dict):
        raise ConfigurationError(f"Section '{path}' must be an object")

    known = {f.name: f for f in fields(cls)}
    unknown = sorted(set(values) - set(known))
    if unknown:
        raise ConfigurationError(f"Unknown keys in '{path}': {unknown}")

    kwargs = {}
    for name, value in values.items():
        default = cls()
        current = getattr(default, name)
        if is_dataclass(current):
            kwargs[name] = _build(type(current), value, f"{path}.{name}")
        else:
            kwargs[name] = value
    return cls(**kwargs)


def config_from_dict(values: Dict[str, Any]) -> EngineConfig:
    config = _build(EngineConfig, values, 'config')
    config.validate()
    return config


def load_config(path: Union[str, Path]) -> EngineConfig:
    """
    Load and validate an engine configuration from a JSON file.

    Missing sections and keys fall back to defaults.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")

    try:
        with open(path, 'r') as f:
            values = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {path}: {e}") from e

    config = config_from_dict(values)
    logger.info(f"Loaded configuration from {path}")
    return config
