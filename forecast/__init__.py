"""
Forecasting: model contract, reference AR-GARCH backend, ensemble and predictions.
"""

from .base import Forecaster, ForecasterKind
from .arch_forecaster import ArchForecaster
from .ensemble import EnsembleCombiner, inverse_loss_weights
from .prediction import PredictionEngine, generate_signal

__all__ = [
    'Forecaster',
    'ForecasterKind',
    'ArchForecaster',
    'EnsembleCombiner',
    'inverse_loss_weights',
    'PredictionEngine',
    'generate_signal',
]
