"""Utility functions and classes for the forecasting engine"""

from .interrupt import CancellationToken, install_sigint_handler
from .log_config import setup_logging
from .progress import ProgressMonitor
from .visualization import BacktestVisualizer

__all__ = [
    'CancellationToken',
    'install_sigint_handler',
    'setup_logging',
    'ProgressMonitor',
    'BacktestVisualizer',
]
