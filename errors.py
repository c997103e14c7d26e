"""
Error taxonomy for the forecasting engine.

Every error can carry the symbol it relates to so that an orchestration layer
can turn it into a per-symbol status without parsing messages.
"""

from contextlib import contextmanager
from typing import Iterator, Optional, Type


class EngineError(Exception):
    """Base class for all engine failures"""

    kind = "Engine"

    def __init__(self, message: str, symbol: Optional[str] = None):
        self.message = message
        self.symbol = symbol
        suffix = f" ({symbol})" if symbol else ""
        super().__init__(f"{self.kind} Error: {message}{suffix}")


class DataError(EngineError):
    """Insufficient or untrustworthy price data"""

    kind = "Data"


class ModelError(EngineError):
    """Forecaster missing, untrained or failing internally"""

    kind = "Model"


class PredictionError(EngineError):
    """A single prediction call could not be served"""

    kind = "Prediction"


class ConfigurationError(EngineError):
    """Invalid or unknown configuration values"""

    kind = "Configuration"


class OperationCancelled(EngineError):
    """Raised by long-running loops once cancellation has been requested"""

    kind = "Cancelled"


@contextmanager
def wrap_errors(operation: str,
                symbol: Optional[str] = None,
                error_cls: Type[EngineError] = ModelError) -> Iterator[None]:
    """
    Re-raise foreign exceptions as engine errors tagged with the symbol.

    Engine errors pass through untouched; anything else is chained to a new
    ``error_cls`` so the original traceback is preserved.
    """
    try:
        yield
    except EngineError:
        raise
    except Exception as e:
        raise error_cls(f"{operation} failed: {e}", symbol=symbol) from e
