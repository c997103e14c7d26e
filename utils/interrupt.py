"""Cooperative cancellation for long-running loops"""

import logging
import signal
import threading
from typing import Optional

from errors import OperationCancelled

logger = logging.getLogger(__name__)


class CancellationToken:
    """Thread-safe flag checked by backtest and sampling loops"""

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "Operation interrupted by user"):
        self.reason = reason
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def reset(self):
        self.reason = None
        self._event.clear()

    def raise_if_cancelled(self, symbol: Optional[str] = None):
        """Raise OperationCancelled if cancellation was requested"""
        if self._event.is_set():
            raise OperationCancelled(self.reason or "Operation cancelled", symbol=symbol)


def install_sigint_handler(token: CancellationToken):
    """
    Route the first Ctrl+C to ``token`` so the running loop can stop at its
    next checkpoint. A second Ctrl+C restores the default behaviour and
    interrupts immediately.
    """
    previous = signal.getsignal(signal.SIGINT)

    def _handler(signum, frame):
        if token.is_cancelled():
            signal.signal(signal.SIGINT, previous)
            raise KeyboardInterrupt
        logger.warning("Interrupt received. Finishing current step (press Ctrl+C again to force exit)")
        token.cancel()

    signal.signal(signal.SIGINT, _handler)
    return previous
