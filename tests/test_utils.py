import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

import logging
import signal
import pytest

from errors import OperationCancelled
from utils.interrupt import CancellationToken, install_sigint_handler
from utils.log_config import setup_logging
from utils.progress import ProgressMonitor


@pytest.fixture
def clean_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in root.handlers[len(handlers):]:
        handler.close()
    root.handlers = handlers
    root.setLevel(level)


def test_cancellation_token():
    token = CancellationToken()
    token.raise_if_cancelled()

    token.cancel("stop now")
    assert token.is_cancelled()
    with pytest.raises(OperationCancelled, match="stop now") as exc_info:
        token.raise_if_cancelled('AAPL')
    assert exc_info.value.symbol == 'AAPL'

    token.reset()
    assert not token.is_cancelled()
    assert token.reason is None


def test_sigint_handler_cancels_then_interrupts():
    token = CancellationToken()
    previous = install_sigint_handler(token)
    try:
        handler = signal.getsignal(signal.SIGINT)
        handler(signal.SIGINT, None)
        assert token.is_cancelled()

        with pytest.raises(KeyboardInterrupt):
            handler(signal.SIGINT, None)
        assert signal.getsignal(signal.SIGINT) == previous
    finally:
        signal.signal(signal.SIGINT, previous)


def test_setup_logging_file_handler(tmp_path, clean_root_logger):
    logger = setup_logging(tmp_path, level=logging.DEBUG, name="engine_test")
    logger.info("hello from test")
    for handler in clean_root_logger.handlers:
        handler.flush()

    log_files = list((tmp_path / "logs").glob("engine_test_*.log"))
    assert len(log_files) == 1
    content = log_files[0].read_text()
    assert "hello from test" in content
    assert "INFO" in content


def test_setup_logging_console_only(clean_root_logger):
    before = len(clean_root_logger.handlers)
    setup_logging()
    assert len(clean_root_logger.handlers) == before + 1


def test_progress_monitor_callback(caplog):
    logger = logging.getLogger('progress_test')
    with caplog.at_level(logging.INFO, logger='progress_test'):
        with ProgressMonitor(desc="Backtest", logger=logger, log_every=2, disable=True) as monitor:
            for current in range(1, 5):
                monitor(current, 4)

    assert monitor.current == 4
    assert monitor.total == 4
    assert any("Progress: 2/4" in r.message for r in caplog.records)
    assert any("Completed Backtest" in r.message for r in caplog.records)


def test_progress_monitor_update_status(caplog):
    logger = logging.getLogger('progress_test')
    monitor = ProgressMonitor(total=3, desc="Symbols", logger=logger, disable=True)
    with caplog.at_level(logging.INFO, logger='progress_test'):
        monitor.update(1, status="AAPL -> ok")
        monitor.update(0)
    monitor.close()

    assert monitor.current == 1
    assert any("Symbols: AAPL -> ok" in r.message for r in caplog.records)
