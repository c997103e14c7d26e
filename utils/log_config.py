import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional


def setup_logging(output_dir: Optional[Path] = None,
                  level: int = logging.INFO,
                  name: str = "forecast_engine") -> logging.Logger:
    """
    Configure logging with a console handler and, optionally, a file handler

    Parameters:
    -----------
    output_dir : Path, optional
        Directory for the timestamped log file; console only when omitted
    level : int
        Logging level applied to the root logger and handlers

    Returns:
    --------
    logging.Logger
        Configured logger
    """
    root = logging.getLogger()
    root.setLevel(level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter('%(message)s'))
    root.addHandler(console_handler)

    if output_dir is not None:
        log_dir = Path(output_dir) / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_dir / f"{name}_{timestamp}.log"

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(
            logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        )
        root.addHandler(file_handler)

    return logging.getLogger(name)
