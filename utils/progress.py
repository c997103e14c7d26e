from typing import Optional
import logging
from tqdm import tqdm
import time

class ProgressMonitor:
    """tqdm-backed progress reporter usable as an ``on_progress(current, total)`` callback"""

    def __init__(self, total: Optional[int] = None, desc: str = "Processing",
                 logger: Optional[logging.Logger] = None,
                 log_every: int = 100,
                 disable: bool = False):
        """Initialize progress monitor; ``total`` may be supplied later by the first callback"""
        self.logger = logger or logging.getLogger('progress')
        self.pbar = tqdm(total=total, desc=desc, disable=disable)
        self.total = total
        self.current = 0
        self.log_every = log_every
        self.start_time = time.time()
        self.description = desc

    def __call__(self, current: int, total: int):
        """Callback form: jump the bar to ``current`` of ``total``"""
        if self.total != total:
            self.total = total
            self.pbar.total = total
            self.pbar.refresh()
        self.update(current - self.current)

    def update(self, n: int = 1, status: str = ""):
        """Update progress by n steps with optional status message"""
        if n <= 0:
            return
        self.current += n
        self.pbar.update(n)

        if status:
            self.logger.info(f"{self.description}: {status}")

        if self.total and self.current % self.log_every == 0:
            elapsed = time.time() - self.start_time
            progress = self.current / self.total
            eta = (elapsed / progress) * (1 - progress) if progress > 0 else 0

            self.logger.info(
                f"Progress: {self.current}/{self.total} "
                f"({progress*100:.1f}%) - "
                f"Elapsed: {elapsed:.1f}s - "
                f"ETA: {eta:.1f}s"
            )

    def close(self):
        """Close progress bar and log final statistics"""
        self.pbar.close()
        total_time = time.time() - self.start_time
        self.logger.info(
            f"Completed {self.description} in {total_time:.1f} seconds"
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
