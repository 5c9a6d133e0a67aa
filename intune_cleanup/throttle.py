import logging
import time
from contextlib import contextmanager
from typing import Iterator, Optional


class WriteRateLimiter:
    """
    Client side:
    - Controls how frequently mutating Graph calls (delete/retire/wipe/rename) are made

    Service side:
    - Keeps the tenant below the Intune/Graph write throttling thresholds
    """

    def __init__(
        self,
        logger: logging.Logger,
        max_writes_before_pause: int = 25,
        pause_seconds: float = 5.0,
        min_seconds_between_writes: float = 0.2,
    ):
        self.logger = logger
        self.max_writes_before_pause = max_writes_before_pause
        self.pause_seconds = pause_seconds
        self.min_seconds_between_writes = min_seconds_between_writes

        self.write_count = 0
        self._last_write_ts: Optional[float] = None

    def before_write(self) -> None:
        # Enforce minimum spacing between writes
        if self.min_seconds_between_writes and self._last_write_ts is not None:
            elapsed = time.monotonic() - self._last_write_ts
            if elapsed < self.min_seconds_between_writes:
                time.sleep(self.min_seconds_between_writes - elapsed)

        # Pause after N writes if configured
        if self.max_writes_before_pause and self.write_count > 0:
            if self.write_count % self.max_writes_before_pause == 0:
                self.logger.info(
                    "Rate limit: %d writes reached, pausing for %s seconds...",
                    self.write_count,
                    self.pause_seconds,
                )
                time.sleep(self.pause_seconds)

    def after_write(self) -> None:
        self.write_count += 1
        self._last_write_ts = time.monotonic()

    @contextmanager
    def write(self) -> Iterator[None]:
        self.before_write()
        yield
        self.after_write()
