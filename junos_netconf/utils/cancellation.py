#!/usr/bin/env python3
"""
Cancellation token for blocking retry and poll loops.

Connection retries, candidate lock polling and the confirmed-commit wait all
sleep through a CancelToken so that a caller (or an overall deadline) can stop
them between iterations. RPCs already sent are never interrupted.
"""

import logging
import threading
import time
from typing import Optional


class CancelToken:
    """Cancellation signal with an optional overall deadline"""

    def __init__(self, timeout: Optional[float] = None, operation_name: str = None):
        """
        Args:
            timeout: Seconds from now after which the token counts as cancelled
            operation_name: Name used in log messages
        """
        self.operation_name = operation_name or "operation"
        self.start_time = time.monotonic()
        self.deadline = self.start_time + timeout if timeout is not None else None
        self._event = threading.Event()
        self.logger = logging.getLogger(__name__)

    def cancel(self):
        """Fire the token; waiting loops return at their next check"""
        if not self._event.is_set():
            self.logger.debug(f"{self.operation_name} cancelled")
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining_time(self) -> Optional[float]:
        """Seconds left before the deadline, None without a deadline"""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def wait(self, seconds: float) -> bool:
        """
        Sleep up to `seconds`, returning early if the token fires.

        Returns:
            True if the token is cancelled when the wait ends, False otherwise
        """
        if self.cancelled:
            return True
        timeout = seconds
        remaining = self.remaining_time()
        if remaining is not None and remaining < timeout:
            timeout = remaining
        self._event.wait(max(0.0, timeout))
        return self.cancelled

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed = time.monotonic() - self.start_time
        self.logger.debug(f"{self.operation_name} finished in {elapsed:.2f}s")
