#!/usr/bin/env python3
"""
Process-wide gate serializing configuration transactions.

Junos candidate locking is exclusive, so every Client in the process shares
one gate and holds it from config_lock through config_clear, not just around
single RPCs.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Optional

from junos_netconf.utils.cancellation import CancelToken
from junos_netconf.utils.error_handling import InternalError, LockAbortedError

POLL_INTERVAL = 0.5  # seconds between cancellation checks while waiting


class TransactionGate:
    """Exclusive gate with explicit acquire/release"""

    def __init__(self, name: str = "junos-configuration", logger: Optional[logging.Logger] = None):
        self.name = name
        self._lock = threading.Lock()
        self._owner: Optional[int] = None
        self._acquired_at: Optional[float] = None
        self.logger = logger or logging.getLogger(__name__)

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    def acquire(self, cancel: Optional[CancelToken] = None) -> None:
        """
        Block until the gate is free

        Raises:
            LockAbortedError: cancel fired while waiting
        """
        if cancel is None:
            self._lock.acquire()
        else:
            while not self._lock.acquire(timeout=POLL_INTERVAL):
                if cancel.cancelled:
                    raise LockAbortedError(f"{self.name} gate acquisition aborted")
        self._owner = threading.get_ident()
        self._acquired_at = time.monotonic()
        self.logger.debug(f"{self.name} gate acquired by thread {self._owner}")

    def release(self) -> None:
        """
        Raises:
            InternalError: gate not held
        """
        if not self._lock.locked():
            raise InternalError(f"release of {self.name} gate that is not held")
        held = time.monotonic() - (self._acquired_at or time.monotonic())
        self.logger.debug(f"{self.name} gate released after {held:.2f}s")
        self._owner = None
        self._acquired_at = None
        self._lock.release()

    @contextmanager
    def hold(self, cancel: Optional[CancelToken] = None):
        """Hold the gate for the duration of the with-block"""
        self.acquire(cancel)
        try:
            yield self
        finally:
            self.release()


_transaction_gate = TransactionGate()


def get_transaction_gate() -> TransactionGate:
    """Gate shared by every Client in the process"""
    return _transaction_gate
