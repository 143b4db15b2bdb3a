"""
Per-Loan Locking

Serializes every mutation of a single loan's installment ledger
(allocation, regeneration, overdue marking) within the process.
"""

from contextlib import contextmanager
from typing import Dict
import threading


class LoanLockRegistry:
    """Hands out one re-entrant lock per loan id"""

    def __init__(self):
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def lock_for(self, loan_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(loan_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[loan_id] = lock
            return lock

    @contextmanager
    def hold(self, loan_id: str):
        """Hold the loan's lock for the duration of the block"""
        lock = self.lock_for(loan_id)
        with lock:
            yield

    def discard(self, loan_id: str) -> None:
        """Forget the lock of a deleted loan"""
        with self._guard:
            self._locks.pop(loan_id, None)
