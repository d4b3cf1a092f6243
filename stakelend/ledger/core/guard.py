# MIT License
# Copyright (c) 2025 Hashborn

import threading
import logging
from ...protocol.types.common import ReentrancyError

logger = logging.getLogger(__name__)


class NonReentrant:
    """
    Scoped reentrancy guard.

    `with guard:` is released on every exit path. A second entry while the
    guard is held (e.g. from a transfer hook calling back into the ledger)
    raises ReentrancyError instead of blocking.
    """

    def __init__(self, name: str = "ledger"):
        self.name = name
        self._lock = threading.Lock()

    @property
    def entered(self) -> bool:
        return self._lock.locked()

    def __enter__(self) -> 'NonReentrant':
        if not self._lock.acquire(blocking=False):
            logger.warning(f"Reentrant call blocked by guard '{self.name}'")
            raise ReentrancyError(f"Reentrant call into {self.name}")
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self._lock.release()
        return False
