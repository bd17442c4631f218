"""Write-suppression state machine used to break save feedback loops.

    ACTIVE ──restore-type mutation──▶ RESTORING ──done──▶ ACTIVE
    ACTIVE ──full snapshot restore──▶ RESTORING ──done──▶ COOLDOWN(until) ──expires──▶ ACTIVE

Saves are only allowed in ACTIVE.
"""
from __future__ import annotations

import time
from contextlib import contextmanager
from enum import Enum
from typing import Callable, Iterator


class SuppressionState(str, Enum):
    ACTIVE = "active"
    RESTORING = "restoring"
    COOLDOWN = "cooldown"


class WriteSuppression:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._restoring_depth = 0
        self._cooldown_until = 0.0

    @property
    def state(self) -> SuppressionState:
        if self._restoring_depth > 0:
            return SuppressionState.RESTORING
        if self._clock() < self._cooldown_until:
            return SuppressionState.COOLDOWN
        return SuppressionState.ACTIVE

    @property
    def cooldown_until(self) -> float:
        return self._cooldown_until

    def allows_save(self) -> bool:
        return self.state is SuppressionState.ACTIVE

    @contextmanager
    def restoring(self, cooldown: float = 0.0) -> Iterator[None]:
        """Suppress saves while the block runs, then optionally hold a cooldown."""
        self._restoring_depth += 1
        try:
            yield
        finally:
            self._restoring_depth -= 1
            if cooldown > 0:
                self._cooldown_until = max(self._cooldown_until, self._clock() + cooldown)
