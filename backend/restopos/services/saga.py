# Overview: Minimal saga runner; records compensations for completed steps and undoes them in reverse.

from __future__ import annotations

import logging
from typing import Callable

logger = logging.getLogger(__name__)


class Saga:
    """
    Sequence of individually committed steps.

    Each step pairs a forward action with the compensation that undoes it.
    When a later step fails, compensations of the completed steps run in
    reverse order and the original error is re-raised. A compensation that
    itself fails is logged and the remaining ones still run.

    Usage:
        saga = Saga("create_order")
        try:
            movements = saga.step(lambda: reserve(...), lambda movements: release(...))
            order = saga.step(lambda: persist(...), lambda order: delete(order))
        except Exception:
            saga.compensate()
            raise
    """

    def __init__(self, name: str):
        self.name = name
        self._compensations: list[tuple[str, Callable[[], None]]] = []

    def step(self, forward: Callable, compensate: Callable | None = None, *, label: str | None = None):
        result = forward()
        if compensate is not None:
            self._compensations.append(
                (label or getattr(forward, "__name__", "step"), lambda: compensate(result))
            )
        return result

    @property
    def completed_steps(self) -> int:
        return len(self._compensations)

    def compensate(self) -> None:
        while self._compensations:
            label, undo = self._compensations.pop()
            try:
                undo()
            except Exception:
                logger.exception("Saga %s: compensation %r failed", self.name, label)
