"""Compensating cleanup for multi-step writes to a store without transactions."""

from __future__ import annotations

import logging
from typing import Callable, List, Tuple

logger = logging.getLogger(__name__)


class Rollback:
    """
    Collects undo actions as a sequence of writes proceeds.

    Used as a context manager. Actions registered with ``on_failure`` run only
    if the block raises; actions registered with ``always`` run on every exit.
    Actions run newest first. A failing action is logged and kept in
    ``errors``; it never replaces the exception that triggered the unwind and
    never stops the remaining actions.
    """

    def __init__(self) -> None:
        self._actions: List[Tuple[str, Callable[[], object], bool]] = []
        self.errors: List[Tuple[str, Exception]] = []

    def on_failure(self, description: str, action: Callable[[], object]) -> None:
        self._actions.append((description, action, False))

    def always(self, description: str, action: Callable[[], object]) -> None:
        self._actions.append((description, action, True))

    def __enter__(self) -> "Rollback":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        failed = exc_type is not None
        while self._actions:
            description, action, unconditional = self._actions.pop()
            if not (failed or unconditional):
                continue
            try:
                action()
            except Exception as e:
                logger.debug("error %s: %s", description, e)
                self.errors.append((description, e))
        return False
