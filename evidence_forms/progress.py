"""
Completion progress over the currently required fields.
"""

import logging
from typing import Callable, List, Optional

from .validation_engine import ValidationEngine

logger = logging.getLogger(__name__)

LOW_BAND_MAX = 33
MEDIUM_BAND_MAX = 66


def progress_band(percentage: int) -> str:
    """Bucket a percentage for display: 'low' (0-33), 'medium' (34-66) or 'high'."""
    if percentage <= LOW_BAND_MAX:
        return 'low'
    if percentage <= MEDIUM_BAND_MAX:
        return 'medium'
    return 'high'


def calculate_progress(engine: ValidationEngine) -> int:
    """
    Percentage of currently required fields that hold a valid value.

    Args:
        engine: Validation engine bound to the form

    Returns:
        Integer 0-100; 0 when nothing is required
    """
    required = 0
    filled = 0
    for key, _ in engine.form.iter_fields():
        if not engine.required_now(key):
            continue
        required += 1
        if engine.check(key).is_valid:
            filled += 1

    if required == 0:
        return 0
    return round(filled / required * 100)


class ProgressCalculator:
    """Caches the progress percentage and recomputes it when told the form changed."""

    def __init__(self, engine: ValidationEngine):
        self.engine = engine
        self._percentage: Optional[int] = None
        self._listeners: List[Callable[[int], None]] = []

    def add_listener(self, listener: Callable[[int], None]) -> None:
        self._listeners.append(listener)

    @property
    def percentage(self) -> int:
        if self._percentage is None:
            self.recompute()
        return self._percentage

    @property
    def band(self) -> str:
        return progress_band(self.percentage)

    def invalidate(self, *_args) -> None:
        """Listener hook for value, structure and required-ness changes."""
        self.recompute()

    def recompute(self) -> int:
        previous = self._percentage
        self._percentage = calculate_progress(self.engine)
        if previous != self._percentage:
            logger.debug(f"Progress {previous} -> {self._percentage}%")
            for listener in self._listeners:
                listener(self._percentage)
        return self._percentage
