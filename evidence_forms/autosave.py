"""
Debounced draft autosave.

Edits set a dirty flag and restart an idle timer on the engine scheduler.
When the timer fires the form is serialized and compared with the last
saved payload; an unchanged payload is not written again.
"""

import logging
from typing import Dict, Any, Callable, Optional

from deepdiff import DeepDiff

from .draft_codec import DraftSnapshot
from .scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

DEFAULT_AUTOSAVE_DELAY_SECONDS = 2.0


def _payload(snapshot: DraftSnapshot) -> Dict[str, Any]:
    """Parts of a snapshot that matter for change detection (timestamps excluded)."""
    return {
        'structural_counts': snapshot.structural_counts.model_dump(),
        'field_values': dict(snapshot.field_values),
        'visible_sections': sorted(snapshot.visible_sections),
    }


class AutosaveTask:
    """
    Args:
        scheduler: Scheduler the idle timer runs on
        serialize: Callable returning a fresh DraftSnapshot
        save: Callable persisting a snapshot, returning True on success
        delay_seconds: Idle time after the last edit before saving
    """

    def __init__(self, scheduler: Scheduler, serialize: Callable[[], DraftSnapshot],
                 save: Callable[[DraftSnapshot], bool],
                 delay_seconds: float = DEFAULT_AUTOSAVE_DELAY_SECONDS):
        self.scheduler = scheduler
        self.serialize = serialize
        self.save = save
        self.delay_seconds = delay_seconds
        self.dirty = False
        self.enabled = True
        self.save_count = 0
        self._timer: Optional[TimerHandle] = None
        self._last_payload: Optional[Dict[str, Any]] = None

    def mark_dirty(self) -> None:
        """Record an edit and restart the idle timer (last write wins)."""
        if not self.enabled:
            return
        self.dirty = True
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self.scheduler.call_later(self.delay_seconds, self.run, name="autosave")

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.dirty = False

    def mark_saved(self, snapshot: Optional[DraftSnapshot]) -> None:
        """Remember what is already persisted (after a manual save or a restore)."""
        self._last_payload = _payload(snapshot) if snapshot is not None else None

    def run(self) -> bool:
        """
        Save now if there are unsaved edits.

        Returns:
            True if a draft was written
        """
        self._timer = None
        if not self.dirty:
            return False
        self.dirty = False

        snapshot = self.serialize()
        payload = _payload(snapshot)
        if self._last_payload is not None and not DeepDiff(self._last_payload, payload):
            logger.debug("Autosave skipped: nothing changed since the last save")
            return False

        if not self.save(snapshot):
            logger.warning("Autosave failed; will retry on the next edit")
            return False

        self._last_payload = payload
        self.save_count += 1
        logger.info(f"Autosaved draft ({len(snapshot.field_values)} values)")
        return True
