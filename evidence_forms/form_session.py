"""
FormSession: one live form per page session.

Wires the form tree, widget adapter, lifecycle manager, validation engine,
progress calculator, draft store and autosave task together and exposes
the operations the UI calls, addressed by wire address.
"""

import logging
from datetime import datetime
from typing import Dict, Any, Callable, Optional

from .autosave import AutosaveTask
from .config_loader import get_default_config
from .draft_codec import DraftSnapshot, restore_form, serialize_form
from .draft_store import DraftStore
from .exceptions import AddressError
from .field_addressing import FieldKey
from .field_store import FieldStore
from .form_data_collector import collect_form_data
from .form_definition import FormDefinition, load_form_definition
from .form_model import Form
from .lifecycle import LifecycleManager, StructureChange
from .progress import ProgressCalculator, progress_band
from .scheduler import Scheduler
from .validation_engine import ValidationEngine, ValidationResult
from .validators import ValidationIssue, ValidationSettings
from .widget_adapter import PickerFactory, WidgetAdapter

logger = logging.getLogger(__name__)


class FormSession:
    """
    Façade over the form engine for a single page session.

    Args:
        definition: Form definition (loaded from config when omitted)
        config: Application configuration (defaults when omitted)
        scheduler: Scheduler for timers (a new one when omitted)
        picker_factory: Factory for date pickers (Streamlit pickers when omitted)
        draft_store: Draft storage (built from config when omitted)
        now: Callable returning the current datetime, for drafts and date rules
    """

    def __init__(self, definition: Optional[FormDefinition] = None,
                 config: Optional[Dict[str, Any]] = None,
                 scheduler: Optional[Scheduler] = None,
                 picker_factory: Optional[PickerFactory] = None,
                 draft_store: Optional[DraftStore] = None,
                 now: Optional[Callable[[], datetime]] = None):
        self.config = config or get_default_config()
        form_config = self.config.get('form', {})
        drafts_config = self.config.get('drafts', {})
        validation_config = self.config.get('validation', {})

        self.definition = definition or load_form_definition(form_config.get('definition'))
        self.now = now or datetime.now
        self.scheduler = scheduler or Scheduler()

        self.form = Form(self.definition)
        self.adapter = WidgetAdapter(
            self.scheduler, picker_factory,
            read_defer_seconds=float(self.config.get('widgets', {}).get('read_defer_seconds', 0.0)))
        self.store = FieldStore(self.form, self.adapter)
        self.lifecycle = LifecycleManager(self.form, self.store)
        self.engine = ValidationEngine(
            self.form, self.store, self.scheduler,
            settings=ValidationSettings.from_config(self.config),
            debounce_seconds=float(validation_config.get('debounce_seconds', 0.5)),
            now=self.now)
        self.progress = ProgressCalculator(self.engine)
        self.drafts = draft_store or DraftStore.from_config(self.definition, self.config, now=self.now)
        self.expiry_days = int(drafts_config.get('expiry_days', 7))
        self.autosave = AutosaveTask(
            self.scheduler, self.serialize, self.drafts.save,
            delay_seconds=float(drafts_config.get('autosave_delay_seconds', 2.0)))
        self.autosave.enabled = bool(drafts_config.get('enabled', True))
        self.has_started_working = False
        self.revision = 0

        self.engine.add_listener(self.progress.invalidate)
        self.engine.add_listener(self._bump_revision)
        self.lifecycle.add_listener(self._on_structure_change)
        self.lifecycle.attach()

        logger.info(f"Form session started for '{self.form_type}'")

    @property
    def form_type(self) -> str:
        return self.definition.form_type

    def _on_structure_change(self, change: StructureChange) -> None:
        self.progress.recompute()
        self._bump_revision()

    def _bump_revision(self) -> None:
        self.revision += 1

    def _touched(self) -> None:
        self.has_started_working = True
        self.autosave.mark_dirty()

    # Addressing

    def key(self, address: str) -> FieldKey:
        """
        Resolve an address against the current structure.

        Raises:
            AddressError: If the address is malformed or not present
        """
        key = self.form.decode(address)
        if not self.form.contains(key):
            raise AddressError(f"No field at '{address}' in the current form")
        return key

    def addresses(self) -> Dict[FieldKey, str]:
        return self.form.address_map()

    # Values and events

    def value(self, address: str) -> str:
        return self.store.read(self.key(address))

    def set_value(self, address: str, value: Any) -> Optional[ValidationIssue]:
        """Commit a value (select, radio, date or finished text) and validate it."""
        key = self.key(address)
        self.store.write(key, value)
        issue = self.engine.handle_change(key)
        self._touched()
        return issue

    def input_text(self, address: str, value: Any) -> None:
        """Record typed text; validation follows once typing pauses."""
        key = self.key(address)
        self.store.write(key, value)
        self.engine.handle_input(key)
        self._touched()

    def blur(self, address: str) -> Optional[ValidationIssue]:
        return self.engine.handle_blur(self.key(address))

    def picker_changed(self, address: str) -> None:
        """Called when a date picker reports a change; the value is read one tick later."""
        self.adapter.notify_picker_changed(address, self._on_picker_read)

    def _on_picker_read(self, address: str, value: str) -> None:
        key = self.form.decode(address)
        if not self.form.contains(key):
            return
        self.engine.handle_change(key)
        self._touched()

    def issue(self, address: str) -> Optional[ValidationIssue]:
        return self.form.state(self.key(address)).issue

    def annotation(self, address: str) -> Optional[str]:
        return self.form.state(self.key(address)).annotation

    def is_visible(self, address: str) -> bool:
        return self.engine.is_visible(self.key(address))

    def is_required(self, address: str) -> bool:
        return self.engine.required_now(self.key(address))

    # Structure

    def add_group(self) -> int:
        index = self.lifecycle.add_group()
        self._touched()
        return index

    def remove_group(self, index: int) -> None:
        self.lifecycle.remove_group(index)
        self._touched()

    def add_item(self, group_index: int) -> int:
        index = self.lifecycle.add_item(group_index)
        self._touched()
        return index

    def remove_item(self, group_index: int, item_index: int) -> None:
        self.lifecycle.remove_item(group_index, item_index)
        self._touched()

    def reset(self) -> None:
        """Clear the whole form back to one DVR and one time frame."""
        self.engine.cancel_all()
        self.lifecycle.reset()
        self.autosave.cancel()
        self.has_started_working = False

    # Progress and validation

    @property
    def progress_percentage(self) -> int:
        return self.progress.percentage

    @property
    def progress_band(self) -> str:
        return progress_band(self.progress.percentage)

    def validate_all(self) -> ValidationResult:
        return self.engine.validate_all()

    def collect_data(self) -> Dict[str, Any]:
        return collect_form_data(self)

    # Drafts

    def serialize(self) -> DraftSnapshot:
        return serialize_form(self, self.form_type, now=self.now(), expiry_days=self.expiry_days)

    def save_draft(self) -> bool:
        snapshot = self.serialize()
        saved = self.drafts.save(snapshot)
        if saved:
            self.autosave.cancel()
            self.autosave.mark_saved(snapshot)
        return saved

    def load_draft(self) -> bool:
        """
        Restore the stored draft, if there is a usable one.

        Returns:
            True if a draft was restored
        """
        snapshot = self.drafts.load(self.form_type, now=self.now())
        if snapshot is None:
            logger.info(f"No draft available for '{self.form_type}'")
            return False

        restore_form(snapshot, self)
        self.autosave.cancel()
        self.autosave.mark_saved(snapshot)
        self.has_started_working = True
        return True

    def has_draft(self) -> bool:
        return self.drafts.has_draft(self.form_type, now=self.now())

    def draft_age(self) -> Optional[str]:
        return self.drafts.draft_age(self.form_type, now=self.now())

    def clear_draft(self) -> bool:
        self.autosave.mark_saved(None)
        return self.drafts.clear(self.form_type)

    # Timers

    def tick(self) -> int:
        """Run every timer that is due (mounts, deferred reads, debounced validation, autosave)."""
        return self.scheduler.run_due()

    def background_tick(self) -> bool:
        """
        Run due timers while the page is idle.

        Returns:
            True if a timer changed field values, validity or structure,
            meaning the page needs redrawing; an autosave alone does not
        """
        revision = self.revision
        self.tick()
        return self.revision != revision
