"""
Validation engine for the dynamic form.

Required-ness is computed, not stored: a field is required right now when
its definition says so and it is visible, and it is visible when its
controlling sibling holds the expected value (recursively). The engine
keeps each FieldState's issue/annotation current as values change, runs
debounced validation for typed input, and produces the exhaustive result
used to gate submission.
"""

import logging
from datetime import datetime
from typing import Dict, Callable, Iterator, List, NamedTuple, Optional, Tuple

from .field_addressing import FieldKey, encode_key, section_address
from .field_store import FieldStore
from .form_definition import CHOICE_KINDS
from .form_model import Form, FieldState
from .scheduler import Scheduler, TimerHandle
from .validators import FieldResult, ValidationIssue, ValidationSettings, check_field, is_blank

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.5


class ValidationResult(NamedTuple):
    is_valid: bool
    errors: Dict[str, ValidationIssue]
    first_invalid: Optional[str]


class ValidationEngine:
    """
    Evaluates rules and visibility over a Form.

    Args:
        form: Form tree
        store: FieldStore used for every value read
        scheduler: Scheduler used for debounced validation
        settings: Email domain, phone digits and identifier prefix
        debounce_seconds: Idle time before typed input is validated
        now: Callable returning the reference time for future-date rules
    """

    def __init__(self, form: Form, store: FieldStore, scheduler: Scheduler,
                 settings: Optional[ValidationSettings] = None,
                 debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
                 now: Optional[Callable[[], datetime]] = None):
        self.form = form
        self.store = store
        self.scheduler = scheduler
        self.settings = settings or ValidationSettings()
        self.debounce_seconds = debounce_seconds
        self.now = now or datetime.now
        self._pending: Dict[FieldState, TimerHandle] = {}
        self._listeners: List[Callable[[], None]] = []

    def add_listener(self, listener: Callable[[], None]) -> None:
        """Register a callback run after validity or required-ness may have changed."""
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in self._listeners:
            listener()

    # Visibility and required-ness

    def controller_of(self, key: FieldKey) -> Optional[FieldKey]:
        condition = self.form.state(key).definition.visible_when
        if condition is None:
            return None
        return key.sibling(condition.field, self.form.scopes[condition.field])

    def is_visible(self, key: FieldKey) -> bool:
        definition = self.form.state(key).definition
        if definition.visible_when is None:
            return True
        controller = self.controller_of(key)
        if not self.is_visible(controller):
            return False
        return definition.visible_when.matches(self.store.read(controller))

    def required_now(self, key: FieldKey) -> bool:
        return self.form.state(key).definition.required and self.is_visible(key)

    def dependents_of(self, key: FieldKey) -> Iterator[FieldKey]:
        """Keys of the fields whose visibility this field controls."""
        name = key.base_name
        dependent_names = {d.name for d in self.form.definition.dependents_of(name)}
        if not dependent_names:
            return
        scope = self.form.scopes[name]
        for candidate, _ in self.form.iter_fields():
            if candidate.base_name in dependent_names and candidate.sibling(name, scope) == key:
                yield candidate

    def visible_sections(self) -> List[str]:
        """Addresses of the conditional sections that are currently open."""
        sections = []
        for key, state in self.form.iter_fields():
            if state.definition.conditional and self.is_visible(key):
                sections.append(section_address(key.base_name, key.group_index, key.item_index))
        return sections

    # Checking

    def _related_values(self, key: FieldKey) -> Dict[str, Optional[str]]:
        related = {}
        for rule in self.form.state(key).definition.rules:
            if rule.type == 'after':
                partner = key.sibling(rule.field, self.form.scopes[rule.field])
                related[rule.field] = self.store.read(partner)
        return related

    def check(self, key: FieldKey) -> FieldResult:
        """Evaluate a field without recording the outcome."""
        if not self.is_visible(key):
            return FieldResult()
        state = self.form.state(key)
        return check_field(state.definition, self.store.read(key), self.required_now(key),
                           related=self._related_values(key), now=self.now(), settings=self.settings)

    def validate_field(self, key: FieldKey) -> Optional[ValidationIssue]:
        """Evaluate a field and record its issue and annotation on the FieldState."""
        result = self.check(key)
        state = self.form.state(key)
        state.issue = result.issue
        state.annotation = result.annotation
        if result.issue is not None:
            logger.debug(f"{encode_key(key)} invalid: {result.issue.message}")
        return result.issue

    # Events

    def handle_change(self, key: FieldKey) -> Optional[ValidationIssue]:
        """
        React to a committed value change.

        Validates the field, updates the visibility of its dependents and
        re-checks any field ordered after it.
        """
        self._cancel_pending(self.form.state(key))
        issue = self.validate_field(key)
        self._update_dependents(key)
        self._recheck_ordered_partners(key)
        self._notify()
        return issue

    def handle_input(self, key: FieldKey) -> None:
        """Schedule validation after typing stops; a new keystroke restarts the wait."""
        state = self.form.state(key)
        self._cancel_pending(state)
        self._pending[state] = self.scheduler.call_later(
            self.debounce_seconds, self._debounced_validate, state, name=f"validate {encode_key(key)}")

    def handle_blur(self, key: FieldKey) -> Optional[ValidationIssue]:
        self._cancel_pending(self.form.state(key))
        issue = self.validate_field(key)
        self._notify()
        return issue

    def _debounced_validate(self, state: FieldState) -> None:
        self._pending.pop(state, None)
        key = self.form.key_of(state)
        if key is None:
            return
        self.handle_change(key)

    def _cancel_pending(self, state: FieldState) -> None:
        handle = self._pending.pop(state, None)
        if handle is not None:
            handle.cancel()

    def cancel_all(self) -> None:
        for handle in self._pending.values():
            handle.cancel()
        self._pending.clear()

    def _update_dependents(self, key: FieldKey) -> None:
        for dependent in list(self.dependents_of(key)):
            state = self.form.state(dependent)
            if not self.is_visible(dependent):
                if not is_blank(self.store.read(dependent)) or state.issue is not None:
                    logger.debug(f"Clearing hidden field {encode_key(dependent)}")
                self._cancel_pending(state)
                self.store.clear(dependent)
            elif not is_blank(self.store.read(dependent)):
                self.validate_field(dependent)
            else:
                # Shown but still empty: flagged on blur or submit, not on reveal.
                state.issue = None
            self._update_dependents(dependent)

    def _recheck_ordered_partners(self, key: FieldKey) -> None:
        for definition in self.form.definition.ordered_after(key.base_name):
            partner = key.sibling(definition.name, definition.scope)
            if not self.form.contains(partner):
                continue
            if not is_blank(self.store.read(partner)) or self.form.state(partner).issue is not None:
                self.validate_field(partner)

    # Whole form

    def validate_all(self) -> ValidationResult:
        """
        Validate every field and flag all failures at once.

        Returns:
            ValidationResult with errors keyed by address and the first
            invalid address in document order
        """
        self.cancel_all()
        errors: Dict[str, ValidationIssue] = {}
        first_invalid = None

        for key, _ in self.form.iter_fields():
            issue = self.validate_field(key)
            if issue is not None:
                address = encode_key(key)
                errors[address] = issue
                if first_invalid is None:
                    first_invalid = address

        self._notify()
        if errors:
            logger.info(f"Validation found {len(errors)} invalid field(s); first is {first_invalid}")
        return ValidationResult(not errors, errors, first_invalid)

    def sync_all(self) -> ValidationResult:
        """
        Bring every field's recorded state in line with the current values.

        Used after values are written in bulk (draft restore). Hidden fields
        are cleared, filled fields are validated and empty fields are left
        unflagged until blur or submit.
        """
        self.cancel_all()
        errors: Dict[str, ValidationIssue] = {}
        first_invalid = None

        for key, state in self.form.iter_fields():
            if not self.is_visible(key):
                self.store.clear(key)
                continue
            if is_blank(self.store.read(key)):
                state.issue = None
                state.annotation = None
                continue
            issue = self.validate_field(key)
            if issue is not None:
                address = encode_key(key)
                errors[address] = issue
                first_invalid = first_invalid or address

        self._notify()
        return ValidationResult(not errors, errors, first_invalid)

    def clear_errors(self) -> None:
        for _, state in self.form.iter_fields():
            state.issue = None
            state.annotation = None

    def errors(self) -> List[Tuple[str, ValidationIssue]]:
        """Issues currently recorded on the form, in document order."""
        return [(encode_key(key), state.issue) for key, state in self.form.iter_fields() if state.issue is not None]
