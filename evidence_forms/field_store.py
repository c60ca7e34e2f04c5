"""
Single read/write path for field values.

Widget-backed fields (date / datetime) are read from and written to their
picker through the WidgetAdapter; every other field keeps its value on its
FieldState. Nothing else in the engine touches values directly.
"""

import logging
from typing import Dict, Any, Iterable, Tuple

from .field_addressing import FieldKey, encode_key
from .form_model import Form, FieldState
from .widget_adapter import WidgetAdapter

logger = logging.getLogger(__name__)


class FieldStore:

    def __init__(self, form: Form, adapter: WidgetAdapter):
        self.form = form
        self.adapter = adapter

    def read(self, key: FieldKey) -> str:
        state = self.form.state(key)
        if state.definition.widget_backed:
            return self.adapter.read(encode_key(key))
        return state.value

    def write(self, key: FieldKey, value: Any) -> None:
        state = self.form.state(key)
        if state.definition.widget_backed:
            self.adapter.write(encode_key(key), value)
        else:
            state.value = '' if value is None else str(value)

    def clear(self, key: FieldKey) -> None:
        state = self.form.state(key)
        if state.definition.widget_backed:
            self.adapter.clear(encode_key(key))
        else:
            state.value = ''
        state.issue = None
        state.annotation = None

    def values(self) -> Dict[str, str]:
        """Flat address -> value map over the whole form in document order."""
        return {encode_key(key): self.read(key) for key, _ in self.form.iter_fields()}

    # Picker bindings

    def initialize_widgets(self, fields: Iterable[Tuple[FieldKey, FieldState]]) -> int:
        count = 0
        for key, state in fields:
            if state.definition.widget_backed:
                self.adapter.initialize(encode_key(key), state.definition.kind.value, entity=state)
                count += 1
        return count

    def destroy_widgets(self, fields: Iterable[Tuple[FieldKey, FieldState]]) -> int:
        count = 0
        for key, state in fields:
            if state.definition.widget_backed:
                self.adapter.destroy(encode_key(key))
                count += 1
        return count
