"""
Adapter between the form engine and the date/time picker widgets.

A picker keeps its own authoritative value and only becomes usable once it
has mounted, one scheduler tick after it is created. The adapter owns one
binding per widget-backed field address and enforces the rules that come
with that:

- reads always go to the picker, never to a copy held elsewhere;
- writes go through the picker's set_date / clear API and are queued
  until the picker is mounted;
- a read triggered by a picker change is deferred by one tick so the
  picker has flushed its internal state first.
"""

import logging
from abc import ABC, abstractmethod
from datetime import date, datetime
from enum import Enum
from typing import Dict, Any, Callable, Iterable, List, Optional

import streamlit as st

from .exceptions import AddressError, WidgetNotReady
from .field_addressing import AddressChange
from .scheduler import Scheduler

logger = logging.getLogger(__name__)

PICKER_KEY_PREFIX = "picker_"
_CLEAR = object()


def normalize_picker_value(value: Any, kind: str = 'datetime') -> str:
    """Turn date/datetime objects into the ISO strings the form stores."""
    if value is None:
        return ''
    if isinstance(value, datetime):
        return value.strftime('%Y-%m-%d') if kind == 'date' else value.strftime('%Y-%m-%dT%H:%M')
    if isinstance(value, date):
        return value.strftime('%Y-%m-%d')
    return str(value).strip()


class PickerState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    BOUND = "bound"


class DatePickerWidget(ABC):
    """Narrow contract the engine relies on: mount, set_date, clear and a live value."""

    def __init__(self, address: str, kind: str = 'datetime'):
        self.address = address
        self.kind = kind
        self.mounted = False

    @abstractmethod
    def mount(self) -> None:
        pass

    @abstractmethod
    def set_date(self, value: Any) -> None:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass

    @property
    @abstractmethod
    def value(self) -> str:
        pass

    def detach(self) -> str:
        """Release the storage held under the current address and return the value it held."""
        return self.value if self.mounted else ''

    def attach(self, address: str, value: str) -> None:
        self.address = address

    def destroy(self) -> None:
        self.mounted = False

    def _require_mounted(self, operation: str) -> None:
        if not self.mounted:
            raise WidgetNotReady(self.address, operation)


class InMemoryDatePicker(DatePickerWidget):
    """
    Picker that keeps its value in memory.

    When given a scheduler, user selections update the internal value one
    tick later, the way a browser picker flushes after firing its change
    event.
    """

    def __init__(self, address: str, kind: str = 'datetime', scheduler: Optional[Scheduler] = None):
        super().__init__(address, kind)
        self._value = ''
        self._scheduler = scheduler

    def mount(self) -> None:
        self.mounted = True

    def set_date(self, value: Any) -> None:
        self._require_mounted('set_date')
        self._value = normalize_picker_value(value, self.kind)

    def clear(self) -> None:
        self._require_mounted('clear')
        self._value = ''

    @property
    def value(self) -> str:
        self._require_mounted('read')
        return self._value

    def user_select(self, value: Any) -> None:
        """Simulate a selection made in the picker UI."""
        normalized = normalize_picker_value(value, self.kind)
        if self._scheduler is None:
            self._value = normalized
        else:
            self._scheduler.call_soon(setattr, self, '_value', normalized, name=f"flush {self.address}")

    def attach(self, address: str, value: str) -> None:
        super().attach(address, value)
        self._value = value


class StreamlitDatePicker(DatePickerWidget):
    """Picker whose authoritative value lives in st.session_state['picker_<address>']."""

    @property
    def session_key(self) -> str:
        return f"{PICKER_KEY_PREFIX}{self.address}"

    def mount(self) -> None:
        if self.session_key not in st.session_state:
            st.session_state[self.session_key] = ''
        self.mounted = True

    def set_date(self, value: Any) -> None:
        self._require_mounted('set_date')
        st.session_state[self.session_key] = normalize_picker_value(value, self.kind)

    def clear(self) -> None:
        self._require_mounted('clear')
        st.session_state[self.session_key] = ''

    @property
    def value(self) -> str:
        self._require_mounted('read')
        return normalize_picker_value(st.session_state.get(self.session_key, ''), self.kind)

    def detach(self) -> str:
        value = self.value if self.mounted else ''
        if self.session_key in st.session_state:
            del st.session_state[self.session_key]
        return value

    def attach(self, address: str, value: str) -> None:
        super().attach(address, value)
        if self.mounted:
            st.session_state[self.session_key] = value

    def destroy(self) -> None:
        if self.session_key in st.session_state:
            del st.session_state[self.session_key]
        super().destroy()


class PickerBinding:
    """One field address bound to one picker instance."""

    def __init__(self, address: str, picker: DatePickerWidget, entity: Any = None):
        self.address = address
        self.picker = picker
        self.entity = entity
        self.state = PickerState.UNINITIALIZED
        self.pending: List[Any] = []
        self.destroyed = False

    def __repr__(self) -> str:
        return f"PickerBinding({self.address!r}, {self.state.value})"


PickerFactory = Callable[[str, str], DatePickerWidget]


class WidgetAdapter:
    """
    Owns the table of picker bindings, keyed by field address.

    Args:
        scheduler: Engine scheduler used for mounting and deferred reads
        picker_factory: Callable(address, kind) -> DatePickerWidget
        read_defer_seconds: Delay applied to reads after a picker change
    """

    def __init__(self, scheduler: Scheduler, picker_factory: Optional[PickerFactory] = None,
                 read_defer_seconds: float = 0.0):
        self.scheduler = scheduler
        self.picker_factory = picker_factory or (lambda address, kind: StreamlitDatePicker(address, kind))
        self.read_defer_seconds = read_defer_seconds
        self._bindings: Dict[str, PickerBinding] = {}

    # Lifecycle

    def initialize(self, address: str, kind: str = 'datetime', entity: Any = None) -> PickerBinding:
        """Create a picker for a field and schedule its mount for the next tick."""
        if address in self._bindings:
            raise AddressError(f"Picker already bound at '{address}'")

        binding = PickerBinding(address, self.picker_factory(address, kind), entity)
        self._bindings[address] = binding
        self.scheduler.call_soon(self._mount, binding, name=f"mount {address}")
        logger.debug(f"Picker initialized for {address}")
        return binding

    def _mount(self, binding: PickerBinding) -> None:
        if binding.destroyed:
            return
        binding.picker.mount()
        binding.state = PickerState.READY
        logger.debug(f"Picker mounted for {binding.address}")
        self._flush(binding)

    def _flush(self, binding: PickerBinding) -> None:
        queued, binding.pending = binding.pending, []
        for value in queued:
            self._apply(binding, value)

    def _apply(self, binding: PickerBinding, value: Any) -> None:
        try:
            if value is _CLEAR or normalize_picker_value(value, binding.picker.kind) == '':
                binding.picker.clear()
                binding.state = PickerState.READY
            else:
                binding.picker.set_date(value)
                binding.state = PickerState.BOUND
        except WidgetNotReady:
            logger.debug(f"Picker at {binding.address} not ready, retrying write on next tick")
            binding.state = PickerState.UNINITIALIZED
            binding.pending.append(value)
            self.scheduler.call_soon(self._mount, binding, name=f"remount {binding.address}")

    def destroy(self, address: str) -> None:
        binding = self._bindings.pop(address, None)
        if binding is None:
            return
        binding.destroyed = True
        binding.picker.destroy()
        logger.debug(f"Picker destroyed for {address}")

    def destroy_all(self) -> None:
        for address in list(self._bindings):
            self.destroy(address)

    # Reads and writes

    def _binding(self, address: str) -> PickerBinding:
        try:
            return self._bindings[address]
        except KeyError:
            raise AddressError(f"No picker bound at '{address}'")

    def write(self, address: str, value: Any) -> None:
        """Set a picker's value, queueing the write until the picker is mounted."""
        binding = self._binding(address)
        if binding.state == PickerState.UNINITIALIZED:
            binding.pending.append(value)
            return
        self._apply(binding, value)

    def clear(self, address: str) -> None:
        self.write(address, _CLEAR)

    def read(self, address: str) -> str:
        """
        Current picker value.

        Before mount the last queued write is reported, so values written
        during a restore are visible to the validation pass that follows.
        """
        binding = self._binding(address)
        if binding.state == PickerState.UNINITIALIZED:
            if not binding.pending:
                return ''
            value = binding.pending[-1]
            return '' if value is _CLEAR else normalize_picker_value(value, binding.picker.kind)
        return binding.picker.value

    def notify_picker_changed(self, address: str, callback: Callable[[str, str], Any]) -> None:
        """
        Handle a change event fired by a picker.

        The read is deferred so the picker has finished updating; the
        callback receives the address current at read time and the value.
        """
        binding = self._binding(address)

        def deferred_read():
            if binding.destroyed:
                return
            callback(binding.address, self.read(binding.address))

        self.scheduler.call_later(self.read_defer_seconds, deferred_read, name=f"read {address}")

    # Renumbering

    def rebind(self, changes: Iterable[AddressChange]) -> None:
        """
        Move bindings to new addresses after a structural change.

        The complete new table is built before anything live is touched, then
        swapped in with one assignment.
        """
        changes = [c for c in changes if c.old_address in self._bindings]
        if not changes:
            return

        moved = {c.old_address: c.new_address for c in changes}
        new_table: Dict[str, PickerBinding] = {
            address: binding for address, binding in self._bindings.items() if address not in moved
        }
        for old_address, new_address in moved.items():
            if new_address in new_table:
                raise AddressError(f"Rebinding '{old_address}' would collide at '{new_address}'")
            new_table[new_address] = self._bindings[old_address]

        # Release every old storage slot before claiming new ones so a
        # chain of moves (g2 -> g1, g3 -> g2) never overwrites a live value.
        values = {old: self._bindings[old].picker.detach() for old in moved}
        for old_address, new_address in moved.items():
            binding = self._bindings[old_address]
            binding.address = new_address
            binding.picker.attach(new_address, values[old_address])

        self._bindings = new_table
        logger.info(f"Rebound {len(moved)} picker(s)")

    # Introspection

    def addresses(self) -> List[str]:
        return list(self._bindings)

    def has_binding(self, address: str) -> bool:
        return address in self._bindings

    def state_of(self, address: str) -> PickerState:
        return self._binding(address).state

    def picker(self, address: str) -> DatePickerWidget:
        return self._binding(address).picker
