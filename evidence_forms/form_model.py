"""
In-memory form tree: Form -> Groups (DVRs) -> Items (time frames) -> fields.

The tree is the single source of structure. Entities are plain objects
whose identity survives renumbering; a field's FieldKey and address are
derived from its position every time they are asked for.
"""

import logging
from typing import Dict, Any, Iterator, List, Optional, Tuple

from .field_addressing import FieldKey, FieldScope, build_address_map, decode_address, encode_key
from .form_definition import FormDefinition, FieldDefinition
from .validators import ValidationIssue

logger = logging.getLogger(__name__)


class FieldState:
    """
    Live state of one leaf field.

    For widget-backed fields the date picker holds the authoritative value
    and ``value`` here is never read; see WidgetAdapter.
    """

    __slots__ = ('definition', 'value', 'issue', 'annotation')

    def __init__(self, definition: FieldDefinition):
        self.definition = definition
        self.value = ''
        self.issue: Optional[ValidationIssue] = None
        self.annotation: Optional[str] = None

    @property
    def name(self) -> str:
        return self.definition.name

    def clear(self) -> None:
        self.value = ''
        self.issue = None
        self.annotation = None

    def __repr__(self) -> str:
        return f"FieldState({self.name!r}, value={self.value!r})"


def _make_fields(definitions: List[FieldDefinition]) -> Dict[str, FieldState]:
    return {d.name: FieldState(d) for d in definitions}


class Item:
    """One extraction time frame."""

    def __init__(self, definition: FormDefinition):
        self.fields = _make_fields(definition.fields_for_scope(FieldScope.ITEM))


class Group:
    """One DVR system with its time frames."""

    def __init__(self, definition: FormDefinition):
        self._definition = definition
        self.fields = _make_fields(definition.fields_for_scope(FieldScope.GROUP))
        self.items: List[Item] = [Item(definition)]

    def new_item(self) -> Item:
        item = Item(self._definition)
        self.items.append(item)
        return item


class Form:
    """Root aggregate: form-level fields plus an ordered list of groups (never empty)."""

    def __init__(self, definition: FormDefinition):
        self.definition = definition
        self.scopes = definition.scopes()
        self.fields = _make_fields(definition.fields_for_scope(FieldScope.FORM))
        self.groups: List[Group] = [Group(definition)]

    # Structure

    def new_group(self) -> Group:
        group = Group(self.definition)
        self.groups.append(group)
        return group

    def structural_counts(self) -> Dict[str, Any]:
        return {
            'groups': len(self.groups),
            'items_per_group': [len(group.items) for group in self.groups],
        }

    def has_group(self, group_index: int) -> bool:
        return 0 <= group_index < len(self.groups)

    def has_item(self, group_index: int, item_index: int) -> bool:
        return self.has_group(group_index) and 0 <= item_index < len(self.groups[group_index].items)

    # Traversal

    def iter_fields(self) -> Iterator[Tuple[FieldKey, FieldState]]:
        """Yield every field in document order: form fields, then each group followed by its items."""
        for name, state in self.fields.items():
            yield FieldKey(name), state
        for g, group in enumerate(self.groups):
            for name, state in group.fields.items():
                yield FieldKey(name, g), state
            for i, item in enumerate(group.items):
                for name, state in item.fields.items():
                    yield FieldKey(name, g, i), state

    def iter_group_fields(self, group_index: int) -> Iterator[Tuple[FieldKey, FieldState]]:
        """Fields owned by one group, including its items."""
        group = self.groups[group_index]
        for name, state in group.fields.items():
            yield FieldKey(name, group_index), state
        for i, item in enumerate(group.items):
            for name, state in item.fields.items():
                yield FieldKey(name, group_index, i), state

    def iter_item_fields(self, group_index: int, item_index: int) -> Iterator[Tuple[FieldKey, FieldState]]:
        item = self.groups[group_index].items[item_index]
        for name, state in item.fields.items():
            yield FieldKey(name, group_index, item_index), state

    def keys(self) -> List[FieldKey]:
        return [key for key, _ in self.iter_fields()]

    # Lookup

    def state(self, key: FieldKey) -> FieldState:
        """
        Return the FieldState at a key.

        Raises:
            KeyError: If the key does not exist in the current structure
        """
        try:
            if key.group_index is None:
                return self.fields[key.base_name]
            group = self.groups[key.group_index]
            if key.item_index is None:
                return group.fields[key.base_name]
            return group.items[key.item_index].fields[key.base_name]
        except (IndexError, KeyError):
            raise KeyError(key)

    def key_of(self, state: FieldState) -> Optional[FieldKey]:
        """Current key of a FieldState, or None once its entity has been removed."""
        for key, candidate in self.iter_fields():
            if candidate is state:
                return key
        return None

    def contains(self, key: FieldKey) -> bool:
        try:
            self.state(key)
            return True
        except KeyError:
            return False

    def decode(self, address: str) -> FieldKey:
        return decode_address(address, self.scopes)

    def address_of(self, key: FieldKey) -> str:
        return encode_key(key)

    # Address maps

    def address_map(self) -> Dict[FieldKey, str]:
        return build_address_map(self.keys())

    def entity_address_map(self) -> Dict[FieldState, str]:
        """Map each live FieldState object to its current address."""
        return {state: encode_key(key) for key, state in self.iter_fields()}
