"""
Group (DVR) and item (time frame) lifecycle.

Adds, removes and renumbers entities in the form tree. Every structural
change finishes with one rebind pass: the full new address map is built
from the edited tree, checked for uniqueness, diffed against the map taken
before the edit, and the resulting moves are handed to the widget adapter
in one call.
"""

import logging
from enum import Enum
from typing import Callable, List, NamedTuple, Optional, Sequence

from .exceptions import StructuralOperationInvalid
from .field_addressing import diff_address_maps
from .field_store import FieldStore
from .form_model import Form, Group

logger = logging.getLogger(__name__)


class StructureChangeKind(str, Enum):
    GROUP_ADDED = "group_added"
    GROUP_REMOVED = "group_removed"
    ITEM_ADDED = "item_added"
    ITEM_REMOVED = "item_removed"
    RESET = "reset"


class StructureChange(NamedTuple):
    kind: StructureChangeKind
    group_index: Optional[int] = None
    item_index: Optional[int] = None


StructureListener = Callable[[StructureChange], None]


class LifecycleManager:
    """
    Structural operations on a Form.

    Args:
        form: Form tree to edit
        store: FieldStore used to create, clear and destroy picker bindings
    """

    def __init__(self, form: Form, store: FieldStore):
        self.form = form
        self.store = store
        self._listeners: List[StructureListener] = []

    def add_listener(self, listener: StructureListener) -> None:
        self._listeners.append(listener)

    def _notify(self, change: StructureChange) -> None:
        for listener in self._listeners:
            listener(change)

    def attach(self) -> None:
        """Create picker bindings for the fields of the current tree."""
        count = self.store.initialize_widgets(list(self.form.iter_fields()))
        logger.debug(f"Attached {count} picker(s)")

    # Groups

    def add_group(self) -> int:
        """
        Append a DVR with one default time frame.

        Returns:
            Index of the new group
        """
        self.form.new_group()
        index = len(self.form.groups) - 1
        self.store.initialize_widgets(list(self.form.iter_group_fields(index)))

        logger.info(f"Added group {index} ({len(self.form.groups)} total)")
        self._notify(StructureChange(StructureChangeKind.GROUP_ADDED, index))
        return index

    def remove_group(self, index: int) -> None:
        """
        Remove a DVR and shift every later DVR down by one.

        Raises:
            StructuralOperationInvalid: For the first group or an index out of range
        """
        if index == 0:
            raise StructuralOperationInvalid('remove_group', group_index=index,
                                             message="The first DVR cannot be removed")
        if not self.form.has_group(index):
            raise StructuralOperationInvalid('remove_group', group_index=index,
                                             message=f"There is no DVR at position {index}")

        old_map = self.form.entity_address_map()
        self.store.destroy_widgets(list(self.form.iter_group_fields(index)))
        del self.form.groups[index]
        self._rebind(old_map)

        logger.info(f"Removed group {index} ({len(self.form.groups)} remaining)")
        self._notify(StructureChange(StructureChangeKind.GROUP_REMOVED, index))

    # Items

    def add_item(self, group_index: int) -> int:
        """
        Append a time frame to a DVR.

        Returns:
            Index of the new item within the group
        """
        if not self.form.has_group(group_index):
            raise StructuralOperationInvalid('add_item', group_index=group_index,
                                             message=f"There is no DVR at position {group_index}")

        group: Group = self.form.groups[group_index]
        group.new_item()
        item_index = len(group.items) - 1
        self.store.initialize_widgets(list(self.form.iter_item_fields(group_index, item_index)))

        logger.info(f"Added item {item_index} to group {group_index}")
        self._notify(StructureChange(StructureChangeKind.ITEM_ADDED, group_index, item_index))
        return item_index

    def remove_item(self, group_index: int, item_index: int) -> None:
        """
        Remove a time frame and shift the later time frames of the same DVR down by one.

        Raises:
            StructuralOperationInvalid: For the first item or indexes out of range
        """
        if item_index == 0:
            raise StructuralOperationInvalid('remove_item', group_index=group_index, item_index=item_index,
                                             message="The first time frame cannot be removed")
        if not self.form.has_item(group_index, item_index):
            raise StructuralOperationInvalid('remove_item', group_index=group_index, item_index=item_index,
                                             message=f"There is no time frame {item_index} in DVR {group_index}")

        old_map = self.form.entity_address_map()
        self.store.destroy_widgets(list(self.form.iter_item_fields(group_index, item_index)))
        del self.form.groups[group_index].items[item_index]
        self._rebind(old_map)

        logger.info(f"Removed item {item_index} from group {group_index}")
        self._notify(StructureChange(StructureChangeKind.ITEM_REMOVED, group_index, item_index))

    # Whole form

    def reset(self) -> None:
        """Return to one DVR with one time frame and clear every value, error and picker."""
        self.store.adapter.destroy_all()
        for state in self.form.fields.values():
            state.clear()
        self.form.groups = [Group(self.form.definition)]
        self.attach()

        logger.info("Form reset to a single DVR and time frame")
        self._notify(StructureChange(StructureChangeKind.RESET))

    def ensure_structure(self, groups: int, items_per_group: Sequence[int]) -> None:
        """
        Grow the tree until it has at least the given counts.

        Never removes below what already exists.
        """
        while len(self.form.groups) < groups:
            self.add_group()
        for group_index, target in enumerate(items_per_group[:len(self.form.groups)]):
            while len(self.form.groups[group_index].items) < target:
                self.add_item(group_index)

    def _rebind(self, old_map) -> None:
        # Raises on a duplicate address before any binding is touched.
        self.form.address_map()
        diff = diff_address_maps(old_map, self.form.entity_address_map())
        self.store.adapter.rebind(diff.changed)
        if diff.changed:
            logger.debug(f"Renumbered {len(diff.changed)} field(s)")
