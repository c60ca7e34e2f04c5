"""
Positional field addressing for the dynamic DVR / time-frame form.

Fields are keyed internally by FieldKey(base_name, group_index, item_index).
The string address is only produced at the boundary (widget keys, drafts,
collected data) and follows the wire naming the ticketing system expects:

    group 0 / item 0   -> baseName
    group 0 / item i   -> baseName_i
    group g / item 0   -> baseName_gG
    group g / item i   -> baseName_gG_i
"""

import re
import logging
from enum import Enum
from typing import Dict, Any, List, Mapping, NamedTuple, Optional, Iterable

from .exceptions import AddressError

logger = logging.getLogger(__name__)

BASE_NAME_PATTERN = re.compile(r'^[A-Za-z][A-Za-z0-9]*$')

# Suffixes are canonical: index 0 never appears, so every address has one spelling.
_ADDRESS_PATTERN = re.compile(
    r'^(?P<base>[A-Za-z][A-Za-z0-9]*)'
    r'(?:_g(?P<group>[1-9][0-9]*))?'
    r'(?:_(?P<item>[1-9][0-9]*))?$'
)

SECTION_SUFFIX = "Group"


class FieldScope(str, Enum):
    """Where a field lives in the form tree."""
    FORM = "form"
    GROUP = "group"
    ITEM = "item"


class FieldKey(NamedTuple):
    """Structured identity of a leaf field."""
    base_name: str
    group_index: Optional[int] = None
    item_index: Optional[int] = None

    @property
    def scope(self) -> FieldScope:
        if self.group_index is None:
            return FieldScope.FORM
        if self.item_index is None:
            return FieldScope.GROUP
        return FieldScope.ITEM

    def sibling(self, base_name: str, scope: FieldScope) -> 'FieldKey':
        """
        Resolve another field that shares this field's owning entities.

        Args:
            base_name: Base name of the sibling field
            scope: Scope of the sibling field (same or enclosing scope)

        Returns:
            FieldKey of the sibling
        """
        if scope == FieldScope.FORM:
            return FieldKey(base_name)
        if scope == FieldScope.GROUP:
            if self.group_index is None:
                raise AddressError(f"Form field '{self.base_name}' has no group sibling '{base_name}'")
            return FieldKey(base_name, self.group_index)
        if self.item_index is None:
            raise AddressError(f"Field '{self.base_name}' has no time-frame sibling '{base_name}'")
        return FieldKey(base_name, self.group_index, self.item_index)


class AddressChange(NamedTuple):
    """One entity whose address moved during renumbering."""
    entity: Any
    old_address: str
    new_address: str


class AddressMapDiff(NamedTuple):
    changed: List[AddressChange]
    removed: List[str]
    added: List[str]


def encode_address(base_name: str, group_index: Optional[int] = None,
                   item_index: Optional[int] = None) -> str:
    """
    Derive the wire address of a field from its coordinates.

    Args:
        base_name: Field base name (letters and digits only)
        group_index: 0-based DVR index, None for form-level fields
        item_index: 0-based time-frame index, None for non item fields

    Returns:
        Address string

    Raises:
        AddressError: If the coordinates are not valid
    """
    if not isinstance(base_name, str) or not BASE_NAME_PATTERN.match(base_name):
        raise AddressError(f"Invalid field base name: {base_name!r}")

    if group_index is None:
        if item_index is not None:
            raise AddressError(f"Field '{base_name}' has an item index but no group index")
        return base_name

    if group_index < 0 or (item_index is not None and item_index < 0):
        raise AddressError(f"Negative index for '{base_name}': group={group_index}, item={item_index}")

    address = base_name
    if group_index > 0:
        address += f"_g{group_index}"
    if item_index:
        address += f"_{item_index}"
    return address


def encode_key(key: FieldKey) -> str:
    """Encode a FieldKey into its address."""
    return encode_address(key.base_name, key.group_index, key.item_index)


def decode_address(address: str, scopes: Mapping[str, FieldScope]) -> FieldKey:
    """
    Recover the coordinates of a field from its address.

    The scope table tells an unsuffixed time-frame field (item 0) apart
    from a DVR field (no item).

    Args:
        address: Address string
        scopes: Mapping of base name -> FieldScope from the form definition

    Returns:
        FieldKey for the address

    Raises:
        AddressError: If the address is malformed or does not fit the field's scope
    """
    match = _ADDRESS_PATTERN.match(address) if isinstance(address, str) else None
    if not match:
        raise AddressError(f"Malformed field address: {address!r}")

    base_name = match.group('base')
    if base_name not in scopes:
        raise AddressError(f"Unknown field in address: {address!r}")

    group_index = int(match.group('group')) if match.group('group') else 0
    item_index = int(match.group('item')) if match.group('item') else 0
    scope = scopes[base_name]

    if scope == FieldScope.FORM:
        if match.group('group') or match.group('item'):
            raise AddressError(f"Form field address cannot carry a suffix: {address!r}")
        return FieldKey(base_name)

    if scope == FieldScope.GROUP:
        if match.group('item'):
            raise AddressError(f"DVR field address cannot carry a time-frame suffix: {address!r}")
        return FieldKey(base_name, group_index)

    return FieldKey(base_name, group_index, item_index)


def section_address(base_name: str, group_index: Optional[int] = None,
                    item_index: Optional[int] = None) -> str:
    """Address of the conditional section wrapping a field (e.g. timeOffsetGroup_g1)."""
    return encode_address(f"{base_name}{SECTION_SUFFIX}", group_index, item_index)


def build_address_map(keys: Iterable[FieldKey]) -> Dict[FieldKey, str]:
    """
    Build the complete key -> address map for a structure.

    Raises:
        AddressError: If two keys would share an address
    """
    address_map: Dict[FieldKey, str] = {}
    seen: Dict[str, FieldKey] = {}

    for key in keys:
        address = encode_key(key)
        if address in seen:
            raise AddressError(f"Duplicate address '{address}' for {seen[address]} and {key}")
        seen[address] = key
        address_map[key] = address

    return address_map


def diff_address_maps(old: Mapping[Any, str], new: Mapping[Any, str]) -> AddressMapDiff:
    """
    Compare two entity -> address maps taken before and after a tree edit.

    Args:
        old: Entity -> address before the edit
        new: Entity -> address after the edit

    Returns:
        AddressMapDiff with moved, removed and added addresses
    """
    changed = [
        AddressChange(entity, old[entity], new[entity])
        for entity in old
        if entity in new and old[entity] != new[entity]
    ]
    removed = [old[entity] for entity in old if entity not in new]
    added = [new[entity] for entity in new if entity not in old]

    if changed:
        logger.debug(f"Address map diff: {len(changed)} moved, {len(removed)} removed, {len(added)} added")

    return AddressMapDiff(changed, removed, added)
