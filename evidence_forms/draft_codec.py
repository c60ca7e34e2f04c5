"""
Draft snapshot serialization and three-phase restore.

A snapshot records the structure (DVR count and time frames per DVR),
every field value keyed by wire address, and which conditional sections
were open. Restore rebuilds the structure first, then writes values
(through the picker for date fields), then re-runs validation and
progress over the whole form.
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Dict, Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .exceptions import AddressError, DraftCorrupt
from .field_addressing import FieldScope, decode_address
from .form_definition import FormDefinition
from .validation_engine import ValidationResult

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1
DEFAULT_EXPIRY_DAYS = 7


class StructuralCounts(BaseModel):
    model_config = ConfigDict(extra='forbid')

    groups: int = Field(ge=1)
    items_per_group: List[int]

    @model_validator(mode='after')
    def _check_consistency(self) -> 'StructuralCounts':
        if len(self.items_per_group) != self.groups:
            raise ValueError(
                f"items_per_group has {len(self.items_per_group)} entries for {self.groups} group(s)")
        if any(count < 1 for count in self.items_per_group):
            raise ValueError("every group needs at least one item")
        return self


class DraftSnapshot(BaseModel):
    """Persisted draft of one form."""
    model_config = ConfigDict(extra='forbid')

    version: int = SNAPSHOT_VERSION
    form_type: str
    timestamp: datetime
    expires: datetime
    structural_counts: StructuralCounts
    field_values: Dict[str, str] = Field(default_factory=dict)
    visible_sections: List[str] = Field(default_factory=list)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.now()) > self.expires

    def to_json(self) -> str:
        return self.model_dump_json(indent=2)


def serialize_form(session_parts, form_type: Optional[str] = None, now: Optional[datetime] = None,
                   expiry_days: int = DEFAULT_EXPIRY_DAYS) -> DraftSnapshot:
    """
    Capture the form as a DraftSnapshot.

    Args:
        session_parts: Object exposing ``form``, ``store`` and ``engine``
            (a FormSession)
        form_type: Form identifier (defaults to the definition's form_type)
        now: Timestamp to record
        expiry_days: Days until the draft expires

    Returns:
        DraftSnapshot of the current structure and values
    """
    form = session_parts.form
    now = now or datetime.now()

    snapshot = DraftSnapshot(
        form_type=form_type or form.definition.form_type,
        timestamp=now,
        expires=now + timedelta(days=expiry_days),
        structural_counts=StructuralCounts(**form.structural_counts()),
        field_values=session_parts.store.values(),
        visible_sections=session_parts.engine.visible_sections(),
    )
    logger.debug(f"Serialized draft with {len(snapshot.field_values)} values "
                 f"and {snapshot.structural_counts.groups} group(s)")
    return snapshot


def _check_addresses(snapshot: DraftSnapshot, definition: FormDefinition) -> None:
    scopes = definition.scopes()
    counts = snapshot.structural_counts

    for address in snapshot.field_values:
        try:
            key = decode_address(address, scopes)
        except AddressError as e:
            raise DraftCorrupt(f"unknown or malformed address '{address}'", e)

        if key.scope == FieldScope.FORM:
            continue
        if key.group_index >= counts.groups:
            raise DraftCorrupt(f"address '{address}' lies outside the recorded {counts.groups} group(s)")
        if key.scope == FieldScope.ITEM and key.item_index >= counts.items_per_group[key.group_index]:
            raise DraftCorrupt(f"address '{address}' lies outside the recorded time frames "
                               f"of group {key.group_index}")


def parse_snapshot(raw: Union[str, bytes, Dict[str, Any]], definition: FormDefinition) -> DraftSnapshot:
    """
    Parse and check a stored draft.

    Args:
        raw: JSON text or an already decoded dictionary
        definition: Definition the draft must fit

    Returns:
        DraftSnapshot

    Raises:
        DraftCorrupt: If the record is malformed, of another version or form,
            or holds values for entities its counts do not describe
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DraftCorrupt("invalid JSON", e)

    if not isinstance(raw, dict):
        raise DraftCorrupt("draft record is not an object")

    version = raw.get('version')
    if version != SNAPSHOT_VERSION:
        raise DraftCorrupt(f"unsupported draft version {version!r}")

    try:
        snapshot = DraftSnapshot.model_validate(raw)
    except ValidationError as e:
        raise DraftCorrupt("draft does not match the snapshot schema", e)

    if snapshot.form_type != definition.form_type:
        raise DraftCorrupt(f"draft belongs to form '{snapshot.form_type}', not '{definition.form_type}'")

    _check_addresses(snapshot, definition)
    return snapshot


def restore_form(snapshot: DraftSnapshot, session_parts) -> ValidationResult:
    """
    Rebuild a form from a snapshot.

    Phase 1 resets the form and grows it to the recorded counts. Phase 2
    writes each recorded value to its field, through the picker adapter
    for date fields. Phase 3 re-validates the whole form and recomputes
    progress.

    Args:
        snapshot: Parsed DraftSnapshot
        session_parts: Object exposing ``form``, ``lifecycle``, ``store``,
            ``engine`` and ``progress`` (a FormSession)

    Returns:
        ValidationResult of the final validation pass
    """
    form = session_parts.form
    counts = snapshot.structural_counts

    # Phase 1: structure
    session_parts.lifecycle.reset()
    session_parts.lifecycle.ensure_structure(counts.groups, counts.items_per_group)

    # Phase 2: values
    written = 0
    for address, value in snapshot.field_values.items():
        key = form.decode(address)
        if not form.contains(key):
            raise DraftCorrupt(f"address '{address}' does not exist after rebuilding the structure")
        session_parts.store.write(key, value)
        written += 1

    # Phase 3: validation and progress
    result = session_parts.engine.sync_all()
    session_parts.progress.recompute()

    restored_sections = set(session_parts.engine.visible_sections())
    if restored_sections != set(snapshot.visible_sections):
        logger.warning(f"Restored sections differ from draft: "
                       f"{sorted(restored_sections ^ set(snapshot.visible_sections))}")

    logger.info(f"Restored draft: {counts.groups} group(s), {written} value(s), "
                f"{len(result.errors)} invalid field(s)")
    return result
