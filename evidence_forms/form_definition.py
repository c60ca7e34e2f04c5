"""
Form definition (field catalog) for evidence request forms.

The catalog is declared in YAML and parsed into pydantic models so every
field kind, scope, conditional visibility rule and validation rule is
checked once at load time.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Dict, Any, List, Optional, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .exceptions import FormDefinitionError
from .field_addressing import BASE_NAME_PATTERN, FieldScope

logger = logging.getLogger(__name__)

SCHEMAS_DIR = Path(__file__).resolve().parent / "schemas"
DEFAULT_DEFINITION_FILE = "recovery_form.yaml"

# Scope nesting depth, used to check that a field only depends on
# fields in its own or an enclosing scope.
_SCOPE_DEPTH = {FieldScope.FORM: 0, FieldScope.GROUP: 1, FieldScope.ITEM: 2}


class FieldKind(str, Enum):
    """Fixed catalog of field kinds."""
    TEXT = "text"
    EMAIL = "email"
    PHONE = "phone"
    SELECT = "select"
    RADIO = "radio"
    TEXTAREA = "textarea"
    DATE = "date"
    DATETIME = "datetime"


WIDGET_KINDS = frozenset({FieldKind.DATE, FieldKind.DATETIME})
CHOICE_KINDS = frozenset({FieldKind.SELECT, FieldKind.RADIO})
TYPED_KINDS = frozenset({FieldKind.TEXT, FieldKind.EMAIL, FieldKind.PHONE, FieldKind.TEXTAREA})


class VisibilityCondition(BaseModel):
    """Show a field only while a sibling field holds one of the given values."""
    model_config = ConfigDict(extra='forbid', populate_by_name=True)

    field: str
    equals: Optional[str] = None
    one_of: Optional[List[str]] = Field(default=None, alias='in')

    @model_validator(mode='after')
    def _check_operator(self) -> 'VisibilityCondition':
        if (self.equals is None) == (self.one_of is None):
            raise ValueError("visible_when needs exactly one of 'equals' or 'in'")
        return self

    def matches(self, value: Optional[str]) -> bool:
        value = (value or '').strip()
        if self.equals is not None:
            return value == self.equals
        return value in (self.one_of or [])


RuleType = Literal[
    'email_domain', 'phone', 'prefix_identifier', 'integer_range',
    'not_future', 'after', 'retention', 'contains_digit'
]


class RuleSpec(BaseModel):
    """One validation rule attached to a field."""
    model_config = ConfigDict(extra='forbid')

    type: RuleType
    domain: Optional[str] = None
    prefix: Optional[str] = None
    digits: Optional[int] = None
    min_value: Optional[int] = None
    max_value: Optional[int] = None
    field: Optional[str] = None
    message: Optional[str] = None

    @model_validator(mode='after')
    def _check_parameters(self) -> 'RuleSpec':
        if self.type == 'after' and not self.field:
            raise ValueError("'after' rule needs the start 'field'")
        if self.type == 'integer_range' and (self.min_value is None or self.max_value is None):
            raise ValueError("'integer_range' rule needs 'min_value' and 'max_value'")
        if self.min_value is not None and self.max_value is not None and self.min_value > self.max_value:
            raise ValueError("'min_value' cannot be greater than 'max_value'")
        return self


class FieldDefinition(BaseModel):
    """Definition of one leaf field."""
    model_config = ConfigDict(extra='forbid')

    name: str
    label: str
    kind: FieldKind
    scope: FieldScope = FieldScope.FORM
    required: bool = False
    required_message: Optional[str] = None
    visible_when: Optional[VisibilityCondition] = None
    rules: List[RuleSpec] = Field(default_factory=list)
    options: List[str] = Field(default_factory=list)
    section: Optional[str] = None
    help: Optional[str] = None
    placeholder: Optional[str] = None

    @field_validator('name')
    @classmethod
    def _check_name(cls, value: str) -> str:
        if not BASE_NAME_PATTERN.match(value):
            raise ValueError(f"field name '{value}' must contain only letters and digits")
        return value

    @model_validator(mode='after')
    def _check_options(self) -> 'FieldDefinition':
        if self.kind in CHOICE_KINDS and not self.options:
            raise ValueError(f"{self.kind.value} field '{self.name}' needs 'options'")
        return self

    @property
    def widget_backed(self) -> bool:
        return self.kind in WIDGET_KINDS

    @property
    def conditional(self) -> bool:
        return self.visible_when is not None

    def rule(self, rule_type: str) -> Optional[RuleSpec]:
        for rule in self.rules:
            if rule.type == rule_type:
                return rule
        return None


class FormDefinition(BaseModel):
    """Complete field catalog for one form type."""
    model_config = ConfigDict(extra='forbid')

    form_type: str
    title: str
    group_label: str = "DVR System"
    item_label: str = "Time Frame"
    sections: List[str] = Field(default_factory=list)
    fields: List[FieldDefinition]

    @model_validator(mode='after')
    def _check_references(self) -> 'FormDefinition':
        by_name: Dict[str, FieldDefinition] = {}
        for field_def in self.fields:
            if field_def.name in by_name:
                raise ValueError(f"duplicate field name '{field_def.name}'")
            by_name[field_def.name] = field_def

        for field_def in self.fields:
            if field_def.visible_when is not None:
                controller = by_name.get(field_def.visible_when.field)
                if controller is None:
                    raise ValueError(
                        f"field '{field_def.name}' depends on unknown field '{field_def.visible_when.field}'")
                if _SCOPE_DEPTH[controller.scope] > _SCOPE_DEPTH[field_def.scope]:
                    raise ValueError(
                        f"field '{field_def.name}' cannot depend on nested field '{controller.name}'")

            after_rule = field_def.rule('after')
            if after_rule is not None:
                start = by_name.get(after_rule.field)
                if start is None:
                    raise ValueError(f"field '{field_def.name}' is ordered after unknown field '{after_rule.field}'")
                if start.scope != field_def.scope:
                    raise ValueError(f"field '{field_def.name}' and '{start.name}' must share a scope")

        if not any(f.scope == FieldScope.GROUP for f in self.fields):
            logger.warning(f"Form '{self.form_type}' defines no DVR-level fields")
        return self

    def field(self, name: str) -> FieldDefinition:
        for field_def in self.fields:
            if field_def.name == name:
                return field_def
        raise KeyError(name)

    def fields_for_scope(self, scope: FieldScope) -> List[FieldDefinition]:
        return [f for f in self.fields if f.scope == scope]

    def scopes(self) -> Dict[str, FieldScope]:
        return {f.name: f.scope for f in self.fields}

    def dependents_of(self, name: str) -> List[FieldDefinition]:
        """Fields whose visibility is controlled by the given field."""
        return [f for f in self.fields if f.visible_when is not None and f.visible_when.field == name]

    def ordered_after(self, name: str) -> List[FieldDefinition]:
        """Fields that must hold a value later than the given field."""
        return [f for f in self.fields if f.rule('after') is not None and f.rule('after').field == name]


def load_form_definition(definition_path: Optional[Path] = None) -> FormDefinition:
    """
    Load a form definition from YAML.

    Args:
        definition_path: Path to the YAML file (defaults to the bundled recovery form)

    Returns:
        Parsed FormDefinition

    Raises:
        FormDefinitionError: If the file is missing, unreadable or inconsistent
    """
    if definition_path is None:
        definition_path = SCHEMAS_DIR / DEFAULT_DEFINITION_FILE
    definition_path = Path(definition_path)
    if not definition_path.is_absolute() and not definition_path.exists():
        definition_path = SCHEMAS_DIR / definition_path

    if not definition_path.exists():
        raise FormDefinitionError(str(definition_path), "file not found")

    try:
        with open(definition_path, 'r', encoding='utf-8') as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise FormDefinitionError(str(definition_path), f"YAML parsing error: {e}")
    except (IOError, OSError) as e:
        raise FormDefinitionError(str(definition_path), f"cannot read file: {e}")

    return parse_form_definition(raw, source=str(definition_path))


def parse_form_definition(raw: Any, source: str = "<memory>") -> FormDefinition:
    """
    Validate a raw definition dictionary.

    Args:
        raw: Dictionary loaded from YAML or JSON
        source: Description of where the data came from, for error messages

    Returns:
        Parsed FormDefinition
    """
    if not isinstance(raw, dict):
        raise FormDefinitionError(source, "definition must be a mapping")

    try:
        definition = FormDefinition.model_validate(raw)
    except ValidationError as e:
        raise FormDefinitionError(source, str(e))

    logger.info(f"Loaded form definition '{definition.form_type}' with {len(definition.fields)} fields from {source}")
    return definition
