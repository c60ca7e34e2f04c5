"""
Unit tests for form_definition module.
"""

import pytest
import tempfile
import shutil
from pathlib import Path

from evidence_forms.exceptions import FormDefinitionError
from evidence_forms.field_addressing import FieldScope
from evidence_forms.form_definition import (
    FieldKind,
    VisibilityCondition,
    load_form_definition,
    parse_form_definition
)


def _definition(fields):
    return {'form_type': 'test', 'title': 'Test Form', 'fields': fields}


class TestLoadFormDefinition:
    """Test cases for loading the bundled recovery form."""

    def setup_method(self):
        self.test_dir = tempfile.mkdtemp()

    def teardown_method(self):
        shutil.rmtree(self.test_dir)

    def test_load_default_definition(self):
        definition = load_form_definition()

        assert definition.form_type == 'recovery'
        assert definition.group_label == 'DVR System'
        assert definition.field('rName').required is True
        assert definition.field('cameraDetails').scope == FieldScope.ITEM
        assert definition.field('dvrPassword').scope == FieldScope.GROUP

    def test_relative_name_resolves_to_bundled_schemas(self):
        definition = load_form_definition(Path('recovery_form.yaml'))
        assert definition.form_type == 'recovery'

    def test_conditional_fields(self):
        definition = load_form_definition()

        time_offset = definition.field('timeOffset')
        assert time_offset.conditional
        assert time_offset.visible_when.field == 'isTimeDateCorrect'
        assert time_offset.visible_when.equals == 'No'
        assert [f.name for f in definition.dependents_of('isTimeDateCorrect')] == ['timeOffset']
        assert [f.name for f in definition.dependents_of('city')] == ['cityOther']

    def test_ordering_and_widget_fields(self):
        definition = load_form_definition()

        assert [f.name for f in definition.ordered_after('timePeriodFrom')] == ['timePeriodTo']
        assert definition.field('timePeriodFrom').widget_backed
        assert definition.field('dvrRetention').kind == FieldKind.DATE
        assert not definition.field('cameraDetails').widget_backed

    def test_missing_file(self):
        with pytest.raises(FormDefinitionError) as exc_info:
            load_form_definition(Path(self.test_dir) / 'missing.yaml')
        assert 'file not found' in str(exc_info.value)

    def test_invalid_yaml(self):
        path = Path(self.test_dir) / 'broken.yaml'
        path.write_text("fields: [unclosed\n", encoding='utf-8')

        with pytest.raises(FormDefinitionError) as exc_info:
            load_form_definition(path)
        assert 'YAML parsing error' in str(exc_info.value)


class TestParseFormDefinition:
    """Test cases for definition consistency checks."""

    def test_minimal_definition(self):
        definition = parse_form_definition(_definition([
            {'name': 'notes', 'label': 'Notes', 'kind': 'textarea'}
        ]))
        assert definition.fields_for_scope(FieldScope.FORM)[0].name == 'notes'
        assert definition.item_label == 'Time Frame'

    def test_not_a_mapping(self):
        with pytest.raises(FormDefinitionError):
            parse_form_definition(['not', 'a', 'mapping'])

    def test_duplicate_field_names(self):
        with pytest.raises(FormDefinitionError):
            parse_form_definition(_definition([
                {'name': 'notes', 'label': 'Notes', 'kind': 'text'},
                {'name': 'notes', 'label': 'More Notes', 'kind': 'text'},
            ]))

    def test_field_name_with_underscore(self):
        with pytest.raises(FormDefinitionError):
            parse_form_definition(_definition([
                {'name': 'dvr_password', 'label': 'Password', 'kind': 'text', 'scope': 'group'}
            ]))

    def test_unknown_controller(self):
        with pytest.raises(FormDefinitionError):
            parse_form_definition(_definition([
                {'name': 'cityOther', 'label': 'City', 'kind': 'text',
                 'visible_when': {'field': 'city', 'equals': 'Other'}}
            ]))

    def test_controller_nested_deeper_than_dependent(self):
        with pytest.raises(FormDefinitionError):
            parse_form_definition(_definition([
                {'name': 'isCorrect', 'label': 'Correct?', 'kind': 'radio', 'scope': 'group',
                 'options': ['Yes', 'No']},
                {'name': 'summary', 'label': 'Summary', 'kind': 'text',
                 'visible_when': {'field': 'isCorrect', 'equals': 'No'}},
            ]))

    def test_ordering_across_scopes(self):
        with pytest.raises(FormDefinitionError):
            parse_form_definition(_definition([
                {'name': 'start', 'label': 'Start', 'kind': 'datetime', 'scope': 'group'},
                {'name': 'end', 'label': 'End', 'kind': 'datetime', 'scope': 'item',
                 'rules': [{'type': 'after', 'field': 'start'}]},
            ]))

    def test_choice_without_options(self):
        with pytest.raises(FormDefinitionError):
            parse_form_definition(_definition([
                {'name': 'city', 'label': 'City', 'kind': 'select'}
            ]))

    def test_unknown_rule_type(self):
        with pytest.raises(FormDefinitionError):
            parse_form_definition(_definition([
                {'name': 'notes', 'label': 'Notes', 'kind': 'text', 'rules': [{'type': 'luhn'}]}
            ]))

    def test_integer_range_needs_bounds(self):
        with pytest.raises(FormDefinitionError):
            parse_form_definition(_definition([
                {'name': 'cameras', 'label': 'Cameras', 'kind': 'text',
                 'rules': [{'type': 'integer_range', 'min_value': 1}]}
            ]))


class TestVisibilityCondition:
    """Test cases for visibility conditions."""

    def test_equals(self):
        condition = VisibilityCondition(field='city', equals='Other')
        assert condition.matches('Other')
        assert condition.matches(' Other ')
        assert not condition.matches('Brampton')
        assert not condition.matches(None)

    def test_in_alias(self):
        condition = VisibilityCondition.model_validate({'field': 'city', 'in': ['Other', 'Toronto']})
        assert condition.matches('Toronto')
        assert not condition.matches('Mississauga')

    def test_needs_exactly_one_operator(self):
        with pytest.raises(ValueError):
            VisibilityCondition(field='city')
        with pytest.raises(ValueError):
            VisibilityCondition.model_validate({'field': 'city', 'equals': 'Other', 'in': ['Other']})
