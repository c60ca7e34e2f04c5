"""
Unit tests for form_renderer module: widget callbacks and rendering.
"""

import tempfile
import shutil
from datetime import date, time
from unittest.mock import patch, MagicMock

from evidence_forms.field_addressing import FieldKey
from evidence_forms.form_renderer import FormRenderer, widget_key
from evidence_forms.form_session import FormSession
from evidence_forms.scheduler import Scheduler
from evidence_forms.submission_handler import SUBMISSION_SUCCESS_MESSAGE, SubmissionResult
from evidence_forms.validators import ErrorKind
from test_fixtures import FIXED_NOW, FormFixtures


def _columns(columns, *args, **kwargs):
    count = columns if isinstance(columns, int) else len(columns)
    return [MagicMock() for _ in range(count)]


class RendererTestBase:
    """Patches Streamlit and the session manager around a real FormSession."""

    def setup_method(self):
        self.test_dir = tempfile.mkdtemp()
        self.session_state = {}

        self.st_patcher = patch('evidence_forms.form_renderer.st')
        self.mock_st = self.st_patcher.start()
        self.mock_st.session_state = self.session_state
        self.mock_st.columns.side_effect = _columns
        self.mock_st.button.return_value = False

        self.session = self.make_session()
        self.manager_patcher = patch('evidence_forms.form_renderer.SessionManager')
        self.mock_manager = self.manager_patcher.start()
        self.mock_manager.get_form_session.return_value = self.session
        self.mock_manager.get_validation_errors.return_value = []
        self.mock_manager.get_focus_field.return_value = None
        self.mock_manager.get_submission_result.return_value = None

    def teardown_method(self):
        self.manager_patcher.stop()
        self.st_patcher.stop()
        shutil.rmtree(self.test_dir)

    def make_session(self):
        return FormFixtures.make_session(self.test_dir)


class TestCallbacks(RendererTestBase):
    """Test class for widget callbacks."""

    def test_text_change_validates_on_commit(self):
        self.session_state[widget_key('requestingPhone')] = '555-1234'

        FormRenderer._on_text_change('requestingPhone')

        assert self.session.value('requestingPhone') == '555-1234'
        assert self.session.issue('requestingPhone').kind == ErrorKind.FORMAT_INVALID
        self.mock_manager.update_activity.assert_called_once()

    def test_choice_change_reveals_dependent(self):
        self.session_state[widget_key('isTimeDateCorrect')] = 'No'

        FormRenderer._on_choice_change('isTimeDateCorrect')

        assert self.session.is_visible('timeOffset')

    def test_choice_cleared(self):
        self.session.set_value('city', 'Toronto')
        self.session_state[widget_key('city')] = None

        FormRenderer._on_choice_change('city')

        assert self.session.value('city') == ''

    @patch('evidence_forms.error_handler.ErrorHandler.handle_error')
    def test_structure_actions(self, mock_handle):
        FormRenderer._structure_action('add_group')
        FormRenderer._structure_action('add_item', 1)
        assert self.session.form.structural_counts() == {'groups': 2, 'items_per_group': [1, 2]}

        FormRenderer._structure_action('remove_group', 0)

        mock_handle.assert_called_once()
        assert self.session.form.structural_counts()['groups'] == 2

    @patch('evidence_forms.form_renderer.Notify')
    def test_save_and_load_draft(self, mock_notify):
        self.session.set_value('rName', 'Det. Smith')
        FormRenderer._save_draft()
        mock_notify.success.assert_called_once_with("Draft saved")

        self.session.reset()
        FormRenderer._load_draft()

        assert self.session.value('rName') == 'Det. Smith'
        mock_notify.success.assert_called_with("Draft restored")

    @patch('evidence_forms.form_renderer.Notify')
    def test_load_without_draft(self, mock_notify):
        FormRenderer._load_draft()
        mock_notify.warn.assert_called_once_with("No draft could be restored")

    @patch('evidence_forms.form_renderer.Notify')
    def test_clear_form(self, mock_notify):
        self.session.add_group()
        self.session.save_draft()

        FormRenderer._clear_form()

        assert self.session.form.structural_counts()['groups'] == 1
        assert not self.session.has_draft()
        self.mock_manager.clear_validation_errors.assert_called_once()


class TestPickerCallback(RendererTestBase):
    """Test class for date pickers backed by session state."""

    def setup_method(self):
        self.adapter_patcher = patch('evidence_forms.widget_adapter.st')
        mock_adapter_st = self.adapter_patcher.start()
        super().setup_method()
        mock_adapter_st.session_state = self.session_state
        self.session.tick()

    def teardown_method(self):
        super().teardown_method()
        self.adapter_patcher.stop()

    def make_session(self):
        return FormSession(
            definition=FormFixtures.definition(),
            config=FormFixtures.config(self.test_dir),
            scheduler=Scheduler(clock=lambda: 0.0),
            now=lambda: FIXED_NOW,
        )

    def test_datetime_parts_are_combined(self):
        self.session_state[widget_key('timePeriodFrom', 'date')] = date(2024, 1, 15)
        self.session_state[widget_key('timePeriodFrom', 'time')] = time(10, 0)

        FormRenderer._on_picker_change('timePeriodFrom', 'datetime')

        assert self.session_state['picker_timePeriodFrom'] == '2024-01-15T10:00'
        self.session.tick()
        assert self.session.value('timePeriodFrom') == '2024-01-15T10:00'
        assert self.session.has_started_working

    def test_missing_time_defaults_to_midnight(self):
        self.session_state[widget_key('timePeriodTo', 'date')] = date(2024, 1, 15)

        FormRenderer._on_picker_change('timePeriodTo', 'datetime')

        assert self.session_state['picker_timePeriodTo'] == '2024-01-15T00:00'

    def test_date_picker_and_clearing(self):
        self.session_state[widget_key('dvrRetention', 'date')] = date(2024, 1, 31)
        FormRenderer._on_picker_change('dvrRetention', 'date')
        self.session.tick()
        assert 'URGENT' in self.session.annotation('dvrRetention')

        self.session_state[widget_key('dvrRetention', 'date')] = None
        FormRenderer._on_picker_change('dvrRetention', 'date')
        self.session.tick()
        assert self.session.value('dvrRetention') == ''
        assert self.session.annotation('dvrRetention') is None


class TestRendering(RendererTestBase):
    """Test class for drawing the form."""

    def test_hidden_field_is_not_drawn(self):
        key = FieldKey('timeOffset', 0)
        FormRenderer.render_field(self.session, key, self.session.form.state(key))

        self.mock_st.text_input.assert_not_called()

    def test_required_label_and_error(self):
        self.session.blur('rName')

        with patch('evidence_forms.form_renderer.UserFeedback') as mock_feedback:
            FormRenderer.render_field(self.session, FieldKey('rName'), self.session.form.state(FieldKey('rName')))

        args, kwargs = self.mock_st.text_input.call_args
        assert args[0] == 'Submitting Investigator *'
        assert kwargs['key'] == 'field_rName'
        mock_feedback.field_error.assert_called_once_with('This field is required')

    def test_optional_label(self):
        FormRenderer.render_field(self.session, FieldKey('unit'), self.session.form.state(FieldKey('unit')))
        assert self.mock_st.text_input.call_args[0][0] == 'Unit'

    def test_urgent_retention_note(self):
        self.session.set_value('dvrRetention', '2024-01-31')
        key = FieldKey('dvrRetention', 0)

        with patch('evidence_forms.form_renderer.UserFeedback') as mock_feedback:
            FormRenderer.render_field(self.session, key, self.session.form.state(key))

        message, = mock_feedback.field_note.call_args[0]
        assert 'URGENT' in message
        assert mock_feedback.field_note.call_args[1] == {'urgent': True}
        assert self.session_state[widget_key('dvrRetention', 'date')] == date(2024, 1, 31)

    def test_widget_state_follows_renumbering(self):
        self.session.add_group()
        self.session.add_group()
        self.session.set_value('dvrPassword_g1', 'P1')
        self.session.set_value('dvrPassword_g2', 'P2')
        FormRenderer.render_groups(self.session)
        assert self.session_state['field_dvrPassword_g2'] == 'P2'

        self.session.remove_group(1)
        FormRenderer.render_groups(self.session)

        assert self.session_state['field_dvrPassword_g1'] == 'P2'

    def test_group_buttons(self):
        self.session.add_group()
        self.session.add_item(1)

        FormRenderer.render_groups(self.session)

        keys = [c[1]['key'] for c in self.mock_st.button.call_args_list]
        assert keys == ['add_item_g0', 'remove_item_g1_1', 'add_item_g1', 'remove_group_g1', 'add_group']

    def test_draft_controls(self):
        self.session.save_draft()
        self.session.has_started_working = False

        FormRenderer.render_draft_controls(self.session)

        labels = [c[0][0] for c in self.mock_st.button.call_args_list]
        assert labels[0] == '📂 Load Draft (Just now)'

    def test_draft_controls_while_working(self):
        self.session.set_value('rName', 'Det. Smith')

        FormRenderer.render_draft_controls(self.session)

        self.mock_st.caption.assert_called_once_with("💾 Auto-save active")

    @patch('evidence_forms.form_renderer.UserFeedback')
    def test_render_page(self, mock_feedback):
        self.mock_manager.get_validation_errors.return_value = ['rName: This field is required']
        client = MagicMock()

        FormRenderer.render(self.session, client)

        self.mock_st.title.assert_called_once_with(self.session.definition.title)
        mock_feedback.show_progress.assert_called_once_with(0, 'low')
        mock_feedback.show_validation_results.assert_called_once_with(['rName: This field is required'])
        subheaders = [c[0][0] for c in self.mock_st.subheader.call_args_list]
        assert subheaders == self.session.definition.sections
        self.mock_st.download_button.assert_called_once()

    @patch('evidence_forms.form_renderer.UserFeedback')
    def test_submit_button_uses_callback(self, mock_feedback):
        client = MagicMock()

        FormRenderer.render(self.session, client)

        submit = [c for c in self.mock_st.button.call_args_list if c[1]['key'] == 'submit_request']
        assert submit[0][1]['on_click'] == FormRenderer._submit
        assert submit[0][1]['args'] == (client, None)
        client.submit.assert_not_called()

    def test_dataframe_stretches(self):
        FormFixtures.fill_valid(self.session)

        FormRenderer.render_review(self.session)

        assert self.mock_st.dataframe.call_args[1]['width'] == 'stretch'
        assert 'use_container_width' not in self.mock_st.dataframe.call_args[1]

    def test_submission_result_shown_until_next_form(self):
        self.mock_manager.get_submission_result.return_value = SubmissionResult(
            True, SUBMISSION_SUCCESS_MESSAGE, ticket_id='REQ-7')

        FormRenderer.render_submission_result(self.session)
        self.mock_st.success.assert_called_once_with("✅ Request submitted successfully (ticket REQ-7)")

        self.session.set_value('rName', 'Det. Smith')
        FormRenderer.render_submission_result(self.session)
        assert self.mock_st.success.call_count == 1

    def test_failed_submission_result_not_shown(self):
        self.mock_manager.get_submission_result.return_value = SubmissionResult(False, "Ticketing system busy")

        FormRenderer.render_submission_result(self.session)

        self.mock_st.success.assert_not_called()


class TestSubmitCallback(RendererTestBase):
    """Test class for the submit button callback."""

    @patch('evidence_forms.form_renderer.SubmissionHandler')
    def test_submit_runs_submission(self, mock_handler):
        client = MagicMock()

        FormRenderer._submit(client)

        mock_handler.handle_streamlit_submission.assert_called_once_with(client, None)
        self.mock_manager.update_activity.assert_called_once()


class TestFocusFirstInvalid(RendererTestBase):
    """Test class for jumping to the first invalid field after a blocked submit."""

    def setup_method(self):
        super().setup_method()
        self.components_patcher = patch('evidence_forms.form_renderer.components')
        self.mock_components = self.components_patcher.start()
        self.feedback_patcher = patch('evidence_forms.form_renderer.UserFeedback')
        self.mock_feedback = self.feedback_patcher.start()

        result = self.session.validate_all()
        self.mock_manager.get_focus_field.return_value = result.first_invalid

    def teardown_method(self):
        self.feedback_patcher.stop()
        self.components_patcher.stop()
        super().teardown_method()

    def render(self, base_name):
        key = FieldKey(base_name)
        FormRenderer.render_field(self.session, key, self.session.form.state(key))

    def test_first_invalid_field_is_scrolled_to_once(self):
        self.mock_manager.consume_focus_request.side_effect = [True, False]

        self.render('rName')
        self.render('rName')

        self.mock_st.markdown.assert_any_call("<div id='focus-rName'></div>", unsafe_allow_html=True)
        self.mock_components.html.assert_called_once()
        script = self.mock_components.html.call_args[0][0]
        assert 'getElementById("focus-rName")' in script
        assert 'scrollIntoView' in script
        assert self.mock_components.html.call_args[1] == {'height': 0}
        self.mock_feedback.first_field_error.assert_called_with('This field is required')

    def test_other_invalid_fields_keep_inline_errors(self):
        self.render('badge')

        self.mock_feedback.field_error.assert_called_once_with('This field is required')
        self.mock_feedback.first_field_error.assert_not_called()
        self.mock_components.html.assert_not_called()
        self.mock_manager.consume_focus_request.assert_not_called()

    def test_fixed_field_is_no_longer_focused(self):
        self.session.set_value('rName', 'Det. Smith')

        self.render('rName')

        self.mock_feedback.first_field_error.assert_not_called()
        self.mock_components.html.assert_not_called()


class TestBackgroundTick(RendererTestBase):
    """Test class for timers fired while the page is idle."""

    def make_session(self):
        self.clock = 0.0
        session = FormSession(
            definition=FormFixtures.definition(),
            config=FormFixtures.config(self.test_dir),
            scheduler=Scheduler(clock=lambda: self.clock),
            picker_factory=FormFixtures.picker_factory,
            now=lambda: FIXED_NOW,
        )
        session.tick()
        return session

    def test_idle_edit_is_autosaved(self):
        self.session.set_value('rName', 'Det. Smith')

        FormRenderer._background_tick()
        assert not self.session.has_draft()

        self.clock = 2.0
        FormRenderer._background_tick()

        assert self.session.drafts.load().field_values['rName'] == 'Det. Smith'
        self.mock_st.rerun.assert_not_called()

    def test_debounced_validation_redraws_page(self):
        self.session.input_text('requestingPhone', '555')

        FormRenderer._background_tick()
        self.mock_st.rerun.assert_not_called()

        self.clock = 0.5
        FormRenderer._background_tick()

        self.mock_st.rerun.assert_called_once()
        assert self.session.issue('requestingPhone').kind == ErrorKind.FORMAT_INVALID

    def test_without_session(self):
        self.mock_manager.get_form_session.return_value = None

        FormRenderer._background_tick()

        self.mock_st.rerun.assert_not_called()

    def test_render_timers(self):
        FormRenderer.render_timers(self.session)

        self.mock_st.fragment.assert_called_once_with(FormRenderer._background_tick, run_every=1.0)
        self.mock_st.fragment.return_value.assert_called_once_with()
