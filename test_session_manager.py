"""
Unit tests for session_manager module.
"""

import tempfile
import shutil
from unittest.mock import patch

from evidence_forms.form_session import FormSession
from evidence_forms.session_manager import FORM_SESSION_KEY, SessionManager
from test_fixtures import FormFixtures


class TestSessionManager:
    """Test class for session state management."""

    def setup_method(self):
        self.test_dir = tempfile.mkdtemp()
        self.config = FormFixtures.config(self.test_dir)
        self.session_state = {}
        self.patcher = patch('evidence_forms.session_manager.st')
        mock_st = self.patcher.start()
        mock_st.session_state = self.session_state

    def teardown_method(self):
        self.patcher.stop()
        shutil.rmtree(self.test_dir)

    def test_initialize(self):
        SessionManager.initialize(self.config)

        assert self.session_state['session_id'].startswith('session_')
        assert self.session_state['validation_errors'] == []
        assert isinstance(SessionManager.get_form_session(), FormSession)

    def test_initialize_is_idempotent(self):
        SessionManager.initialize(self.config)
        first = SessionManager.get_form_session()
        session_id = self.session_state['session_id']

        SessionManager.initialize(self.config)

        assert SessionManager.get_form_session() is first
        assert self.session_state['session_id'] == session_id

    def test_get_form_session_before_initialize(self):
        assert SessionManager.get_form_session() is None

    def test_validation_errors(self):
        SessionManager.initialize(self.config)

        SessionManager.set_validation_errors({'rName': 'This field is required'}, focus_field='rName')

        assert SessionManager.get_validation_errors() == ['rName: This field is required']
        assert SessionManager.get_focus_field() == 'rName'

        SessionManager.clear_validation_errors()
        assert SessionManager.get_validation_errors() == []
        assert SessionManager.get_focus_field() is None

    def test_focus_request_is_consumed_once(self):
        SessionManager.initialize(self.config)
        assert not SessionManager.consume_focus_request()

        SessionManager.set_validation_errors({'badge': 'This field is required'}, focus_field='badge')

        assert SessionManager.consume_focus_request()
        assert not SessionManager.consume_focus_request()
        assert SessionManager.get_focus_field() == 'badge'

    def test_no_focus_request_without_field(self):
        SessionManager.set_validation_errors({})
        assert not SessionManager.consume_focus_request()

    def test_clear_drops_focus_request(self):
        SessionManager.set_validation_errors({'rName': 'x'}, focus_field='rName')

        SessionManager.clear_validation_errors()

        assert not SessionManager.consume_focus_request()

    def test_submission_result(self):
        SessionManager.set_submission_result('done')
        assert SessionManager.get_submission_result() == 'done'

    def test_reset_form_session(self):
        SessionManager.initialize(self.config)
        first = SessionManager.get_form_session()
        SessionManager.set_validation_errors({'rName': 'x'})

        second = SessionManager.reset_form_session(self.config)

        assert second is not first
        assert self.session_state[FORM_SESSION_KEY] is second
        assert SessionManager.get_validation_errors() == []
