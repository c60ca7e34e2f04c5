"""
Unit tests for autosave module.
"""

import tempfile
import shutil
from unittest.mock import MagicMock

from evidence_forms.autosave import AutosaveTask
from evidence_forms.scheduler import Scheduler
from test_fixtures import FormFixtures


class TestAutosaveTask:
    """Test class for the idle-timer autosave."""

    def setup_method(self):
        self.scheduler = Scheduler(clock=lambda: 0.0)
        self.values = {'rName': ''}
        self.serialize = MagicMock(side_effect=lambda: FormFixtures.snapshot(dict(self.values)))
        self.save = MagicMock(return_value=True)
        self.task = AutosaveTask(self.scheduler, self.serialize, self.save, delay_seconds=2.0)

    def test_saves_after_idle_delay(self):
        self.task.mark_dirty()

        self.scheduler.advance(1.5)
        self.save.assert_not_called()

        self.scheduler.advance(0.5)
        self.save.assert_called_once()
        assert not self.task.dirty
        assert self.task.save_count == 1

    def test_each_edit_restarts_timer(self):
        self.task.mark_dirty()
        self.scheduler.advance(1.5)
        self.task.mark_dirty()
        self.scheduler.advance(1.5)
        self.save.assert_not_called()

        self.scheduler.advance(0.5)
        assert self.save.call_count == 1

    def test_unchanged_payload_is_not_saved_again(self):
        self.task.mark_dirty()
        self.scheduler.advance(2.0)

        self.task.mark_dirty()
        self.scheduler.advance(2.0)
        assert self.save.call_count == 1

        self.values['rName'] = 'Det. Smith'
        self.task.mark_dirty()
        self.scheduler.advance(2.0)
        assert self.save.call_count == 2

    def test_mark_saved_counts_as_last_payload(self):
        self.task.mark_saved(FormFixtures.snapshot(dict(self.values)))
        assert self.task.run() is False

        self.task.mark_dirty()
        self.scheduler.advance(2.0)
        self.save.assert_not_called()

    def test_failed_save_is_retried_on_next_edit(self):
        self.save.return_value = False
        self.task.mark_dirty()
        self.scheduler.advance(2.0)
        assert self.task.save_count == 0

        self.save.return_value = True
        self.task.mark_dirty()
        self.scheduler.advance(2.0)
        assert self.task.save_count == 1

    def test_cancel(self):
        self.task.mark_dirty()
        self.task.cancel()
        self.scheduler.advance(5.0)

        self.save.assert_not_called()
        assert not self.task.dirty

    def test_disabled(self):
        self.task.enabled = False
        self.task.mark_dirty()
        self.scheduler.advance(5.0)

        self.serialize.assert_not_called()
        assert self.scheduler.pending() == 0


class TestSessionAutosave:
    """Test class for autosave driven by form edits."""

    def setup_method(self):
        self.test_dir = tempfile.mkdtemp()
        self.session = FormFixtures.make_session(self.test_dir)

    def teardown_method(self):
        shutil.rmtree(self.test_dir)

    def test_edit_is_saved_after_delay(self):
        self.session.set_value('rName', 'Det. Smith')
        assert not self.session.drafts.has_draft()

        self.session.scheduler.advance(2.0)

        assert self.session.drafts.load().field_values['rName'] == 'Det. Smith'

    def test_structure_change_is_saved(self):
        self.session.add_group()
        self.session.scheduler.advance(2.0)

        assert self.session.drafts.load().structural_counts.groups == 2

    def test_reset_cancels_pending_save(self):
        self.session.set_value('rName', 'Det. Smith')
        self.session.reset()
        self.session.scheduler.advance(2.0)

        assert not self.session.drafts.has_draft()

    def test_disabled_by_config(self):
        session = FormFixtures.make_session(
            self.test_dir, config=FormFixtures.config(self.test_dir, drafts={'enabled': False}))
        session.set_value('rName', 'Det. Smith')
        session.scheduler.advance(2.0)

        assert session.autosave.save_count == 0
