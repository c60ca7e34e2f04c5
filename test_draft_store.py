"""
Unit tests for draft_store module.
"""

import json
import tempfile
import shutil
from datetime import timedelta
from pathlib import Path
from unittest.mock import patch

from evidence_forms.draft_store import DraftStore, format_draft_age
from test_fixtures import FIXED_NOW, FormFixtures


class TestFormatDraftAge:
    """Test cases for draft age text."""

    def test_ages(self):
        assert format_draft_age(FIXED_NOW, FIXED_NOW + timedelta(seconds=30)) == 'Just now'
        assert format_draft_age(FIXED_NOW, FIXED_NOW + timedelta(minutes=1)) == '1 minute ago'
        assert format_draft_age(FIXED_NOW, FIXED_NOW + timedelta(minutes=45)) == '45 minutes ago'
        assert format_draft_age(FIXED_NOW, FIXED_NOW + timedelta(hours=2, minutes=5)) == '2 hours ago'
        assert format_draft_age(FIXED_NOW, FIXED_NOW + timedelta(days=1, hours=3)) == '1 day ago'
        assert format_draft_age(FIXED_NOW, FIXED_NOW + timedelta(days=3)) == '3 days ago'


class TestDraftStore:
    """Test class for file-backed drafts."""

    def setup_method(self):
        self.test_dir = tempfile.mkdtemp()
        self.draft_dir = Path(self.test_dir) / "drafts"
        self.store = DraftStore(FormFixtures.definition(), directory=str(self.draft_dir),
                                now=lambda: FIXED_NOW)

    def teardown_method(self):
        shutil.rmtree(self.test_dir)

    def test_save_and_load(self):
        snapshot = FormFixtures.snapshot({'rName': 'Det. Smith', 'dvrPassword_g1': 'P1'}, groups=2)

        assert self.store.save(snapshot)

        path = self.draft_dir / "fvu_draft_recovery.json"
        assert path.exists()
        assert not path.with_suffix('.json.tmp').exists()
        assert self.store.load() == snapshot
        assert self.store.has_draft()

    def test_save_replaces_previous_draft(self):
        self.store.save(FormFixtures.snapshot({'rName': 'First'}))
        self.store.save(FormFixtures.snapshot({'rName': 'Second'}))

        assert self.store.load().field_values == {'rName': 'Second'}
        assert len(list(self.draft_dir.glob("*.json"))) == 1

    def test_missing_draft(self):
        assert self.store.load() is None
        assert not self.store.has_draft()
        assert self.store.draft_age() is None

    def test_expired_draft_is_removed(self):
        path = self.store.path_for('recovery')
        self.draft_dir.mkdir(parents=True)
        path.write_text(FormFixtures.snapshot(timestamp=FIXED_NOW - timedelta(days=10)).to_json(), encoding='utf-8')

        assert self.store.load() is None
        assert not path.exists()

    def test_corrupt_draft_is_removed(self):
        path = self.store.path_for('recovery')
        self.draft_dir.mkdir(parents=True)
        path.write_text('{"version": 1, "form_type": ', encoding='utf-8')

        with patch('evidence_forms.draft_store.log_error_with_context') as mock_log:
            assert self.store.load() is None

        mock_log.assert_called_once()
        assert not path.exists()

    def test_draft_with_values_outside_structure_is_removed(self):
        raw = FormFixtures.snapshot({'dvrPassword_g3': 'x'}).model_dump(mode='json')
        path = self.store.path_for('recovery')
        self.draft_dir.mkdir(parents=True)
        path.write_text(json.dumps(raw), encoding='utf-8')

        assert self.store.load() is None
        assert not path.exists()

    def test_draft_age(self):
        self.store.save(FormFixtures.snapshot(timestamp=FIXED_NOW - timedelta(minutes=5)))
        assert self.store.draft_age() == '5 minutes ago'
        assert self.store.draft_age(now=FIXED_NOW + timedelta(days=2)) == '2 days ago'

    def test_clear(self):
        self.store.save(FormFixtures.snapshot())
        assert self.store.clear()
        assert not self.store.has_draft()
        # Clearing again is harmless
        assert self.store.clear()

    def test_save_cleans_up_other_expired_drafts(self):
        self.draft_dir.mkdir(parents=True)
        stale = self.draft_dir / "fvu_draft_intake.json"
        old = FormFixtures.snapshot(timestamp=FIXED_NOW - timedelta(days=30)).model_copy(update={'form_type': 'intake'})
        stale.write_text(old.to_json(), encoding='utf-8')
        junk = self.draft_dir / "fvu_draft_junk.json"
        junk.write_text('not json', encoding='utf-8')
        unrelated = self.draft_dir / "notes.json"
        unrelated.write_text('{}', encoding='utf-8')

        self.store.save(FormFixtures.snapshot())

        assert not stale.exists()
        assert not junk.exists()
        assert unrelated.exists()
        assert self.store.has_draft()

    def test_cleanup_without_directory(self):
        assert self.store.cleanup_expired() == 0

    def test_disabled_store(self):
        store = DraftStore(FormFixtures.definition(), directory=str(self.draft_dir), enabled=False,
                           now=lambda: FIXED_NOW)

        assert not store.save(FormFixtures.snapshot())
        assert store.load() is None
        assert not self.draft_dir.exists()

    def test_write_failure_returns_false(self):
        with patch('builtins.open', side_effect=OSError("disk full")):
            assert not self.store.save(FormFixtures.snapshot())
        assert self.store.load() is None

    def test_from_config(self):
        config = FormFixtures.config(self.test_dir, drafts={'key_prefix': 'req_', 'enabled': True})
        store = DraftStore.from_config(FormFixtures.definition(), config, now=lambda: FIXED_NOW)

        assert store.path_for('recovery') == Path(self.test_dir) / "req_recovery.json"
        assert store.now() == FIXED_NOW
