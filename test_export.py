"""
Unit tests for export module: the JSON attachment and CSV export.
"""

import json
import tempfile
import shutil

from evidence_forms.export import (
    GENERATOR_NAME,
    JSON_VERSION,
    clean_form_data,
    export_time_frames_csv,
    generate_calculations,
    generate_json_document,
    json_document_bytes
)
from test_fixtures import FIXED_NOW, FormFixtures


class TestCleanFormData:
    """Test cases for clean_form_data."""

    def test_drops_internal_keys_and_empties(self):
        cleaned = clean_form_data({'_draft': 'x', 'formType': 'recovery', 'rName': 'Det. Smith', 'unit': ''})
        assert cleaned == {'rName': 'Det. Smith', 'unit': None}


class TestExport:
    """Test class for request exports."""

    def setup_method(self):
        self.test_dir = tempfile.mkdtemp()
        self.session = FormFixtures.make_session(self.test_dir)
        FormFixtures.fill_valid(self.session)

    def teardown_method(self):
        shutil.rmtree(self.test_dir)

    def test_calculations_per_dvr(self):
        self.session.add_group()
        self.session.set_value('dvrRetention', '2024-01-30')
        self.session.set_value('isTimeDateCorrect_g1', 'No')
        self.session.set_value('timeOffset_g1', 'DVR is 10 minutes behind')

        calculations = generate_calculations(self.session, now=FIXED_NOW)

        assert calculations['dvrCount'] == 2
        first, second = calculations['dvrs']
        assert first['retentionDays'] == 2
        assert first['isUrgent']
        assert first['videoDurations'] == [{'timeFrame': 1, 'totalMinutes': 60, 'formatted': '1 hour'}]
        assert 'timeOffset' not in first
        assert second['timeOffset']['minutes'] == 10
        assert second['timeOffset']['direction'] == 'BEHIND'
        assert 'retentionDays' not in second
        assert 'videoDurations' not in second

    def test_unparseable_retention_is_skipped(self):
        self.session.set_value('dvrRetention', 'last week')
        calculations = generate_calculations(self.session, now=FIXED_NOW)
        assert 'retentionDays' not in calculations['dvrs'][0]

    def test_json_document(self):
        data = self.session.collect_data()

        document = generate_json_document(data, 'recovery', self.session, now=FIXED_NOW)

        assert document['metadata'] == {
            'formType': 'recovery',
            'version': JSON_VERSION,
            'generated': '2024-02-01T12:00:00',
            'generator': GENERATOR_NAME
        }
        assert document['formData']['rName'] == 'Det. Jane Smith'
        assert document['formData']['unit'] is None
        assert document['calculations']['dvrCount'] == 1

        decoded = json.loads(json_document_bytes(document).decode('utf-8'))
        assert decoded['formData']['cameraDetails'] == 'Cam 1 - Front door\nCam 2 - Loading dock'

    def test_time_frames_csv(self):
        self.session.add_item(0)

        csv_data = export_time_frames_csv(self.session)

        lines = csv_data.strip().splitlines()
        assert lines[0] == 'DVR,Time Frame,From,To,Duration,Type,Cameras'
        assert len(lines) == 3
        assert lines[1].startswith('1,1,2024-01-15T09:00,2024-01-15T10:00,1 hour,DVR Time,2')
