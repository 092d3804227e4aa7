"""
Tests for the persisted sync state.
"""

import json
import pytest
import tempfile
from pathlib import Path
from unittest.mock import patch

from ..error_tracker import StatePersistenceError
from ..state_manager import StateStore, read_json_file, write_json_atomic


class TestStateStore:
    """Test the StateStore class."""

    @pytest.fixture
    def temp_state_dir(self):
        """Create a temporary state directory for testing."""
        with tempfile.TemporaryDirectory() as temp_dir:
            yield temp_dir

    @pytest.fixture
    def state(self, temp_state_dir):
        return StateStore(temp_state_dir).load()

    def test_missing_file_is_empty(self, state):
        assert state.tracked_ids() == set()
        assert state.version == 1
        assert state.get_fingerprint('anything') is None

    def test_corrupt_file_is_empty(self, temp_state_dir):
        path = Path(temp_state_dir) / '.postindex-state.json'
        path.write_text('{not json')

        state = StateStore(temp_state_dir).load()

        assert state.tracked_ids() == set()
        assert state.version == 1

    def test_wrong_shape_is_empty(self, temp_state_dir):
        path = Path(temp_state_dir) / '.postindex-state.json'
        path.write_text(json.dumps({'version': 1, 'posts': ['a', 'b']}))

        assert len(StateStore(temp_state_dir).load()) == 0

    def test_malformed_records_are_skipped(self, temp_state_dir):
        path = Path(temp_state_dir) / '.postindex-state.json'
        path.write_text(json.dumps({'version': 1, 'posts': {
            'good': {'fingerprint': 'abc', 'remote_ref': 'r1', 'synced_at': '2024-01-01T00:00:00+00:00'},
            'bad': {'remote_ref': 'r2'},
            'worse': 'string',
        }}))

        state = StateStore(temp_state_dir).load()

        assert state.tracked_ids() == {'good'}

    def test_upsert_save_and_reload(self, temp_state_dir, state):
        state.upsert('a', 'hash-a', 'ref-a')
        state.upsert('b', 'hash-b', 'ref-b')
        state.save()

        reloaded = StateStore(temp_state_dir).load()

        assert reloaded.tracked_ids() == {'a', 'b'}
        assert reloaded.get_fingerprint('a') == 'hash-a'
        assert reloaded.get_record('b').remote_ref == 'ref-b'
        assert reloaded.get_record('a').synced_at

    def test_remove_and_clear(self, state):
        state.upsert('a', 'hash-a', 'ref-a')
        state.upsert('b', 'hash-b', 'ref-b')

        state.remove('a')
        state.remove('missing')
        assert state.tracked_ids() == {'b'}

        state.clear()
        assert state.tracked_ids() == set()

    def test_unsaved_changes_do_not_reach_disk(self, temp_state_dir, state):
        state.upsert('a', 'hash-a', 'ref-a')
        state.save()
        state.upsert('b', 'hash-b', 'ref-b')

        assert StateStore(temp_state_dir).load().tracked_ids() == {'a'}

    def test_save_failure_raises_persistence_error(self, state):
        state.upsert('a', 'hash-a', 'ref-a')
        with patch('postindex.sync.state_manager.os.replace', side_effect=OSError("disk full")):
            with pytest.raises(StatePersistenceError):
                state.save()

    def test_failed_save_keeps_previous_file(self, temp_state_dir, state):
        state.upsert('a', 'hash-a', 'ref-a')
        state.save()
        state.upsert('b', 'hash-b', 'ref-b')
        with patch('postindex.sync.state_manager.os.replace', side_effect=OSError("disk full")):
            with pytest.raises(StatePersistenceError):
                state.save()

        assert StateStore(temp_state_dir).load().tracked_ids() == {'a'}
        # No temp files left behind
        assert [p.name for p in Path(temp_state_dir).iterdir()] == ['.postindex-state.json']


class TestJsonHelpers:

    def test_read_missing(self, tmp_path):
        assert read_json_file(tmp_path / 'missing.json') is None

    def test_read_non_object(self, tmp_path):
        path = tmp_path / 'list.json'
        path.write_text('[1, 2]')
        assert read_json_file(path) is None

    def test_write_creates_directories(self, tmp_path):
        path = tmp_path / 'nested' / 'state.json'
        write_json_atomic(path, {'a': 1})
        assert json.loads(path.read_text()) == {'a': 1}
