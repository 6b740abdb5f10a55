"""
Tests for the JSON-backed alarm store
"""

import json

import pytest

from alarm_engine.models import AlarmValidationError
from alarm_engine.store import ALARMS_KEY, AlarmStore


class TestAlarmStore:
    """CRUD behaviour and storage fault recovery"""

    def test_missing_file_reads_as_empty(self, store):
        assert store.list() == []
        assert store.get("nope") is None

    def test_create_assigns_id_and_persists(self, store):
        alarm = store.create(time="07:30", days=[1, 3], label="Work",
                             track_uri="spotify:track:abc123", track_name="Song")

        assert alarm.id
        assert alarm.created_at > 0
        assert alarm.enabled is True
        assert store.get(alarm.id) == alarm

        document = json.loads(store.path.read_text())
        record = document[ALARMS_KEY][0]
        assert record["id"] == alarm.id
        assert record["trackUri"] == "spotify:track:abc123"
        assert record["createdAt"] == alarm.created_at

    def test_create_ignores_caller_supplied_id(self, store):
        alarm = store.create(time="07:30", id="mine", created_at=1)
        assert alarm.id != "mine"
        assert alarm.created_at != 1

    def test_ids_are_unique(self, store):
        ids = {store.create(time="06:00").id for _ in range(20)}
        assert len(ids) == 20

    def test_update_round_trip_keeps_other_fields(self, store):
        alarm = store.create(time="06:45", days=[0, 6], label="Weekend",
                             track_uri="spotify:track:xyz", track_artist="Band")

        updated = store.update(alarm.id, enabled=False)
        fetched = store.get(alarm.id)

        assert updated == fetched
        assert fetched.enabled is False
        assert fetched.model_dump(exclude={"enabled"}) == alarm.model_dump(exclude={"enabled"})

    def test_delete_removes_from_list(self, store):
        keep = store.create(time="05:00")
        gone = store.create(time="06:00")

        assert store.delete(gone.id) is True
        assert [a.id for a in store.list()] == [keep.id]

    def test_unknown_id_signals_not_found(self, store):
        store.create(time="05:00")
        assert store.update("missing", label="x") is None
        assert store.delete("missing") is False
        assert store.set_enabled("missing", False) is None
        assert store.toggle("missing") is None

    def test_toggle_flips_enabled(self, store):
        alarm = store.create(time="05:00")
        assert store.toggle(alarm.id).enabled is False
        assert store.toggle(alarm.id).enabled is True

    def test_list_keeps_stored_order(self, store):
        created = [store.create(time=t) for t in ("09:00", "05:00", "07:00")]
        assert [a.id for a in store.list()] == [a.id for a in created]

    @pytest.mark.parametrize("time", ["7:30", "24:00", "12:60", "ab:cd", "07:300",
                                      "07:00\n", "\uff10\uff17:\uff10\uff10", " 07:00"])
    def test_invalid_time_rejected(self, store, time):
        with pytest.raises(AlarmValidationError):
            store.create(time=time)
        assert store.list() == []

    def test_invalid_patch_rejected_without_write(self, store):
        alarm = store.create(time="08:00")
        with pytest.raises(AlarmValidationError):
            store.update(alarm.id, days=[7])
        assert store.get(alarm.id).days == []

    def test_duplicate_days_collapsed(self, store):
        alarm = store.create(time="08:00", days=[1, 1, 3])
        assert alarm.days == [1, 3]

    def test_corrupt_file_reads_as_empty(self, store):
        store.path.parent.mkdir(parents=True)
        store.path.write_text("{not json")
        assert store.list() == []

    def test_wrong_shape_reads_as_empty(self, store):
        store.path.parent.mkdir(parents=True)
        store.path.write_text(json.dumps({ALARMS_KEY: "oops"}))
        assert store.list() == []

    def test_legacy_bare_list_is_accepted(self, store):
        store.path.parent.mkdir(parents=True)
        store.path.write_text(json.dumps([
            {"id": "a1", "time": "06:00", "days": [], "enabled": True, "createdAt": 1}
        ]))
        assert [a.id for a in store.list()] == ["a1"]

    def test_invalid_record_is_skipped(self, store):
        store.path.parent.mkdir(parents=True)
        store.path.write_text(json.dumps({ALARMS_KEY: [
            {"id": "bad", "time": "25:99", "days": []},
            {"id": "good", "time": "06:00", "days": [2]},
        ]}))
        assert [a.id for a in store.list()] == ["good"]

    def test_write_failure_is_logged_not_raised(self, tmp_path, caplog):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file where a directory should be")
        store = AlarmStore(blocker / "alarms.json")

        alarm = store.create(time="06:00")

        assert alarm.time == "06:00"
        assert "Failed to save alarms" in caplog.text
