import json
from datetime import datetime, timedelta, timezone

import pytest

from pangolin_guardian.errors import ValidationError
from pangolin_guardian.restart_policy import RestartPolicy, RestartPolicyStore

NOW = datetime(2024, 5, 2, 10, 30, tzinfo=timezone.utc)
YESTERDAY = NOW - timedelta(days=1)


class TestRestartPolicy:
    def test_new_day_resets_counter_before_incrementing(self):
        policy = RestartPolicy(enabled=True, max_attempts=3, attempts=3, last_attempt=YESTERDAY)
        assert policy.record_attempt(NOW) == 1
        assert policy.attempts == 1
        assert policy.last_attempt == NOW

    def test_same_day_increments(self):
        policy = RestartPolicy(attempts=1, last_attempt=NOW - timedelta(hours=2))
        assert policy.record_attempt(NOW) == 2

    def test_exhausted_only_counts_today(self):
        policy = RestartPolicy(max_attempts=3, attempts=3, last_attempt=YESTERDAY)
        assert not policy.exhausted(NOW.date())
        policy.last_attempt = NOW
        assert policy.exhausted(NOW.date())

    def test_first_attempt(self):
        policy = RestartPolicy()
        assert policy.record_attempt(NOW) == 1

    def test_reads_existing_file_format(self):
        policy = RestartPolicy.from_dict({
            "enabled": True, "maxAttempts": 5, "attempts": 2, "lastAttemptDate": "2024-05-02T08:00:00.000Z",
        })
        assert policy.max_attempts == 5
        assert policy.attempts_on(NOW.date()) == 2

    def test_bad_entry(self):
        with pytest.raises(ValidationError):
            RestartPolicy.from_dict({"enabled": True, "maxAttempts": "lots"})

    @pytest.mark.parametrize("entry", [True, None, "enabled", [1, 2]])
    def test_entry_must_be_an_object(self, entry):
        with pytest.raises(ValidationError):
            RestartPolicy.from_dict(entry)


class TestRestartPolicyStore:
    def test_missing_file_is_empty(self, tmp_path):
        assert RestartPolicyStore(str(tmp_path / "autoRestart.json")).load() == {}

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "autoRestart.json"
        path.write_text("{not json")
        with pytest.raises(ValidationError):
            RestartPolicyStore(str(path)).load()

    def test_wrong_shape(self, tmp_path):
        path = tmp_path / "autoRestart.json"
        path.write_text(json.dumps({"containers": []}))
        with pytest.raises(ValidationError):
            RestartPolicyStore(str(path)).load()

    def test_enable_disable_round_trip(self, tmp_path):
        path = tmp_path / "data" / "autoRestart.json"
        store = RestartPolicyStore(str(path))

        store.enable("pangolin", max_attempts=4)
        policies = store.load()
        assert policies["pangolin"].enabled
        assert policies["pangolin"].max_attempts == 4

        assert store.disable("pangolin")
        assert not store.load()["pangolin"].enabled
        assert not store.disable("traefik")

        on_disk = json.loads(path.read_text())
        assert on_disk == {"containers": {"pangolin": {"enabled": False, "maxAttempts": 4, "attempts": 0}}}

    def test_enable_keeps_attempt_history(self, tmp_path):
        store = RestartPolicyStore(str(tmp_path / "autoRestart.json"))
        store.save({"gerbil": RestartPolicy(enabled=False, attempts=2, last_attempt=NOW)})
        policy = store.enable("gerbil")
        assert policy.attempts == 2
        assert store.load()["gerbil"].last_attempt == NOW

    def test_enable_rejects_zero_attempts(self, tmp_path):
        with pytest.raises(ValidationError):
            RestartPolicyStore(str(tmp_path / "autoRestart.json")).enable("pangolin", max_attempts=0)

    def test_save_leaves_no_temp_files(self, tmp_path):
        store = RestartPolicyStore(str(tmp_path / "autoRestart.json"))
        store.save({"pangolin": RestartPolicy()})
        assert [p.name for p in tmp_path.iterdir()] == ["autoRestart.json"]

    def test_put_keeps_other_entries_untouched(self, tmp_path):
        path = tmp_path / "autoRestart.json"
        path.write_text(json.dumps({"containers": {"broken": "yes", "gerbil": {"enabled": True}}}))
        store = RestartPolicyStore(str(path))

        store.put("pangolin", RestartPolicy(max_attempts=2))

        on_disk = json.loads(path.read_text())["containers"]
        assert on_disk["broken"] == "yes"
        assert on_disk["gerbil"] == {"enabled": True}
        assert on_disk["pangolin"] == {"enabled": True, "maxAttempts": 2, "attempts": 0}

    def test_enable_replaces_unreadable_entry(self, tmp_path):
        path = tmp_path / "autoRestart.json"
        path.write_text(json.dumps({"containers": {"pangolin": True}}))
        store = RestartPolicyStore(str(path))

        policy = store.enable("pangolin", max_attempts=5)

        assert policy.enabled and policy.attempts == 0
        assert store.load()["pangolin"].max_attempts == 5
