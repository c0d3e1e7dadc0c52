import asyncio
import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from pawsspeed.core.state import CompetitionStore
from pawsspeed.storage import json_store


class JsonStoreTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        patcher = patch.object(json_store, "STORAGE_DIR", self._tmp.name)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.root = Path(self._tmp.name)


class CompetitionStateFileTest(JsonStoreTestCase):
    def test_missing_file_loads_none(self):
        self.assertIsNone(json_store.load_competition_state())

    def test_save_and_load(self):
        store = CompetitionStore()
        store.add_competitor("Ziggy", "Ana", "M", round_id="agility-a1")
        json_store.save_competition_state_sync(store.to_persisted())

        data = json_store.load_competition_state()
        restored = CompetitionStore.from_persisted(data)
        self.assertEqual(restored.competitors, store.competitors)
        self.assertFalse((self.root / "competition.json.tmp").exists())

    def test_corrupt_file_loads_none(self):
        json_store.ensure_storage_dirs()
        (self.root / "competition.json").write_text("{oops", encoding="utf-8")
        self.assertIsNone(json_store.load_competition_state())

    def test_clear(self):
        json_store.save_competition_state_sync({"schemaVersion": 2})
        self.assertTrue(json_store.clear_competition_state())
        self.assertFalse(json_store.clear_competition_state())


class DeviceIdTest(JsonStoreTestCase):
    def test_device_id_is_stable(self):
        first = json_store.get_device_id()
        self.assertEqual(json_store.get_device_id(), first)
        saved = json.loads((self.root / "device.json").read_text(encoding="utf-8"))
        self.assertEqual(saved["deviceId"], first)


class SessionRecordTest(JsonStoreTestCase):
    def test_round_trip_and_invalid_files(self):
        record = {"session_id": "ABC123", "competitors": [], "last_updated_by": "dev-a"}
        asyncio.run(json_store.save_session_record("ABC123", record))
        sessions = self.root / "sessions"
        (sessions / "bad-name.json").write_text("{}", encoding="utf-8")
        (sessions / "XYZ999.json").write_text(json.dumps({"session_id": "OTHER"}), encoding="utf-8")

        records = json_store.load_session_records()
        self.assertEqual(list(records), ["ABC123"])
        self.assertEqual(records["ABC123"]["last_updated_by"], "dev-a")

    def test_rejects_path_like_codes(self):
        with self.assertRaises(ValueError):
            asyncio.run(json_store.save_session_record("../etc", {}))

    def test_delete(self):
        asyncio.run(json_store.save_session_record("ABC123", {"session_id": "ABC123"}))
        self.assertTrue(json_store.delete_session_record("ABC123"))
        self.assertFalse(json_store.delete_session_record("ABC123"))


class AuditLogTest(JsonStoreTestCase):
    def test_append_and_read_latest(self):
        async def scenario():
            for i in range(3):
                event = json_store.build_audit_event(
                    action="SAVE_SCORE", payload={"i": i}, ok=i != 1, reason=None if i != 1 else "invalid_score"
                )
                await json_store.append_audit_event(event)

        asyncio.run(scenario())
        events = json_store.read_latest_events(limit=2, include_payload=True)
        self.assertEqual([e["payload"]["i"] for e in events], [2, 1])
        self.assertEqual(events[1]["reason"], "invalid_score")
        self.assertIsNone(json_store.read_latest_events()[0]["payload"])

    def test_rotation(self):
        async def scenario():
            with patch.object(json_store, "MAX_AUDIT_FILE_SIZE_MB", 0):
                await json_store.append_audit_event({"n": 1})
                await json_store.append_audit_event({"n": 2})

        asyncio.run(scenario())
        archives = list(self.root.glob("events.*.ndjson"))
        self.assertEqual(len(archives), 1)
        self.assertEqual(json_store.read_latest_events(include_payload=True)[0]["n"], 2)


class BackupTest(JsonStoreTestCase):
    def test_write_prune_latest(self):
        out = self.root / "backups"
        for name in ("backup_20000101T000000000000Z.json", "backup_20000102T000000000000Z.json"):
            out.mkdir(exist_ok=True)
            (out / name).write_text("{}", encoding="utf-8")
        newest = json_store.write_backup_file(out, {"competitors": []})

        self.assertEqual(json_store.latest_backup_file(out), newest)
        self.assertEqual(json_store.prune_backups(out, 2), 1)
        self.assertFalse((out / "backup_20000101T000000000000Z.json").exists())
        payload = json.loads(newest.read_text(encoding="utf-8"))
        self.assertEqual(payload["state"], {"competitors": []})

    def test_latest_of_empty_dir(self):
        self.assertIsNone(json_store.latest_backup_file(self.root))


if __name__ == "__main__":
    unittest.main()
