import asyncio
import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from fastapi.testclient import TestClient

from pawsspeed import main
from pawsspeed.api import live
from pawsspeed.storage import json_store


class BackupOnceTest(unittest.TestCase):
    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        patcher = patch.object(json_store, "STORAGE_DIR", tmp.name)
        patcher.start()
        self.addCleanup(patcher.stop)
        live.reset_runtime()
        self.addCleanup(live.reset_runtime)
        self.out = Path(tmp.name) / "backups"

    def test_backup_contains_current_state_and_respects_retention(self):
        live.get_store().add_competitor("Ziggy", "Ana", "M", round_id="agility-a1")
        with patch.object(main.settings, "backup_retention_files", 1):
            asyncio.run(main.run_backup_once(self.out))
            path = asyncio.run(main.run_backup_once(self.out))

        self.assertEqual(list(self.out.glob("backup_*.json")), [path])
        payload = json.loads(path.read_text(encoding="utf-8"))
        self.assertEqual([c["dog_name"] for c in payload["state"]["competitors"]], ["Ziggy"])


class AppWiringTest(unittest.TestCase):
    def test_root_probe_and_api_routes(self):
        with tempfile.TemporaryDirectory() as tmp, patch.object(json_store, "STORAGE_DIR", tmp), patch.object(
            main.settings, "backup_interval_min", 0
        ):
            with TestClient(main.app) as client:
                self.assertEqual(client.get("/health").json(), {"status": "ok", "storage": "json"})
                self.assertEqual(client.get("/api/state").status_code, 200)
            live.reset_runtime()


if __name__ == "__main__":
    unittest.main()
