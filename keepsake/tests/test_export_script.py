import io
import json
import os
import tempfile
import unittest
import zipfile
from unittest.mock import patch

from keepsake.config import Settings
from keepsake.db import InMemoryDbClient, PhotoRecord, UserRecord, new_id
from keepsake.scripts import export_backup
from keepsake.storage import InMemoryStorageClient


class ExportScriptTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.storage = InMemoryStorageClient()
        self.user = self.db.create_user(
            UserRecord(id=new_id(), username="alex", email="alex@example.com", password_hash="x")
        )
        self.storage.save_bytes("1718000000000-1.jpg", b"jpeg-bytes", "image/jpeg")
        self.db.create_photo(
            PhotoRecord(
                id=new_id(),
                user_id=self.user.id,
                album_id="album",
                filename="1718000000000-1.jpg",
                original_name="beach.jpg",
                path="1718000000000-1.jpg",
                url="/uploads/1718000000000-1.jpg",
                thumbnail_url="/uploads/thumbnails/1718000000000-1.jpg",
                size=10,
                mimetype="image/jpeg",
            )
        )
        settings = Settings(_env_file=None, use_in_memory_backends=True, environment="test")
        for target, value in [
            ("get_settings", settings),
            ("build_db_client", self.db),
            ("build_storage_client", self.storage),
        ]:
            patcher = patch.object(export_backup, target, return_value=value)
            patcher.start()
            self.addCleanup(patcher.stop)

    def test_writes_archive_to_output(self):
        with tempfile.TemporaryDirectory() as tmp:
            output = os.path.join(tmp, "backup.zip")
            self.assertEqual(export_backup.main([self.user.id, "-o", output]), 0)
            with open(output, "rb") as f:
                data = f.read()

        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            self.assertEqual(
                sorted(zf.namelist()), ["metadata.json", "photos/1718000000000-1.jpg"]
            )
            self.assertEqual(zf.read("photos/1718000000000-1.jpg"), b"jpeg-bytes")
            metadata = json.loads(zf.read("metadata.json"))
        self.assertEqual(metadata["user"]["id"], self.user.id)

    def test_unknown_user_fails(self):
        with tempfile.TemporaryDirectory() as tmp:
            output = os.path.join(tmp, "backup.zip")
            self.assertEqual(export_backup.main(["nobody", "-o", output]), 1)
            self.assertFalse(os.path.exists(output))


if __name__ == "__main__":
    unittest.main()
