import io
import json
import re
import unittest
import zipfile

from PIL import Image

from keepsake.albums import format_size, parse_tags_field
from keepsake.backup import BackupExporter
from keepsake.db import InMemoryDbClient, PhotoRecord, UserRecord, new_id
from keepsake.errors import NotFound, ValidationFailed
from keepsake.storage import InMemoryStorageClient
from keepsake.uploads import IncomingFile, UploadProcessor, thumbnail_key


def png_bytes(width: int = 640, height: int = 480) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color=(200, 120, 80)).save(buffer, format="PNG")
    return buffer.getvalue()


class UploadProcessorTests(unittest.TestCase):
    def setUp(self):
        self.storage = InMemoryStorageClient()
        self.processor = UploadProcessor(
            self.storage,
            max_file_size=1024 * 1024,
            max_total_size=2 * 1024 * 1024,
            max_files=3,
            thumbnail_width=100,
        )

    def test_stores_original_and_thumbnail(self):
        result = self.processor.process(
            [IncomingFile("holiday.png", "image/png", png_bytes())]
        )
        self.assertEqual(result.rejected, [])
        stored = result.stored[0]
        self.assertRegex(stored.filename, r"^\d{13}-\d+\.png$")
        self.assertEqual(stored.original_name, "holiday.png")
        self.assertEqual(stored.url, f"/uploads/{stored.key}")
        self.assertEqual(stored.thumbnail_url, f"/uploads/thumbnails/{stored.key}")
        self.assertTrue(self.storage.exists(stored.key))

        with Image.open(io.BytesIO(self.storage.read_bytes(thumbnail_key(stored.key)))) as thumb:
            self.assertEqual(thumb.size, (100, 75))

    def test_rejects_non_images_per_file(self):
        result = self.processor.process(
            [
                IncomingFile("notes.txt", "text/plain", b"hello"),
                IncomingFile("ok.png", "image/png", png_bytes()),
            ]
        )
        self.assertEqual(len(result.stored), 1)
        self.assertEqual(result.rejected[0].filename, "notes.txt")
        self.assertEqual(result.rejected[0].reason, "only image files are allowed")

    def test_broken_image_falls_back_to_original_url(self):
        result = self.processor.process(
            [IncomingFile("broken.jpg", "image/jpeg", b"not really a jpeg")]
        )
        stored = result.stored[0]
        self.assertEqual(stored.thumbnail_url, stored.url)
        self.assertFalse(self.storage.exists(thumbnail_key(stored.key)))

    def test_batch_limits(self):
        with self.assertRaises(ValidationFailed):
            self.processor.process([])
        too_many = [IncomingFile(f"{i}.png", "image/png", b"x") for i in range(4)]
        with self.assertRaises(ValidationFailed):
            self.processor.process(too_many)
        too_big = [IncomingFile(f"{i}.png", "image/png", b"x" * 900_000) for i in range(3)]
        with self.assertRaises(ValidationFailed):
            self.processor.process(too_big)
        self.assertEqual(self.storage.stored_objects, {})

    def test_remove_tolerates_missing_files(self):
        stored = self.processor.process(
            [IncomingFile("a.png", "image/png", png_bytes())]
        ).stored[0]
        self.processor.remove(stored.key)
        self.assertEqual(self.storage.stored_objects, {})
        self.processor.remove(stored.key)


class HelperTests(unittest.TestCase):
    def test_format_size(self):
        self.assertEqual(format_size(0), "0 Byte")
        self.assertEqual(format_size(512), "512 Bytes")
        self.assertEqual(format_size(1536), "1.5 KB")
        self.assertEqual(format_size(5 * 1024 * 1024), "5 MB")

    def test_parse_tags_field(self):
        self.assertEqual(parse_tags_field('["beach", " sun ", "beach", ""]'), ["beach", "sun"])
        self.assertEqual(parse_tags_field("not json"), [])
        self.assertEqual(parse_tags_field('{"a": 1}'), [])
        self.assertEqual(parse_tags_field(None), [])


class BackupExporterTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.storage = InMemoryStorageClient()
        self.user = self.db.create_user(
            UserRecord(id=new_id(), username="alex", email="alex@example.com", password_hash="x")
        )

    def _photo(self, name: str, store: bool) -> PhotoRecord:
        if store:
            self.storage.save_bytes(name, b"data-" + name.encode(), "image/jpeg")
        return self.db.create_photo(
            PhotoRecord(
                id=new_id(),
                user_id=self.user.id,
                album_id="album",
                filename=name,
                original_name=name,
                path=name,
                url=f"/uploads/{name}",
                thumbnail_url=f"/uploads/thumbnails/{name}",
                size=10,
                mimetype="image/jpeg",
            )
        )

    def test_missing_file_is_skipped(self):
        self._photo("kept.jpg", store=True)
        missing = self._photo("gone.jpg", store=False)

        archive = BackupExporter(self.db, self.storage).build_archive(self.user.id)
        self.assertTrue(
            re.match(rf"^keepsake-backup-{self.user.id}-\d+\.zip$", archive.filename)
        )
        self.assertEqual(archive.photo_count, 1)
        self.assertEqual(archive.missing_photos, 1)

        data = b"".join(archive.iter_chunks())
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            self.assertEqual(sorted(zf.namelist()), ["metadata.json", "photos/kept.jpg"])
            self.assertEqual(zf.read("photos/kept.jpg"), b"data-kept.jpg")
            metadata = json.loads(zf.read("metadata.json"))

        self.assertEqual(
            set(metadata),
            {"exportedAt", "user", "diaries", "albums", "photos", "countdowns"},
        )
        self.assertIn(missing.id, [p["id"] for p in metadata["photos"]])
        self.assertNotIn("passwordHash", metadata["user"])

    def test_unknown_user(self):
        with self.assertRaises(NotFound):
            BackupExporter(self.db, self.storage).build_archive("nobody")


if __name__ == "__main__":
    unittest.main()
