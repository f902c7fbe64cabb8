"""
Per-user backup export.

The archive is a zip holding ``metadata.json`` (the user's stored records) and
a ``photos/`` folder with every photo file that could still be read.
"""

from __future__ import annotations

import concurrent.futures
import json
import logging
import tempfile
import time
import zipfile
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import IO

from keepsake.db import DbClient
from keepsake.errors import NotFound
from keepsake.storage import StorageClient

logger = logging.getLogger(__name__)

# Archives larger than this spill from memory to a temporary file on disk.
SPOOL_MAX_BYTES = 16 * 1024 * 1024


@dataclass
class BackupArchive:
    filename: str
    file: IO[bytes]
    photo_count: int
    missing_photos: int

    def iter_chunks(self, chunk_size: int = 64 * 1024):
        try:
            self.file.seek(0)
            while True:
                chunk = self.file.read(chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            self.file.close()


def backup_filename(user_id: str) -> str:
    return f"keepsake-backup-{user_id}-{int(time.time() * 1000)}.zip"


class BackupExporter:
    def __init__(self, db: DbClient, storage: StorageClient):
        self.db = db
        self.storage = storage

    def collect(self, user_id: str) -> dict:
        """Load everything the user owns; the five reads run concurrently."""
        with concurrent.futures.ThreadPoolExecutor(max_workers=5) as executor:
            user_future = executor.submit(self.db.get_user, user_id)
            diaries_future = executor.submit(self.db.list_diaries, user_id)
            albums_future = executor.submit(self.db.list_albums, user_id)
            photos_future = executor.submit(self.db.list_photos, user_id)
            countdowns_future = executor.submit(self.db.list_countdowns, user_id)

            user = user_future.result()
            if user is None:
                raise NotFound("user not found")
            return {
                "exportedAt": datetime.now(timezone.utc).isoformat(),
                "user": user.as_dict(),
                "diaries": [d.as_dict() for d in diaries_future.result()],
                "albums": [a.as_dict() for a in albums_future.result()],
                "photos": [p.as_dict() for p in photos_future.result()],
                "countdowns": [c.as_dict() for c in countdowns_future.result()],
            }

    def _read_photo(self, key: str) -> bytes | None:
        try:
            return self.storage.read_bytes(key)
        except FileNotFoundError:
            logger.warning("Photo file missing from storage, skipping: %s", key)
            return None

    def build_archive(self, user_id: str) -> BackupArchive:
        metadata = self.collect(user_id)
        spool = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_BYTES)
        written = 0
        missing = 0
        try:
            with zipfile.ZipFile(spool, "w", compression=zipfile.ZIP_DEFLATED) as archive:
                archive.writestr(
                    "metadata.json",
                    json.dumps(metadata, ensure_ascii=False, indent=2),
                )
                for photo in metadata["photos"]:
                    data = self._read_photo(photo["path"])
                    if data is None:
                        missing += 1
                        continue
                    archive.writestr(f"photos/{photo['filename']}", data)
                    written += 1
        except Exception:
            spool.close()
            raise

        spool.seek(0)
        logger.info(
            "Built backup for user %s: %d photos, %d missing", user_id, written, missing
        )
        return BackupArchive(
            filename=backup_filename(user_id),
            file=spool,
            photo_count=written,
            missing_photos=missing,
        )

