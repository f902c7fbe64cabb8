"""
Write one user's backup archive to a local file.

Uses the same database and storage settings as the server, so it can be run
on the host next to a stopped or running instance.
"""

from __future__ import annotations

import argparse
import logging
import sys

from keepsake.app import configure_logging
from keepsake.backup import BackupExporter
from keepsake.config import get_settings
from keepsake.dependencies import build_db_client, build_storage_client
from keepsake.errors import KeepsakeError

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("user_id", help="id of the user to export")
    parser.add_argument(
        "-o",
        "--output",
        help="archive path (defaults to the generated backup filename)",
    )
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings)
    db = build_db_client(settings)
    try:
        exporter = BackupExporter(db, build_storage_client(settings))
        archive = exporter.build_archive(args.user_id)
        output = args.output or archive.filename
        with open(output, "wb") as f:
            for chunk in archive.iter_chunks():
                f.write(chunk)
    except KeepsakeError as e:
        logger.error("Export failed: %s", e.message)
        return 1
    finally:
        db.close()

    logger.info(
        "Wrote %s (%d photos, %d missing)",
        output,
        archive.photo_count,
        archive.missing_photos,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
