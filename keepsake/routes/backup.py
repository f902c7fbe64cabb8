from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from keepsake.backup import BackupExporter
from keepsake.dependencies import get_backup_exporter, get_current_user_id
from keepsake.errors import KeepsakeError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/export")
def export_backup(
    user_id: str = Depends(get_current_user_id),
    exporter: BackupExporter = Depends(get_backup_exporter),
):
    try:
        archive = exporter.build_archive(user_id)
    except Exception as e:
        logger.exception("Backup export failed for user %s", user_id)
        raise KeepsakeError("failed to export backup", status_code=500) from e
    return StreamingResponse(
        archive.iter_chunks(),
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{archive.filename}"'},
    )
