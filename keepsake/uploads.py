"""
Upload handling for photos.

Accepts a bounded batch of in-memory files with declared MIME types, rejects
non-image and oversized files, stores the accepted ones under generated unique
names and writes a fixed-width thumbnail next to each of them.
"""

from __future__ import annotations

import io
import logging
import mimetypes
import os
import random
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from PIL import Image, ImageOps

from keepsake.errors import ValidationFailed
from keepsake.storage import StorageClient

logger = logging.getLogger(__name__)

THUMBNAIL_PREFIX = "thumbnails"

# EXIF tag ids (base IFD and the Exif sub-IFD).
_EXIF_IFD = 0x8769
_MAKE = 0x010F
_MODEL = 0x0110
_DATETIME = 0x0132
_EXPOSURE_TIME = 0x829A
_F_NUMBER = 0x829D
_ISO = 0x8827
_DATETIME_ORIGINAL = 0x9003
_FOCAL_LENGTH = 0x920A
_LENS_MODEL = 0xA434


@dataclass
class IncomingFile:
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class StoredUpload:
    filename: str
    original_name: str
    key: str
    url: str
    thumbnail_url: str
    size: int
    mimetype: str
    exif: Optional[dict] = None


@dataclass
class RejectedUpload:
    filename: str
    reason: str

    def as_dict(self) -> dict:
        return {"filename": self.filename, "reason": self.reason}


@dataclass
class UploadResult:
    stored: list[StoredUpload] = field(default_factory=list)
    rejected: list[RejectedUpload] = field(default_factory=list)


def thumbnail_key(key: str) -> str:
    return f"{THUMBNAIL_PREFIX}/{key}"


def generate_filename(original_name: str, content_type: str) -> str:
    ext = os.path.splitext(original_name or "")[1].lower()
    if not ext:
        ext = mimetypes.guess_extension(content_type or "") or ".jpg"
    return f"{int(time.time() * 1000)}-{random.randint(0, 999_999_999)}{ext}"


def make_thumbnail(data: bytes, width: int) -> bytes:
    with Image.open(io.BytesIO(data)) as img:
        fmt = img.format or "JPEG"
        oriented = ImageOps.exif_transpose(img)
        height = max(1, round(oriented.height * width / oriented.width))
        thumb = oriented.resize((width, height), Image.Resampling.LANCZOS)
    if fmt == "JPEG" and thumb.mode not in ("RGB", "L"):
        thumb = thumb.convert("RGB")
    buffer = io.BytesIO()
    thumb.save(buffer, format=fmt)
    return buffer.getvalue()


def _format_exposure(value) -> str:
    seconds = float(value)
    if 0 < seconds < 1:
        return f"1/{round(1 / seconds)}"
    return f"{seconds:g}s"


def _format_exif_datetime(value: str) -> Optional[str]:
    try:
        return datetime.strptime(value.strip(), "%Y:%m:%d %H:%M:%S").isoformat()
    except (ValueError, AttributeError):
        return None


def read_exif(data: bytes) -> Optional[dict]:
    """Pull the handful of camera fields we keep from the image's EXIF block."""
    with Image.open(io.BytesIO(data)) as img:
        exif = img.getexif()
        if not exif:
            return None
        sub = exif.get_ifd(_EXIF_IFD)

    camera = " ".join(
        str(part).strip() for part in (exif.get(_MAKE), exif.get(_MODEL)) if part
    )
    iso = sub.get(_ISO)
    if isinstance(iso, (tuple, list)):
        iso = iso[0] if iso else None

    result = {
        "camera": camera or None,
        "lens": str(sub[_LENS_MODEL]).strip() if sub.get(_LENS_MODEL) else None,
        "aperture": f"f/{float(sub[_F_NUMBER]):g}" if sub.get(_F_NUMBER) else None,
        "shutterSpeed": _format_exposure(sub[_EXPOSURE_TIME]) if sub.get(_EXPOSURE_TIME) else None,
        "iso": int(iso) if iso else None,
        "focalLength": f"{float(sub[_FOCAL_LENGTH]):g}mm" if sub.get(_FOCAL_LENGTH) else None,
        "dateTime": _format_exif_datetime(sub.get(_DATETIME_ORIGINAL) or exif.get(_DATETIME)),
    }
    result = {k: v for k, v in result.items() if v is not None}
    return result or None


class UploadProcessor:
    def __init__(
        self,
        storage: StorageClient,
        *,
        max_file_size: int,
        max_total_size: int,
        max_files: int,
        thumbnail_width: int = 320,
    ):
        self.storage = storage
        self.max_file_size = max_file_size
        self.max_total_size = max_total_size
        self.max_files = max_files
        self.thumbnail_width = thumbnail_width

    def check_batch(self, files: list[IncomingFile]) -> None:
        if not files:
            raise ValidationFailed("at least one photo is required")
        if len(files) > self.max_files:
            raise ValidationFailed(f"at most {self.max_files} photos can be uploaded at once")
        total = sum(f.size for f in files)
        if total > self.max_total_size:
            raise ValidationFailed(
                f"upload of {total} bytes exceeds the {self.max_total_size} byte limit"
            )

    def _reject_reason(self, incoming: IncomingFile) -> Optional[str]:
        if not (incoming.content_type or "").startswith("image/"):
            return "only image files are allowed"
        if incoming.size == 0:
            return "file is empty"
        if incoming.size > self.max_file_size:
            return f"file exceeds the {self.max_file_size} byte limit"
        return None

    def store(self, incoming: IncomingFile) -> StoredUpload:
        key = generate_filename(incoming.filename, incoming.content_type)
        self.storage.save_bytes(key, incoming.data, incoming.content_type)
        url = self.storage.url_for(key)

        thumbnail_url = url
        try:
            thumb_key = thumbnail_key(key)
            self.storage.save_bytes(
                thumb_key,
                make_thumbnail(incoming.data, self.thumbnail_width),
                incoming.content_type,
            )
            thumbnail_url = self.storage.url_for(thumb_key)
        except Exception:
            logger.warning("Thumbnail generation failed for %s", key, exc_info=True)

        exif = None
        try:
            exif = read_exif(incoming.data)
        except Exception:
            logger.warning("Could not read EXIF for %s", key, exc_info=True)

        return StoredUpload(
            filename=key,
            original_name=incoming.filename,
            key=key,
            url=url,
            thumbnail_url=thumbnail_url,
            size=incoming.size,
            mimetype=incoming.content_type,
            exif=exif,
        )

    def process(self, files: list[IncomingFile]) -> UploadResult:
        self.check_batch(files)
        result = UploadResult()
        for incoming in files:
            reason = self._reject_reason(incoming)
            if reason:
                logger.info("Rejected upload %s: %s", incoming.filename, reason)
                result.rejected.append(RejectedUpload(incoming.filename, reason))
                continue
            result.stored.append(self.store(incoming))
        return result

    def remove(self, key: str) -> None:
        """Delete a stored photo and its thumbnail; files already gone are fine."""
        self.storage.delete(key)
        self.storage.delete(thumbnail_key(key))
