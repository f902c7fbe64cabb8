"""
Dependency wiring for the FastAPI app.

Backends are built once by ``create_app`` and kept on ``app.state``; the
getters below hand them (and the services built on them) to route handlers.
"""

from __future__ import annotations

import logging

from fastapi import Depends, Header, Request

from keepsake.albums import AlbumService, PhotoService
from keepsake.auth import TokenIssuer, UserService
from keepsake.backup import BackupExporter
from keepsake.config import Settings
from keepsake.countdowns import CountdownService
from keepsake.db import DbClient, InMemoryDbClient, SqlDbClient
from keepsake.diaries import DiaryService
from keepsake.errors import AuthenticationFailed
from keepsake.storage import (
    CosStorageClient,
    InMemoryStorageClient,
    LocalStorageClient,
    StorageClient,
)
from keepsake.uploads import UploadProcessor

logger = logging.getLogger(__name__)


def build_db_client(settings: Settings) -> DbClient:
    if settings.use_in_memory_backends or not settings.database_url:
        logger.info("Using in-memory database")
        return InMemoryDbClient()
    return SqlDbClient(settings.database_url)


def build_storage_client(settings: Settings) -> StorageClient:
    if settings.use_in_memory_backends:
        return InMemoryStorageClient(base_url=settings.uploads_url_prefix)
    if settings.cos_bucket:
        return CosStorageClient(
            bucket=settings.cos_bucket,
            region=settings.cos_region or "",
            endpoint=settings.cos_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            public_url=settings.cos_public_url or "",
        )
    return LocalStorageClient(settings.upload_dir, base_url=settings.uploads_url_prefix)


def build_upload_processor(settings: Settings, storage: StorageClient) -> UploadProcessor:
    return UploadProcessor(
        storage,
        max_file_size=settings.max_file_size,
        max_total_size=settings.max_upload_total_size,
        max_files=settings.max_upload_files,
        thumbnail_width=settings.thumbnail_width,
    )


def get_db_client(request: Request) -> DbClient:
    return request.app.state.db


def get_storage_client(request: Request) -> StorageClient:
    return request.app.state.storage


def get_upload_processor(request: Request) -> UploadProcessor:
    return request.app.state.uploads


def get_token_issuer(request: Request) -> TokenIssuer:
    return request.app.state.tokens


def get_current_user_id(
    authorization: str | None = Header(None),
    tokens: TokenIssuer = Depends(get_token_issuer),
) -> str:
    """
    Resolve the caller from ``Authorization: Bearer <token>``.

    Only the credential is checked here; nothing is read from the database.
    """
    if not authorization:
        raise AuthenticationFailed("authentication required")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationFailed("authentication required")
    return tokens.verify(token.strip())


def get_user_service(
    db: DbClient = Depends(get_db_client),
    tokens: TokenIssuer = Depends(get_token_issuer),
) -> UserService:
    return UserService(db, tokens)


def get_diary_service(db: DbClient = Depends(get_db_client)) -> DiaryService:
    return DiaryService(db)


def get_album_service(
    db: DbClient = Depends(get_db_client),
    uploads: UploadProcessor = Depends(get_upload_processor),
) -> AlbumService:
    return AlbumService(db, uploads)


def get_photo_service(
    db: DbClient = Depends(get_db_client),
    uploads: UploadProcessor = Depends(get_upload_processor),
    albums: AlbumService = Depends(get_album_service),
) -> PhotoService:
    return PhotoService(db, uploads, albums)


def get_countdown_service(db: DbClient = Depends(get_db_client)) -> CountdownService:
    return CountdownService(db)


def get_backup_exporter(
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
) -> BackupExporter:
    return BackupExporter(db, storage)
