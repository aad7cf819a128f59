"""Serve artifacts written by the local storage backend."""

from __future__ import annotations

import mimetypes

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import FileResponse

from .object_storage import PUBLIC_ARTIFACT_PREFIX, LocalObjectStorage, StorageWriteError


def build_public_artifact_router(storage: LocalObjectStorage) -> APIRouter:
    router = APIRouter(prefix=f"/{PUBLIC_ARTIFACT_PREFIX}", tags=["public-artifacts"])

    @router.get("/{key:path}")
    def get_artifact(key: str) -> FileResponse:
        try:
            path = storage.path_for(key)
        except StorageWriteError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Artifact not found") from exc
        if not path.is_file():
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Artifact not found")
        media_type, _ = mimetypes.guess_type(path.name)
        return FileResponse(path=path, media_type=media_type or "application/octet-stream")

    return router
