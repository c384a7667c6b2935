"""Serves export artifacts from local storage."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import FileResponse, Response

from hiringkit.app.api.dependencies import get_storage
from hiringkit.app.errors import StorageError
from hiringkit.app.export.storage import LocalObjectStorage, ObjectStorage

router = APIRouter(prefix="/downloads", tags=["downloads"])

MEDIA_TYPES = {".pdf": "application/pdf", ".zip": "application/zip"}


@router.get("/{key:path}", response_model=None)
async def download(
    key: str,
    storage: Annotated[ObjectStorage, Depends(get_storage)],
) -> FileResponse | Response:
    """Stream a stored export. Keys are the storage keys from export URLs."""
    suffix = key[key.rfind(".") :] if "." in key else ""
    media_type = MEDIA_TYPES.get(suffix, "application/octet-stream")
    filename = key.rsplit("/", 1)[-1]

    try:
        if isinstance(storage, LocalObjectStorage):
            path = storage.path_for(key)
            if not path.is_file():
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
            return FileResponse(path, media_type=media_type, filename=filename)

        data = await storage.get(key)
    except StorageError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid key") from e

    if data is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    return Response(
        content=data,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
