"""
Signed object download: GET /storage/{bucket}/{path}?expires=...&token=...

Links are minted by LocalStorage.create_signed_url(); no session is needed,
so a link can be opened in a new tab until it expires.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import FileResponse

from api.settings import get_storage
from utils.storage import LocalStorage, StorageError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/storage", tags=["storage"])


@router.get("/{bucket}/{path:path}", summary="Download a stored object via signed URL",
            responses={403: {"description": "Invalid or expired link"}})
def download_object(
    bucket: str,
    path: str,
    expires: int = Query(..., description="Unix expiry time from the signed URL"),
    token: str = Query(..., description="HMAC from the signed URL"),
    storage: LocalStorage = Depends(get_storage),
) -> FileResponse:
    if not storage.verify_signed_url(bucket, path, expires, token):
        logger.warning("rejected signed url bucket=%s path=%s", bucket, path)
        raise HTTPException(status_code=403, detail="Download link is invalid or has expired")
    try:
        target = storage.open(bucket, path)
    except (FileNotFoundError, StorageError):
        raise HTTPException(status_code=404, detail="Object not found")
    return FileResponse(target, filename=target.name)
