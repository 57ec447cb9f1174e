"""FastAPI router for the relay endpoints.

Endpoints:
    POST /api/upload  - Store one file (multipart field ``file``)
    GET  /d/{file_id} - Download a file once, then delete it
    GET  /api/list    - List every live file
    POST /api/clear   - Invalidate every tracked file
"""
import logging
import mimetypes
import os
from typing import BinaryIO, Iterator, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from .errors import NotLiveError, RelayError
from .schemas import ClearResponse, FileListItem, FileListResponse, UploadResponse
from .service import TransferService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["transfers"])

CHUNK_SIZE = 64 * 1024


def content_disposition(filename: str) -> str:
    """Build an attachment header that suggests *filename*."""
    quoted = quote(filename)
    if quoted != filename:
        return f"attachment; filename*=utf-8''{quoted}"
    return f'attachment; filename="{filename}"'


def _iter_file(fh: BinaryIO) -> Iterator[bytes]:
    with fh:
        while True:
            chunk = fh.read(CHUNK_SIZE)
            if not chunk:
                break
            yield chunk


def get_transfer_service(request: Request) -> TransferService:
    """Return the TransferService created at application startup."""
    return request.app.state.transfer_service


@router.post("/api/upload", response_model=UploadResponse)
async def upload_file(
    file: Optional[UploadFile] = File(None),
    service: TransferService = Depends(get_transfer_service),
):
    """Upload a single file.

    Returns:
        UploadResponse with the download id, original filename and URL

    Raises:
        HTTPException 400: If no file was sent
        HTTPException 413: If the file exceeds the size limit
        HTTPException 500: If the file could not be stored
    """
    try:
        entry = await service.upload(file, file.filename if file is not None else None)
    except RelayError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"File upload failed: {e}")
        raise HTTPException(status_code=500, detail=f"Upload failed: {str(e)}")

    return UploadResponse(id=entry.id, filename=entry.original_name, url=entry.url)


@router.get("/d/{file_id}")
async def download_file(
    file_id: str,
    service: TransferService = Depends(get_transfer_service),
):
    """Stream a file under its original name, then delete it.

    The blob is opened before the response starts, so a TTL or sweep that
    deletes it mid-transfer cannot break the download.

    Raises:
        HTTPException 410: If the id is unknown or no longer live
    """
    try:
        entry, fh = service.open_download(file_id)
    except NotLiveError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    logger.info("Download started: %s (%s)", file_id, entry.original_name)
    media_type = mimetypes.guess_type(entry.original_name)[0] or "application/octet-stream"
    headers = {
        "Content-Disposition": content_disposition(entry.original_name),
        "Content-Length": str(os.fstat(fh.fileno()).st_size),
    }
    return StreamingResponse(
        _iter_file(fh),
        media_type=media_type,
        headers=headers,
        background=BackgroundTask(service.finish_download, file_id, entry.stored_path),
    )


@router.get("/api/list", response_model=FileListResponse)
async def list_files(service: TransferService = Depends(get_transfer_service)):
    """List every file that can still be downloaded."""
    items = [
        FileListItem(id=e.id, filename=e.original_name, url=e.url, size=e.size)
        for e in service.list_files()
    ]
    return FileListResponse(count=len(items), items=items)


@router.post("/api/clear", response_model=ClearResponse)
async def clear_files(service: TransferService = Depends(get_transfer_service)):
    """Delete every tracked file, regardless of its TTL."""
    count = await service.clear_all()
    logger.info(f"Clear requested: {count} files invalidated")
    return ClearResponse(ok=True)
