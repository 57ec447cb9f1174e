"""Pydantic schemas for the transfer module.

This module defines the data models for relayed files:
- StoredFile: in-memory registry entry for one accepted upload
- UploadResponse: API response after a successful upload
- FileListItem / FileListResponse: payload of GET /api/list
- ClearResponse: payload of POST /api/clear

Blobs are stored flat in the upload directory as ``<prefix>-<original name>``
where the prefix is random hex, so repeated names never collide.
"""
import time
from typing import List

from pydantic import BaseModel, Field


class StoredFile(BaseModel):
    """Registry entry for an uploaded file.

    Immutable once created: a file is never updated, only deleted.
    """
    model_config = {"frozen": True}

    id: str = Field(..., description="Short opaque download id")
    original_name: str = Field(..., description="Client-supplied filename")
    stored_path: str = Field(..., description="Absolute path of the blob on disk")
    size: int = Field(..., description="File size in bytes")
    created_at: float = Field(default_factory=time.time, description="Upload timestamp")

    @property
    def url(self) -> str:
        return download_path(self.id)


class UploadResponse(BaseModel):
    """Response after a successful upload."""
    id: str = Field(..., description="Download id")
    filename: str = Field(..., description="Original filename")
    url: str = Field(..., description="Path of the one-shot download endpoint")


class FileListItem(BaseModel):
    id: str
    filename: str
    url: str
    size: int


class FileListResponse(BaseModel):
    count: int
    items: List[FileListItem]


class ClearResponse(BaseModel):
    ok: bool = True


def download_path(file_id: str) -> str:
    """Return the download endpoint path for *file_id*."""
    return f"/d/{file_id}"
