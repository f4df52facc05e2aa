"""
Stamp, image and request/response models.

Firestore documents are plain dicts; these models describe their shape and
validate the JSON bodies the routes accept.
"""
from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel


class StampStatus(str, Enum):
    """Lifecycle of one stamp job"""
    PENDING_UPLOAD = "pending_upload"
    PENDING_GENERATE = "pending_generate"
    GENERATING = "generating"
    GENERATED = "generated"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    FAILED = "failed"
    SESSION_EXPIRED = "session_expired"


class ImageType(str, Enum):
    ORIGINAL = "original"
    PROCESSED = "processed"
    MAIN = "main"


PROCESSED_IMAGE_COUNT = 8


class UploadLimits:
    MIN_FILES = 1
    MAX_FILES = 8
    MAX_FILE_SIZE = 5 * 1024 * 1024
    ALLOWED_MIME_TYPES = ("image/png", "image/jpeg", "image/jpg")


# ──────────────────────────── Responses ────────────────────────────
class UploadOut(BaseModel):
    stampId: str
    uploadedCount: int
    imageIds: List[str]


class StampStatusOut(BaseModel):
    stampId: str
    status: StampStatus
    retryCount: int
    presetId: Optional[str] = None
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None


class PreviewImage(BaseModel):
    id: str
    url: str
    sequence: int
    filename: str


class PreviewOut(BaseModel):
    stampId: str
    processedImages: List[PreviewImage]
    mainImage: Optional[PreviewImage] = None
