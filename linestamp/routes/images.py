# linestamp/routes/images.py
import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, File, UploadFile

from linestamp.core.errors import BadRequestError, InternalError
from linestamp.models.stamps import ImageType, UploadLimits, UploadOut
from linestamp.routes.helpers import get_store
from linestamp.services.auth import get_current_user
from linestamp.services.stamp_states import new_stamp
from linestamp.services.storage_gcp import now_iso, sanitize_filename, stamp_blob_path

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/images", tags=["images"])

_MAX_MB = UploadLimits.MAX_FILE_SIZE // (1024 * 1024)


def _read_validated(files: List[UploadFile]) -> List[tuple[UploadFile, bytes]]:
    if not files:
        raise BadRequestError("No files uploaded")
    if len(files) > UploadLimits.MAX_FILES:
        raise BadRequestError(f"Too many files. Maximum is {UploadLimits.MAX_FILES} files")
    if len(files) < UploadLimits.MIN_FILES:
        raise BadRequestError(
            f"File count must be between {UploadLimits.MIN_FILES} and {UploadLimits.MAX_FILES}"
        )

    out = []
    for f in files:
        if f.content_type not in UploadLimits.ALLOWED_MIME_TYPES:
            raise BadRequestError(f"Invalid file type: {f.content_type}. Only PNG and JPEG are allowed.")
        if not f.filename:
            raise BadRequestError("File must have a name")
        if f.size is not None and f.size > UploadLimits.MAX_FILE_SIZE:
            raise BadRequestError(f"File too large. Maximum size is {_MAX_MB}MB")
        # never hold more than the limit plus one byte
        data = f.file.read(UploadLimits.MAX_FILE_SIZE + 1)
        if len(data) > UploadLimits.MAX_FILE_SIZE:
            raise BadRequestError(f"File too large. Maximum size is {_MAX_MB}MB")
        if not data:
            raise BadRequestError("File must not be empty")
        out.append((f, data))
    return out


@router.post("/upload", response_model=UploadOut)
def upload_images(
    images: Optional[List[UploadFile]] = File(None),
    user=Depends(get_current_user),
    store=Depends(get_store),
):
    """Store 1-8 originals and create the stamp that owns them (status ``generating``)."""
    uid = user["uid"]
    files = _read_validated(images or [])
    stamp_id = uuid.uuid4().hex
    logger.info("Starting image upload for user %s, stampId: %s, files: %d", uid, stamp_id, len(files))

    records = []
    for index, (f, data) in enumerate(files):
        filename = sanitize_filename(f.filename)
        path = stamp_blob_path(uid, stamp_id, ImageType.ORIGINAL.value, filename)
        try:
            url = store.upload_bytes(path, data, f.content_type)
        except Exception as e:
            logger.error("Failed to upload file %s: %s", f.filename, e)
            raise InternalError("Failed to upload images") from e
        records.append({
            "stampId": stamp_id,
            "type": ImageType.ORIGINAL.value,
            "url": url,
            "sequence": index + 1,
            "filename": filename,
            "createdAt": now_iso(),
        })

    image_ids = store.create_stamp(stamp_id, new_stamp(uid), records)
    logger.info("Saved %d image records for stamp %s", len(image_ids), stamp_id)
    return UploadOut(stampId=stamp_id, uploadedCount=len(files), imageIds=image_ids)
