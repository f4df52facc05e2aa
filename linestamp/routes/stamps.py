# linestamp/routes/stamps.py
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Query

from linestamp.core.errors import BadRequestError, ForbiddenError, InternalError
from linestamp.models.stamps import ImageType, PreviewImage, PreviewOut, StampStatusOut
from linestamp.routes.helpers import get_generator, get_store, get_submitter
from linestamp.services.auth import get_current_user
from linestamp.services.stamp_jobs import run_generation, run_submission
from linestamp.services.stamp_states import Trigger, ensure_owner, transition

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stamps", tags=["stamps"])


def _required(payload: dict, *keys: str) -> list:
    values = [payload.get(k) for k in keys]
    if not all(isinstance(v, str) and v for v in values):
        raise BadRequestError(f"{' and '.join(keys)} {'is' if len(keys) == 1 else 'are'} required")
    return values


def _status_out(stamp: dict) -> StampStatusOut:
    return StampStatusOut(
        stampId=stamp["id"],
        status=stamp["status"],
        retryCount=int(stamp.get("retryCount") or 0),
        presetId=stamp.get("presetId"),
        createdAt=stamp.get("createdAt"),
        updatedAt=stamp.get("updatedAt"),
    )


def _preview_image(doc: dict) -> PreviewImage:
    return PreviewImage(id=doc["id"], url=doc["url"], sequence=doc["sequence"], filename=doc["filename"])


@router.post("/set-preset")
def set_preset(
    tasks: BackgroundTasks,
    payload: dict = Body(default_factory=dict),
    user=Depends(get_current_user),
    store=Depends(get_store),
    generator=Depends(get_generator),
):
    """
    Attach a preset (config snapshotted onto the stamp), move the stamp to
    ``generating`` and schedule generation with the preset's prompts.
    """
    stamp_id, preset_id = _required(payload, "stampId", "presetId")
    logger.info("Setting preset %s for stamp %s", preset_id, stamp_id)
    preset_ref = store.presets.document(preset_id)
    preset: dict = {}

    def _snapshot_preset(txn, _stamp):
        snap = preset_ref.get(transaction=txn)
        if not snap.exists:
            raise BadRequestError("Invalid preset ID")
        preset.update(snap.to_dict() or {})
        return {"presetId": preset_id, "presetConfig": preset.get("config")}

    stamp = transition(store, stamp_id, Trigger.SET_PRESET, user["uid"], extra=_snapshot_preset)

    originals = [img["url"] for img in store.list_images(stamp_id, ImageType.ORIGINAL)]
    tasks.add_task(run_generation, store, generator, stamp_id, stamp["userId"], originals, preset)
    return {"stampId": stamp_id, "presetId": preset_id, "status": stamp["status"]}


@router.post("/generate")
def generate(
    tasks: BackgroundTasks,
    payload: dict = Body(default_factory=dict),
    user=Depends(get_current_user),
    store=Depends(get_store),
    generator=Depends(get_generator),
):
    (stamp_id,) = _required(payload, "stampId")
    stamp = transition(store, stamp_id, Trigger.BEGIN_GENERATION, user["uid"])

    originals = [img["url"] for img in store.list_images(stamp_id, ImageType.ORIGINAL)]
    preset = {"config": stamp.get("presetConfig")} if stamp.get("presetConfig") else None
    tasks.add_task(run_generation, store, generator, stamp_id, stamp["userId"], originals, preset)
    return {"stampId": stamp_id, "status": stamp["status"]}


@router.get("/status")
def all_statuses(userId: Optional[str] = Query(None), user=Depends(get_current_user), store=Depends(get_store)):
    """Every stamp of the caller, newest first."""
    if userId and userId != user["uid"]:
        raise ForbiddenError("You can only access your own stamp statuses")
    try:
        stamps = store.list_stamps(user["uid"])
    except Exception as e:
        logger.exception("Failed to fetch stamp statuses for %s", user["uid"])
        raise InternalError("Failed to fetch stamp statuses") from e
    return {"userId": user["uid"], "stamps": [_status_out(s).model_dump(mode="json") for s in stamps]}


@router.get("/{stamp_id}/status", response_model=StampStatusOut)
def stamp_status(stamp_id: str, user=Depends(get_current_user), store=Depends(get_store)):
    stamp = ensure_owner(store.get_stamp(stamp_id), user["uid"])
    return _status_out(stamp)


@router.get("/{stamp_id}/preview", response_model=PreviewOut, response_model_exclude_none=True)
def preview(stamp_id: str, user=Depends(get_current_user), store=Depends(get_store)):
    ensure_owner(store.get_stamp(stamp_id), user["uid"])

    processed = store.list_images(stamp_id, ImageType.PROCESSED)
    main = store.list_images(stamp_id, ImageType.MAIN, limit=1)
    return PreviewOut(
        stampId=stamp_id,
        processedImages=[_preview_image(d) for d in processed],
        mainImage=_preview_image(main[0]) if main else None,
    )


@router.post("/submit")
def submit(
    tasks: BackgroundTasks,
    payload: dict = Body(default_factory=dict),
    user=Depends(get_current_user),
    store=Depends(get_store),
    submitter=Depends(get_submitter),
):
    (stamp_id,) = _required(payload, "stampId")
    stamp = transition(store, stamp_id, Trigger.BEGIN_SUBMISSION, user["uid"])
    tasks.add_task(run_submission, store, submitter, stamp_id)
    return {"stampId": stamp_id, "status": stamp["status"]}


@router.post("/retry")
def retry(
    tasks: BackgroundTasks,
    payload: dict = Body(default_factory=dict),
    user=Depends(get_current_user),
    store=Depends(get_store),
    submitter=Depends(get_submitter),
):
    (stamp_id,) = _required(payload, "stampId")
    stamp = transition(store, stamp_id, Trigger.RETRY, user["uid"])
    tasks.add_task(run_submission, store, submitter, stamp_id)
    return {"stampId": stamp_id, "status": stamp["status"], "retryCount": stamp["retryCount"]}
