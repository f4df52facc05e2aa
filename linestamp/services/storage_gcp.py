# linestamp/services/storage_gcp.py
"""
Firestore + Cloud Storage access for the stamp backend.

Backed by:
  • Firestore (Native mode): collections users, stamps, images, presets,
    token_transactions
  • Cloud Storage (the Firebase Storage bucket): uploaded originals and
    generated stamp PNGs under ``users/{uid}/stamps/{stampId}/{type}/``

Notes
-----
• One ``StampStore`` is built per process from the injected clients and kept
  on ``app.state``; nothing here creates clients on import.
• Timestamps are ISO-8601 UTC strings so they sort lexicographically and go
  straight into JSON responses.
• Multi-document read-modify-write goes through ``run_transaction`` which
  wraps the callable in ``firestore.transactional`` (optimistic retries are
  Firestore's job).
"""
from __future__ import annotations

import datetime as _dt
import logging
import math
import re
import time
import uuid
from enum import Enum
from pathlib import PurePath
from typing import Any, Callable, Dict, List, Optional

from google.cloud import firestore  # type: ignore
from google.cloud.firestore_v1 import FieldFilter

from linestamp.models.catalog import DEFAULT_PRESETS
from linestamp.models.stamps import ImageType

logger = logging.getLogger(__name__)

_BATCH_LIMIT = 400   # stay under Firestore's 500 writes per batch


# ───────────────────────── Helpers ─────────────────────────
def now_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def fs_safe(value):
    """Recursively convert value to Firestore-acceptable types."""
    if isinstance(value, Enum):
        return value.value
    if value is None or isinstance(value, (str, bool, int)):
        return value
    if isinstance(value, float):
        return None if math.isnan(value) or math.isinf(value) else value
    if value is firestore.SERVER_TIMESTAMP:
        return value
    if isinstance(value, _dt.datetime):
        return value
    if isinstance(value, (list, tuple)):
        return [fs_safe(v) for v in value]
    if isinstance(value, dict):
        return {str(k): fs_safe(v) for k, v in value.items()}
    return str(value)


def sanitize_filename(filename: str) -> str:
    """Keep [A-Za-z0-9_-], cap at 50 chars, append a ms timestamp before the extension."""
    p = PurePath(filename or "")
    ext = p.suffix.lower()
    name = re.sub(r"[^a-zA-Z0-9\-_]", "_", p.stem)[:50]
    return f"{name}_{int(time.time() * 1000)}{ext}"


def stamp_blob_path(user_id: str, stamp_id: str, image_type: str, filename: str) -> str:
    return f"users/{user_id}/stamps/{stamp_id}/{image_type}/{filename}"


def _snap_dict(snap) -> Dict[str, Any]:
    return (snap.to_dict() or {}) | {"id": snap.id}


# ───────────────────────── Store ─────────────────────────
class StampStore:
    def __init__(self, db, bucket, transactional: Callable = firestore.transactional):
        self.db = db
        self.bucket = bucket
        self._transactional = transactional

        self.users = db.collection("users")
        self.stamps = db.collection("stamps")
        self.images = db.collection("images")
        self.presets = db.collection("presets")
        self.token_transactions = db.collection("token_transactions")

    def run_transaction(self, fn: Callable, *args, **kwargs):
        """Run ``fn(txn, *args, **kwargs)`` inside one Firestore transaction."""
        return self._transactional(fn)(self.db.transaction(), *args, **kwargs)

    # ───────── Users ─────────
    def get_user(self, uid: str) -> Optional[Dict[str, Any]]:
        snap = self.users.document(uid).get()
        return snap.to_dict() if snap.exists else None

    def upsert_session_user(self, uid: str, display_name, email, photo_url) -> Dict[str, Any]:
        """Create the user doc on first sight, otherwise refresh the profile fields."""
        ref = self.users.document(uid)
        snap = ref.get()
        now = now_iso()
        if not snap.exists:
            profile = {
                "uid": uid,
                "displayName": display_name,
                "email": email,
                "photoURL": photo_url,
                "tokenBalance": 0,
                "createdAt": now,
                "updatedAt": now,
            }
            ref.set(profile)
            logger.info("Created user %s", uid)
            return profile

        existing = snap.to_dict() or {}
        updates = {
            "displayName": display_name or existing.get("displayName"),
            "email": email or existing.get("email"),
            "photoURL": photo_url or existing.get("photoURL"),
            "updatedAt": now,
        }
        ref.update(updates)
        return existing | updates

    # ───────── Stamps ─────────
    def stamp_ref(self, stamp_id: str):
        return self.stamps.document(stamp_id)

    def get_stamp(self, stamp_id: str) -> Optional[Dict[str, Any]]:
        snap = self.stamp_ref(stamp_id).get()
        return _snap_dict(snap) if snap.exists else None

    def list_stamps(self, user_id: str) -> List[Dict[str, Any]]:
        snaps = (
            self.stamps.where(filter=FieldFilter("userId", "==", user_id))
            .order_by("createdAt", direction=firestore.Query.DESCENDING)
            .get()
        )
        return [_snap_dict(s) for s in snaps]

    def create_stamp(self, stamp_id: str, stamp: Dict[str, Any], images: List[Dict[str, Any]]) -> List[str]:
        """Write the stamp and its original image records atomically; returns image ids."""
        image_ids = [uuid.uuid4().hex for _ in images]

        def _create(txn):
            txn.create(self.stamp_ref(stamp_id), fs_safe(stamp))
            for image_id, image in zip(image_ids, images):
                txn.set(self.images.document(image_id), fs_safe(image | {"id": image_id}))

        self.run_transaction(_create)
        return image_ids

    # ───────── Images ─────────
    def list_images(self, stamp_id: str, image_type: ImageType | str, limit: int | None = None):
        q = (
            self.images.where(filter=FieldFilter("stampId", "==", stamp_id))
            .where(filter=FieldFilter("type", "==", fs_safe(image_type)))
            .order_by("sequence")
        )
        if limit:
            q = q.limit(limit)
        return [_snap_dict(s) for s in q.get()]

    def delete_generated_images(self, stamp_id: str) -> int:
        """Remove every processed/main image record of a stamp; returns how many went."""
        snaps = (
            self.images.where(filter=FieldFilter("stampId", "==", stamp_id))
            .where(filter=FieldFilter("type", "in", [ImageType.PROCESSED.value, ImageType.MAIN.value]))
            .get()
        )
        batch = self.db.batch(); count = 0; total = 0
        for s in snaps:
            batch.delete(s.reference); count += 1; total += 1
            if count == _BATCH_LIMIT:
                batch.commit(); batch = self.db.batch(); count = 0
        if count:
            batch.commit()
        return total

    def add_images(self, images: List[Dict[str, Any]]) -> List[str]:
        ids = []
        batch = self.db.batch(); count = 0
        for image in images:
            ref = self.images.document()
            batch.set(ref, fs_safe(image | {"id": ref.id}))
            ids.append(ref.id)
            count += 1
            if count == _BATCH_LIMIT:
                batch.commit(); batch = self.db.batch(); count = 0
        if count:
            batch.commit()
        return ids

    # ───────── Presets ─────────
    def list_presets(self) -> List[Dict[str, Any]]:
        """Return all presets, seeding the defaults when the collection is empty."""
        snaps = self.presets.get()
        if snaps:
            return [_snap_dict(s) for s in snaps]

        logger.info("No presets found, creating %d default presets", len(DEFAULT_PRESETS))
        now = now_iso()
        batch = self.db.batch()
        seeded = []
        for preset_id, data in DEFAULT_PRESETS.items():
            preset = {"id": preset_id, **data, "createdAt": now}
            batch.set(self.presets.document(preset_id), fs_safe(preset))
            seeded.append(preset)
        batch.commit()
        return seeded

    def get_preset(self, preset_id: str) -> Optional[Dict[str, Any]]:
        snap = self.presets.document(preset_id).get()
        return _snap_dict(snap) if snap.exists else None

    # ───────── Cloud Storage ─────────
    def upload_bytes(self, blob_path: str, data: bytes, content_type: str) -> str:
        """Upload, make public and return the public URL."""
        blob = self.bucket.blob(blob_path)
        blob.cache_control = "public, max-age=31536000"
        blob.upload_from_string(data, content_type=content_type)
        blob.make_public()
        return f"https://storage.googleapis.com/{self.bucket.name}/{blob_path}"
