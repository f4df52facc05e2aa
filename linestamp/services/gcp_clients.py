# linestamp/services/gcp_clients.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Protocol

import firebase_admin
from firebase_admin import auth as fb_auth, credentials, firestore as fb_firestore, storage as fb_storage

from linestamp.core.config import Settings

logger = logging.getLogger(__name__)


class AuthVerifier(Protocol):
    def verify_id_token(self, id_token: str) -> dict: ...
    def get_user(self, uid: str) -> Any: ...


class FirebaseAuthVerifier:
    """Firebase Admin auth bound to one initialised app."""

    def __init__(self, app: firebase_admin.App):
        self._app = app

    def verify_id_token(self, id_token: str) -> dict:
        return fb_auth.verify_id_token(id_token, app=self._app)

    def get_user(self, uid: str):
        return fb_auth.get_user(uid, app=self._app)


@dataclass
class Clients:
    """Everything that talks to Firebase, built once at startup."""
    db: Any
    bucket: Any
    auth: AuthVerifier


def _firebase_app(settings: Settings) -> firebase_admin.App:
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    options = {}
    if settings.firebase_project_id:
        options["projectId"] = settings.firebase_project_id
        options["storageBucket"] = (
            settings.storage_bucket or f"{settings.firebase_project_id}.firebasestorage.app"
        )
    elif settings.storage_bucket:
        options["storageBucket"] = settings.storage_bucket

    path = settings.credentials_path
    if path and os.path.exists(path):
        cred = credentials.Certificate(path)
        logger.info("Firebase Admin SDK initialised with service account: %s", path)
    else:
        cred = credentials.ApplicationDefault()
        logger.info("Firebase Admin SDK initialised with Application Default Credentials")
    return firebase_admin.initialize_app(cred, options)


def build_clients(settings: Settings) -> Clients | None:
    """Return the Firebase client container, or None when Firebase is not configured."""
    if not settings.firebase_configured:
        logger.warning("Firebase is not configured; data routes will answer 503")
        return None
    try:
        app = _firebase_app(settings)
        return Clients(
            db=fb_firestore.client(app),
            bucket=fb_storage.bucket(app=app),
            auth=FirebaseAuthVerifier(app),
        )
    except Exception:
        logger.exception("Firebase Admin SDK initialisation failed; data routes will answer 503")
        return None
