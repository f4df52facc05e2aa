import logging

from fastapi import APIRouter, Depends

from linestamp.core.errors import InternalError
from linestamp.services.auth import get_auth_verifier, get_current_user
from linestamp.routes.helpers import get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/session")
def session(user=Depends(get_current_user), store=Depends(get_store), verifier=Depends(get_auth_verifier)):
    """Current user's profile; the users/{uid} doc is created on the first call."""
    try:
        record = verifier.get_user(user["uid"])
        profile = store.upsert_session_user(
            user["uid"],
            display_name=getattr(record, "display_name", None),
            email=getattr(record, "email", None),
            photo_url=getattr(record, "photo_url", None),
        )
    except Exception as e:
        logger.exception("Session lookup failed for %s", user["uid"])
        raise InternalError("Failed to retrieve session information") from e
    return {"user": profile, "isAuthenticated": True}
