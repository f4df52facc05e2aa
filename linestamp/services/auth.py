import logging

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from linestamp.core.errors import ServiceUnavailableError, UnauthorizedError

logger = logging.getLogger(__name__)

bearer = HTTPBearer(auto_error=False)


def get_auth_verifier(request: Request):
    clients = getattr(request.app.state, "clients", None)
    if clients is None:
        raise ServiceUnavailableError("Firebase authentication service is not configured")
    return clients.auth


def get_current_user(
    request: Request,
    cred: HTTPAuthorizationCredentials | None = Depends(bearer),
):
    """Verify the Firebase ID token in ``Authorization: Bearer``; returns the decoded claims."""
    header = request.headers.get("authorization")
    if not header:
        raise UnauthorizedError("Authorization header is required")
    if not cred or not cred.credentials:
        raise UnauthorizedError("Bearer token is required")

    verifier = get_auth_verifier(request)
    try:
        decoded = verifier.verify_id_token(cred.credentials)
    except Exception as e:
        logger.info("Token verification failed: %s", e)
        raise UnauthorizedError("Invalid or expired token")

    uid = (decoded or {}).get("uid")
    if not uid:
        raise UnauthorizedError("Invalid or expired token")
    request.state.uid = uid
    return decoded
