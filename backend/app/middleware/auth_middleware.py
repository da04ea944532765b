import logging
from fastapi import Header, HTTPException
from app.services import auth_service

logger = logging.getLogger(__name__)


def get_current_uid(authorization: str = Header(...)) -> str:
    """
    FastAPI dependency that extracts and verifies the Firebase ID token.
    Chats are stored per user, so every chat route depends on it:
        uid: str = Depends(get_current_uid)

    The frontend must send: Authorization: Bearer <firebase_id_token>
    """
    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Authorization header must be 'Bearer <token>'")

    uid = auth_service.verify_firebase_token(authorization[len("Bearer "):])
    if not uid:
        logger.warning("request_unauthorized")
        raise HTTPException(status_code=401, detail="Invalid or expired Firebase ID token")

    return uid
