import logging
import os
from typing import Optional

import firebase_admin
from firebase_admin import auth, credentials

logger = logging.getLogger(__name__)


def init_firebase() -> None:
    """Initialize the Firebase Admin SDK once.

    On Cloud Run, Application Default Credentials are used automatically.
    For local dev, falls back to service-account.json if present.
    """
    try:
        firebase_admin.get_app()
    except ValueError:
        sa_path = os.path.join(os.path.dirname(__file__), "..", "..", "service-account.json")
        if os.path.exists(sa_path):
            firebase_admin.initialize_app(credentials.Certificate(os.path.abspath(sa_path)))
        else:
            firebase_admin.initialize_app()


def verify_firebase_token(id_token: str) -> Optional[str]:
    """Verify a Firebase ID token and return the user's UID, or None on failure."""
    init_firebase()
    try:
        decoded = auth.verify_id_token(id_token)
        return decoded["uid"]
    except Exception as e:
        logger.error("firebase_token_verification_failed", extra={"error": str(e)})
        return None
