import json
import logging
import os
from datetime import datetime, timezone
from functools import lru_cache

import firebase_admin
from firebase_admin import credentials, firestore_async

from config import FIREBASE_CREDENTIALS, FIREBASE_CREDENTIALS_FILE, FIRESTORE_PROJECT_ID

logger = logging.getLogger(__name__)


def _load_credentials():
    if os.path.exists(FIREBASE_CREDENTIALS_FILE):
        return credentials.Certificate(FIREBASE_CREDENTIALS_FILE)
    if FIREBASE_CREDENTIALS:
        return credentials.Certificate(json.loads(FIREBASE_CREDENTIALS))
    logger.info("No Firebase service account configured, using application default credentials.")
    return credentials.ApplicationDefault()


@lru_cache(maxsize=1)
def get_firestore():
    """Initializes the Firebase app once and returns the async Firestore client."""
    if not firebase_admin._apps:
        options = {"projectId": FIRESTORE_PROJECT_ID} if FIRESTORE_PROJECT_ID else None
        firebase_admin.initialize_app(_load_credentials(), options)
        logger.info("✅ Firebase app initialized.")
    return firestore_async.client()


def utcnow() -> datetime:
    """Timestamp for createdAt/updatedAt fields. Firestore stores timezone-aware UTC."""
    return datetime.now(timezone.utc)
