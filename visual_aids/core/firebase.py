import logging

import firebase_admin
from firebase_admin import credentials, firestore
from google.cloud.firestore import Client as FirestoreClient

from visual_aids.config import Settings

logger = logging.getLogger(__name__)


def initialize_firebase(settings: Settings) -> bool:
  """Initialize the Firebase Admin SDK once; return True when an app is available."""
  if firebase_admin._apps:
    return True

  if not settings.firebase_project_id:
    logger.warning("Firebase Project ID not set. Firebase Admin SDK not initialized.")
    return False

  try:
    if settings.firebase_service_account_json_path:
      cred = credentials.Certificate(settings.firebase_service_account_json_path)
      firebase_admin.initialize_app(cred, {"projectId": settings.firebase_project_id})
    else:
      # Application Default Credentials.
      firebase_admin.initialize_app(options={"projectId": settings.firebase_project_id})
  except (ValueError, OSError) as e:
    logger.error("Failed to initialize Firebase Admin SDK: %s", e)
    return False

  logger.info("Firebase Admin SDK initialized for project %s.", settings.firebase_project_id)
  return True


def get_firestore_client(settings: Settings) -> FirestoreClient | None:
  """Return a Firestore client, initializing the Admin SDK on first use."""
  if not initialize_firebase(settings):
    return None

  try:
    return firestore.client()
  except Exception as e:  # noqa: BLE001
    logger.error("Failed to get Firestore client: %s", e)
    return None
