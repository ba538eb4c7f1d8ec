"""Factory helpers for the visual aid service."""

from __future__ import annotations

import logging

from google.cloud.firestore import Client as FirestoreClient

from visual_aids.config import Settings
from visual_aids.core.firebase import get_firestore_client
from visual_aids.services.visual_aids import VisualAidService
from visual_aids.storage.contracts import VisualAidRemoteStore
from visual_aids.storage.firestore_visual_aids_repo import FirestoreVisualAidRepository, UnconfiguredVisualAidRepository
from visual_aids.storage.local_box import LocalStore

logger = logging.getLogger(__name__)


def build_remote_store(settings: Settings, *, firestore_client: FirestoreClient | None = None) -> VisualAidRemoteStore:
  """Return the Firestore repository, or an always-unavailable stand-in when Firebase is not set up."""
  client = firestore_client if firestore_client is not None else get_firestore_client(settings)
  if client is None:
    logger.warning("Firestore unavailable; visual aids will be queued locally until it is configured.")
    return UnconfiguredVisualAidRepository()
  return FirestoreVisualAidRepository(client, collection=settings.collection)


def build_visual_aid_service(settings: Settings, *, firestore_client: FirestoreClient | None = None, local_store: LocalStore | None = None) -> VisualAidService:
  """Construct a visual aid service from settings.

  The service owns its local store handle for the life of the process.
  """
  remote = build_remote_store(settings, firestore_client=firestore_client)
  store = local_store if local_store is not None else LocalStore(settings.local_store_url, echo=settings.debug)
  return VisualAidService(remote=remote, local_store=store, cache_box=settings.cache_box, queue_box=settings.queue_box)
