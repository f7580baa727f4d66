"""Dependency providers for the API routes.

Adapters are built once per process for the configured storage backend and
shared by the services. Routes receive services through ``Depends`` so tests
can swap them with ``app.dependency_overrides``.
"""

from __future__ import annotations

from functools import lru_cache

from quotaflow.adapters.documents.base import AbstractDocumentStore
from quotaflow.adapters.documents.in_memory import InMemoryDocumentStore
from quotaflow.adapters.object_storage.base import AbstractObjectStorage
from quotaflow.adapters.object_storage.in_memory import InMemoryObjectStorage
from quotaflow.adapters.transcoding.base import AbstractTranscoder
from quotaflow.adapters.transcoding.factory import create_transcoder
from quotaflow.core.config import settings
from quotaflow.core.rate_limit import get_rate_limiter
from quotaflow.services.backoff import BackoffPolicy
from quotaflow.services.flag_service import FlagService
from quotaflow.services.ingestion_service import IngestionService
from quotaflow.services.rollback_service import CompensatingRollbackService


@lru_cache(maxsize=1)
def get_firestore_client():
    from google.cloud import firestore

    return firestore.AsyncClient(project=settings.storage.project_id)


@lru_cache(maxsize=1)
def get_document_store() -> AbstractDocumentStore:
    collections = {
        "videos_collection": settings.storage.videos_collection,
        "alerts_collection": settings.storage.alerts_collection,
        "users_collection": settings.storage.users_collection,
        "sagas_collection": settings.quota.sagas_collection,
        "saga_ttl_days": settings.quota.saga_ttl_days,
    }
    if settings.storage.backend == "gcp":
        from quotaflow.adapters.documents.firestore import FirestoreDocumentStore

        return FirestoreDocumentStore(get_firestore_client(), **collections)
    return InMemoryDocumentStore(**collections)


@lru_cache(maxsize=1)
def get_object_storage() -> AbstractObjectStorage:
    if settings.storage.backend == "gcp":
        from google.cloud import storage

        from quotaflow.adapters.object_storage.gcs import GcsObjectStorage

        return GcsObjectStorage(storage.Client(project=settings.storage.project_id))
    return InMemoryObjectStorage()


@lru_cache(maxsize=1)
def get_transcoder() -> AbstractTranscoder:
    return create_transcoder()


def get_rollback_service() -> CompensatingRollbackService:
    return CompensatingRollbackService(
        get_rate_limiter(),
        get_document_store(),
        videos_collection=settings.storage.videos_collection,
        users_collection=settings.storage.users_collection,
    )


def get_ingestion_service() -> IngestionService:
    cfg = settings.ingest
    return IngestionService(
        limiter=get_rate_limiter(),
        documents=get_document_store(),
        storage=get_object_storage(),
        transcoder=get_transcoder(),
        backoff=BackoffPolicy(
            max_attempts=cfg.max_attempts,
            base_delay_seconds=cfg.base_delay_seconds,
            multiplier=cfg.backoff_multiplier,
        ),
        raw_prefix=cfg.raw_prefix,
        signed_url_ttl_seconds=cfg.signed_url_ttl_seconds,
        default_bucket=cfg.default_bucket,
    )


def get_flag_service() -> FlagService:
    return FlagService(get_rate_limiter(), get_document_store())


def reset_dependencies() -> None:
    """Drop cached adapters (tests)."""
    for provider in (get_firestore_client, get_document_store, get_object_storage, get_transcoder):
        provider.cache_clear()
