"""
Store Factory
Centralizes the logic for selecting the storage backend and building the service.
"""

import logging

from lingosrs.application.config import AppConfig
from lingosrs.application.scheduling_service import SchedulingService
from lingosrs.domain.ports import IdentityVerifier, KeyValueStore
from lingosrs.infrastructure.adapters.kv import InMemoryKeyValueStore, SqliteKeyValueStore
from lingosrs.infrastructure.identity import StaticTokenVerifier
from lingosrs.infrastructure.learner_store import KeyValueLearnerStore

logger = logging.getLogger(__name__)


def get_kv_store(config: AppConfig) -> KeyValueStore:
    """
    Returns the KeyValueStore implementation selected by config.
    """
    if config.store_backend == "memory":
        logger.info("Store backend: memory (records are not persisted)")
        return InMemoryKeyValueStore()

    logger.info(f"Store backend: sqlite ({config.db_path})")
    return SqliteKeyValueStore(config.db_path)


def get_scheduling_service(config: AppConfig) -> SchedulingService:
    return SchedulingService(
        KeyValueLearnerStore(get_kv_store(config)),
        default_new_cap=config.default_daily_new_cap,
        default_review_cap=config.default_daily_review_cap,
        sample_size=config.progress_sample_size,
    )


def get_identity_verifier(config: AppConfig) -> IdentityVerifier:
    if not config.api_tokens:
        logger.warning("No API tokens configured; every request will be rejected")
    return StaticTokenVerifier(config.api_tokens)
