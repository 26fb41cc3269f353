"""Select the store implementation from settings."""

from __future__ import annotations

import logging

from examforge.core.config import Settings
from examforge.storage.memory_store import MemoryExamRepository
from examforge.storage.repository import ExamRepository

logger = logging.getLogger(__name__)


def create_repository(settings: Settings) -> ExamRepository:
    if settings.storage_backend == "sql":
        # Imported lazily so the memory backend does not need a database driver.
        from examforge.storage.sql_store import SqlExamRepository

        logger.info("Using SQL store")
        return SqlExamRepository.from_url(settings.database_url, echo=settings.database_echo)
    logger.info("Using in-memory store")
    return MemoryExamRepository()
