"""Factory for the configured submission store."""

from app.adapters.storage.base import AbstractSubmissionStore
from app.adapters.storage.in_memory import InMemorySubmissionStore
from app.adapters.storage.sql import SQLSubmissionStore
from app.core.config import StorageSettings, settings
from app.core.errors import ValidationAppError


def create_submission_store(storage_settings: StorageSettings | None = None) -> AbstractSubmissionStore:
    """Instantiate the storage backend named in configuration.

    Args:
        storage_settings: Optional override; defaults to ``settings.storage``.

    Returns:
        AbstractSubmissionStore: Ready-to-use store.

    Raises:
        ValidationAppError: If the backend name is unknown.
    """
    cfg = storage_settings or settings.storage
    backend = cfg.backend.lower()

    if backend == "memory":
        return InMemorySubmissionStore()

    if backend == "sql":
        return SQLSubmissionStore(cfg.database_url, echo=cfg.echo)

    raise ValidationAppError(
        code="storage_unknown_backend",
        message=f"Unknown storage backend: '{backend}'. Supported backends: memory, sql",
    )
