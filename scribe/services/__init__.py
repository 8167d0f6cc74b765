"""Service layer helpers for external integrations."""

from .history_repository import (
    HistoryEntry,
    HistoryRecordCreate,
    HistoryRepository,
    PersistenceError,
    get_history_repository,
)
from .llm_client import (
    GeminiLlmClient,
    GenerationError,
    GenerationErrorKind,
    get_llm_client,
)
from .settings_repository import SettingsRepository, get_settings_repository
from .storage import (
    ObjectStorage,
    StorageError,
    StorageNotFoundError,
    UploadError,
    UploadErrorKind,
    get_object_storage,
)

__all__ = [
    "GeminiLlmClient",
    "GenerationError",
    "GenerationErrorKind",
    "get_llm_client",
    "HistoryEntry",
    "HistoryRecordCreate",
    "HistoryRepository",
    "PersistenceError",
    "get_history_repository",
    "SettingsRepository",
    "get_settings_repository",
    "ObjectStorage",
    "StorageError",
    "StorageNotFoundError",
    "UploadError",
    "UploadErrorKind",
    "get_object_storage",
]
