from loguru import logger

from ...core.config import settings
from .template_store import InMemoryTemplateStore
from .template_store_base import TemplateStoreBase
from .template_store_sqlite import SQLiteTemplateStore

_default_store: TemplateStoreBase | None = None


def create_template_store(db_path: str | None = None) -> TemplateStoreBase:
    """SQLite store when a database path is configured, otherwise in-memory."""
    path = settings.template_db_path if db_path is None else db_path
    if path:
        logger.info("Using SQLite template store", db_path=path)
        return SQLiteTemplateStore(path)
    logger.info("Using in-memory template store")
    return InMemoryTemplateStore()


def get_template_store() -> TemplateStoreBase:
    """
    Get the default template store instance.

    Returns:
        Store selected by TEMPLATE_DB_PATH (created on first use)
    """
    global _default_store
    if _default_store is None:
        _default_store = create_template_store()
    return _default_store
