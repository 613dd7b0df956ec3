"""FastAPI dependency providers. Tests override these on ``app.dependency_overrides``."""

import database
from errors import ServiceUnavailable
from notifier import Notifier, default_notifier
from storage import BlobStore, default_blob_store


def get_db():
    if database.db is None:
        raise ServiceUnavailable()
    return database.db


def get_blob_store() -> BlobStore:
    return default_blob_store()


def get_notifier() -> Notifier:
    return default_notifier()
