"""
Blob store backed by Django's storage framework.

The chat backend treats media as opaque blobs reached by URL. This adapter
maps that contract onto whatever storage backend STORAGES["default"]
configures (filesystem locally, an object store in deployment).

Usage:
    from core.storage import get_blob_store

    store = get_blob_store()
    url = store.put("chat-rooms/<id>/photo.jpg", payload)
    assert store.exists(url)
"""

from __future__ import annotations

import logging
from urllib.parse import unquote, urlparse

from django.conf import settings
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from django.utils.module_loading import import_string

from core.exceptions import NotFoundError
from core.protocols import BlobStore

logger = logging.getLogger(__name__)


class DjangoStorageBlobStore:
    """BlobStore implementation over a Django Storage instance."""

    def __init__(self, storage=None):
        self.storage = storage or default_storage

    def put(self, path: str, data: bytes) -> str:
        # Storage.save() may alter the name to avoid collisions
        name = self.storage.save(path, ContentFile(data))
        url = self.storage.url(name)
        logger.debug(f"Stored blob {name} ({len(data)} bytes)")
        return url

    def get(self, url: str) -> bytes:
        name = self._name_for(url)
        if not name or not self.storage.exists(name):
            raise NotFoundError("Blob not found", error_code="BLOB_NOT_FOUND")
        with self.storage.open(name, "rb") as handle:
            return handle.read()

    def exists(self, url: str) -> bool:
        name = self._name_for(url)
        return bool(name) and self.storage.exists(name)

    def _name_for(self, url: str) -> str | None:
        """Translate a URL produced by put() back into a storage name."""
        if not url:
            return None
        path = urlparse(url).path
        prefix = urlparse(settings.MEDIA_URL).path
        if not path.startswith(prefix):
            return None
        name = unquote(path[len(prefix):])
        # Reject traversal outside the storage root
        if not name or name.startswith("/") or ".." in name.split("/"):
            return None
        return name


def get_blob_store() -> BlobStore:
    """Instantiate the configured blob store (settings.BLOB_STORE_CLASS)."""
    store_class = import_string(settings.BLOB_STORE_CLASS)
    return store_class()
