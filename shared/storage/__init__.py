"""
Storage Module
==============

Object storage for label images and compliance reports.

Usage:
    from shared.storage import ObjectStore, get_object_store, object_key

    store = get_object_store()
    key = object_key(user.id, check.id, "front_1700000000.png")
    await store.put(store.uploads_bucket, key, data, "image/png")
"""

from shared.storage.object_store import (
    ObjectStore,
    StorageError,
    get_object_store,
    object_key,
    owns_key,
)

__all__ = [
    "ObjectStore",
    "StorageError",
    "get_object_store",
    "object_key",
    "owns_key",
]
