"""Integration shortcuts."""

from .object_store import (
    LocalObjectStore,
    ObjectStore,
    S3ObjectStore,
    build_object_store,
)

__all__ = [
    "LocalObjectStore",
    "ObjectStore",
    "S3ObjectStore",
    "build_object_store",
]
