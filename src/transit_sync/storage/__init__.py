"""Blob staging backends."""

from transit_sync.storage.blob import BlobStore, LocalBlobStore, MemoryBlobStore

__all__ = ["BlobStore", "LocalBlobStore", "MemoryBlobStore"]
