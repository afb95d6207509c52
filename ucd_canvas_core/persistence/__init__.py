"""
Persistence layer for canvas documents.

Snapshots are JSON and can be kept in memory, in per-document JSON files or
in a SQLite database.
"""

from .base import DocumentKey, DocumentStore
from .stores import MemoryDocumentStore, JSONFileDocumentStore, SQLiteDocumentStore
from .adapter import (
    DocumentPersistence,
    SNAPSHOT_VERSION,
    document_to_snapshot,
    snapshot_to_document
)

__all__ = [
    'DocumentKey',
    'DocumentStore',
    'MemoryDocumentStore',
    'JSONFileDocumentStore',
    'SQLiteDocumentStore',
    'DocumentPersistence',
    'SNAPSHOT_VERSION',
    'document_to_snapshot',
    'snapshot_to_document'
]
