"""
Document stores: in-memory, JSON files and SQLite.

Schema (SQLite):
  documents: storage_key, project_id, stage_id, document_id,
             snapshot_json, updated_at
"""

import logging
import os
import sqlite3
import threading
import time
from contextlib import contextmanager
from typing import Dict, List, Optional
from urllib.parse import quote, unquote

from ..exceptions import StorageError
from .base import DocumentKey, DocumentStore

logger = logging.getLogger(__name__)


class MemoryDocumentStore(DocumentStore):
    """Process-local store, used for tests and ephemeral sessions."""

    def __init__(self):
        self._snapshots: Dict[DocumentKey, str] = {}
        self._lock = threading.Lock()

    def read(self, key: DocumentKey) -> Optional[str]:
        with self._lock:
            return self._snapshots.get(key)

    def write(self, key: DocumentKey, snapshot: str) -> None:
        with self._lock:
            self._snapshots[key] = snapshot

    def delete(self, key: DocumentKey) -> bool:
        with self._lock:
            return self._snapshots.pop(key, None) is not None

    def list_documents(self, project_id: str, stage_id: Optional[str] = None) -> List[DocumentKey]:
        with self._lock:
            keys = list(self._snapshots)
        return sorted(
            (k for k in keys
             if k.project_id == project_id and (stage_id is None or k.stage_id == stage_id)),
            key=lambda k: (k.stage_id, k.document_id)
        )


class JSONFileDocumentStore(DocumentStore):
    """One JSON file per document under ``<root>/<project>/<stage>/<document>.json``.

    Writes go to a temp file first and are moved into place with
    ``os.replace`` so a crash never leaves a half-written snapshot.
    """

    SUFFIX = '.json'

    def __init__(self, root: str):
        self.root = root
        os.makedirs(self.root, exist_ok=True)

    def _path_for(self, key: DocumentKey) -> str:
        return os.path.join(
            self.root,
            _encode_segment(key.project_id),
            _encode_segment(key.stage_id),
            _encode_segment(key.document_id) + self.SUFFIX,
        )

    def read(self, key: DocumentKey) -> Optional[str]:
        path = self._path_for(key)
        if not os.path.exists(path):
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(f"Failed to read snapshot: {e}", key.storage_key,
                               details={'path': path})

    def write(self, key: DocumentKey, snapshot: str) -> None:
        path = self._path_for(key)
        tmp_path = path + '.tmp'
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(tmp_path, 'w', encoding='utf-8') as f:
                f.write(snapshot)
            os.replace(tmp_path, path)
            logger.debug("Wrote snapshot %s to %s", key.storage_key, path)
        except OSError as e:
            raise StorageError(f"Failed to write snapshot: {e}", key.storage_key,
                               details={'path': path})

    def delete(self, key: DocumentKey) -> bool:
        path = self._path_for(key)
        try:
            os.remove(path)
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete snapshot: {e}", key.storage_key,
                               details={'path': path})

    def list_documents(self, project_id: str, stage_id: Optional[str] = None) -> List[DocumentKey]:
        project_dir = os.path.join(self.root, _encode_segment(project_id))
        if not os.path.isdir(project_dir):
            return []

        stage_dirs = [_encode_segment(stage_id)] if stage_id is not None else sorted(os.listdir(project_dir))
        keys = []
        for stage_dir in stage_dirs:
            full_stage_dir = os.path.join(project_dir, stage_dir)
            if not os.path.isdir(full_stage_dir):
                continue
            for filename in sorted(os.listdir(full_stage_dir)):
                if filename.endswith(self.SUFFIX):
                    keys.append(DocumentKey(
                        project_id,
                        unquote(stage_dir),
                        unquote(filename[:-len(self.SUFFIX)]),
                    ))
        return keys


def _encode_segment(value: str) -> str:
    # Ids are opaque; keep them from escaping the store directory
    encoded = quote(value, safe='')
    return encoded.replace('.', '%2E') if encoded in ('.', '..') else encoded


class SQLiteDocumentStore(DocumentStore):
    """SQLite-backed store, one row per document."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        directory = os.path.dirname(db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with self._connection() as conn:
            conn.executescript('''
                CREATE TABLE IF NOT EXISTS documents (
                    storage_key    TEXT NOT NULL,
                    project_id     TEXT NOT NULL,
                    stage_id       TEXT NOT NULL,
                    document_id    TEXT NOT NULL,
                    snapshot_json  TEXT NOT NULL,
                    updated_at     REAL NOT NULL,
                    PRIMARY KEY (project_id, stage_id, document_id)
                );

                CREATE INDEX IF NOT EXISTS idx_documents_storage_key
                    ON documents(storage_key);
            ''')

    @contextmanager
    def _connection(self):
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open document database: {e}",
                               details={'db_path': self.db_path})
        conn.row_factory = sqlite3.Row
        try:
            conn.execute('PRAGMA journal_mode=WAL')
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(f"Document database error: {e}",
                               details={'db_path': self.db_path})
        finally:
            conn.close()

    def read(self, key: DocumentKey) -> Optional[str]:
        with self._connection() as conn:
            row = conn.execute(
                'SELECT snapshot_json FROM documents '
                'WHERE project_id = ? AND stage_id = ? AND document_id = ?',
                (key.project_id, key.stage_id, key.document_id)
            ).fetchone()
        return row['snapshot_json'] if row else None

    def write(self, key: DocumentKey, snapshot: str) -> None:
        with self._connection() as conn:
            conn.execute('''
                INSERT INTO documents (storage_key, project_id, stage_id, document_id,
                                       snapshot_json, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(project_id, stage_id, document_id) DO UPDATE
                   SET snapshot_json = excluded.snapshot_json,
                       updated_at = excluded.updated_at
            ''', (key.storage_key, key.project_id, key.stage_id, key.document_id,
                  snapshot, time.time()))
        logger.debug("Wrote snapshot %s to %s", key.storage_key, self.db_path)

    def delete(self, key: DocumentKey) -> bool:
        with self._connection() as conn:
            cursor = conn.execute(
                'DELETE FROM documents WHERE project_id = ? AND stage_id = ? AND document_id = ?',
                (key.project_id, key.stage_id, key.document_id)
            )
            return cursor.rowcount > 0

    def list_documents(self, project_id: str, stage_id: Optional[str] = None) -> List[DocumentKey]:
        with self._connection() as conn:
            if stage_id is None:
                rows = conn.execute('''
                    SELECT project_id, stage_id, document_id FROM documents
                     WHERE project_id = ?
                     ORDER BY stage_id, document_id
                ''', (project_id,)).fetchall()
            else:
                rows = conn.execute('''
                    SELECT project_id, stage_id, document_id FROM documents
                     WHERE project_id = ? AND stage_id = ?
                     ORDER BY document_id
                ''', (project_id, stage_id)).fetchall()
        return [DocumentKey(r['project_id'], r['stage_id'], r['document_id']) for r in rows]
