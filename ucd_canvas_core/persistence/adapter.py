"""
Document Persistence Adapter.

Serializes whole canvas documents (nodes, edges, viewport) into JSON
snapshots and writes them to a ``DocumentStore`` under the document's
``(project_id, stage_id, document_id)`` key. Saves are full replacements;
loads are forgiving: damaged snapshots are logged and treated as absent, and
individual damaged nodes or edges are skipped.
"""

import json
import logging
import time
from typing import Any, Dict, List, Optional

from ..block_editor import BlockContentEditor, get_editor
from ..block_templates import BlockTemplateRegistry, get_registry
from ..exceptions import CanvasError, MalformedSnapshot, StorageError
from ..models import CanvasDocument, CanvasEdge, CanvasNode, Viewport
from .base import DocumentKey, DocumentStore

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


def document_to_snapshot(document: CanvasDocument) -> Dict[str, Any]:
    """Build the JSON-safe snapshot of a document."""
    now = time.time()
    snapshot = document.to_dict()
    snapshot.update({
        'version': SNAPSHOT_VERSION,
        'saved_at': now,
        'saved_at_iso': time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(now)),
    })
    return snapshot


def snapshot_to_document(snapshot: Any,
                         registry: Optional[BlockTemplateRegistry] = None,
                         editor: Optional[BlockContentEditor] = None,
                         storage_key: Optional[str] = None) -> CanvasDocument:
    """Rebuild a document from snapshot data.

    Raises:
        MalformedSnapshot: if the snapshot is not an object at all.
    """
    if not isinstance(snapshot, dict):
        raise MalformedSnapshot("Snapshot is not a JSON object", storage_key,
                                details={'type': type(snapshot).__name__})

    document = CanvasDocument(registry=registry or get_registry(),
                              editor=editor or get_editor())

    viewport_data = snapshot.get('viewport')
    if isinstance(viewport_data, dict):
        try:
            document.viewport = Viewport.from_dict(viewport_data)
        except (TypeError, ValueError) as e:
            logger.warning("Snapshot %s: ignoring bad viewport (%s)", storage_key, e)

    for node_data in _section(snapshot, 'nodes', storage_key):
        try:
            node = CanvasNode.from_dict(node_data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning("Snapshot %s: skipping malformed node (%s)", storage_key, e)
            continue
        if node.block_type not in document.registry:
            logger.warning("Snapshot %s: skipping node %s of unregistered type %s",
                           storage_key, node.id, node.block_type.value)
            continue
        if node.id in document.nodes:
            logger.warning("Snapshot %s: skipping duplicate node id %s", storage_key, node.id)
            continue
        node.content = document.editor.sanitize_content(node.block_type, node.content)
        document.insert_node(node)

    for edge_data in _section(snapshot, 'edges', storage_key):
        try:
            edge = CanvasEdge.from_dict(edge_data)
            document.insert_edge(edge)
        except (KeyError, TypeError, ValueError, AttributeError, CanvasError) as e:
            logger.warning("Snapshot %s: skipping edge (%s)", storage_key, e)

    return document


def _section(snapshot: Dict[str, Any], name: str, storage_key: Optional[str]) -> List[Any]:
    value = snapshot.get(name)
    if value is None:
        return []
    if not isinstance(value, list):
        logger.warning("Snapshot %s: '%s' is not a list, ignoring it", storage_key, name)
        return []
    return value


class DocumentPersistence:
    """Saves and loads canvas documents through a document store.

    Usage:
        persistence = DocumentPersistence(SQLiteDocumentStore('documents.db'))
        persistence.save(key, document)
        document = persistence.load(key)   # None if never saved
    """

    def __init__(self, store: DocumentStore,
                 registry: Optional[BlockTemplateRegistry] = None,
                 editor: Optional[BlockContentEditor] = None):
        self.store = store
        self.registry = registry or get_registry()
        self.editor = editor or get_editor()

    def save(self, key: DocumentKey, document: CanvasDocument) -> Dict[str, Any]:
        """Overwrite the stored snapshot for the key.

        Returns the snapshot that was written.

        Raises:
            StorageError: if the snapshot could not be encoded or written.
        """
        snapshot = document_to_snapshot(document)
        try:
            encoded = json.dumps(snapshot, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Document could not be serialized: {e}", key.storage_key)

        try:
            self.store.write(key, encoded)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save document: {e}", key.storage_key)

        logger.info("Saved %s (%d nodes, %d edges)", key.storage_key,
                    len(document.nodes), len(document.edges))
        return snapshot

    def load(self, key: DocumentKey) -> Optional[CanvasDocument]:
        """Load the document stored under the key.

        Returns None when nothing was saved yet or the snapshot is unusable.

        Raises:
            StorageError: if the store itself could not be read.
        """
        try:
            raw = self.store.read(key)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to load document: {e}", key.storage_key)

        if raw is None:
            return None

        try:
            try:
                data = json.loads(raw)
            except (TypeError, ValueError) as e:
                raise MalformedSnapshot(f"Snapshot is not valid JSON: {e}", key.storage_key)
            except RecursionError:
                raise MalformedSnapshot("Snapshot is nested too deeply to decode", key.storage_key)
            try:
                document = snapshot_to_document(data, self.registry, self.editor, key.storage_key)
            except RecursionError:
                raise MalformedSnapshot("Snapshot content is nested too deeply", key.storage_key)
        except MalformedSnapshot as e:
            logger.error("Discarding malformed snapshot %s: %s", key.storage_key, e)
            return None

        logger.info("Loaded %s (%d nodes, %d edges)", key.storage_key,
                    len(document.nodes), len(document.edges))
        return document

    def load_or_new(self, key: DocumentKey) -> CanvasDocument:
        document = self.load(key)
        if document is None:
            document = CanvasDocument(registry=self.registry, editor=self.editor)
        return document

    def delete(self, key: DocumentKey) -> bool:
        return self.store.delete(key)

    def list_documents(self, project_id: str, stage_id: Optional[str] = None) -> List[DocumentKey]:
        return self.store.list_documents(project_id, stage_id)
