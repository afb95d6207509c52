"""
Editor session: one open canvas document.

A session owns the document for a ``(project_id, stage_id, document_id)`` key
together with its interaction controller, tracks unsaved changes and the save
status shown on the save button, and serializes saves so that repeated save
requests never race two writes to the same key.
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .canvas import CanvasController, DragPayload
from .exceptions import StorageError
from .models import CanvasDocument, CanvasEdge, CanvasNode
from .persistence import DocumentKey, DocumentPersistence

logger = logging.getLogger(__name__)


class SaveState(Enum):
    """Save button states."""
    IDLE = "idle"
    SAVING = "saving"
    SAVED = "saved"
    FAILED = "failed"


class SaveOutcome(Enum):
    SAVED = "saved"
    COALESCED = "coalesced"
    FAILED = "failed"


@dataclass
class SaveResult:
    outcome: SaveOutcome
    saved_at: Optional[float] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome != SaveOutcome.FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {
            'outcome': self.outcome.value,
            'saved_at': self.saved_at,
            'error': self.error,
        }


class DocumentEditorSession:
    """Holds one open document and mediates every change to it."""

    def __init__(self, key: DocumentKey, persistence: DocumentPersistence):
        self.key = key
        self.persistence = persistence
        self.controller = CanvasController(CanvasDocument(registry=persistence.registry,
                                                          editor=persistence.editor))
        self.controller.on_document_changed = self._mark_dirty

        self.sidebar_open = True
        self.dirty = False
        self.save_state = SaveState.IDLE
        self.last_saved_at: Optional[float] = None
        self.last_error: Optional[str] = None
        self.load_error: Optional[str] = None

        # Guards the document; held only while mutating or copying it
        self._lock = threading.RLock()
        # Guards the save flags
        self._save_lock = threading.Lock()
        self._saving = False
        self._resave_requested = False

    @property
    def document(self) -> CanvasDocument:
        return self.controller.document

    @property
    def is_saving(self) -> bool:
        return self._saving

    # ── load ──────────────────────────────────────────────────────────

    def open(self) -> bool:
        """Load the stored snapshot, or start from an empty document.

        A store failure leaves the current in-memory document in place and is
        reported through ``load_error``; calling ``open`` again retries.
        """
        try:
            document = self.persistence.load(self.key)
        except StorageError as e:
            logger.error("Failed to load %s: %s", self.key.storage_key, e)
            self.load_error = str(e)
            return False

        if document is None:
            document = CanvasDocument(registry=self.persistence.registry,
                                      editor=self.persistence.editor)
        with self._lock:
            self.controller.replace_document(document)
            self.dirty = False
        self.load_error = None
        return True

    # ── save ──────────────────────────────────────────────────────────

    def save(self) -> SaveResult:
        """Write the current document to the store.

        A save requested while another is running is folded into it: the
        running save writes once more with the latest graph and this call
        returns ``COALESCED`` immediately.
        """
        with self._save_lock:
            if self._saving:
                self._resave_requested = True
                return SaveResult(SaveOutcome.COALESCED)
            self._saving = True
            self.save_state = SaveState.SAVING

        try:
            while True:
                with self._save_lock:
                    self._resave_requested = False
                with self._lock:
                    snapshot = self.document.copy()
                    self.dirty = False
                self.persistence.save(self.key, snapshot)
                with self._save_lock:
                    if not self._resave_requested:
                        self._saving = False
                        self.save_state = SaveState.SAVED
                        self.last_saved_at = time.time()
                        self.last_error = None
                        return SaveResult(SaveOutcome.SAVED, saved_at=self.last_saved_at)
        except StorageError as e:
            logger.error("Failed to save %s: %s", self.key.storage_key, e)
            with self._lock:
                self.dirty = True
            with self._save_lock:
                self._saving = False
                self._resave_requested = False
                self.save_state = SaveState.FAILED
                self.last_error = str(e)
            return SaveResult(SaveOutcome.FAILED, error=str(e))
        except Exception:
            with self._lock:
                self.dirty = True
            with self._save_lock:
                self._saving = False
                self._resave_requested = False
                self.save_state = SaveState.FAILED
            raise

    # ── edits ─────────────────────────────────────────────────────────

    def drop(self, block_type: str, screen_point: Tuple[float, float]) -> Optional[CanvasNode]:
        """Drop a palette template at a screen position."""
        payload = CanvasController.drag_start(block_type)
        return self.drop_payload(payload, screen_point)

    def drop_payload(self, payload: Optional[DragPayload],
                     screen_point: Tuple[float, float]) -> Optional[CanvasNode]:
        with self._lock:
            return self.controller.drop(payload, screen_point)

    def add_block(self, block_type: str) -> Optional[CanvasNode]:
        with self._lock:
            return self.controller.add_block(block_type)

    def update_node_content(self, node_id: str, partial_content: Dict[str, Any]) -> CanvasNode:
        with self._lock:
            node = self.document.update_node_content(node_id, partial_content)
            self._mark_dirty()
            return node

    def change_field(self, node_id: str, field_key: str, value: Any) -> CanvasNode:
        """Apply a single field edit from the node's content form."""
        with self._lock:
            node = self.document.get_node(node_id)
            patch = self.document.editor.on_field_change(node.block_type, field_key, value)
            node = self.document.update_node_content(node_id, patch)
            self._mark_dirty()
            return node

    def move_node(self, node_id: str, position: Tuple[float, float]) -> CanvasNode:
        with self._lock:
            node = self.document.move_node(node_id, position)
            self._mark_dirty()
            return node

    def delete_node(self, node_id: str) -> List[CanvasEdge]:
        with self._lock:
            return self.controller.delete_node(node_id).removed_edges

    def connect(self, source: str, target: str,
                source_handle: Optional[str] = None,
                target_handle: Optional[str] = None) -> CanvasEdge:
        with self._lock:
            return self.controller.connect(source, target, source_handle, target_handle)

    def disconnect(self, edge_id: str) -> bool:
        with self._lock:
            return self.controller.disconnect(edge_id)

    def set_viewport(self, x: float, y: float, zoom: float):
        with self._lock:
            self.controller.set_viewport(x, y, zoom)
            self._mark_dirty()

    def toggle_sidebar(self, open_: Optional[bool] = None) -> bool:
        self.sidebar_open = (not self.sidebar_open) if open_ is None else bool(open_)
        return self.sidebar_open

    def render_fields(self, node_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            node = self.document.get_node(node_id)
            fields = self.document.editor.render(node.block_type, node.content)
        return [f.to_dict() for f in fields]

    def get_state(self) -> Dict[str, Any]:
        """Everything the editor screen needs to draw itself."""
        with self._lock:
            document = self.document.to_dict()
            canvas = self.controller.get_canvas_state()
        return {
            'key': self.key.to_dict(),
            'storage_key': self.key.storage_key,
            'document': document,
            'canvas': canvas,
            'sidebar_open': self.sidebar_open,
            'dirty': self.dirty,
            'save': {
                'state': self.save_state.value,
                'is_saving': self.is_saving,
                'last_saved_at': self.last_saved_at,
                'error': self.last_error,
            },
            'load_error': self.load_error,
        }

    def _mark_dirty(self):
        self.dirty = True


DEFAULT_MAX_SESSIONS = 256


class SessionManager:
    """Open editor sessions, one per document key.

    At most ``max_sessions`` sessions are kept; beyond that the least recently
    used sessions without unsaved changes are closed. Sessions that are dirty
    or mid-save are never evicted, so the limit can be exceeded while they
    exist.
    """

    def __init__(self, persistence: DocumentPersistence,
                 max_sessions: int = DEFAULT_MAX_SESSIONS):
        if max_sessions < 1:
            raise ValueError("max_sessions must be at least 1")
        self.persistence = persistence
        self.max_sessions = max_sessions
        self._sessions: 'OrderedDict[DocumentKey, DocumentEditorSession]' = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: DocumentKey) -> DocumentEditorSession:
        """Return the open session for the key, opening it on first use."""
        with self._lock:
            session = self._sessions.get(key)
            if session is None:
                session = DocumentEditorSession(key, self.persistence)
                session.open()
                self._sessions[key] = session
                self._evict(keep=key)
            else:
                self._sessions.move_to_end(key)
            return session

    def _evict(self, keep: DocumentKey):
        for key in list(self._sessions):
            if len(self._sessions) <= self.max_sessions:
                return
            session = self._sessions[key]
            if key == keep or session.dirty or session.is_saving:
                continue
            del self._sessions[key]
            logger.debug("Closed idle session %s", key.storage_key)

    def close(self, key: DocumentKey) -> bool:
        with self._lock:
            return self._sessions.pop(key, None) is not None

    def open_keys(self) -> List[DocumentKey]:
        with self._lock:
            return list(self._sessions)
