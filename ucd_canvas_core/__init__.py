"""
UCD Canvas Core - the block-canvas document editor behind the UCD project dashboard.

This package provides the requirement block catalog, the per-block content
forms, the canvas node/edge graph with its interaction controller, and
persistence of whole canvas documents keyed by project, stage and document.
"""

__version__ = "0.1.0"

from .block_templates import BlockType, BlockTemplate, BlockTemplateRegistry, get_registry
from .block_editor import BlockContentEditor, FieldKind, FieldSpec, RenderedField, get_editor
from .models import CanvasDocument, CanvasNode, CanvasEdge, Position, Viewport
from .canvas import CanvasController, DragPayload, DropEffect, NodeRegion, to_canvas_space
from .editor_session import DocumentEditorSession, SessionManager, SaveState, SaveOutcome
from .persistence import (
    DocumentKey, DocumentPersistence, MemoryDocumentStore,
    JSONFileDocumentStore, SQLiteDocumentStore
)
from .exceptions import (
    CanvasError, NotFound, UnknownBlockType, UnknownNode, InvalidConnection,
    InvalidFieldValue, StorageError, MalformedSnapshot
)

__all__ = [
    "BlockType",
    "BlockTemplate",
    "BlockTemplateRegistry",
    "get_registry",
    "BlockContentEditor",
    "FieldKind",
    "FieldSpec",
    "RenderedField",
    "get_editor",
    "CanvasDocument",
    "CanvasNode",
    "CanvasEdge",
    "Position",
    "Viewport",
    "CanvasController",
    "DragPayload",
    "DropEffect",
    "NodeRegion",
    "to_canvas_space",
    "DocumentEditorSession",
    "SessionManager",
    "SaveState",
    "SaveOutcome",
    "DocumentKey",
    "DocumentPersistence",
    "MemoryDocumentStore",
    "JSONFileDocumentStore",
    "SQLiteDocumentStore",
    "CanvasError",
    "NotFound",
    "UnknownBlockType",
    "UnknownNode",
    "InvalidConnection",
    "InvalidFieldValue",
    "StorageError",
    "MalformedSnapshot",
]
