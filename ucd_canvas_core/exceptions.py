"""
Exceptions for the requirements canvas core.
"""

from typing import Optional, Any, Dict


class CanvasError(Exception):
    """Base exception for all canvas-related errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class NotFound(CanvasError):
    """Raised when a looked-up entity does not exist."""
    pass


class UnknownBlockType(NotFound):
    """Raised when a block type key has no registered template."""

    def __init__(self, block_type: Any, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Unknown block type: {block_type!r}", details)
        self.block_type = block_type


class UnknownNode(NotFound):
    """Raised when an operation references a node that is not in the document."""

    def __init__(self, node_id: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Unknown node: {node_id!r}", details)
        self.node_id = node_id


class InvalidConnection(CanvasError):
    """Raised when an edge cannot be created between two nodes."""

    def __init__(self, message: str, source: str, target: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.source = source
        self.target = target


class InvalidFieldValue(CanvasError):
    """Raised when a content field change does not fit the block's field schema."""

    def __init__(self, message: str, block_type: str, field_key: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.block_type = block_type
        self.field_key = field_key


class StorageError(CanvasError):
    """Raised when a snapshot cannot be read from or written to the store."""

    def __init__(self, message: str, storage_key: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.storage_key = storage_key


class MalformedSnapshot(CanvasError):
    """Raised when stored snapshot data does not have the expected shape."""

    def __init__(self, message: str, storage_key: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.storage_key = storage_key
