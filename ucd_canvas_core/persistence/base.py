"""
Base document store interface.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class DocumentKey:
    """Identifies a canvas document within a project stage."""
    project_id: str
    stage_id: str
    document_id: str

    @property
    def storage_key(self) -> str:
        return f"document-{self.project_id}-{self.stage_id}-{self.document_id}"

    def to_dict(self):
        return {
            'project_id': self.project_id,
            'stage_id': self.stage_id,
            'document_id': self.document_id,
        }


class DocumentStore(ABC):
    """Durable keyed storage of serialized document snapshots.

    Stores deal in raw snapshot text; encoding and shape validation live in
    the persistence adapter. Implementations raise ``StorageError`` for any
    read or write failure.
    """

    @abstractmethod
    def read(self, key: DocumentKey) -> Optional[str]:
        """Return the stored snapshot text, or None if there is none."""
        pass

    @abstractmethod
    def write(self, key: DocumentKey, snapshot: str) -> None:
        """Replace the snapshot stored under the key."""
        pass

    @abstractmethod
    def delete(self, key: DocumentKey) -> bool:
        """Delete a snapshot; returns whether one existed."""
        pass

    @abstractmethod
    def list_documents(self, project_id: str, stage_id: Optional[str] = None) -> List[DocumentKey]:
        """List stored document keys for a project (and optionally a stage)."""
        pass

    def close(self) -> None:
        """Release any held resources."""
        pass
