"""
Block Template Registry for the requirements canvas.

This module holds the read-only catalog of block types that can be placed on a
canvas document. Each template names the block's display title, its icon (a
Lucide icon name used by the front-end palette) and the default content a new
block is seeded with.
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Union

from .exceptions import UnknownBlockType


class BlockType(Enum):
    """Supported requirement block types, in palette order."""
    FUNCTIONAL_REQ = "FUNCTIONAL_REQ"
    NON_FUNCTIONAL_REQ = "NON_FUNCTIONAL_REQ"
    USER_STORY = "USER_STORY"
    USE_CASE = "USE_CASE"
    CONSTRAINTS = "CONSTRAINTS"
    NOTES = "NOTES"
    DEPENDENCIES = "DEPENDENCIES"


@dataclass(frozen=True)
class BlockTemplate:
    """Immutable definition of a block type."""
    block_type: BlockType
    title: str
    icon: str
    default_content: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        # Freeze the default content so the catalog can't be edited through it
        object.__setattr__(self, 'default_content',
                           MappingProxyType(dict(self.default_content)))

    @property
    def type_key(self) -> str:
        return self.block_type.value

    def new_content(self) -> Dict[str, Any]:
        """Return a fresh, mutable copy of the default content."""
        return copy.deepcopy(dict(self.default_content))

    def matches_search(self, query: str) -> bool:
        """Check if this template matches a palette search query."""
        query_lower = query.lower()
        return (
            query_lower in self.title.lower() or
            query_lower in self.type_key.lower() or
            query_lower in self.type_key.lower().replace('_', ' ')
        )

    def to_palette_entry(self) -> Dict[str, Any]:
        return {
            'type': self.type_key,
            'title': self.title,
            'icon': self.icon,
            'default_content': self.new_content(),
        }


DEFAULT_TEMPLATES = (
    BlockTemplate(
        block_type=BlockType.FUNCTIONAL_REQ,
        title="Functional requirements",
        icon="layout",
        default_content={'description': '', 'priority': 'medium', 'category': ''},
    ),
    BlockTemplate(
        block_type=BlockType.NON_FUNCTIONAL_REQ,
        title="Non-functional requirements",
        icon="settings",
        default_content={'description': '', 'type': 'performance'},
    ),
    BlockTemplate(
        block_type=BlockType.USER_STORY,
        title="User Story",
        icon="users",
        default_content={'story': '', 'acceptance': '', 'points': 0},
    ),
    BlockTemplate(
        block_type=BlockType.USE_CASE,
        title="Use Case",
        icon="file-text",
        default_content={'title': '', 'actor': '', 'steps': '', 'conditions': ''},
    ),
    BlockTemplate(
        block_type=BlockType.CONSTRAINTS,
        title="Constraints",
        icon="layers",
        default_content={'text': '', 'impact': 'medium'},
    ),
    BlockTemplate(
        block_type=BlockType.NOTES,
        title="Notes",
        icon="message-square",
        default_content={'text': ''},
    ),
    BlockTemplate(
        block_type=BlockType.DEPENDENCIES,
        title="Dependencies",
        icon="link-2",
        default_content={'text': '', 'type': 'internal'},
    ),
)


class BlockTemplateRegistry:
    """Read-only catalog of block templates keyed by block type.

    Enumeration follows registration order, which is the order the palette
    shows the templates in.
    """

    def __init__(self, templates=DEFAULT_TEMPLATES):
        self._templates: Dict[BlockType, BlockTemplate] = {}
        for template in templates:
            if template.block_type in self._templates:
                raise ValueError(f"Duplicate template for {template.type_key}")
            self._templates[template.block_type] = template

    def lookup(self, block_type: Union[BlockType, str]) -> BlockTemplate:
        """Get the template for a block type key.

        Raises:
            UnknownBlockType: if no template is registered for the key.
        """
        resolved = self.resolve(block_type)
        if resolved is None:
            raise UnknownBlockType(block_type)
        return self._templates[resolved]

    def get(self, block_type: Union[BlockType, str]) -> Optional[BlockTemplate]:
        resolved = self.resolve(block_type)
        return self._templates.get(resolved) if resolved else None

    def resolve(self, block_type: Union[BlockType, str, None]) -> Optional[BlockType]:
        """Map a key (enum or string) onto a registered block type, or None."""
        if isinstance(block_type, BlockType):
            return block_type if block_type in self._templates else None
        if not isinstance(block_type, str):
            return None
        try:
            resolved = BlockType(block_type)
        except ValueError:
            return None
        return resolved if resolved in self._templates else None

    def templates(self) -> List[BlockTemplate]:
        return list(self._templates.values())

    def type_keys(self) -> List[str]:
        return [bt.value for bt in self._templates]

    def search(self, query: str) -> List[BlockTemplate]:
        """Filter templates for the palette search box."""
        if not query or not query.strip():
            return self.templates()
        return [t for t in self._templates.values() if t.matches_search(query.strip())]

    def to_palette_format(self, query: str = '') -> List[Dict[str, Any]]:
        return [t.to_palette_entry() for t in self.search(query)]

    def __iter__(self) -> Iterator[BlockTemplate]:
        return iter(self.templates())

    def __len__(self) -> int:
        return len(self._templates)

    def __contains__(self, block_type) -> bool:
        return self.resolve(block_type) is not None


_default_registry: Optional[BlockTemplateRegistry] = None


def get_registry() -> BlockTemplateRegistry:
    """Get the process-wide default registry."""
    global _default_registry
    if _default_registry is None:
        _default_registry = BlockTemplateRegistry()
    return _default_registry
