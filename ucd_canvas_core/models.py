"""
Core data models for the requirements canvas.

This module defines the canvas document graph: typed content nodes, the edges
connecting them, the viewport, and the ``CanvasDocument`` that owns them and
carries every graph mutation. Nodes and edges are kept in id-keyed mappings
on the document so all operations can be exercised without a rendering
surface.
"""

import copy
import secrets
import string
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from .block_editor import BlockContentEditor, get_editor
from .block_templates import BlockTemplateRegistry, BlockType, get_registry
from .exceptions import InvalidConnection, UnknownNode

NODE_ID_ALPHABET = string.digits + string.ascii_lowercase
NODE_ID_LENGTH = 9

# Where a block lands when it is added from the palette without dragging
DEFAULT_BLOCK_POSITION = (100.0, 100.0)

MIN_ZOOM = 0.1
MAX_ZOOM = 5.0


def generate_node_id() -> str:
    """Random 9-character base-36 id."""
    return ''.join(secrets.choice(NODE_ID_ALPHABET) for _ in range(NODE_ID_LENGTH))


def _to_float(value: Any) -> float:
    if isinstance(value, bool):
        raise TypeError("boolean is not a coordinate")
    return float(value)


@dataclass
class Position:
    """A point in canvas space."""
    x: float = 0.0
    y: float = 0.0

    @classmethod
    def of(cls, value: Union['Position', Tuple[float, float], Dict[str, Any]]) -> 'Position':
        if isinstance(value, Position):
            return cls(value.x, value.y)
        if isinstance(value, dict):
            return cls(_to_float(value['x']), _to_float(value['y']))
        x, y = value
        return cls(_to_float(x), _to_float(y))

    def as_tuple(self) -> Tuple[float, float]:
        return self.x, self.y

    def to_dict(self) -> Dict[str, float]:
        return {'x': self.x, 'y': self.y}


@dataclass
class Viewport:
    """Pan offset (screen pixels) and zoom factor of the canvas view."""
    x: float = 0.0
    y: float = 0.0
    zoom: float = 1.0

    def __post_init__(self):
        self.zoom = clamp_zoom(self.zoom)

    def screen_to_canvas(self, screen_x: float, screen_y: float) -> Tuple[float, float]:
        """Convert screen coordinates to canvas coordinates."""
        return (screen_x - self.x) / self.zoom, (screen_y - self.y) / self.zoom

    def canvas_to_screen(self, canvas_x: float, canvas_y: float) -> Tuple[float, float]:
        """Convert canvas coordinates to screen coordinates."""
        return canvas_x * self.zoom + self.x, canvas_y * self.zoom + self.y

    def to_dict(self) -> Dict[str, float]:
        return {'x': self.x, 'y': self.y, 'zoom': self.zoom}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Viewport':
        return cls(
            x=_to_float(data.get('x', 0.0)),
            y=_to_float(data.get('y', 0.0)),
            zoom=_to_float(data.get('zoom', 1.0)),
        )


def clamp_zoom(zoom: float) -> float:
    return max(MIN_ZOOM, min(float(zoom), MAX_ZOOM))


@dataclass
class CanvasNode:
    """A typed content block placed on the canvas."""
    id: str
    block_type: BlockType
    content: Dict[str, Any] = field(default_factory=dict)
    position: Position = field(default_factory=Position)
    label: str = ""

    # Rendering hints for the front-end node renderer
    node_type: str = "custom"
    draggable: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'type': self.node_type,
            'position': self.position.to_dict(),
            'data': {
                'type': self.block_type.value,
                'content': copy.deepcopy(self.content),
                'label': self.label,
            },
            'draggable': self.draggable,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CanvasNode':
        """Deserialize a node. Raises KeyError/TypeError/ValueError on bad shape."""
        node_data = data['data']
        node_id = data['id']
        if not isinstance(node_id, str) or not node_id:
            raise ValueError(f"Invalid node id: {node_id!r}")
        content = node_data.get('content') or {}
        if not isinstance(content, dict):
            raise TypeError("Node content must be an object")
        return cls(
            id=node_id,
            block_type=BlockType(node_data['type']),
            content=copy.deepcopy(content),
            position=Position.of(data['position']),
            label=str(node_data.get('label', '')),
            node_type=str(data.get('type', 'custom')),
            draggable=bool(data.get('draggable', True)),
        )


@dataclass
class CanvasEdge:
    """A directed visual link between two nodes."""
    id: str
    source: str
    target: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None
    type: str = "smoothstep"
    animated: bool = True

    def touches(self, node_id: str) -> bool:
        return self.source == node_id or self.target == node_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'source': self.source,
            'target': self.target,
            'sourceHandle': self.source_handle,
            'targetHandle': self.target_handle,
            'type': self.type,
            'animated': self.animated,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CanvasEdge':
        edge_id, source, target = data['id'], data['source'], data['target']
        for value in (edge_id, source, target):
            if not isinstance(value, str) or not value:
                raise ValueError(f"Invalid edge reference: {value!r}")
        return cls(
            id=edge_id,
            source=source,
            target=target,
            source_handle=data.get('sourceHandle'),
            target_handle=data.get('targetHandle'),
            type=str(data.get('type') or 'smoothstep'),
            animated=bool(data.get('animated', True)),
        )


def edge_id_for(source: str, target: str,
                source_handle: Optional[str] = None,
                target_handle: Optional[str] = None) -> str:
    return f"reactflow__edge-{source}{source_handle or ''}-{target}{target_handle or ''}"


@dataclass
class CanvasDocument:
    """A requirements document: the node/edge graph plus its viewport."""
    nodes: Dict[str, CanvasNode] = field(default_factory=dict)
    edges: Dict[str, CanvasEdge] = field(default_factory=dict)
    viewport: Viewport = field(default_factory=Viewport)

    registry: BlockTemplateRegistry = field(default_factory=get_registry, compare=False, repr=False)
    editor: BlockContentEditor = field(default_factory=get_editor, compare=False, repr=False)

    # ── nodes ──────────────────────────────────────────────────────────

    def add_node(self, block_type: Union[BlockType, str],
                 position: Union[Position, Tuple[float, float]]) -> CanvasNode:
        """Create a node from the block type's template at the given position.

        Raises:
            UnknownBlockType: if the block type has no registered template.
        """
        template = self.registry.lookup(block_type)
        node_id = generate_node_id()
        while node_id in self.nodes:
            node_id = generate_node_id()

        node = CanvasNode(
            id=node_id,
            block_type=template.block_type,
            content=template.new_content(),
            position=Position.of(position),
            label=template.title,
        )
        self.nodes[node.id] = node
        return node

    def add_block(self, block_type: Union[BlockType, str]) -> CanvasNode:
        """Add a node at the default position (palette click without drag)."""
        return self.add_node(block_type, DEFAULT_BLOCK_POSITION)

    def insert_node(self, node: CanvasNode) -> CanvasNode:
        """Insert an already-built node, e.g. one restored from a snapshot."""
        self.registry.lookup(node.block_type)
        self.nodes[node.id] = node
        return node

    def get_node(self, node_id: str) -> CanvasNode:
        try:
            return self.nodes[node_id]
        except KeyError:
            raise UnknownNode(node_id)

    def remove_node(self, node_id: str) -> List[CanvasEdge]:
        """Remove a node and every edge attached to it.

        Returns the pruned edges.
        """
        self.get_node(node_id)
        pruned = self.edges_for(node_id)
        for edge in pruned:
            del self.edges[edge.id]
        del self.nodes[node_id]
        return pruned

    def update_node_content(self, node_id: str, partial_content: Dict[str, Any]) -> CanvasNode:
        """Shallow-merge a content patch into a node's content."""
        node = self.get_node(node_id)
        patch = self.editor.normalize_patch(node.block_type, partial_content)
        node.content.update(patch)
        return node

    def move_node(self, node_id: str,
                  new_position: Union[Position, Tuple[float, float]]) -> CanvasNode:
        node = self.get_node(node_id)
        node.position = Position.of(new_position)
        return node

    # ── edges ──────────────────────────────────────────────────────────

    def connect(self, source_node_id: str, target_node_id: str,
                source_handle: Optional[str] = None,
                target_handle: Optional[str] = None) -> CanvasEdge:
        """Connect two nodes, returning the (possibly existing) edge.

        Raises:
            UnknownNode: if either endpoint is absent.
            InvalidConnection: for a self-loop.
        """
        self.get_node(source_node_id)
        self.get_node(target_node_id)
        if source_node_id == target_node_id:
            raise InvalidConnection("A block cannot be connected to itself",
                                    source_node_id, target_node_id)

        existing = self.find_edge(source_node_id, target_node_id, source_handle, target_handle)
        if existing is not None:
            return existing

        # Ids are concatenations of opaque node ids, so two pairs can share one
        base_id = edge_id_for(source_node_id, target_node_id, source_handle, target_handle)
        edge_id, suffix = base_id, 1
        while edge_id in self.edges:
            edge_id = f"{base_id}-{suffix}"
            suffix += 1

        edge = CanvasEdge(
            id=edge_id,
            source=source_node_id,
            target=target_node_id,
            source_handle=source_handle,
            target_handle=target_handle,
        )
        self.edges[edge.id] = edge
        return edge

    def insert_edge(self, edge: CanvasEdge) -> CanvasEdge:
        self.get_node(edge.source)
        self.get_node(edge.target)
        if edge.source == edge.target:
            raise InvalidConnection("A block cannot be connected to itself",
                                    edge.source, edge.target)
        self.edges[edge.id] = edge
        return edge

    def find_edge(self, source_node_id: str, target_node_id: str,
                  source_handle: Optional[str] = None,
                  target_handle: Optional[str] = None) -> Optional[CanvasEdge]:
        """The edge joining these endpoints and handles, if any."""
        wanted = (source_node_id, target_node_id, source_handle, target_handle)
        for edge in self.edges.values():
            if (edge.source, edge.target, edge.source_handle, edge.target_handle) == wanted:
                return edge
        return None

    def disconnect(self, edge_id: str) -> bool:
        return self.edges.pop(edge_id, None) is not None

    def edges_for(self, node_id: str) -> List[CanvasEdge]:
        return [edge for edge in self.edges.values() if edge.touches(node_id)]

    # ── whole document ────────────────────────────────────────────────

    def clear(self):
        self.nodes.clear()
        self.edges.clear()

    def is_empty(self) -> bool:
        return not self.nodes and not self.edges

    def copy(self) -> 'CanvasDocument':
        return CanvasDocument(
            nodes=copy.deepcopy(self.nodes),
            edges=copy.deepcopy(self.edges),
            viewport=copy.deepcopy(self.viewport),
            registry=self.registry,
            editor=self.editor,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'nodes': [node.to_dict() for node in self.nodes.values()],
            'edges': [edge.to_dict() for edge in self.edges.values()],
            'viewport': self.viewport.to_dict(),
        }
