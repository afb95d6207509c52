"""
Canvas interaction controller for the requirements canvas.

This module bridges pointer and drag-and-drop gestures to document
operations: dropping palette templates onto the canvas, drawing connections
between node anchors, selecting, dragging and deleting nodes, and panning or
zooming the viewport.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Set, Tuple, Union

from .block_templates import BlockType
from .exceptions import InvalidConnection, NotFound, UnknownBlockType
from .models import CanvasDocument, CanvasEdge, CanvasNode, Viewport, clamp_zoom

logger = logging.getLogger(__name__)

DRAG_MIME_TYPE = 'application/reactflow'

Point = Tuple[float, float]


def to_canvas_space(screen_point: Point, viewport: Viewport) -> Point:
    """(screen_point - viewport offset) / viewport zoom."""
    return viewport.screen_to_canvas(screen_point[0], screen_point[1])


def to_screen_space(canvas_point: Point, viewport: Viewport) -> Point:
    """Inverse of ``to_canvas_space``."""
    return viewport.canvas_to_screen(canvas_point[0], canvas_point[1])


class DropEffect(Enum):
    """Drag affordances advertised to the browser."""
    NONE = "none"
    MOVE = "move"


class NodeRegion(Enum):
    """Areas of a rendered node a pointer can land on."""
    HEADER = "header"
    CONTENT = "content"
    DELETE = "delete"
    SOURCE_HANDLE = "source"
    TARGET_HANDLE = "target"


class Gesture(Enum):
    """Canvas-level gesture started by a pointer press."""
    NONE = "none"
    NODE_DRAG = "node_drag"
    PAN = "pan"
    CONNECT = "connect"


@dataclass
class DragPayload:
    """Data carried by a palette drag."""
    data: Dict[str, str] = field(default_factory=dict)
    effect_allowed: str = DropEffect.MOVE.value

    def get_data(self, mime_type: str) -> str:
        return self.data.get(mime_type, '')


@dataclass
class GestureResult:
    """Outcome of a pointer event handled by the controller.

    ``handled`` means the event was consumed and must not propagate to the
    canvas-level selection or pan handling.
    """
    gesture: Gesture = Gesture.NONE
    handled: bool = False
    node_id: Optional[str] = None
    removed_edges: List[CanvasEdge] = field(default_factory=list)


@dataclass
class NodeDrag:
    """An in-progress node drag."""
    node_ids: List[str]
    start_positions: Dict[str, Point]
    offset: Point = (0.0, 0.0)


@dataclass
class ConnectionPreview:
    """A connection being drawn from a node's output anchor."""
    source_node_id: str
    source_handle: Optional[str]
    pointer: Point
    target_node_id: Optional[str] = None
    target_handle: Optional[str] = None


class CanvasController:
    """Turns pointer and drag events into operations on one document."""

    def __init__(self, document: Optional[CanvasDocument] = None):
        self.document = document if document is not None else CanvasDocument()

        self.selected_nodes: Set[str] = set()
        self.active_gesture = Gesture.NONE
        self.node_drag: Optional[NodeDrag] = None
        self.connection_preview: Optional[ConnectionPreview] = None

        # Event callbacks
        self.on_node_added: Optional[Callable[[CanvasNode], None]] = None
        self.on_node_removed: Optional[Callable[[str], None]] = None
        self.on_connection_created: Optional[Callable[[CanvasEdge], None]] = None
        self.on_document_changed: Optional[Callable[[], None]] = None

    @property
    def viewport(self) -> Viewport:
        return self.document.viewport

    # ── palette drag & drop ───────────────────────────────────────────

    @staticmethod
    def drag_start(block_type: Union[BlockType, str]) -> DragPayload:
        """Tag a palette drag with the source block type."""
        key = block_type.value if isinstance(block_type, BlockType) else str(block_type)
        return DragPayload(data={DRAG_MIME_TYPE: key}, effect_allowed=DropEffect.MOVE.value)

    @staticmethod
    def drag_over() -> DropEffect:
        """Affordance shown while a drag is over the canvas."""
        return DropEffect.MOVE

    def drop(self, payload: Optional[DragPayload], screen_point: Point) -> Optional[CanvasNode]:
        """Place a node for the dragged template at the pointer position.

        Drops without a payload or with an unknown block type are ignored.
        """
        block_type = payload.get_data(DRAG_MIME_TYPE) if payload else ''
        if not block_type:
            logger.debug("Ignoring drop without a block type payload")
            return None

        position = to_canvas_space(screen_point, self.viewport)
        try:
            node = self.document.add_node(block_type, position)
        except UnknownBlockType:
            logger.warning("Ignoring drop of unknown block type %r", block_type)
            return None

        if self.on_node_added:
            self.on_node_added(node)
        self._trigger_document_changed()
        return node

    def add_block(self, block_type: Union[BlockType, str]) -> Optional[CanvasNode]:
        """Palette click: add the block at the default position."""
        try:
            node = self.document.add_block(block_type)
        except UnknownBlockType:
            logger.warning("Ignoring add of unknown block type %r", block_type)
            return None
        if self.on_node_added:
            self.on_node_added(node)
        self._trigger_document_changed()
        return node

    # ── pointer handling ──────────────────────────────────────────────

    def pointer_down(self, node_id: Optional[str], region: Optional[NodeRegion] = None,
                     point: Point = (0.0, 0.0), extend_selection: bool = False) -> GestureResult:
        """Route a pointer press.

        A press inside a node's content area is left to the field editor and
        starts no canvas gesture. A press on the header selects the node and
        starts a drag; a press on empty canvas clears the selection and pans.
        """
        if node_id is None:
            self.clear_selection()
            self.active_gesture = Gesture.PAN
            return GestureResult(gesture=Gesture.PAN, handled=False)

        if node_id not in self.document.nodes:
            return GestureResult(handled=True)

        if region == NodeRegion.CONTENT:
            return GestureResult(handled=True, node_id=node_id)

        if region == NodeRegion.DELETE:
            return self.delete_node(node_id)

        if region == NodeRegion.SOURCE_HANDLE:
            self.begin_connection(node_id, None, point)
            return GestureResult(gesture=Gesture.CONNECT, handled=True, node_id=node_id)

        self.select(node_id, extend_selection=extend_selection)
        self.begin_node_drag(sorted(self.selected_nodes))
        return GestureResult(gesture=Gesture.NODE_DRAG, handled=True, node_id=node_id)

    def pointer_up(self, node_id: Optional[str] = None,
                   region: Optional[NodeRegion] = None) -> GestureResult:
        """Finish whatever gesture the last press started."""
        gesture = self.active_gesture
        if gesture == Gesture.CONNECT and self.connection_preview:
            # Released on a node body or its input anchor: that node is the target
            self.update_connection(self.connection_preview.pointer, node_id)
            edge = self.end_connection()
            return GestureResult(gesture=gesture, handled=edge is not None,
                                 node_id=edge.target if edge else None)
        if gesture == Gesture.NODE_DRAG:
            self.end_node_drag()
        self.active_gesture = Gesture.NONE
        return GestureResult(gesture=gesture, handled=gesture != Gesture.NONE)

    def delete_node(self, node_id: str) -> GestureResult:
        """Per-node delete action; removes the node and its edges.

        The result is always marked handled so the click is contained to the
        node.
        """
        removed = self.document.remove_node(node_id)
        self.selected_nodes.discard(node_id)
        if self.node_drag and node_id in self.node_drag.node_ids:
            self.node_drag = None
        if self.on_node_removed:
            self.on_node_removed(node_id)
        self._trigger_document_changed()
        return GestureResult(handled=True, node_id=node_id, removed_edges=removed)

    # ── selection ─────────────────────────────────────────────────────

    def select(self, node_id: str, extend_selection: bool = False) -> bool:
        if node_id not in self.document.nodes:
            return False
        if not extend_selection:
            self.selected_nodes.clear()
        self.selected_nodes.add(node_id)
        return True

    def deselect(self, node_id: str):
        self.selected_nodes.discard(node_id)

    def clear_selection(self):
        self.selected_nodes.clear()

    def delete_selected(self) -> List[str]:
        """Delete every selected node (keyboard delete)."""
        removed = []
        for node_id in sorted(self.selected_nodes):
            if node_id in self.document.nodes:
                self.delete_node(node_id)
                removed.append(node_id)
        self.selected_nodes.clear()
        return removed

    # ── node drag ─────────────────────────────────────────────────────

    def begin_node_drag(self, node_ids: List[str]) -> bool:
        valid = [nid for nid in node_ids if nid in self.document.nodes]
        if not valid:
            return False
        self.node_drag = NodeDrag(
            node_ids=valid,
            start_positions={nid: self.document.nodes[nid].position.as_tuple() for nid in valid},
        )
        self.active_gesture = Gesture.NODE_DRAG
        return True

    def drag_nodes_by(self, screen_delta: Point) -> bool:
        """Update the dragged nodes from a pointer delta in screen pixels."""
        if not self.node_drag:
            return False
        zoom = self.viewport.zoom
        offset = (screen_delta[0] / zoom, screen_delta[1] / zoom)
        self.node_drag.offset = offset
        for node_id in self.node_drag.node_ids:
            if node_id in self.document.nodes:
                start_x, start_y = self.node_drag.start_positions[node_id]
                self.document.move_node(node_id, (start_x + offset[0], start_y + offset[1]))
        return True

    def end_node_drag(self) -> bool:
        if not self.node_drag:
            return False
        moved = self.node_drag.offset != (0.0, 0.0)
        self.node_drag = None
        self.active_gesture = Gesture.NONE
        if moved:
            self._trigger_document_changed()
        return True

    def cancel_node_drag(self) -> bool:
        """Abort a drag and restore the original positions."""
        if not self.node_drag:
            return False
        for node_id, start in self.node_drag.start_positions.items():
            if node_id in self.document.nodes:
                self.document.move_node(node_id, start)
        self.node_drag = None
        self.active_gesture = Gesture.NONE
        return True

    # ── connection gesture ────────────────────────────────────────────

    def begin_connection(self, source_node_id: str, source_handle: Optional[str] = None,
                         pointer: Point = (0.0, 0.0)) -> bool:
        """Start drawing a connection from a node's output anchor."""
        if source_node_id not in self.document.nodes:
            return False
        self.connection_preview = ConnectionPreview(
            source_node_id=source_node_id,
            source_handle=source_handle,
            pointer=pointer,
        )
        self.active_gesture = Gesture.CONNECT
        return True

    def update_connection(self, pointer: Point, target_node_id: Optional[str] = None,
                          target_handle: Optional[str] = None) -> bool:
        if not self.connection_preview:
            return False
        self.connection_preview.pointer = pointer
        self.connection_preview.target_node_id = target_node_id
        self.connection_preview.target_handle = target_handle
        return True

    def end_connection(self) -> Optional[CanvasEdge]:
        """Release the connection drag.

        Releasing over empty space, over the source node itself, or over a
        node that no longer exists creates nothing.
        """
        preview = self.connection_preview
        self.connection_preview = None
        self.active_gesture = Gesture.NONE
        if preview is None or preview.target_node_id is None:
            return None

        try:
            edge = self.document.connect(
                preview.source_node_id, preview.target_node_id,
                preview.source_handle, preview.target_handle,
            )
        except (NotFound, InvalidConnection) as e:
            logger.info("Connection gesture discarded: %s", e)
            return None

        if self.on_connection_created:
            self.on_connection_created(edge)
        self._trigger_document_changed()
        return edge

    def cancel_connection(self):
        self.connection_preview = None
        self.active_gesture = Gesture.NONE

    def connect(self, source_node_id: str, target_node_id: str,
                source_handle: Optional[str] = None,
                target_handle: Optional[str] = None) -> CanvasEdge:
        """Direct connect; unlike the gesture this raises on bad endpoints."""
        edge = self.document.connect(source_node_id, target_node_id, source_handle, target_handle)
        if self.on_connection_created:
            self.on_connection_created(edge)
        self._trigger_document_changed()
        return edge

    def disconnect(self, edge_id: str) -> bool:
        removed = self.document.disconnect(edge_id)
        if removed:
            self._trigger_document_changed()
        return removed

    # ── viewport ──────────────────────────────────────────────────────

    def set_viewport(self, x: float, y: float, zoom: float):
        self.viewport.x = float(x)
        self.viewport.y = float(y)
        self.viewport.zoom = clamp_zoom(zoom)

    def pan_by(self, delta_x: float, delta_y: float):
        """Pan the viewport by a screen-pixel delta."""
        self.viewport.x += delta_x
        self.viewport.y += delta_y

    def zoom_at(self, zoom: float, screen_point: Point = (0.0, 0.0)):
        """Set the zoom, keeping the canvas point under ``screen_point`` fixed."""
        anchor = to_canvas_space(screen_point, self.viewport)
        self.viewport.zoom = clamp_zoom(zoom)
        self.viewport.x = screen_point[0] - anchor[0] * self.viewport.zoom
        self.viewport.y = screen_point[1] - anchor[1] * self.viewport.zoom

    def fit_view(self, width: float, height: float, padding: float = 50.0,
                 max_zoom: float = 2.0):
        """Zoom and pan so every node is visible in a ``width`` x ``height`` view."""
        if not self.document.nodes:
            return
        positions = [node.position for node in self.document.nodes.values()]
        min_x = min(p.x for p in positions) - padding
        max_x = max(p.x for p in positions) + padding
        min_y = min(p.y for p in positions) - padding
        max_y = max(p.y for p in positions) + padding

        content_width = max_x - min_x
        content_height = max_y - min_y
        zoom_x = width / content_width if content_width > 0 else 1.0
        zoom_y = height / content_height if content_height > 0 else 1.0

        zoom = clamp_zoom(min(zoom_x, zoom_y, max_zoom))
        self.viewport.zoom = zoom
        self.viewport.x = -min_x * zoom
        self.viewport.y = -min_y * zoom

    def node_at(self, screen_point: Point, width: float = 320.0,
                height: float = 160.0) -> Optional[str]:
        """Topmost node whose box contains the screen point."""
        x, y = to_canvas_space(screen_point, self.viewport)
        for node in reversed(list(self.document.nodes.values())):
            if node.position.x <= x <= node.position.x + width and \
               node.position.y <= y <= node.position.y + height:
                return node.id
        return None

    def replace_document(self, document: CanvasDocument):
        """Swap in a freshly loaded document and reset transient state."""
        self.document = document
        self.selected_nodes.clear()
        self.node_drag = None
        self.connection_preview = None
        self.active_gesture = Gesture.NONE

    def get_canvas_state(self) -> Dict[str, object]:
        return {
            'viewport': self.viewport.to_dict(),
            'selection': sorted(self.selected_nodes),
            'gesture': self.active_gesture.value,
            'node_count': len(self.document.nodes),
            'edge_count': len(self.document.edges),
        }

    def _trigger_document_changed(self):
        if self.on_document_changed:
            self.on_document_changed()
