"""
Unit tests for the canvas interaction controller.
"""

import pytest
from hypothesis import given, strategies as st

from ucd_canvas_core.block_templates import BlockType
from ucd_canvas_core.canvas import (
    CanvasController, DragPayload, DropEffect, Gesture, NodeRegion,
    DRAG_MIME_TYPE, to_canvas_space, to_screen_space
)
from ucd_canvas_core.exceptions import InvalidConnection, UnknownNode
from ucd_canvas_core.models import CanvasDocument, CanvasNode, Position, Viewport


def make_node(node_id, x=0.0, y=0.0):
    return CanvasNode(id=node_id, block_type=BlockType.NOTES,
                      content={'text': ''}, position=Position(x, y))


class TestCoordinateConversion:
    """Test cases for the screen/canvas conversion functions."""

    def test_drop_position_with_offset_viewport(self):
        """Test the pointer position is mapped through the viewport."""
        viewport = Viewport(x=-50.0, y=-50.0, zoom=1.0)

        assert to_canvas_space((150.0, 200.0), viewport) == (200.0, 250.0)

    def test_to_screen_space(self):
        """Test the inverse mapping."""
        viewport = Viewport(x=-50.0, y=-50.0, zoom=2.0)

        assert to_screen_space((100.0, 100.0), viewport) == (150.0, 150.0)


class TestPaletteDragAndDrop:
    """Test cases for dragging templates from the palette onto the canvas."""

    def setup_method(self):
        self.controller = CanvasController()
        self.changes = []
        self.controller.on_document_changed = lambda: self.changes.append(True)

    def test_drag_start_payload(self):
        """Test the drag carries the block type."""
        payload = CanvasController.drag_start(BlockType.USER_STORY)

        assert payload.get_data(DRAG_MIME_TYPE) == "USER_STORY"
        assert payload.effect_allowed == "move"

    def test_drag_over_effect(self):
        """Test the drag-over affordance."""
        assert CanvasController.drag_over() == DropEffect.MOVE

    def test_drop_creates_node_at_canvas_position(self):
        """Test drop at (150, 200) with the view panned by (-50, -50)."""
        self.controller.set_viewport(-50.0, -50.0, 1.0)
        payload = CanvasController.drag_start("FUNCTIONAL_REQ")

        node = self.controller.drop(payload, (150.0, 200.0))

        assert node is not None
        assert node.position == Position(200.0, 250.0)
        assert node.block_type == BlockType.FUNCTIONAL_REQ
        assert node.content == {'description': '', 'priority': 'medium', 'category': ''}
        assert len(self.controller.document.nodes) == 1
        assert self.changes == [True]

    def test_drop_with_zoom(self):
        """Test drop position accounts for zoom."""
        self.controller.set_viewport(0.0, 0.0, 2.0)

        node = self.controller.drop(CanvasController.drag_start("NOTES"), (100.0, 60.0))

        assert node.position == Position(50.0, 30.0)

    def test_drop_unknown_type_is_ignored(self):
        """Test dropping an unknown block type leaves the canvas untouched."""
        node = self.controller.drop(CanvasController.drag_start("EPIC"), (10.0, 10.0))

        assert node is None
        assert self.controller.document.is_empty()
        assert self.changes == []

    def test_drop_without_payload_is_ignored(self):
        """Test dropping foreign drag data."""
        assert self.controller.drop(None, (0.0, 0.0)) is None
        assert self.controller.drop(DragPayload(data={'text/plain': 'x'}), (0.0, 0.0)) is None
        assert self.controller.document.is_empty()

    def test_add_block_at_default_position(self):
        """Test palette click adds the block at (100, 100)."""
        added = []
        self.controller.on_node_added = added.append

        node = self.controller.add_block(BlockType.CONSTRAINTS)

        assert node.position == Position(100.0, 100.0)
        assert added == [node]

    def test_add_block_unknown_type(self):
        """Test palette click with an unknown type."""
        assert self.controller.add_block("EPIC") is None


class TestPointerRouting:
    """Test cases for routing pointer presses."""

    def setup_method(self):
        document = CanvasDocument()
        document.insert_node(make_node("a", 0.0, 0.0))
        document.insert_node(make_node("b", 400.0, 0.0))
        self.controller = CanvasController(document)

    def test_press_in_content_starts_no_gesture(self):
        """Test clicks inside the content form don't drag or pan."""
        result = self.controller.pointer_down("a", NodeRegion.CONTENT)

        assert result.handled is True
        assert result.gesture == Gesture.NONE
        assert self.controller.active_gesture == Gesture.NONE
        assert self.controller.selected_nodes == set()

    def test_press_on_header_selects_and_drags(self):
        """Test a header press starts a node drag."""
        result = self.controller.pointer_down("a", NodeRegion.HEADER)

        assert result.gesture == Gesture.NODE_DRAG
        assert self.controller.selected_nodes == {"a"}
        assert self.controller.node_drag.node_ids == ["a"]

    def test_press_on_empty_canvas_pans(self):
        """Test an empty-canvas press clears the selection and pans."""
        self.controller.select("a")

        result = self.controller.pointer_down(None)

        assert result.gesture == Gesture.PAN
        assert result.handled is False
        assert self.controller.selected_nodes == set()

    def test_delete_action_removes_node(self):
        """Test the per-node delete action."""
        self.controller.document.connect("a", "b")
        removed = []
        self.controller.on_node_removed = removed.append

        result = self.controller.pointer_down("a", NodeRegion.DELETE)

        assert result.handled is True
        assert [e.id for e in result.removed_edges] == ["reactflow__edge-a-b"]
        assert "a" not in self.controller.document.nodes
        assert not self.controller.document.edges
        assert removed == ["a"]

    def test_press_on_stale_node(self):
        """Test a press on a node that's already gone."""
        result = self.controller.pointer_down("ghost", NodeRegion.HEADER)

        assert result.handled is True
        assert self.controller.active_gesture == Gesture.NONE

    def test_connection_gesture(self):
        """Test dragging from an output anchor onto another node."""
        created = []
        self.controller.on_connection_created = created.append

        self.controller.pointer_down("a", NodeRegion.SOURCE_HANDLE, (10.0, 10.0))
        assert self.controller.active_gesture == Gesture.CONNECT
        result = self.controller.pointer_up("b", NodeRegion.TARGET_HANDLE)

        assert result.gesture == Gesture.CONNECT
        assert result.node_id == "b"
        assert len(created) == 1
        assert created[0].source == "a" and created[0].target == "b"
        assert self.controller.active_gesture == Gesture.NONE

    def test_connection_released_on_empty_canvas(self):
        """Test releasing a connection over nothing."""
        self.controller.pointer_down("a", NodeRegion.SOURCE_HANDLE)

        result = self.controller.pointer_up(None)

        assert result.handled is False
        assert not self.controller.document.edges

    def test_connection_released_on_source(self):
        """Test releasing a connection on its own node creates nothing."""
        self.controller.pointer_down("a", NodeRegion.SOURCE_HANDLE)

        self.controller.pointer_up("a")

        assert not self.controller.document.edges

    def test_pointer_up_finishes_drag(self):
        """Test releasing a node drag."""
        self.controller.pointer_down("a", NodeRegion.HEADER)
        self.controller.drag_nodes_by((5.0, 5.0))

        result = self.controller.pointer_up()

        assert result.gesture == Gesture.NODE_DRAG
        assert self.controller.node_drag is None
        assert self.controller.active_gesture == Gesture.NONE


class TestSelectionAndDrag:
    """Test cases for selecting and dragging nodes."""

    def setup_method(self):
        document = CanvasDocument()
        document.insert_node(make_node("a", 0.0, 0.0))
        document.insert_node(make_node("b", 100.0, 50.0))
        self.controller = CanvasController(document)

    def test_extend_selection(self):
        """Test multi-select."""
        self.controller.select("a")
        self.controller.select("b", extend_selection=True)

        assert self.controller.selected_nodes == {"a", "b"}

        self.controller.select("b")
        assert self.controller.selected_nodes == {"b"}

    def test_select_unknown(self):
        """Test selecting an absent node."""
        assert self.controller.select("ghost") is False

    def test_drag_respects_zoom(self):
        """Test screen deltas are scaled by the zoom."""
        self.controller.set_viewport(0.0, 0.0, 2.0)
        self.controller.begin_node_drag(["a", "b"])

        self.controller.drag_nodes_by((20.0, 10.0))
        self.controller.end_node_drag()

        nodes = self.controller.document.nodes
        assert nodes["a"].position == Position(10.0, 5.0)
        assert nodes["b"].position == Position(110.0, 55.0)

    def test_cancel_drag_restores_positions(self):
        """Test aborting a drag."""
        self.controller.begin_node_drag(["a"])
        self.controller.drag_nodes_by((50.0, 50.0))

        self.controller.cancel_node_drag()

        assert self.controller.document.nodes["a"].position == Position(0.0, 0.0)

    def test_drag_without_begin(self):
        """Test drag updates without an active drag."""
        assert self.controller.drag_nodes_by((1.0, 1.0)) is False
        assert self.controller.end_node_drag() is False

    def test_delete_selected(self):
        """Test keyboard delete of the selection."""
        self.controller.document.connect("a", "b")
        self.controller.select("a")
        self.controller.select("b", extend_selection=True)

        removed = self.controller.delete_selected()

        assert removed == ["a", "b"]
        assert self.controller.document.is_empty()


class TestDirectConnections:
    """Test cases for direct connect and disconnect."""

    def setup_method(self):
        document = CanvasDocument()
        document.insert_node(make_node("a"))
        document.insert_node(make_node("b"))
        self.controller = CanvasController(document)

    def test_connect_raises_for_unknown_node(self):
        """Test direct connects surface bad endpoints."""
        with pytest.raises(UnknownNode):
            self.controller.connect("a", "ghost")

    def test_connect_raises_for_self_loop(self):
        """Test direct self-connection."""
        with pytest.raises(InvalidConnection):
            self.controller.connect("b", "b")

    def test_disconnect(self):
        """Test disconnecting notifies only when an edge was removed."""
        changes = []
        self.controller.on_document_changed = lambda: changes.append(True)
        edge = self.controller.connect("a", "b", "out", "in")

        assert self.controller.disconnect(edge.id) is True
        assert self.controller.disconnect(edge.id) is False
        assert changes == [True, True]


class TestViewportControl:
    """Test cases for panning and zooming."""

    def setup_method(self):
        self.controller = CanvasController()

    def test_set_viewport_clamps_zoom(self):
        """Test zoom limits on explicit viewport changes."""
        self.controller.set_viewport(1.0, 2.0, 100.0)

        assert self.controller.viewport.to_dict() == {'x': 1.0, 'y': 2.0, 'zoom': 5.0}

    def test_pan_by(self):
        """Test panning."""
        self.controller.pan_by(10.0, -5.0)
        self.controller.pan_by(10.0, -5.0)

        assert (self.controller.viewport.x, self.controller.viewport.y) == (20.0, -10.0)

    def test_zoom_at_keeps_anchor_fixed(self):
        """Test zooming around the pointer."""
        self.controller.set_viewport(30.0, 40.0, 1.0)
        anchor = to_canvas_space((200.0, 100.0), self.controller.viewport)

        self.controller.zoom_at(2.5, (200.0, 100.0))

        after = to_canvas_space((200.0, 100.0), self.controller.viewport)
        assert after[0] == pytest.approx(anchor[0])
        assert after[1] == pytest.approx(anchor[1])
        assert self.controller.viewport.zoom == 2.5

    def test_fit_view(self):
        """Test fitting every node into the view."""
        self.controller.document.insert_node(make_node("a", 0.0, 0.0))
        self.controller.document.insert_node(make_node("b", 900.0, 400.0))

        self.controller.fit_view(1000.0, 500.0)

        viewport = self.controller.viewport
        for node in self.controller.document.nodes.values():
            sx, sy = to_screen_space(node.position.as_tuple(), viewport)
            assert 0.0 <= sx <= 1000.0
            assert 0.0 <= sy <= 500.0

    def test_fit_view_empty(self):
        """Test fitting an empty canvas leaves the view alone."""
        self.controller.fit_view(800.0, 600.0)

        assert self.controller.viewport.to_dict() == {'x': 0.0, 'y': 0.0, 'zoom': 1.0}

    def test_node_at(self):
        """Test hit-testing a screen point."""
        self.controller.document.insert_node(make_node("a", 0.0, 0.0))

        assert self.controller.node_at((10.0, 10.0)) == "a"
        assert self.controller.node_at((1000.0, 1000.0)) is None

    def test_canvas_state(self):
        """Test the canvas state summary."""
        self.controller.document.insert_node(make_node("a"))
        self.controller.select("a")

        state = self.controller.get_canvas_state()

        assert state['selection'] == ["a"]
        assert state['node_count'] == 1
        assert state['edge_count'] == 0
        assert state['gesture'] == "none"


@given(st.floats(-1e4, 1e4), st.floats(-1e4, 1e4), st.floats(0.1, 5.0),
       st.floats(-1e4, 1e4), st.floats(-1e4, 1e4))
def test_drop_lands_under_pointer(vx, vy, zoom, px, py):
    """Property: a dropped node is drawn exactly where it was dropped."""
    controller = CanvasController()
    controller.set_viewport(vx, vy, zoom)

    node = controller.drop(CanvasController.drag_start("NOTES"), (px, py))

    sx, sy = to_screen_space(node.position.as_tuple(), controller.viewport)
    assert sx == pytest.approx(px, abs=1e-6)
    assert sy == pytest.approx(py, abs=1e-6)
