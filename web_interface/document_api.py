"""
Document API: REST endpoints for the requirements canvas editor.

Every route answers with the JSON envelope ``{success, data}`` or
``{success: false, error}``. Document routes are keyed by
``/api/documents/<project_id>/<stage_id>/<document_id>``; the first request
for a key opens an editor session that loads the stored snapshot.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from flask import Blueprint, current_app, request, jsonify

from ucd_canvas_core.block_editor import get_editor
from ucd_canvas_core.block_templates import get_registry
from ucd_canvas_core.editor_session import SessionManager
from ucd_canvas_core.exceptions import (
    CanvasError, InvalidConnection, InvalidFieldValue, NotFound, StorageError
)
from ucd_canvas_core.persistence import DocumentKey

# ---------------------------------------------------------------------------
# Blueprint & Globals
# ---------------------------------------------------------------------------
documents_bp = Blueprint('documents', __name__)
logger = logging.getLogger('ucd.web')

DOCUMENT_ROUTE = '/api/documents/<project_id>/<stage_id>/<document_id>'


def init_document_api(app, session_manager: SessionManager):
    """Wire the document blueprint into the Flask app.

    Must be called once, after the session manager is ready.
    """
    app.config['UCD_SESSIONS'] = session_manager
    app.register_blueprint(documents_bp)


def _sessions() -> SessionManager:
    manager = current_app.config.get('UCD_SESSIONS')
    if manager is None:
        raise RuntimeError("Document API used before init_document_api()")
    return manager


def _session(project_id: str, stage_id: str, document_id: str):
    return _sessions().get(DocumentKey(project_id, stage_id, document_id))


def _ok(data: Any, status: int = 200):
    return jsonify({'success': True, 'data': data}), status


def _error_response(e: Exception):
    if isinstance(e, NotFound):
        status = 404
    elif isinstance(e, (InvalidConnection, InvalidFieldValue)):
        status = 400
    elif isinstance(e, StorageError):
        status = 503
    elif isinstance(e, CanvasError):
        status = 400
    else:
        logger.exception("Unhandled error in document API")
        status = 500
    body = {'success': False, 'error': str(e)}
    if isinstance(e, CanvasError) and e.details:
        body['details'] = e.details
    return jsonify(body), status


def _bad_request(message: str):
    return jsonify({'success': False, 'error': message}), 400


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _point(data: Any) -> Optional[Tuple[float, float]]:
    """Accept ``{x, y}`` or ``[x, y]``."""
    try:
        if isinstance(data, dict):
            return float(data['x']), float(data['y'])
        if isinstance(data, (list, tuple)) and len(data) == 2:
            return float(data[0]), float(data[1])
    except (KeyError, TypeError, ValueError):
        return None
    return None


# ---------------------------------------------------------------------------
# Block templates
# ---------------------------------------------------------------------------

@documents_bp.route('/api/templates', methods=['GET'])
def list_templates():
    """Palette entries, optionally filtered with ``?q=``."""
    try:
        query = request.args.get('q', '')
        return _ok(get_registry().to_palette_format(query))
    except Exception as e:
        return _error_response(e)


@documents_bp.route('/api/templates/<block_type>/fields', methods=['GET'])
def template_fields(block_type):
    """Field schema of a block type."""
    try:
        template = get_registry().lookup(block_type)
        fields = get_editor().render(template.block_type, template.new_content())
        return _ok({
            'type': template.type_key,
            'title': template.title,
            'fields': [f.to_dict() for f in fields],
        })
    except Exception as e:
        return _error_response(e)


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

@documents_bp.route(DOCUMENT_ROUTE, methods=['GET'])
def open_document(project_id, stage_id, document_id):
    """Open (or return the already open) document."""
    try:
        session = _session(project_id, stage_id, document_id)
        if request.args.get('reload') == '1':
            session.open()
        return _ok(session.get_state())
    except Exception as e:
        return _error_response(e)


@documents_bp.route(DOCUMENT_ROUTE + '/save', methods=['POST'])
def save_document(project_id, stage_id, document_id):
    """Save the document; a failed save is retryable."""
    try:
        session = _session(project_id, stage_id, document_id)
        result = session.save()
        payload = {'result': result.to_dict(), 'state': session.get_state()}
        if not result.success:
            return jsonify({'success': False, 'error': result.error, 'data': payload}), 503
        return _ok(payload)
    except Exception as e:
        return _error_response(e)


@documents_bp.route(DOCUMENT_ROUTE, methods=['DELETE'])
def delete_document(project_id, stage_id, document_id):
    """Close the session and delete the stored snapshot."""
    try:
        key = DocumentKey(project_id, stage_id, document_id)
        _sessions().close(key)
        deleted = _sessions().persistence.delete(key)
        return _ok({'deleted': deleted})
    except Exception as e:
        return _error_response(e)


@documents_bp.route('/api/documents/<project_id>', methods=['GET'])
def list_documents(project_id):
    """Stored documents of a project, optionally for one ``?stage=``."""
    try:
        keys = _sessions().persistence.list_documents(project_id, request.args.get('stage'))
        return _ok([k.to_dict() for k in keys])
    except Exception as e:
        return _error_response(e)


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------

@documents_bp.route(DOCUMENT_ROUTE + '/nodes', methods=['POST'])
def add_node(project_id, stage_id, document_id):
    """Drop a template at ``screen`` coordinates, or add it at the default spot.

    An unknown block type is ignored and answers ``node: null``.
    """
    try:
        session = _session(project_id, stage_id, document_id)
        data = _json_body()
        block_type = data.get('type', '')
        if 'screen' in data:
            screen = _point(data['screen'])
            if screen is None:
                return _bad_request("'screen' must be {x, y}")
            node = session.drop(block_type, screen)
        else:
            node = session.add_block(block_type)
        return _ok({'node': node.to_dict() if node else None},
                   201 if node else 200)
    except Exception as e:
        return _error_response(e)


@documents_bp.route(DOCUMENT_ROUTE + '/nodes/<node_id>', methods=['DELETE'])
def delete_node(project_id, stage_id, document_id, node_id):
    """Remove a node and the edges attached to it."""
    try:
        session = _session(project_id, stage_id, document_id)
        removed_edges = session.delete_node(node_id)
        return _ok({
            'removed': node_id,
            'removed_edges': [edge.id for edge in removed_edges],
        })
    except Exception as e:
        return _error_response(e)


@documents_bp.route(DOCUMENT_ROUTE + '/nodes/<node_id>/content', methods=['PATCH', 'PUT'])
def update_node_content(project_id, stage_id, document_id, node_id):
    """Merge a content patch, or apply one ``{field, value}`` change."""
    try:
        session = _session(project_id, stage_id, document_id)
        data = _json_body()
        if 'field' in data:
            node = session.change_field(node_id, data['field'], data.get('value'))
        elif isinstance(data.get('content'), dict):
            node = session.update_node_content(node_id, data['content'])
        else:
            return _bad_request("Expected 'content' object or 'field'/'value'")
        return _ok({'node': node.to_dict()})
    except Exception as e:
        return _error_response(e)


@documents_bp.route(DOCUMENT_ROUTE + '/nodes/<node_id>/move', methods=['POST'])
def move_node(project_id, stage_id, document_id, node_id):
    """Move a node to a canvas-space position."""
    try:
        session = _session(project_id, stage_id, document_id)
        position = _point(_json_body().get('position'))
        if position is None:
            return _bad_request("'position' must be {x, y}")
        node = session.move_node(node_id, position)
        return _ok({'node': node.to_dict()})
    except Exception as e:
        return _error_response(e)


@documents_bp.route(DOCUMENT_ROUTE + '/nodes/<node_id>/fields', methods=['GET'])
def node_fields(project_id, stage_id, document_id, node_id):
    """Rendered field set of a node's content form."""
    try:
        session = _session(project_id, stage_id, document_id)
        return _ok(session.render_fields(node_id))
    except Exception as e:
        return _error_response(e)


# ---------------------------------------------------------------------------
# Edges
# ---------------------------------------------------------------------------

@documents_bp.route(DOCUMENT_ROUTE + '/edges', methods=['POST'])
def add_edge(project_id, stage_id, document_id):
    """Connect two nodes."""
    try:
        session = _session(project_id, stage_id, document_id)
        data = _json_body()
        if not data.get('source') or not data.get('target'):
            return _bad_request("'source' and 'target' are required")
        edge = session.connect(
            data['source'], data['target'],
            data.get('sourceHandle'), data.get('targetHandle')
        )
        return _ok({'edge': edge.to_dict()}, 201)
    except Exception as e:
        return _error_response(e)


@documents_bp.route(DOCUMENT_ROUTE + '/edges/<edge_id>', methods=['DELETE'])
def delete_edge(project_id, stage_id, document_id, edge_id):
    """Remove an edge; removing a missing edge is not an error."""
    try:
        session = _session(project_id, stage_id, document_id)
        return _ok({'removed': session.disconnect(edge_id)})
    except Exception as e:
        return _error_response(e)


# ---------------------------------------------------------------------------
# Viewport & sidebar
# ---------------------------------------------------------------------------

@documents_bp.route(DOCUMENT_ROUTE + '/viewport', methods=['PUT'])
def set_viewport(project_id, stage_id, document_id):
    try:
        session = _session(project_id, stage_id, document_id)
        data = _json_body()
        try:
            x, y = float(data.get('x', 0.0)), float(data.get('y', 0.0))
            zoom = float(data.get('zoom', 1.0))
        except (TypeError, ValueError):
            return _bad_request("Viewport values must be numbers")
        session.set_viewport(x, y, zoom)
        return _ok({'viewport': session.document.viewport.to_dict()})
    except Exception as e:
        return _error_response(e)


@documents_bp.route(DOCUMENT_ROUTE + '/sidebar', methods=['POST'])
def toggle_sidebar(project_id, stage_id, document_id):
    """Toggle the template sidebar, or set it with ``{open: bool}``."""
    try:
        session = _session(project_id, stage_id, document_id)
        data = _json_body()
        return _ok({'sidebar_open': session.toggle_sidebar(data.get('open'))})
    except Exception as e:
        return _error_response(e)
