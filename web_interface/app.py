"""
Flask web interface for the UCD requirements canvas.

This provides the REST API the dashboard's canvas document screen talks to:
the block palette, drop/connect/edit/delete gestures, viewport and sidebar
state, and saving/loading documents.
"""

import logging
from typing import Optional

from flask import Flask, jsonify
from flask_cors import CORS

from ucd_canvas_core import __version__
from ucd_canvas_core.config import EditorSettings, configure_logging, load_env_file
from ucd_canvas_core.editor_session import SessionManager
from ucd_canvas_core.persistence import DocumentPersistence, DocumentStore

from web_interface.document_api import init_document_api

logger = logging.getLogger('ucd.web')


def create_app(settings: Optional[EditorSettings] = None,
               store: Optional[DocumentStore] = None) -> Flask:
    """Build the Flask app.

    Args:
        settings: effective configuration; read from the environment if omitted.
        store:    document store to use instead of the configured backend.
    """
    settings = settings or EditorSettings.from_env()

    app = Flask(__name__)
    CORS(app)

    persistence = DocumentPersistence(store or settings.create_store())
    session_manager = SessionManager(persistence, max_sessions=settings.max_sessions)
    app.config['UCD_SETTINGS'] = settings

    init_document_api(app, session_manager)

    @app.route('/api/health', methods=['GET'])
    def health():
        """Liveness check."""
        return jsonify({
            'success': True,
            'data': {
                'version': __version__,
                'store': type(persistence.store).__name__,
                'open_documents': len(session_manager.open_keys()),
            }
        })

    @app.route('/favicon.ico')
    def favicon():
        """Suppress favicon 404 errors."""
        return '', 204

    logger.info("Canvas API ready (store backend: %s)", settings.store_backend)
    return app


def main():
    load_env_file()
    settings = EditorSettings.from_env()
    configure_logging(settings.log_level)
    app = create_app(settings)

    logger.info("Access the API at: http://localhost:%d", settings.port)
    app.run(host=settings.host, port=settings.port, threaded=True)


if __name__ == '__main__':
    main()
