"""
Flask application for HTTP API.

Provides:
- GET /health: Service health check
- GET /tracks: Current face tracks
- GET /session: Current attendance session
- POST /session/reset: Start a new session, optionally for another scope
- GET /video_feed: MJPEG stream of annotated frames
"""

from flask import Flask, Response, jsonify, request
from flask_cors import CORS

from .errors import EnrollmentError
from .logging_config import get_logger
from .service import AttendanceService

logger = get_logger(__name__)


def create_app(service: AttendanceService) -> Flask:
    """
    Create and configure Flask application.

    Args:
        service: Running (or startable) attendance service

    Returns:
        Configured Flask app
    """
    app = Flask(__name__)
    CORS(app)

    @app.route('/health')
    def health():
        """Health check endpoint."""
        status = service.status()
        status['streaming'] = service.frames.is_streaming()
        return jsonify(status)

    @app.route('/tracks')
    def tracks():
        return jsonify([t.to_dict() for t in service.tracks()])

    @app.route('/session')
    def session():
        return jsonify(service.engine.session_snapshot())

    @app.route('/session/reset', methods=['POST'])
    def reset_session():
        """Start a new session. Body: {"scope": "<course id>"} or empty."""
        body = request.get_json(silent=True) or {}
        scope = body.get('scope')
        if scope is not None:
            scope = str(scope)
        try:
            service.reset_session(scope)
        except EnrollmentError as e:
            logger.error(f'Session reset failed: {e}')
            return jsonify({'error': str(e)}), 502
        return jsonify(service.engine.session_snapshot())

    @app.route('/video_feed')
    def video_feed():
        """Stream MJPEG video feed."""
        return Response(
            service.frames.generate_mjpeg_frames(),
            mimetype='multipart/x-mixed-replace; boundary=frame'
        )

    return app
