import logging
from datetime import datetime, timezone

import orjson
from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from werkzeug.exceptions import HTTPException

from playlistinator import __version__
from playlistinator.config import Config, ConfigError
from playlistinator.http_client import ApiError
from playlistinator.pipeline import run_pipeline

logger = logging.getLogger(__name__)

GENERATE_RATE_LIMIT = "10 per minute"
CONFIG_KEY = 'PLAYLISTINATOR_CONFIG'

# Rate limiting
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
    storage_uri="memory://"
)

api = Blueprint('api', __name__)


@api.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint for load balancers and monitoring"""
    return jsonify({
        'status': 'healthy',
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'version': __version__
    }), 200


@api.route('/api/generate', methods=['POST'])
@limiter.limit(GENERATE_RATE_LIMIT)
def api_generate():
    """Run the Last.fm -> Spotify sync and report how many songs landed"""
    config = current_app.config[CONFIG_KEY]
    try:
        result = run_pipeline(config)
    except (ConfigError, ApiError) as e:
        logger.error(f"Playlist generation failed: {e}")
        return jsonify({'success': False, 'message': str(e)})

    if result.unresolved:
        logger.info(f"{len(result.unresolved)} tracks had no Spotify match")

    return jsonify({
        'success': True,
        'message': result.message,
        'count': result.count
    })


def create_app(config: Config, **overrides) -> Flask:
    """
    Build the API server.

    Args:
        config: Shared read-only by every request; each request runs its
                own pipeline with its own access token
        overrides: Extra Flask config, e.g. TESTING or RATELIMIT_ENABLED
    """
    app = Flask(__name__)
    app.config[CONFIG_KEY] = config
    app.config.update(overrides)

    CORS(app, origins='*', send_wildcard=True, methods=['GET', 'POST', 'OPTIONS'])
    limiter.init_app(app)
    app.register_blueprint(api)

    @app.after_request
    def set_security_headers(response):
        """Add security headers to all responses"""
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        return response

    @app.errorhandler(404)
    def not_found(error):
        logger.warning(f"404 error: {request.url}")
        return jsonify({'error': 'Resource not found'}), 404

    @app.errorhandler(HTTPException)
    def http_error(error):
        # Keep the exception's own headers, e.g. Allow on a 405
        response = error.get_response()
        response.data = orjson.dumps({'error': error.description})
        response.content_type = 'application/json'
        return response

    @app.errorhandler(Exception)
    def handle_exception(error):
        """Handle all other exceptions"""
        logger.error(f"Unhandled exception: {str(error)}", exc_info=True)
        return jsonify({'error': 'An unexpected error occurred'}), 500

    return app
