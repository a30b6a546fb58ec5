"""
API Spec Grader - Main Flask Application
Grades OpenAPI specs and serves fixes over a small JSON API
"""
from flask import Flask, jsonify

from config_logging import get_config, get_logger, VERSION, APP_NAME
from api_extensions import register_api_extensions

logger = get_logger('app')


def create_app(config=None):
    """Build the Flask app with the grading blueprint registered"""
    config = config or get_config()
    valid, errors = config.validate()
    if not valid:
        for error in errors:
            logger.error("invalid configuration", problem=error)

    app = Flask(__name__)
    app.config['MAX_CONTENT_LENGTH'] = config.max_content_length
    app.json.sort_keys = False

    @app.route('/health', methods=['GET'])
    def health():
        """Liveness probe"""
        return jsonify({'status': 'ok', 'app': APP_NAME, 'version': VERSION})

    @app.errorhandler(413)
    def too_large(e):
        return jsonify({
            'success': False,
            'error': {
                'code': 'PAYLOAD_TOO_LARGE',
                'message': f'Spec exceeds the {config.max_content_length // (1024 * 1024)}MB limit'
            }
        }), 413

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({
            'success': False,
            'error': {'code': 'NOT_FOUND', 'message': 'Endpoint not found'}
        }), 404

    register_api_extensions(app)
    return app


app = create_app()


if __name__ == '__main__':
    config = get_config()
    print("=" * 60)
    print(f"  {APP_NAME} v{VERSION}")
    print(f"  Starting server at http://{config.host}:{config.port}")
    print("=" * 60)
    app.run(host=config.host, port=config.port, debug=config.debug)
