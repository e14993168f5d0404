import base64
import binascii
from flask import Flask, request, jsonify
import config
from .audit_logger import log_info, log_error
from .decorators import api_token_required
from .detect import detect_format
from .errors import SSHKeyParsingError
from .formatter import public_key_line
from .parser import detect_key_type, parse_private_key, validate_key_data
from . import key_manager


# Optional body fields; when present each must be a str that encodes as UTF-8
_STRING_FIELDS = ('name', 'key_content', 'key_content_base64', 'passphrase', 'comment', 'key_type')


def _request_body():
    """
    JSON object body of the current request.

    Returns:
        tuple: (data: dict or None, error: str or None)
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}, None
    if not isinstance(data, dict):
        return None, 'Request body must be a JSON object'

    for field in _STRING_FIELDS:
        value = data.get(field)
        if value is None:
            continue
        if not isinstance(value, str):
            return None, f"'{field}' must be a string"
        try:
            value.encode('utf-8')
        except UnicodeEncodeError:
            return None, f"'{field}' is not valid UTF-8 text"
    return data, None


def _request_key_data(data):
    """Key bytes from a JSON body: 'key_content' text or 'key_content_base64'."""
    if data.get('key_content_base64'):
        try:
            return base64.b64decode(data['key_content_base64'], validate=True), None
        except (binascii.Error, ValueError):
            return None, 'key_content_base64 is not valid base64'
    content = data.get('key_content')
    if not content:
        return None, 'Key content required'
    return content.encode('utf-8'), None


def create_app():
    app = Flask(__name__)
    app.config['SECRET_KEY'] = config.SECRET_KEY or config.DEBUG_SECRET_KEY
    app.config['MAX_CONTENT_LENGTH'] = config.MAX_KEY_SIZE * 2

    if not config.DEBUG:
        if not config.SECRET_KEY:
            log_error("CRITICAL: SECRET_KEY not set in environment variables! "
                      "The key store cannot be used without it.")
        if not config.API_TOKEN:
            log_error("CRITICAL: API_TOKEN not set; the key API will refuse all requests.")

    config.DATA_DIR.mkdir(parents=True, exist_ok=True)

    @app.after_request
    def add_security_headers(response):
        """Add security headers to all responses."""
        response.headers['Cache-Control'] = 'no-store'
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['Content-Security-Policy'] = "default-src 'none'; frame-ancestors 'none';"
        return response

    @app.errorhandler(SSHKeyParsingError)
    def handle_key_error(error):
        return jsonify({'error': error.message, 'kind': error.kind,
                        'guidance': error.user_guidance}), 400

    @app.route('/api/detect', methods=['POST'])
    @api_token_required
    def api_detect():
        """Classify posted key content without storing it."""
        data, error = _request_body()
        if error:
            return jsonify({'error': error}), 400
        key_data, error = _request_key_data(data)
        if error:
            return jsonify({'error': error}), 400

        is_valid, validation_error = validate_key_data(key_data)
        return jsonify({
            'format': detect_format(key_data).value,
            'key_type': detect_key_type(key_data, data.get('passphrase')),
            'valid': is_valid,
            'error': validation_error,
        })

    @app.route('/api/public-key', methods=['POST'])
    @api_token_required
    def api_public_key_from_content():
        """Public key line for posted private key content; nothing is stored."""
        data, error = _request_body()
        if error:
            return jsonify({'error': error}), 400
        key_data, error = _request_key_data(data)
        if error:
            return jsonify({'error': error}), 400

        key = parse_private_key(key_data, data.get('passphrase'))
        line = public_key_line(key, comment=data.get('comment'))
        return jsonify({
            'key_type': key.display_name,
            'public_key': str(line),
            'fingerprint': line.fingerprint,
        })

    @app.route('/api/users/<user_id>/keys', methods=['GET'])
    @api_token_required
    def api_list_keys(user_id):
        if key_manager.get_user_keys_dir(user_id) is None:
            return jsonify({'error': 'Invalid user'}), 404
        return jsonify({'keys': key_manager.load_keys(user_id)})

    @app.route('/api/users/<user_id>/keys', methods=['POST'])
    @api_token_required
    def api_import_key(user_id):
        """Store a new SSH private key for this user."""
        data, error = _request_body()
        if error:
            return jsonify({'error': error}), 400
        name = data.get('name')
        key_data, error = _request_key_data(data)
        if not name:
            return jsonify({'error': 'Name and key content required'}), 400
        if error:
            return jsonify({'error': error}), 400

        key_meta, error = key_manager.save_key(
            user_id, name, key_data,
            passphrase=data.get('passphrase'),
            remember_passphrase=bool(data.get('remember_passphrase'))
        )
        if error:
            return jsonify({'error': error}), 400
        return jsonify({'key': key_meta}), 201

    @app.route('/api/users/<user_id>/keys/generate', methods=['POST'])
    @api_token_required
    def api_generate_key(user_id):
        data, error = _request_body()
        if error:
            return jsonify({'error': error}), 400
        key_meta, error = key_manager.generate_key(user_id, data.get('name'), data.get('key_type'))
        if error:
            return jsonify({'error': error}), 400
        return jsonify({'key': key_meta}), 201

    @app.route('/api/users/<user_id>/keys/<key_id>/public', methods=['GET'])
    @api_token_required
    def api_public_key(user_id, key_id):
        line, error = key_manager.get_public_key(user_id, key_id, comment=request.args.get('comment'))
        if error:
            status = 404 if error == 'Key not found' else 400
            return jsonify({'error': error}), status
        return jsonify({'public_key': line})

    @app.route('/api/users/<user_id>/keys/<key_id>', methods=['DELETE'])
    @api_token_required
    def api_delete_key(user_id, key_id):
        if not key_manager.delete_key(user_id, key_id):
            return jsonify({'error': 'Failed to delete key'}), 404
        return jsonify({'key_id': key_id})

    @app.route('/api/users/<user_id>/keys/maintenance', methods=['POST'])
    @api_token_required
    def api_key_maintenance(user_id):
        updated = key_manager.generate_missing_public_keys(user_id)
        return jsonify({'updated': updated})

    log_info("Key API initialised")
    return app
