import os

from flask import Blueprint, current_app, jsonify, send_from_directory

main = Blueprint('main', __name__)


@main.route('/health')
def health():
    return jsonify({'ok': True})


@main.route('/')
def index():
    static_dir = current_app.config.get('STATIC_DIR')
    if static_dir and os.path.isfile(os.path.join(static_dir, 'index.html')):
        return send_from_directory(static_dir, 'index.html')
    return jsonify({'message': 'Welcome to the trivia server!'})


@main.route('/<path:filename>')
def static_files(filename):
    static_dir = current_app.config.get('STATIC_DIR')
    if not static_dir:
        return jsonify({'error': 'Not found'}), 404
    # send_from_directory rejects paths escaping static_dir and 404s missing files
    return send_from_directory(static_dir, filename)
