#!/usr/bin/env python3
"""
BLE Inspector - Flask Application
Exposes Bluetooth scanning and peripheral inspection over a REST API
"""

import os
import logging
import atexit
from flask import Flask, jsonify, request
from flask_cors import CORS

from modules.inspector import BluetoothInspector, create_radio, init_app

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler('ble_inspector.log'),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)

# Reduce verbosity of specific loggers
logging.getLogger('urllib3.connectionpool').setLevel(logging.WARNING)
logging.getLogger('werkzeug').setLevel(logging.WARNING)
logging.getLogger('bleak').setLevel(logging.WARNING)

# Configuration
HOST = os.environ.get('INSPECTOR_HOST', '0.0.0.0')
PORT = int(os.environ.get('INSPECTOR_PORT', '8081'))
DEBUG = os.environ.get('INSPECTOR_DEBUG', '').lower() in ('1', 'true', 'yes')


def create_app(inspector=None):
    """Build the Flask app around an inspector (a real or simulated radio by default)"""
    app = Flask(__name__)
    CORS(app)  # Enable CORS for browser front ends

    if inspector is None:
        inspector = BluetoothInspector(create_radio())
        atexit.register(inspector.shutdown)
    init_app(app, inspector)
    logger.info("Inspector module registered successfully")

    @app.route('/api/health')
    def health():
        return jsonify({"status": "healthy"})

    @app.errorhandler(404)
    def not_found(error):
        logger.warning(f"404 error: {request.url}")
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    def internal_error(error):
        logger.error(f"500 error: {error}")
        return jsonify({"error": "Internal server error"}), 500

    return app


if __name__ == '__main__':
    logger.info("Starting BLE Inspector")
    logger.info(f"Process ID: {os.getpid()}")

    app = create_app()
    app.run(
        host=HOST,
        port=PORT,
        debug=DEBUG,
        use_reloader=False  # the reloader would start a second radio
    )
