"""
Inspector API Routes
Provides REST API endpoints over the registry and the active session
"""

import logging
from typing import Optional

from flask import Blueprint, current_app, jsonify

from .events import ActivityLog
from .scanner import BluetoothInspector

# Configure logging
logger = logging.getLogger(__name__)

# Create blueprint
inspector_bp = Blueprint('inspector', __name__, url_prefix='/api/inspector')


def init_app(app, inspector: BluetoothInspector, activity_log: Optional[ActivityLog] = None):
    """Attach an inspector to a Flask app and subscribe the activity log to its events"""
    if activity_log is None:
        activity_log = ActivityLog()
    inspector.hub.set_observer(activity_log)
    app.extensions['ble_inspector'] = inspector
    app.extensions['ble_inspector_activity'] = activity_log
    app.register_blueprint(inspector_bp)


def _inspector() -> BluetoothInspector:
    return current_app.extensions['ble_inspector']


def _error(message: str, code: int = 500):
    return jsonify({
        "success": False,
        "error": message
    }), code


@inspector_bp.route('/status', methods=['GET'])
def get_status():
    """Get current inspector status"""
    try:
        logger.debug("Inspector status requested")
        return jsonify({
            "success": True,
            "status": _inspector().get_status()
        })
    except Exception as e:
        logger.error(f"Error getting inspector status: {e}")
        return _error(str(e))


@inspector_bp.route('/start', methods=['POST'])
def start_scan():
    try:
        logger.info("Start scan requested")
        result = _inspector().start_scan()
        if result.get('fatal'):
            return jsonify(result), 503
        return jsonify(result)
    except Exception as e:
        logger.error(f"Error starting scan: {e}")
        return _error(str(e))


@inspector_bp.route('/stop', methods=['POST'])
def stop_scan():
    try:
        logger.info("Stop scan requested")
        return jsonify(_inspector().stop_scan())
    except Exception as e:
        logger.error(f"Error stopping scan: {e}")
        return _error(str(e))


@inspector_bp.route('/devices', methods=['GET'])
def get_devices():
    """Get discovered devices in first-seen order"""
    try:
        devices = _inspector().get_devices()
        return jsonify({
            "success": True,
            "devices": devices,
            "count": len(devices)
        })
    except Exception as e:
        logger.error(f"Error getting devices: {e}")
        return _error(str(e))


@inspector_bp.route('/device/<identity>', methods=['GET'])
def get_device(identity):
    try:
        device = _inspector().get_device(identity)
        if device is None:
            return _error("Device not found", 404)
        return jsonify({
            "success": True,
            "device": device
        })
    except Exception as e:
        logger.error(f"Error getting device {identity}: {e}")
        return _error(str(e))


@inspector_bp.route('/connect/<identity>', methods=['POST'])
def connect_device(identity):
    """Open an inspection session on a device"""
    try:
        logger.info(f"Connect to device requested: {identity}")
        result = _inspector().connect(identity)
        if not result['success']:
            return jsonify(result), 404
        return jsonify(result)
    except Exception as e:
        logger.error(f"Error connecting to device {identity}: {e}")
        return _error(str(e))


@inspector_bp.route('/retry', methods=['POST'])
def retry_session():
    try:
        logger.info("Session retry requested")
        result = _inspector().retry()
        if not result['success']:
            return jsonify(result), 409
        return jsonify(result)
    except Exception as e:
        logger.error(f"Error retrying session: {e}")
        return _error(str(e))


@inspector_bp.route('/disconnect', methods=['POST'])
def disconnect_device():
    try:
        logger.info("Disconnect requested")
        return jsonify(_inspector().disconnect())
    except Exception as e:
        logger.error(f"Error disconnecting: {e}")
        return _error(str(e))


@inspector_bp.route('/session', methods=['GET'])
def get_session():
    """Get the active session with its collected characteristics"""
    try:
        session = _inspector().session
        if session is None:
            return _error("No active session", 404)
        return jsonify({
            "success": True,
            "session": session.to_dict()
        })
    except Exception as e:
        logger.error(f"Error getting session: {e}")
        return _error(str(e))


@inspector_bp.route('/activity', methods=['GET'])
def get_activity():
    try:
        activity = current_app.extensions['ble_inspector_activity'].get_recent()
        return jsonify({
            "success": True,
            "activity": activity,
            "count": len(activity)
        })
    except Exception as e:
        logger.error(f"Error getting activity: {e}")
        return _error(str(e))
