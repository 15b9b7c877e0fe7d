# Overview: JSON error bodies shared by the route modules.

from flask import jsonify

from ..errors import InventoryError


def error_response(exc: InventoryError):
    """Typed outcome -> {"error": {code, message, details}} with the outcome's status."""
    return jsonify({"error": exc.to_dict()}), exc.http_status


def bad_request(message: str):
    return jsonify({"error": {"code": "invalid_argument", "message": message, "details": {}}}), 400


def server_error():
    return jsonify({"error": {"code": "internal", "message": "Internal server error", "details": {}}}), 500
