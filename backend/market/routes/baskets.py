# Overview: Flask API routes for basket lines; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..errors import InventoryError
from ..services import basket_service
from ._responses import bad_request, error_response, server_error


baskets_bp = Blueprint("baskets", __name__, url_prefix="/api/baskets")


@baskets_bp.post("")
def create_basket_line_route():
    """
    Add a product to a sale.

    A second add of the same product merges into the existing line.
    """
    try:
        data = request.get_json(silent=True) or {}
        sale_id = data.get("sale_id")
        product_id = data.get("product_id")
        quantity = data.get("quantity")

        if sale_id is None or product_id is None or quantity is None:
            return bad_request("sale_id, product_id and quantity required")

        line = basket_service.add_or_merge(sale_id, product_id, quantity)
        return jsonify({"line": line.to_dict()}), 201

    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add basket line")
        return server_error()


@baskets_bp.get("/<int:line_id>")
def get_basket_line_route(line_id: int):
    try:
        line = basket_service.get_line(line_id)
        return jsonify({"line": line.to_dict()}), 200

    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load basket line")
        return server_error()


@baskets_bp.put("/<int:line_id>")
def update_basket_line_route(line_id: int):
    try:
        data = request.get_json(silent=True) or {}
        quantity = data.get("quantity")

        if quantity is None:
            return bad_request("quantity required")

        line = basket_service.update_line(line_id, quantity)
        return jsonify({"line": line.to_dict() if line else None}), 200

    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update basket line")
        return server_error()


@baskets_bp.delete("/<int:line_id>")
def delete_basket_line_route(line_id: int):
    try:
        basket_service.delete_line(line_id)
        return jsonify({"deleted": True}), 200

    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete basket line")
        return server_error()
