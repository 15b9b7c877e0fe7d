# Overview: Flask API routes for sales; parses input and returns JSON responses.

# backend/market/routes/sales.py
"""Sales API routes"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import InventoryError
from ..services import basket_service, sale_accumulator, sale_lifecycle
from ._responses import bad_request, error_response, server_error


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
def create_sale_route():
    """Create a new in_process sale at a branch."""
    try:
        data = request.get_json(silent=True) or {}
        branch_id = data.get("branch_id")

        if not branch_id:
            return bad_request("branch_id required")

        sale = sale_lifecycle.create_sale(
            branch_id,
            client_name=data.get("client_name"),
            cashier_name=data.get("cashier_name"),
        )
        return jsonify({"sale": sale.to_dict()}), 201

    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return server_error()


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    """Get sale with its basket lines."""
    try:
        sale = sale_lifecycle.get_sale(sale_id)
        lines = basket_service.list_lines(sale_id)
        return jsonify({
            "sale": sale.to_dict(),
            "lines": [line.to_dict() for line in lines],
        }), 200

    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load sale")
        return server_error()


@sales_bp.get("/<int:sale_id>/total")
def get_sale_total_route(sale_id: int):
    try:
        total = sale_accumulator.get_sale_total(sale_id)
        return jsonify({"sale_id": sale_id, "total_price_cents": total}), 200

    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to compute sale total")
        return server_error()


@sales_bp.post("/<int:sale_id>/finalize")
def finalize_sale_route(sale_id: int):
    """Finalize sale - commits reserved stock and freezes the total."""
    try:
        sale = sale_lifecycle.finalize_sale(sale_id)
        return jsonify({"sale": sale.to_dict()}), 200

    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to finalize sale")
        return server_error()


@sales_bp.post("/<int:sale_id>/cancel")
def cancel_sale_route(sale_id: int):
    try:
        sale = sale_lifecycle.cancel_sale(sale_id)
        return jsonify({"sale": sale.to_dict()}), 200

    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel sale")
        return server_error()


@sales_bp.delete("/<int:sale_id>")
def delete_sale_route(sale_id: int):
    try:
        sale_lifecycle.delete_sale(sale_id)
        return jsonify({"deleted": True}), 200

    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete sale")
        return server_error()
