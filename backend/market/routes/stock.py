# Overview: Flask API routes for branch stock records.

from flask import Blueprint, request, jsonify, current_app

from ..errors import InventoryError
from ..services import stock_ledger
from ._responses import bad_request, error_response, server_error


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("/<int:product_id>/<int:branch_id>")
def get_stock_route(product_id: int, branch_id: int):
    try:
        record = stock_ledger.get_stock_record(product_id, branch_id, refresh=True)
        return jsonify({"stock": record.to_dict()}), 200

    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load stock record")
        return server_error()


@stock_bp.put("/<int:product_id>/<int:branch_id>")
def adjust_stock_route(product_id: int, branch_id: int):
    """
    Set on-hand quantity (recount or delivery).

    Creates the record on first use for the (product, branch) pair.
    """
    try:
        data = request.get_json(silent=True) or {}
        quantity = data.get("quantity")

        if quantity is None:
            return bad_request("quantity required")

        record, created = stock_ledger.set_stock(product_id, branch_id, quantity, note=data.get("note"))
        status = 201 if created else 200
        return jsonify({"stock": record.to_dict()}), status

    except InventoryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return server_error()
