"""Error taxonomy shared by the storefront services.

Services raise these; the application turns them into
``{"ok": false, "error": <code>, "message": <text>}`` responses.
"""
import logging

from quart import Quart, jsonify

_logger = logging.getLogger(__name__)


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    code = "error"
    status = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"ok": False, "error": self.code, "message": self.message}


class NotFound(StorefrontError):
    """Referenced order, cart, product or line does not exist for the caller."""

    code = "not_found"
    status = 404


class OutOfStock(StorefrontError):
    code = "out_of_stock"

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__("Product is out of stock")


class QuantityExceeded(StorefrontError):
    """Requested or resulting quantity is above min(stock, per-product cap)."""

    code = "quantity_exceeded"

    def __init__(self, ceiling: int, stock: int):
        self.ceiling = ceiling
        self.stock = stock
        super().__init__(f"Maximum {ceiling} allowed per order. Only {stock} in stock.")


class InvalidInput(StorefrontError):
    code = "invalid_input"


class Unauthorized(StorefrontError):
    code = "unauthorized"
    status = 401


class Forbidden(StorefrontError):
    code = "forbidden"
    status = 403


def register_error_handlers(app: Quart) -> None:
    @app.errorhandler(StorefrontError)
    async def handle_storefront_error(err: StorefrontError):
        _logger.info("Request rejected | error=%s message=%s", err.code, err.message)
        return jsonify(err.to_dict()), err.status
