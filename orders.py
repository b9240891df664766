"""
Order placement.

Turns a cart into a persisted order: every line item is checked against live
product state, inventory is taken item by item in cart order, and the order
stores name/price snapshots so later catalog edits don't rewrite history.

Inventory already taken for earlier items stays taken when a later item
fails; callers see the failure but no compensating restock happens.
"""
import logging
from typing import Any, Dict, List

from pymongo.errors import PyMongoError

from schemas import OrderIn

logger = logging.getLogger(__name__)

TAX_RATE = 0.10
FREE_SHIPPING_THRESHOLD = 100
FLAT_SHIPPING_FEE = 10


class OrderError(Exception):
    """Base class for failures that abort an order placement."""


class ProductNotFound(OrderError):
    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product with ID {product_id} not found")


class InsufficientInventory(OrderError):
    def __init__(self, product_name: str, available: int):
        self.product_name = product_name
        self.available = available
        super().__init__(f"Not enough inventory for {product_name}. Available: {available}")


class PersistenceFailure(OrderError):
    def __init__(self, message: str = "Server error creating order"):
        super().__init__(message)


def compute_totals(subtotal: float) -> Dict[str, float]:
    """Money fields rounded to cents; total is the sum of the rounded parts."""
    subtotal = round(subtotal, 2)
    tax = round(subtotal * TAX_RATE, 2)
    shipping = 0 if subtotal > FREE_SHIPPING_THRESHOLD else FLAT_SHIPPING_FEE
    return {
        "subtotal": subtotal,
        "tax": tax,
        "shipping": shipping,
        "total": round(subtotal + tax + shipping, 2),
    }


def _reserve(products, product_id: str, quantity: int) -> Dict[str, Any]:
    product = products.find_by_id(product_id)
    if product is None:
        raise ProductNotFound(product_id)

    if product["inventory"] < quantity:
        raise InsufficientInventory(product["name"], product["inventory"])

    updated = products.decrement_inventory(product["_id"], quantity)
    if updated is None:
        # Another order took the stock between the read and the decrement
        current = products.find_by_id(product_id)
        if current is None:
            raise ProductNotFound(product_id)
        raise InsufficientInventory(current["name"], current["inventory"])
    return updated


def place_order(products, orders, user_id: str, order: OrderIn) -> Dict[str, Any]:
    """
    Reserve inventory for every line item and persist a pending order.

    Items are processed strictly in the order given. The first missing product
    or short item aborts the placement with ProductNotFound or
    InsufficientInventory; datastore errors surface as PersistenceFailure.
    Returns the stored order document.
    """
    subtotal = 0.0
    lines: List[Dict[str, Any]] = []

    try:
        for item in order.items:
            product = _reserve(products, item.product_id, item.quantity)
            subtotal += product["price"] * item.quantity
            lines.append({
                "product_id": str(product["_id"]),
                "name": product["name"],
                "price": product["price"],
                "quantity": item.quantity,
            })

        doc = {
            "user_id": user_id,
            "items": lines,
            "shipping_address": order.shipping_address.model_dump(),
            "payment_method": order.payment_method,
            "payment_details": order.payment_details,
            "notes": order.notes,
            "status": "pending",
            **compute_totals(subtotal),
        }
        saved = orders.insert(doc)
    except OrderError as e:
        logger.warning(f"Order rejected for user {user_id}: {e}")
        raise
    except PyMongoError as e:
        logger.error(f"Create order error: {e}")
        raise PersistenceFailure() from e

    logger.info(f"Order {saved['_id']} created for user {user_id}: {len(lines)} items, total {saved['total']}")
    return saved
