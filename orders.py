"""Checkout and the add-to-order flow."""

import logging
from datetime import datetime
from typing import Optional

from cart import CartStore, UpdateFlow
from errors import NothingToAddError, OrderValidationError, TransitionNotAllowedError
from gateway import SyncGateway
from merge import compute_merge
from schemas import Document, Order, PaymentMethod

logger = logging.getLogger(__name__)


class OrderDetails(Document):
    table_number: str = ""
    customer_name: str = ""
    phone_number: str = ""
    description: Optional[str] = None
    payment_method: PaymentMethod
    payment_screenshot_name: Optional[str] = None
    payment_screenshot_url: Optional[str] = None


def validate_checkout(cart: CartStore, details: OrderDetails) -> None:
    missing = [
        label
        for label, value in (
            ("table number", details.table_number),
            ("name", details.customer_name),
            ("phone number", details.phone_number),
        )
        if not value.strip()
    ]
    if missing:
        raise OrderValidationError("Please fill in all required fields: " + ", ".join(missing))
    if cart.is_empty:
        raise OrderValidationError("Your cart is empty")
    if details.payment_method == "cash" and (details.payment_screenshot_name or details.payment_screenshot_url):
        raise OrderValidationError("Payment screenshots are only accepted for online payment")


def place_order(cart: CartStore, details: OrderDetails, gateway: SyncGateway, now: Optional[datetime] = None) -> Order:
    """Create the order from the cart; the cart is cleared only once the write succeeded."""
    validate_checkout(cart, details)

    fields = {
        "tableNumber": details.table_number.strip(),
        "customerName": details.customer_name.strip(),
        "phoneNumber": details.phone_number.strip(),
        "items": [item.model_dump(by_alias=True, exclude_none=True) for item in cart.items],
        "totalAmount": cart.total_amount(),
        "paymentMethod": details.payment_method,
        "paymentStatus": "pending",
        "orderStatus": "pending",
    }
    if details.description and details.description.strip():
        fields["description"] = details.description.strip()
    if details.payment_method == "online":
        if details.payment_screenshot_name:
            fields["paymentScreenshotName"] = details.payment_screenshot_name
        if details.payment_screenshot_url:
            fields["paymentScreenshotUrl"] = details.payment_screenshot_url
    if now is not None:
        fields["createdAt"] = now

    order_id = gateway.create_order(fields)
    cart.clear()
    return gateway.get_order(order_id)


def submit_update(flow: UpdateFlow, gateway: SyncGateway, now: Optional[datetime] = None) -> Order:
    """
    Apply the flow's cart to its order as a delta-only patch.

    The patch resets ``orderStatus`` to pending and stamps ``updatedAt``. If
    the write fails the cart keeps its contents and the error propagates.
    """
    if flow.cart.is_empty:
        raise NothingToAddError()
    current = gateway.get_order(flow.order.id)
    if current.order_status == "completed":
        raise TransitionNotAllowedError("Completed orders cannot be updated")
    result = compute_merge(current, flow.cart.items)
    if not result.has_additions:
        raise NothingToAddError()

    patch = {
        "items": [item.model_dump(by_alias=True, exclude_none=True) for item in result.merged_items],
        "totalAmount": result.new_total,
        "updatedAt": now if now is not None else gateway.clock(),
        "orderStatus": "pending",
    }
    gateway.update_order(flow.order.id, patch)
    logger.info(
        "Order %s: added %s for %s, total now %s",
        flow.order.id,
        result.deltas,
        result.added_total,
        result.new_total,
    )
    flow.cart.clear()
    return gateway.get_order(flow.order.id)
