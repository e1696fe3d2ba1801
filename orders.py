"""
Order placement, payment confirmation and the status workflow.

An order is created "pending" with prices recomputed from the catalog,
moves to "processing" once its payment signature checks out, and is
otherwise moved by admins. Status changes are not checked against the
current status: any status may be set from any other.
"""

from datetime import datetime, timezone
from typing import List, Optional, get_args

import structlog
from pymongo.database import Database

from cart import discard_ordered
from config import Settings
from database import create_document, to_object_id
from errors import (
    EmptyOrderError,
    IncompleteAddressError,
    InvalidStatusError,
    NotAuthorizedError,
    OrderNotFoundError,
    PaymentVerificationError,
)
from inventory import check_stock, commit_stock
from payments import RazorpayGateway, verify_signature
from pricing import PricedLine, Totals, compute_totals, price_lines
from schemas import Order, OrderCreate, OrderStatus, PaymentResult, PaymentVerify, ShippingAddress

logger = structlog.get_logger(__name__)

ORDER_STATUSES = get_args(OrderStatus)
GATEWAY_PAYMENT_METHOD = "razorpay"
REQUIRED_ADDRESS_FIELDS = ("address", "city", "postalCode")


def normalize_address(address: Optional[ShippingAddress], settings: Settings) -> dict:
    data = address.model_dump() if address else {}
    missing = [f for f in REQUIRED_ADDRESS_FIELDS if not (data.get(f) or "").strip()]
    if missing:
        raise IncompleteAddressError(missing)
    out = {f: data[f].strip() for f in REQUIRED_ADDRESS_FIELDS}
    out["country"] = (data.get("country") or "").strip() or settings.default_country
    return out


def build_order(
    user_id: str,
    lines: List[PricedLine],
    totals: Totals,
    address: Optional[ShippingAddress],
    payment_method: str,
    settings: Settings,
) -> dict:
    """Assemble a pending order document. Nothing is written."""
    if not lines:
        raise EmptyOrderError()
    order = Order(
        user=user_id,
        orderItems=[line.to_item() for line in lines],
        shippingAddress=normalize_address(address, settings),
        paymentMethod=payment_method,
        itemsPrice=float(totals.subtotal),
        taxPrice=float(totals.tax),
        shippingPrice=float(totals.shipping),
        totalPrice=float(totals.total),
    )
    return order.model_dump()


def quote(db: Database, settings: Settings, user: dict, lines: List[dict]) -> dict:
    """Price breakdown for a prospective order, checked against stock."""
    if not lines:
        raise EmptyOrderError("Cart is empty")
    priced = price_lines(db, lines)
    check_stock(priced)
    totals = compute_totals(priced, settings)
    return {
        "items": [line.to_item() for line in priced],
        **totals.to_dict(),
        "shippingAddress": user.get("shippingAddress") or {
            "address": "",
            "city": "",
            "postalCode": "",
            "country": settings.default_country,
        },
    }


def place_order(
    db: Database,
    gateway: RazorpayGateway,
    settings: Settings,
    user_id: str,
    payload: OrderCreate,
) -> dict:
    if not payload.items:
        raise EmptyOrderError()
    # address problems are reported before the catalog is touched
    normalize_address(payload.shippingAddress, settings)

    lines = price_lines(db, payload.items)
    check_stock(lines)
    totals = compute_totals(lines, settings)
    order = build_order(user_id, lines, totals, payload.shippingAddress, payload.paymentMethod, settings)

    order_id = create_document(db, "order", order)
    commit_stock(db, order_id, lines)
    logger.info("order_created", order_id=order_id, user_id=user_id, total=order["totalPrice"])

    discard_ordered(db, user_id, lines)
    db["user"].update_one(
        {"_id": to_object_id(user_id)},
        {"$set": {"shippingAddress": order["shippingAddress"]}},
    )

    if payload.paymentMethod == GATEWAY_PAYMENT_METHOD:
        # on failure the order stays pending with no gateway id
        gateway_id = gateway.open_transaction(totals.total, order_id)
        db["order"].update_one(
            {"_id": to_object_id(order_id)},
            {"$set": {"razorpayOrderId": gateway_id, "updated_at": datetime.now(timezone.utc)}},
        )
    return get_order(db, order_id)


def get_order(db: Database, order_id: str) -> dict:
    order = db["order"].find_one({"_id": to_object_id(order_id)})
    if not order:
        raise OrderNotFoundError(order_id)
    return order


def get_order_for(db: Database, order_id: str, user: dict) -> dict:
    order = get_order(db, order_id)
    if order["user"] != str(user["_id"]) and not user.get("isAdmin"):
        raise NotAuthorizedError("Not authorized to view this order")
    return order


def confirm_payment(db: Database, order_id: str, user: dict, body: PaymentVerify, settings: Settings) -> dict:
    """Mark an order paid once its Razorpay signature verifies."""
    order = get_order(db, order_id)
    if order["user"] != str(user["_id"]):
        raise NotAuthorizedError("Not authorized to verify this payment")
    if order.get("isPaid"):
        raise PaymentVerificationError("Order is already paid")
    if order.get("paymentMethod") != GATEWAY_PAYMENT_METHOD:
        raise PaymentVerificationError("Invalid payment method")
    if not order.get("razorpayOrderId") or order["razorpayOrderId"] != body.razorpayOrderId:
        raise PaymentVerificationError("Invalid Razorpay order ID")

    if not verify_signature(
        body.razorpayOrderId,
        body.razorpayPaymentId,
        body.razorpaySignature,
        settings.razorpay_key_secret,
    ):
        raise PaymentVerificationError("Invalid payment signature")

    now = datetime.now(timezone.utc)
    db["order"].update_one(
        {"_id": order["_id"]},
        {"$set": {
            "isPaid": True,
            "paidAt": now,
            "paymentResult": PaymentResult(
                razorpayPaymentId=body.razorpayPaymentId,
                razorpayOrderId=body.razorpayOrderId,
                razorpaySignature=body.razorpaySignature,
            ).model_dump(),
            "status": "processing",
            "updated_at": now,
        }},
    )
    logger.info("order_paid", order_id=order_id, razorpay_payment_id=body.razorpayPaymentId)
    return get_order(db, order_id)


def set_status(db: Database, order_id: str, status: str) -> dict:
    if status not in ORDER_STATUSES:
        raise InvalidStatusError(status)
    order = get_order(db, order_id)

    now = datetime.now(timezone.utc)
    update = {"status": status, "updated_at": now}
    if status == "delivered":
        update["isDelivered"] = True
        update["deliveredAt"] = now
    db["order"].update_one({"_id": order["_id"]}, {"$set": update})
    logger.info("order_status_set", order_id=order_id, previous=order.get("status"), status=status)
    return get_order(db, order_id)


def mark_delivered(db: Database, order_id: str) -> dict:
    return set_status(db, order_id, "delivered")
