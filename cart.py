"""
Server-side cart, one document per user in the "cart" collection.

Line prices are captured when a line is added. Lines whose product is gone,
or whose size/color selection the product no longer offers, are dropped the
next time the cart is read.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional

import structlog
from bson import ObjectId
from pymongo.database import Database

from database import to_object_id
from errors import (
    CartItemNotFoundError,
    InsufficientStockError,
    InvalidOptionError,
    InvalidQuantityError,
    ProductNotFoundError,
)
from pricing import PricedLine, to_decimal, to_money

logger = structlog.get_logger(__name__)


def empty_cart() -> dict:
    return {"items": [], "totalPrice": 0}


def cart_total(items: Iterable[dict]) -> float:
    return float(to_money(sum((to_decimal(i["price"]) * i["quantity"] for i in items), Decimal("0"))))


def selection_is_offered(product: dict, size: Optional[str], color: Optional[str]) -> bool:
    sizes = product.get("sizes") or []
    colors = product.get("colors") or []
    valid_size = not sizes or size in sizes
    valid_color = not colors or color in colors
    return valid_size and valid_color


def _find_product(db: Database, product_id: str) -> dict:
    prod = None
    if ObjectId.is_valid(product_id or ""):
        prod = db["product"].find_one({"_id": ObjectId(product_id)})
    if not prod:
        raise ProductNotFoundError(product_id)
    return prod


def _check_options(product: dict, size: Optional[str], color: Optional[str], required: bool) -> None:
    sizes = product.get("sizes") or []
    colors = product.get("colors") or []
    if required and sizes and not size:
        raise InvalidOptionError("Size required")
    if required and colors and not color:
        raise InvalidOptionError("Color required")
    if size and size not in sizes:
        raise InvalidOptionError("Invalid size")
    if color and color not in colors:
        raise InvalidOptionError("Invalid color")


def _save(db: Database, cart: dict) -> dict:
    cart["totalPrice"] = cart_total(cart["items"])
    cart["updated_at"] = datetime.now(timezone.utc)
    fields = {k: v for k, v in cart.items() if k != "_id"}
    db["cart"].update_one({"user": cart["user"]}, {"$set": fields}, upsert=True)
    return db["cart"].find_one({"user": cart["user"]})


def get_cart(db: Database, user_id: str) -> dict:
    cart = db["cart"].find_one({"user": user_id})
    if not cart:
        return empty_cart()

    valid: List[dict] = []
    for item in cart.get("items", []):
        prod = None
        if ObjectId.is_valid(item.get("product", "")):
            prod = db["product"].find_one({"_id": ObjectId(item["product"])})
        if prod and selection_is_offered(prod, item.get("selectedSize"), item.get("selectedColor")):
            valid.append(item)

    if len(valid) != len(cart.get("items", [])):
        logger.info("cart_pruned", user_id=user_id, dropped=len(cart["items"]) - len(valid))
        cart["items"] = valid
        cart = _save(db, cart)
    return cart


def add_item(
    db: Database,
    user_id: str,
    product_id: str,
    quantity: int,
    selected_size: Optional[str] = None,
    selected_color: Optional[str] = None,
) -> dict:
    prod = _find_product(db, product_id)
    stock = int(prod.get("countInStock", 0))
    if stock < quantity:
        raise InsufficientStockError(product_id, prod.get("name", "product"), quantity, stock)
    _check_options(prod, selected_size, selected_color, required=True)

    cart = db["cart"].find_one({"user": user_id}) or {"user": user_id, "items": []}
    for item in cart["items"]:
        if (item["product"] == product_id
                and item.get("selectedSize") == selected_size
                and item.get("selectedColor") == selected_color):
            new_qty = item["quantity"] + quantity
            if new_qty > stock:
                raise InsufficientStockError(product_id, prod.get("name", "product"), new_qty, stock)
            item["quantity"] = new_qty
            break
    else:
        cart["items"].append({
            "_id": ObjectId(),
            "product": product_id,
            "quantity": quantity,
            "price": float(to_decimal(prod.get("price", 0))),
            "selectedSize": selected_size,
            "selectedColor": selected_color,
        })
    return _save(db, cart)


def update_item(
    db: Database,
    user_id: str,
    item_id: str,
    quantity: int,
    selected_size: Optional[str] = None,
    selected_color: Optional[str] = None,
) -> dict:
    cart = db["cart"].find_one({"user": user_id})
    if not cart:
        raise CartItemNotFoundError(item_id)
    oid = to_object_id(item_id)
    item = next((i for i in cart["items"] if i["_id"] == oid), None)
    if item is None:
        raise CartItemNotFoundError(item_id)

    prod = _find_product(db, item["product"])
    if quantity < 1 or int(prod.get("countInStock", 0)) < quantity:
        raise InvalidQuantityError("Invalid quantity")
    _check_options(prod, selected_size, selected_color, required=False)

    item["quantity"] = quantity
    if selected_size:
        item["selectedSize"] = selected_size
    if selected_color:
        item["selectedColor"] = selected_color
    return _save(db, cart)


def remove_item(db: Database, user_id: str, item_id: str) -> dict:
    cart = db["cart"].find_one({"user": user_id})
    if not cart:
        raise CartItemNotFoundError(item_id)
    oid = to_object_id(item_id)
    cart["items"] = [i for i in cart["items"] if i["_id"] != oid]
    return _save(db, cart)


def clear_cart(db: Database, user_id: str) -> None:
    db["cart"].delete_one({"user": user_id})


def cart_lines(cart: dict) -> List[dict]:
    """Cart items in the line shape the pricing calculator takes."""
    return [
        {
            "product": i["product"],
            "qty": i["quantity"],
            "selectedSize": i.get("selectedSize"),
            "selectedColor": i.get("selectedColor"),
        }
        for i in cart.get("items", [])
    ]


def discard_ordered(db: Database, user_id: str, lines: Iterable[PricedLine]) -> None:
    """Drop the cart lines an order was just placed for."""
    cart = db["cart"].find_one({"user": user_id})
    if not cart:
        return
    ordered = {(l.product_id, l.selected_size, l.selected_color) for l in lines}
    remaining = [
        i for i in cart["items"]
        if (i["product"], i.get("selectedSize"), i.get("selectedColor")) not in ordered
    ]
    if not remaining:
        clear_cart(db, user_id)
    elif len(remaining) != len(cart["items"]):
        cart["items"] = remaining
        _save(db, cart)
