"""Checkout pricing: resolve lines against the catalog and compute totals."""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, List, Optional

from bson import ObjectId
from pymongo.database import Database

from config import Settings
from errors import ProductNotFoundError

CENT = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    """Exact Decimal for a stored number. Floats go through str() to avoid binary noise."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_money(value: Any) -> Decimal:
    """Round to whole cents, half-up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class PricedLine:
    product_id: str
    name: str
    image: Optional[str]
    price: Decimal
    qty: int
    count_in_stock: int
    selected_size: Optional[str] = None
    selected_color: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return self.price * self.qty

    def to_item(self) -> dict:
        item = {
            "product": self.product_id,
            "name": self.name,
            "image": self.image,
            "price": float(self.price),
            "qty": self.qty,
        }
        if self.selected_size:
            item["selectedSize"] = self.selected_size
        if self.selected_color:
            item["selectedColor"] = self.selected_color
        return item


@dataclass
class Totals:
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal

    def to_dict(self) -> dict:
        return {
            "subtotal": float(self.subtotal),
            "tax": float(self.tax),
            "shipping": float(self.shipping),
            "total": float(self.total),
        }


def price_lines(db: Database, lines: Iterable[Any]) -> List[PricedLine]:
    """Look up the current catalog entry for every line.

    Accepts LineRequest models or plain dicts with ``product`` and ``qty``.
    Raises ProductNotFoundError for the first unknown product, so there is
    never a partial quote.
    """
    priced = []
    for line in lines:
        data = line.model_dump() if hasattr(line, "model_dump") else dict(line)
        product_id = str(data.get("product") or "")
        prod = None
        if ObjectId.is_valid(product_id):
            prod = db["product"].find_one({"_id": ObjectId(product_id)})
        if not prod:
            raise ProductNotFoundError(product_id)
        priced.append(PricedLine(
            product_id=str(prod["_id"]),
            name=prod.get("name", "Product"),
            image=prod.get("image"),
            # unit price stays exact; only the totals are rounded
            price=to_decimal(prod.get("price", 0)),
            qty=int(data.get("qty", 1)),
            count_in_stock=int(prod.get("countInStock", 0)),
            selected_size=data.get("selectedSize"),
            selected_color=data.get("selectedColor"),
        ))
    return priced


def shipping_for(subtotal: Decimal, settings: Settings) -> Decimal:
    # strictly greater: a subtotal of exactly the threshold still pays the fee
    if subtotal > settings.free_shipping_threshold:
        return to_money(0)
    return to_money(settings.shipping_fee)


def compute_totals(lines: Iterable[PricedLine], settings: Settings) -> Totals:
    subtotal = to_money(sum((line.line_total for line in lines), Decimal("0")))
    tax = to_money(subtotal * settings.tax_rate)
    shipping = shipping_for(subtotal, settings)
    total = to_money(subtotal + tax + shipping)
    return Totals(subtotal=subtotal, tax=tax, shipping=shipping, total=total)
