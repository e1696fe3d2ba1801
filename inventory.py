"""Stock checks and the stock side of committing an order."""

from datetime import datetime, timezone
from typing import Iterable, List

import structlog
from bson import ObjectId
from pymongo.database import Database

from errors import InsufficientStockError
from pricing import PricedLine

logger = structlog.get_logger(__name__)


def check_stock(lines: Iterable[PricedLine]) -> None:
    for line in lines:
        if line.qty > line.count_in_stock:
            raise InsufficientStockError(line.product_id, line.name, line.qty, line.count_in_stock)


def release_stock(db: Database, lines: Iterable[PricedLine]) -> None:
    for line in lines:
        db["product"].update_one(
            {"_id": ObjectId(line.product_id)},
            {"$inc": {"countInStock": line.qty}, "$set": {"updated_at": datetime.now(timezone.utc)}},
        )


def commit_stock(db: Database, order_id: str, lines: List[PricedLine]) -> None:
    """Decrement stock for a freshly inserted order, all or nothing.

    Each decrement only applies while enough units remain, so stock can not go
    negative even when two checkouts race. If any line can't be taken, the
    lines already taken are put back and the order document is removed before
    InsufficientStockError is raised.
    """
    taken: List[PricedLine] = []
    for line in lines:
        result = db["product"].update_one(
            {"_id": ObjectId(line.product_id), "countInStock": {"$gte": line.qty}},
            {"$inc": {"countInStock": -line.qty}, "$set": {"updated_at": datetime.now(timezone.utc)}},
        )
        if result.matched_count == 1:
            taken.append(line)
            continue

        current = db["product"].find_one({"_id": ObjectId(line.product_id)}) or {}
        available = int(current.get("countInStock", 0))
        logger.warning(
            "stock_commit_failed",
            order_id=order_id,
            product_id=line.product_id,
            requested=line.qty,
            available=available,
            rolled_back=len(taken),
        )
        release_stock(db, taken)
        db["order"].delete_one({"_id": ObjectId(order_id)})
        raise InsufficientStockError(line.product_id, line.name, line.qty, available)

    logger.info("stock_committed", order_id=order_id, lines=len(taken))
