"""
Order capture and administration.

Order ids come from the atomic "order" counter (``database.next_sequence``),
so concurrent checkouts never share an id. The unique index on order_id
backs this up: if an insert still collides (for example after the counter
was reset by hand) the next counter value is drawn and the insert retried.
Ids may skip numbers when an insert fails.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import as_utc, next_sequence
from errors import ConflictError, NotFoundError, ValidationError
from schemas import Order, OrderCreate, OrderStatus

logger = logging.getLogger(__name__)

ORDER_PREFIX = "ORD"
ORDER_ID_WIDTH = 3
MAX_ID_ATTEMPTS = 5


def format_order_id(seq: int) -> str:
    return f"{ORDER_PREFIX}{seq:0{ORDER_ID_WIDTH}d}"


def cart_total(order: OrderCreate) -> float:
    return round(sum(item.subtotal for item in order.cart_items), 2)


def _from_doc(doc: dict) -> Order:
    fields = {k: v for k, v in doc.items() if k not in ("_id", "seq")}
    fields["date"] = as_utc(fields.get("date"))
    return Order.model_validate(fields)


def create_order(db: Database, payload: OrderCreate, user_id: Optional[str] = None) -> Order:
    expected = cart_total(payload)
    if round(payload.total_amount, 2) != expected:
        raise ValidationError(f"totalAmount {payload.total_amount:.2f} does not match cart total {expected:.2f}")

    for _ in range(MAX_ID_ATTEMPTS):
        seq = next_sequence("order", using=db)
        order = Order(
            **payload.model_dump(),
            order_id=format_order_id(seq),
            status="Pending",
            date=datetime.now(timezone.utc),
            user_id=user_id,
        )
        doc = order.model_dump()
        doc["seq"] = seq
        try:
            db["order"].insert_one(doc)
        except DuplicateKeyError:
            logger.warning("Order id %s already taken, drawing another", order.order_id)
            continue
        logger.info("Order %s created, total %.2f", order.order_id, order.total_amount)
        return order
    raise ConflictError("Could not allocate an order id")


def get_order(db: Database, order_id: str) -> Order:
    doc = db["order"].find_one({"order_id": order_id})
    if not doc:
        raise NotFoundError("Order not found")
    return _from_doc(doc)


def list_orders(db: Database, status: Optional[OrderStatus] = None) -> List[Order]:
    query = {"status": status} if status else {}
    docs = db["order"].find(query).sort([("date", -1), ("seq", -1)])
    return [_from_doc(d) for d in docs]


def update_status(db: Database, order_id: str, status: OrderStatus) -> Order:
    """Set any of the known statuses; there are no transition rules."""
    result = db["order"].update_one({"order_id": order_id}, {"$set": {"status": status}})
    if result.matched_count == 0:
        raise NotFoundError("Order not found")
    return get_order(db, order_id)


def delete_order(db: Database, order_id: str) -> None:
    result = db["order"].delete_one({"order_id": order_id})
    if result.deleted_count == 0:
        raise NotFoundError("Order not found")
    logger.info("Order %s deleted", order_id)
