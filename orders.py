"""
Order persistence: the "order" and "orderitem" collections.

Placing an order is two inserts, the order header then its item. There is no
transaction around them; if the item insert fails the header stays behind and
the caller gets a PersistenceError carrying its id.
"""
import logging
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional, Protocol

from bson.errors import InvalidId
from bson.objectid import ObjectId
from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError

from customizer import Customizer
from database import create_document, to_str_id
from errors import PersistenceError
from payments import PaymentSucceeded
from schemas import CustomerInfo, Order, OrderItem, OrderRecord, OrderStatus, PaymentStatus, ProductRecord

logger = logging.getLogger(__name__)

ORDER_NUMBER_ATTEMPTS = 3


class OrderRepository(Protocol):
    def insert_order(self, order: Order) -> str: ...

    def insert_order_items(self, items: List[OrderItem]) -> List[str]: ...


class MongoOrderRepository:
    orders = "order"
    items = "orderitem"

    def __init__(self, database):
        self.db = database

    def ensure_indexes(self) -> None:
        self.db[self.orders].create_index("order_number", unique=True)
        self.db[self.items].create_index("order_id")

    def insert_order(self, order: Order) -> str:
        return create_document(self.orders, order, self.db)

    def insert_order_items(self, items: List[OrderItem]) -> List[str]:
        return [create_document(self.items, item, self.db) for item in items]

    def list_orders(self, limit: int = 100) -> List[OrderRecord]:
        cursor = self.db[self.orders].find({}).sort("created_at", DESCENDING).limit(limit)
        return [OrderRecord(**to_str_id(d)) for d in cursor]

    def get_order(self, order_id: str) -> Optional[OrderRecord]:
        try:
            oid = ObjectId(order_id)
        except (InvalidId, TypeError):
            return None
        doc = self.db[self.orders].find_one({"_id": oid})
        return OrderRecord(**to_str_id(doc)) if doc else None

    def list_items(self, order_id: str) -> List[dict]:
        return [to_str_id(d) for d in self.db[self.items].find({"order_id": order_id})]

    def update_status(
        self,
        order_id: str,
        status: Optional[OrderStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
    ) -> Optional[OrderRecord]:
        try:
            oid = ObjectId(order_id)
        except (InvalidId, TypeError):
            return None
        fields = {"updated_at": datetime.now(timezone.utc)}
        if status is not None:
            fields["status"] = status
        if payment_status is not None:
            fields["payment_status"] = payment_status
        result = self.db[self.orders].update_one({"_id": oid}, {"$set": fields})
        if result.matched_count == 0:
            return None
        logger.info("Order %s updated: %s", order_id, {k: v for k, v in fields.items() if k != "updated_at"})
        return self.get_order(order_id)


def new_order_number() -> str:
    return f"PC{int(time.time() * 1000)}"


class OrderPlacement:
    """Writes the order header and its single line item for a settled payment."""

    def __init__(self, repo: OrderRepository, number_factory=new_order_number):
        self.repo = repo
        self.number_factory = number_factory

    def build_order(
        self,
        customizer: Customizer,
        customer: CustomerInfo,
        payment: PaymentSucceeded,
        user_id: Optional[str],
    ) -> Order:
        total = customizer.total
        return Order(
            user_id=user_id,
            order_number=self.number_factory(),
            customer_email=customer.email,
            customer_name=customer.name,
            customer_phone=customer.phone,
            shipping_address=customer.shipping_address(),
            subtotal=total,
            shipping_cost=Decimal("0"),
            tax_amount=Decimal("0"),
            total_amount=total,
            status="confirmed",
            payment_status=payment.status,
            payment_method=payment.method.value,
            payment_reference=payment.payment_id,
        )

    def _insert_header(self, order: Order):
        for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
            try:
                order_id = self.repo.insert_order(order)
                return order, order_id
            except DuplicateKeyError:
                logger.warning("Order number %s already taken (attempt %d)", order.order_number, attempt)
                order = order.model_copy(update={"order_number": self.number_factory()})
        raise PersistenceError("Could not allocate a unique order number")

    def place(
        self,
        customizer: Customizer,
        customer: CustomerInfo,
        payment: PaymentSucceeded,
        user_id: Optional[str] = None,
    ):
        """Insert the order and its item. Returns (order_id, order)."""
        order = self.build_order(customizer, customer, payment, user_id)
        try:
            order, order_id = self._insert_header(order)
        except PersistenceError:
            raise
        except Exception as e:
            logger.exception("Order insert failed for payment %s", payment.payment_id)
            raise PersistenceError("Failed to create order. Please contact support.") from e

        selection = customizer.selection
        item = OrderItem(
            order_id=order_id,
            product_id=customizer.product.id,
            quantity=selection.quantity,
            size=selection.size,
            color=selection.color,
            custom_image_url=selection.design_url,
            custom_instructions=selection.instructions,
            unit_price=customizer.unit_price,
            total_price=customizer.total,
        )
        try:
            self.repo.insert_order_items([item])
        except Exception as e:
            logger.error("Order %s (%s) written without its item: %s", order_id, order.order_number, e)
            raise PersistenceError("Failed to create order. Please contact support.", order_id=order_id) from e

        logger.info("Order %s placed (%s, payment %s)", order.order_number, order_id, order.payment_status)
        return order_id, order


def dashboard_stats(products: Iterable[ProductRecord], orders: Iterable[OrderRecord]) -> dict:
    products = list(products)
    orders = list(orders)
    return {
        "total_products": len(products),
        "active_products": sum(1 for p in products if p.is_active),
        "total_orders": len(orders),
        "total_revenue": sum((o.total_amount for o in orders), Decimal("0")),
    }
