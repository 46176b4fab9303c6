from datetime import datetime, timezone
from typing import List, Optional

import mongomock

from gateway import SyncGateway
from schemas import CartItem, Order

UTC = timezone.utc


def at(year, month, day, hour=12, minute=0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=UTC)


def cart_item(item_id: str, quantity: int, price: int = 20, name: Optional[str] = None) -> CartItem:
    return CartItem(id=item_id, name=name or f"Item {item_id}", price=price, category="Tea", quantity=quantity)


def make_order(order_id: str = "o1", items: Optional[List[CartItem]] = None, **fields) -> Order:
    items = items or [cart_item("1", 2)]
    data = dict(
        id=order_id,
        table_number="1",
        customer_name="Asha",
        phone_number="9800000000",
        items=items,
        total_amount=sum(i.price * i.quantity for i in items),
        payment_method="cash",
        created_at=at(2025, 1, 15),
    )
    data.update(fields)
    return Order(**data)


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def mongo_gateway(now: Optional[datetime] = None) -> SyncGateway:
    return SyncGateway(mongomock.MongoClient().chiya, clock=FixedClock(now or at(2025, 1, 15)))


def order_fields(table: str = "5", name: str = "Asha", method: str = "cash", created_at: Optional[datetime] = None, **extra):
    items = extra.pop("items", [cart_item("1", 2)])
    fields = {
        "tableNumber": table,
        "customerName": name,
        "phoneNumber": "9800000000",
        "items": [i.model_dump(by_alias=True, exclude_none=True) for i in items],
        "totalAmount": sum(i.price * i.quantity for i in items),
        "paymentMethod": method,
        "paymentStatus": "pending",
        "orderStatus": "pending",
    }
    if created_at is not None:
        fields["createdAt"] = created_at
    fields.update(extra)
    return fields
