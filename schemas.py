"""
Database Schemas for the Chiya ordering service

Each Pydantic model represents a MongoDB document shape. Documents are stored
with camelCase keys (tableNumber, createdAt, ...); Python code uses the
snake_case attribute names.
"""

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

PaymentMethod = Literal["cash", "online"]
PaymentStatus = Literal["pending", "completed"]
OrderStatus = Literal["pending", "preparing", "ready", "completed"]


class Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MenuItem(Document):
    id: str = Field(..., description="Stable menu item id")
    name: str = Field(..., description="Item name")
    name_localized: Optional[str] = Field(None, description="Item name in Nepali")
    price: int = Field(..., ge=0, description="Price in minor currency units")
    category: str = Field(..., description="Tea | Coffee | Snacks | Burger | Drinks")
    description: Optional[str] = None
    image: Optional[str] = None


class CartItem(MenuItem):
    quantity: int = Field(..., ge=1, description="Quantity")


class Order(Document):
    id: str = Field(..., description="Document id assigned on create")
    table_number: str
    customer_name: str
    phone_number: str
    description: Optional[str] = None
    items: List[CartItem] = Field(..., min_length=1)
    total_amount: int = Field(..., ge=0, description="sum(price * quantity) at last write")
    payment_method: PaymentMethod
    payment_status: PaymentStatus = "pending"
    order_status: OrderStatus = "pending"
    created_at: datetime
    updated_at: Optional[datetime] = None
    payment_screenshot_name: Optional[str] = None
    payment_screenshot_url: Optional[str] = None


class User(Document):
    name: str = Field(..., description="Full name")
    email: str = Field(..., description="Email address")
    password_hash: str = Field(..., description="Hashed password")
    is_admin: bool = Field(False, description="Admin user flag")


class Identity(Document):
    id: str
    name: str
    email: str
    is_admin: bool = False


class OrderActions(Document):
    can_mark_paid: bool
    can_mark_done: bool
    can_update: bool


class OrderView(Order):
    is_new_or_updated: bool
    actions: OrderActions


class DashboardViews(Document):
    selected_date: str
    search: str
    loading: bool = False
    total_orders: int
    pending_count: int
    completed_count: int
    total_revenue: int
    all_active_orders: List[OrderView]
    cash_orders: List[OrderView]
    online_orders: List[OrderView]
    history_dates: List[str]


class CartOut(Document):
    cart_id: str
    mode: Literal["order", "update"] = "order"
    order_id: Optional[str] = None
    items: List[CartItem]
    total_amount: int
    total_items: int
    original_quantities: Dict[str, int] = Field(default_factory=dict)
