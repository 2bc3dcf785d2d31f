"""
Database Schemas for the Bakery Shop App

Each Pydantic model maps to a MongoDB collection (lowercase of class name):
- User -> "user"
- Product -> "product"
- DeliverySlot -> "deliveryslot"
- Order -> "order"

The *Create models are the request contracts for create operations. Field names
are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

DeliveryMethod = Literal["pickup", "delivery"]
Role = Literal["user", "admin"]


def _format_money(value: Decimal) -> str:
    return f"{value:.2f}"


def _to_local_naive(value: datetime) -> datetime:
    # Stored timestamps are naive server-local time
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


Money = Annotated[
    Decimal,
    Field(ge=0, max_digits=10, decimal_places=2),
    PlainSerializer(_format_money, return_type=str),
]
Text = Annotated[str, Field(min_length=1)]
Timestamp = Annotated[datetime, AfterValidator(_to_local_naive)]


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserCreate(ApiModel):
    """Local account for a LINE identity, created on first login"""
    line_id: Text = Field(..., description="LINE user id (provider subject)")
    display_name: str = Field(..., description="Display name from the LINE profile")
    email: Optional[str] = Field(None, description="Email if the provider shared one")
    picture: Optional[str] = Field(None, description="Avatar URL")
    role: Role = Field("user", description="user or admin; admins are promoted outside the app")


class User(UserCreate):
    id: int
    created_at: Optional[datetime] = None


class ProductCreate(ApiModel):
    """Bakery products available to order"""
    name: Text = Field(..., description="Product name")
    description: Text = Field(..., description="Short description")
    price: Money = Field(..., description="Unit price, two decimal places")
    image: Text = Field(..., description="Image URL")
    category: Text = Field(..., description="Category e.g. Pastries, Breads")


class Product(ProductCreate):
    id: int


class DeliverySlotCreate(ApiModel):
    """Delivery window offered to customers who choose delivery"""
    start_time: Timestamp
    end_time: Timestamp
    max_orders: int = Field(..., description="Capacity hint; not enforced when ordering")
    is_active: bool = True


class DeliverySlot(DeliverySlotCreate):
    id: int


class DeliverySlotUpdate(ApiModel):
    start_time: Optional[Timestamp] = None
    end_time: Optional[Timestamp] = None
    max_orders: Optional[int] = None
    is_active: Optional[bool] = None


class OrderItem(ApiModel):
    """Snapshot of a product line at the time the order was placed"""
    product_id: int
    quantity: int = Field(..., ge=0)
    name: str
    price: float = Field(..., ge=0)


class OrderCreate(ApiModel):
    user_id: Optional[int] = None
    customer_name: Text
    email: Text
    phone: Text
    address: Optional[str] = None
    delivery_method: DeliveryMethod
    delivery_slot_id: Optional[int] = None
    delivery_time: Optional[Timestamp] = None
    items: List[OrderItem]
    total: Money


class Order(OrderCreate):
    id: int
    created_at: Optional[datetime] = None


def items_total(items: List[OrderItem]) -> Decimal:
    total = sum((Decimal(str(item.price)) * item.quantity for item in items), Decimal("0"))
    return total.quantize(Decimal("0.01"))
