from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
import structlog
from pydantic import ValidationError, model_validator

from cart import Cart
from schemas import ApiModel, DeliveryMethod, DeliverySlot, Order, OrderCreate, OrderItem, Text

logger = structlog.get_logger(__name__)

HOME_VIEW = "/"
CART_VIEW = "/cart"


class CheckoutForm(ApiModel):
    """Customer-entered checkout fields.

    Address and slot are only required for delivery. The server does not
    re-check this, so the form is the only place it is enforced.
    """
    customer_name: Text
    email: Text
    phone: Text
    delivery_method: DeliveryMethod = "pickup"
    address: Optional[str] = None
    delivery_slot_id: Optional[int] = None

    @model_validator(mode="after")
    def check_delivery_fields(self):
        if self.delivery_method == "delivery":
            if not self.address:
                raise ValueError("Delivery address is required")
            if self.delivery_slot_id is None:
                raise ValueError("Select a delivery time")
        return self


@dataclass
class CheckoutResult:
    redirect: Optional[str] = None
    order: Optional[Order] = None
    error: Optional[str] = None
    form_errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.order is not None


def build_order_payload(cart: Cart, form: CheckoutForm, slot: Optional[DeliverySlot] = None) -> Dict[str, Any]:
    items = [
        OrderItem(
            product_id=line.product.id,
            quantity=line.quantity,
            name=line.product.name,
            price=float(line.product.price),
        )
        for line in cart.items
    ]
    order = OrderCreate(
        customer_name=form.customer_name,
        email=form.email,
        phone=form.phone,
        address=form.address,
        delivery_method=form.delivery_method,
        items=items,
        total=cart.total(),
    )
    if form.delivery_method == "delivery" and slot is not None:
        order.delivery_slot_id = slot.id
        order.delivery_time = slot.start_time
    return order.model_dump(mode="json", by_alias=True, exclude_none=True)


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json().get("message") or "Failed to place order"
    except ValueError:
        return "Failed to place order"


class CheckoutFlow:
    """Turns the current cart and checkout form into an order request."""

    def __init__(self, client: httpx.Client, cart: Cart):
        self.client = client
        self.cart = cart

    def delivery_slots(self, date: Optional[datetime] = None) -> List[DeliverySlot]:
        params = {"date": date.isoformat()} if date else None
        response = self.client.get("/api/delivery-slots", params=params)
        response.raise_for_status()
        return [DeliverySlot.model_validate(s) for s in response.json()]

    def submit(self, data: Dict[str, Any]) -> CheckoutResult:
        if self.cart.is_empty():
            return CheckoutResult(redirect=CART_VIEW)

        try:
            form = CheckoutForm.model_validate(data)
        except ValidationError as e:
            return CheckoutResult(form_errors=[err["msg"] for err in e.errors()])

        slot = None
        if form.delivery_method == "delivery":
            try:
                slots = self.delivery_slots()
            except httpx.HTTPStatusError as e:
                message = _error_message(e.response)
                logger.warning("delivery slot lookup failed", status=e.response.status_code, message=message)
                return CheckoutResult(error=message)
            slot = next((s for s in slots if s.id == form.delivery_slot_id), None)
            if slot is None:
                return CheckoutResult(form_errors=["Selected delivery time is no longer available"])

        response = self.client.post("/api/orders", json=build_order_payload(self.cart, form, slot))
        if response.status_code != 201:
            message = _error_message(response)
            logger.warning("order submission failed", status=response.status_code, message=message)
            return CheckoutResult(error=message)

        self.cart.clear()
        return CheckoutResult(redirect=HOME_VIEW, order=Order.model_validate(response.json()))
