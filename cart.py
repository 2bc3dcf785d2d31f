from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List

from schemas import Product


@dataclass
class CartLine:
    product: Product
    quantity: int


class Cart:
    """In-progress order lines, keyed by product id in insertion order.

    Nothing is persisted; a new Cart is an empty cart.
    """

    def __init__(self):
        self._lines: Dict[int, CartLine] = {}

    @property
    def items(self) -> List[CartLine]:
        return list(self._lines.values())

    def is_empty(self) -> bool:
        return not self._lines

    def add_item(self, product: Product) -> None:
        line = self._lines.get(product.id)
        if line:
            line.quantity += 1
        else:
            self._lines[product.id] = CartLine(product=product, quantity=1)

    def remove_item(self, product_id: int) -> None:
        self._lines.pop(product_id, None)

    def update_quantity(self, product_id: int, quantity: int) -> None:
        # Zero keeps the line; use remove_item to drop it
        line = self._lines.get(product_id)
        if line:
            line.quantity = quantity

    def clear(self) -> None:
        self._lines.clear()

    def total(self) -> Decimal:
        return sum((line.product.price * line.quantity for line in self._lines.values()), Decimal("0.00"))

    def item_count(self) -> int:
        return sum(line.quantity for line in self._lines.values())
