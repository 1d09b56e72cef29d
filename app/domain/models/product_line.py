"""
Product line domain model.

Represents one product inside an order. Lines are keyed by product id:
an order never holds two lines for the same product.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from app.domain.value_objects.money import Money


@dataclass
class ProductLine:
    """
    Domain model representing an ordered product.

    Attributes:
        product_id: Catalog product identifier (unique within the order)
        name: Product display name
        quantity: Units ordered, at least 1
        unit_price: Price per unit
    """

    product_id: str
    quantity: int
    unit_price: Money
    name: str = ""

    def __post_init__(self) -> None:
        """Normalize the unit price into a Money value."""
        if not isinstance(self.unit_price, Money):
            self.unit_price = Money(amount=Decimal(str(self.unit_price)))

    @property
    def subtotal(self) -> Money:
        """Line total (unit price times quantity)."""
        return self.unit_price * max(self.quantity, 0)

    def to_dict(self) -> dict[str, Any]:
        """Convert product line to dictionary for persistence."""
        return {
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price": str(self.unit_price.amount),
            "currency": self.unit_price.currency,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProductLine":
        """Create product line from dictionary."""
        return cls(
            product_id=data["product_id"],
            name=data.get("name", ""),
            quantity=data["quantity"],
            unit_price=Money(
                amount=Decimal(str(data.get("unit_price", "0"))),
                currency=data.get("currency", "USD"),
            ),
        )
