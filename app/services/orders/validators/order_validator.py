"""
OrderValidator service for validating orders before they are written.

This service follows SRP (Single Responsibility Principle) by focusing only on
validation logic. Every field error is collected and reported in one
ValidationException so the caller can fix the whole payload at once.
"""

import logging
from typing import Any

from app.domain.models.order import Order
from app.utils.error_handler import ValidationException

logger = logging.getLogger(__name__)


class OrderValidator:
    """
    Validates orders against the write invariants of the order store.

    Responsibilities:
    - Validate required fields (customer id, payment details)
    - Validate product lines (non-empty, unique ids, quantity, price)
    - Validate immutable fields on update
    """

    def __init__(self, max_products: int | None = None):
        """
        Initialize validator.

        Args:
            max_products: Optional upper bound on product lines per order
        """
        self.max_products = max_products

    def validate(self, order: Order) -> Order:
        """
        Validates an order and returns it unchanged.

        Args:
            order: Order to validate

        Returns:
            Order: Validated order (same instance)

        Raises:
            ValidationException: If validation fails, with every error in details["errors"]
        """
        errors: list[dict[str, Any]] = []
        self._validate_required_fields(order, errors)
        self._validate_products(order, errors)

        if errors:
            first = errors[0]
            raise ValidationException(
                message=f"Order validation failed: {first['message']}",
                field=first["field"],
                invalid_value=first.get("value"),
                errors=errors,
            )

        logger.debug(f"Order {order.id or '<new>'} validation passed")
        return order

    def validate_update(self, current: Order, candidate: Order) -> Order:
        """
        Validates an update of ``current`` into ``candidate``.

        Raises:
            ValidationException: If the customer id changes or the candidate is invalid
        """
        if candidate.customer_id != current.customer_id:
            raise ValidationException(
                message="customer_id is immutable once the order exists",
                field="customer_id",
                invalid_value=candidate.customer_id,
                expected_format=current.customer_id,
            )
        return self.validate(candidate)

    def _validate_required_fields(self, order: Order, errors: list[dict[str, Any]]) -> None:
        if not order.customer_id or not str(order.customer_id).strip():
            errors.append({"field": "customer_id", "message": "customer_id is required", "value": order.customer_id})

        if not order.payment_details or not str(order.payment_details).strip():
            errors.append(
                {"field": "payment_details", "message": "payment_details is required", "value": order.payment_details}
            )

    def _validate_products(self, order: Order, errors: list[dict[str, Any]]) -> None:
        if not order.products:
            errors.append({"field": "products", "message": "Order must have at least one product", "value": None})
            return

        if self.max_products is not None and len(order.products) > self.max_products:
            errors.append(
                {
                    "field": "products",
                    "message": f"Order cannot have more than {self.max_products} products",
                    "value": len(order.products),
                }
            )

        seen: set[str] = set()
        currency = order.products[0].unit_price.currency
        for index, line in enumerate(order.products):
            prefix = f"products[{index}]"
            if not line.product_id:
                errors.append({"field": f"{prefix}.product_id", "message": "product_id is required", "value": None})
            elif line.product_id in seen:
                errors.append(
                    {
                        "field": f"{prefix}.product_id",
                        "message": f"Duplicate product {line.product_id}",
                        "value": line.product_id,
                    }
                )
            else:
                seen.add(line.product_id)

            if not isinstance(line.quantity, int) or line.quantity < 1:
                errors.append(
                    {"field": f"{prefix}.quantity", "message": "quantity must be at least 1", "value": line.quantity}
                )

            # El total de la orden se calcula en una sola moneda
            if line.unit_price.currency != currency:
                errors.append(
                    {
                        "field": f"{prefix}.currency",
                        "message": f"All products must use {currency}, got {line.unit_price.currency}",
                        "value": line.unit_price.currency,
                    }
                )
