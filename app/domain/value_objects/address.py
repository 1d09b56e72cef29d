"""
Shipping address value object.
"""

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class Address:
    """
    Immutable shipping address attached to an order.

    All fields are optional free text; the order side does not validate
    postal formats.
    """

    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert address to dictionary for persistence."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Address | None":
        """Create address from dictionary, None when no address was given."""
        if not data:
            return None
        return cls(
            street=data.get("street", "") or "",
            city=data.get("city", "") or "",
            state=data.get("state", "") or "",
            zip_code=data.get("zip_code", "") or "",
            country=data.get("country", "") or "",
        )
