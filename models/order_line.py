"""
Product line schemas.

A ProductLine is one demand line for one product on one order section,
as produced by the record normalizer.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import Field

from models.base import BaseSchema


MISSING = "—"


class Category(str, Enum):
    """Canonical commodity (oil type) categories."""
    PALM = "Palm"
    RICE_BRAN = "Rice Bran"
    SOYA = "Soya"
    SUNFLOWER = "Sunflower"
    MUSTARD = "Mustard"
    GROUNDNUT = "Groundnut"
    COTTONSEED = "Cottonseed"
    UNKNOWN = "Unknown"


class LineOrigin(str, Enum):
    """Where a product line comes from."""
    PERSISTED = "PERSISTED"    # Fetched from the dispatch API
    SYNTHETIC = "SYNTHETIC"    # Added during an allocation session, not yet saved


class OrderContext(BaseSchema):
    """
    Order-level metadata duplicated on every line of a section.

    Missing text fields hold "—", amounts 0 and flags False.
    """

    order_type: str = MISSING
    customer_type: str = MISSING
    delivery_purpose: str = MISSING
    start_date: str = MISSING
    end_date: str = MISSING
    delivery_date: str = MISSING
    party_so_date: str = MISSING
    transport_type: str = MISSING
    contact_person: str = MISSING
    whatsapp_no: str = MISSING
    customer_address: str = MISSING
    payment_terms: str = MISSING
    advance_payment_taken: bool = False
    advance_amount: Decimal = Field(default=Decimal("0"), ge=0)
    is_broker_order: bool = False
    broker_name: str = MISSING
    credit_status: str = MISSING
    total_with_gst: Decimal = Field(default=Decimal("0"), ge=0)


class ProductLine(BaseSchema):
    """One product demand line on one order section."""

    line_id: str = Field(..., min_length=1, description="Stable line identifier")
    record_id: Optional[str] = Field(
        None, description="Server record id used for write calls"
    )
    order_number: str = Field(..., description="Full order number, e.g. DO-100A")
    base_order_key: str = Field(..., description="Order number without section suffix")
    section_suffix: str = Field(default="", description="Section letter, empty if none")
    customer_name: str = MISSING
    product_name: str = MISSING
    sku_name: Optional[str] = None
    category: str = Field(default=Category.UNKNOWN.value, description="Commodity category")
    uom: str = MISSING
    ordered_qty: Decimal = Field(default=Decimal("0"), ge=0, description="Demand ceiling")
    unit_floor_rate: Decimal = Field(default=Decimal("0"), ge=0, description="Minimum rate")
    unit_rate: Decimal = Field(default=Decimal("0"), ge=0, description="Quoted rate")
    origin: LineOrigin = LineOrigin.PERSISTED
    context: OrderContext = Field(default_factory=OrderContext)

    @property
    def is_synthetic(self) -> bool:
        return self.origin == LineOrigin.SYNTHETIC
