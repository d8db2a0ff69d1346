"""
Raw order record normalizer.

The dispatch API and older UI caches name the same field in several ways
(snake_case columns, camelCase fields, legacy aliases). This module maps any
of them onto one ProductLine and never raises: missing text becomes "—",
missing numbers 0 and missing flags False.
"""

from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional

import structlog

from models.order_line import MISSING, LineOrigin, OrderContext, ProductLine
from utils.category_matcher import resolve_category
from utils.order_keys import resolve_base_order_key, section_suffix
from utils.text_utils import clean_text, parse_decimal, parse_flag

logger = structlog.get_logger(__name__)


# Field aliases, first present wins
RECORD_ID_FIELDS = ("d_sr_number", "dsrNumber", "id", "record_id", "recordId", "line_id", "lineId")
SERIAL_FIELDS = ("serial", "s_no", "sr_no")
ORDER_NUMBER_FIELDS = (
    "order_no", "so_no", "do_number", "order_number",
    "doNumber", "orderNo", "soNo", "soNumber", "orderNumber",
)
CUSTOMER_FIELDS = ("customer_name", "party_name", "customerName", "partyName")
PRODUCT_FIELDS = ("product_name", "product_name_1", "productName", "item_name")
CATEGORY_FIELDS = ("oil_type", "oilType", "category", "commodity")
SKU_FIELDS = ("sku_name", "skuName", "sku")
UOM_FIELDS = ("uom", "UOM", "unit")
ORDERED_QTY_FIELDS = (
    "order_quantity", "ordered_qty", "orderQty", "orderedQty",
    "qty_to_be_dispatched", "qtyToDispatch", "quantity",
)
FLOOR_RATE_FIELDS = (
    "rate_floor", "unit_floor_rate", "unitFloorRate", "minimum_rate",
    "rate_per_ltr", "ratePerLtr",
)
UNIT_RATE_FIELDS = ("rate_of_material", "rate", "rate_per_15kg", "ratePer15Kg", "rateLtr")

CONTEXT_TEXT_FIELDS: dict[str, tuple[str, ...]] = {
    "order_type": ("order_type", "orderType"),
    "customer_type": ("customer_type", "customerType"),
    "delivery_purpose": ("order_type_delivery_purpose", "orderPurpose", "deliveryPurpose"),
    "start_date": ("start_date", "startDate"),
    "end_date": ("end_date", "endDate"),
    "delivery_date": ("delivery_date", "deliveryDate"),
    "party_so_date": ("party_so_date", "partySoDate", "soDate"),
    "transport_type": ("type_of_transporting", "transportType"),
    "contact_person": ("customer_contact_person_name", "contactPerson"),
    "whatsapp_no": ("customer_contact_person_whatsapp_no", "whatsappNo", "whatsapp"),
    "customer_address": ("customer_address", "customerAddress", "address"),
    "payment_terms": ("payment_terms", "paymentTerms"),
    "broker_name": ("broker_name", "brokerName"),
    "credit_status": ("party_credit_status", "creditStatus", "partyCredit"),
}
CONTEXT_FLAG_FIELDS: dict[str, tuple[str, ...]] = {
    "advance_payment_taken": ("advance_payment_to_be_taken", "advancePaymentTaken", "advanceTaken"),
    "is_broker_order": ("is_order_through_broker", "isBrokerOrder", "isBroker"),
}
CONTEXT_AMOUNT_FIELDS: dict[str, tuple[str, ...]] = {
    "advance_amount": ("advance_amount", "advanceAmount"),
    "total_with_gst": ("total_amount_with_gst", "total_with_gst", "totalWithGst"),
}


def _first(raw: Mapping[str, Any], fields: tuple[str, ...]) -> Any:
    """First alias holding a meaningful value."""
    for name in fields:
        value = raw.get(name)
        if value is None:
            continue
        if isinstance(value, str) and (not value.strip() or value.strip() == MISSING):
            continue
        return value
    return None


def _text(raw: Mapping[str, Any], fields: tuple[str, ...]) -> Optional[str]:
    return clean_text(_first(raw, fields))


def _amount(raw: Mapping[str, Any], fields: tuple[str, ...]) -> Decimal:
    """Non-negative amount, 0 when missing or unreadable."""
    raw_value = _first(raw, fields)
    value = parse_decimal(raw_value)
    if value is None or value < 0:
        if raw_value is not None:
            logger.warning("unreadable_amount", field=fields[0], value=str(raw_value))
        return Decimal("0")
    return value


def _context(raw: Mapping[str, Any]) -> OrderContext:
    values: dict[str, Any] = {}
    for field_name, aliases in CONTEXT_TEXT_FIELDS.items():
        values[field_name] = _text(raw, aliases) or MISSING
    for field_name, aliases in CONTEXT_FLAG_FIELDS.items():
        values[field_name] = parse_flag(_first(raw, aliases))
    for field_name, aliases in CONTEXT_AMOUNT_FIELDS.items():
        values[field_name] = _amount(raw, aliases)
    return OrderContext(**values)


def normalize_record(raw: Mapping[str, Any]) -> ProductLine:
    """
    Map one raw record onto a ProductLine.

    Args:
        raw: Record with any mix of supported field names

    Returns:
        ProductLine with base key and section suffix already resolved
    """
    if not isinstance(raw, Mapping):
        raw = {}

    order_number = _text(raw, ORDER_NUMBER_FIELDS) or MISSING
    base_key = resolve_base_order_key(order_number)
    product_name = _text(raw, PRODUCT_FIELDS)
    explicit_category = _text(raw, CATEGORY_FIELDS)

    record_id = _text(raw, RECORD_ID_FIELDS)
    if record_id:
        line_id = record_id
    else:
        discriminator = _text(raw, SERIAL_FIELDS) or product_name or explicit_category or MISSING
        line_id = f"{order_number}#{discriminator}"
        logger.debug("record_without_id", order_number=order_number, line_id=line_id)

    return ProductLine(
        line_id=line_id,
        record_id=record_id,
        order_number=order_number,
        base_order_key=base_key,
        section_suffix=section_suffix(order_number, base_key),
        customer_name=_text(raw, CUSTOMER_FIELDS) or MISSING,
        # Pre-approval rows sometimes only carry the oil type
        product_name=product_name or explicit_category or MISSING,
        sku_name=_text(raw, SKU_FIELDS),
        category=resolve_category(explicit_category, product_name),
        uom=_text(raw, UOM_FIELDS) or MISSING,
        ordered_qty=_amount(raw, ORDERED_QTY_FIELDS),
        unit_floor_rate=_amount(raw, FLOOR_RATE_FIELDS),
        unit_rate=_amount(raw, UNIT_RATE_FIELDS),
        origin=LineOrigin.PERSISTED,
        context=_context(raw),
    )


def normalize_records(records: Iterable[Mapping[str, Any]]) -> list[ProductLine]:
    """
    Normalize a batch, preserving order.

    Fallback ids that collide within the batch get "#2", "#3"... in input
    order so every line id stays unique and reproducible.
    """
    lines: list[ProductLine] = []
    seen: dict[str, int] = {}

    for raw in records:
        line = normalize_record(raw)
        count = seen.get(line.line_id, 0) + 1
        seen[line.line_id] = count
        if count > 1:
            line = line.model_copy(update={"line_id": f"{line.line_id}#{count}"})
        lines.append(line)

    logger.info("records_normalized", count=len(lines))
    return lines
