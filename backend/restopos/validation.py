# Overview: Request payload parsing; turns raw JSON into frozen inputs or raises ValidationError.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

from .errors import ValidationError
from .models.orders import ORDER_SOURCES, ORDER_STATUSES, PAYMENT_METHODS, PAYMENT_STATUSES, SOURCE_WEB
from .time_utils import parse_iso_datetime

MAX_NOTES_LENGTH = 500
MAX_ITEM_NOTE_LENGTH = 200
MAX_QTY_PER_LINE = 999


def parse_int(value: Any, field: str, *, minimum: int | None = None, required: bool = True) -> int | None:
    """
    Strict integer coercion.

    Accepts ints and plain-digit strings; rejects bools, floats, decimals
    and scientific notation.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} is required")
        return None

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    return result


def parse_bool(value: Any, field: str, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "1", "yes"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "0", "no", ""):
        return False
    raise ValidationError(f"{field} must be a boolean")


def parse_str(value: Any, field: str, *, max_length: int, required: bool = False) -> str | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return value


def parse_choice(value: Any, field: str, choices: tuple[str, ...], *, required: bool = True) -> str | None:
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if value not in choices:
        raise ValidationError(f"Invalid {field} '{value}'. Must be one of: {', '.join(choices)}")
    return value


def parse_datetime(value: Any, field: str) -> datetime | None:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an ISO-8601 string")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


def parse_pagination(args: Mapping[str, Any], *, max_limit: int, default_limit: int = 20) -> tuple[int, int]:
    page = parse_int(args.get("page"), "page", minimum=1, required=False) or 1
    limit = parse_int(args.get("limit"), "limit", minimum=1, required=False) or default_limit
    return page, min(limit, max_limit)


# =============================================================================
# Order creation
# =============================================================================

@dataclass(frozen=True)
class GuestInfo:
    name: str | None = None
    whatsapp: str | None = None
    pax: int | None = None


@dataclass(frozen=True)
class AttributeSelection:
    """Which option of a product attribute was picked; the modifier comes from the catalog."""
    name: str
    selected: str


@dataclass(frozen=True)
class OrderLineInput:
    product_id: int
    qty: int
    note: str | None = None
    attributes: tuple[AttributeSelection, ...] = ()


@dataclass(frozen=True)
class CreateOrderInput:
    order_source: str
    items: tuple[OrderLineInput, ...]
    table_id: int | None = None
    guest_info: GuestInfo = field(default_factory=GuestInfo)
    notes: str | None = None
    apply_service_charge: bool = False


def _parse_attributes(raw: Any, index: int) -> tuple[AttributeSelection, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ValidationError(f"items[{index}].attributes must be a list")

    selections = []
    for attr in raw:
        if not isinstance(attr, dict):
            raise ValidationError(f"items[{index}].attributes entries must be objects")
        selections.append(
            AttributeSelection(
                name=parse_str(attr.get("name"), f"items[{index}].attributes.name", max_length=64, required=True),
                selected=parse_str(
                    attr.get("selected"), f"items[{index}].attributes.selected", max_length=64, required=True
                ),
            )
        )
    return tuple(selections)


def _parse_item(raw: Any, index: int) -> OrderLineInput:
    if not isinstance(raw, dict):
        raise ValidationError(f"items[{index}] must be an object")
    qty = parse_int(raw.get("qty"), f"items[{index}].qty", minimum=1)
    if qty > MAX_QTY_PER_LINE:
        raise ValidationError(f"items[{index}].qty must be at most {MAX_QTY_PER_LINE}")
    return OrderLineInput(
        product_id=parse_int(raw.get("product_id"), f"items[{index}].product_id", minimum=1),
        qty=qty,
        note=parse_str(raw.get("note"), f"items[{index}].note", max_length=MAX_ITEM_NOTE_LENGTH),
        attributes=_parse_attributes(raw.get("attributes"), index),
    )


def _parse_guest_info(raw: Any, *, required: bool) -> GuestInfo:
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValidationError("guest_info must be an object")

    guest = GuestInfo(
        name=parse_str(raw.get("name"), "guest_info.name", max_length=100, required=required),
        whatsapp=parse_str(raw.get("whatsapp"), "guest_info.whatsapp", max_length=32, required=required),
        pax=parse_int(raw.get("pax"), "guest_info.pax", minimum=1, required=required),
    )
    return guest


def parse_create_order(payload: Any) -> CreateOrderInput:
    """
    Validate a create-order body before anything is mutated.

    WEB orders must carry guest contact info (name, whatsapp, pax).
    """
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    order_source = parse_choice(payload.get("order_source"), "order_source", ORDER_SOURCES)

    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("Order must have at least one item")
    items = tuple(_parse_item(raw, i) for i, raw in enumerate(raw_items))

    guest_info = _parse_guest_info(payload.get("guest_info"), required=order_source == SOURCE_WEB)

    return CreateOrderInput(
        order_source=order_source,
        items=items,
        table_id=parse_int(payload.get("table_id"), "table_id", minimum=1, required=False),
        guest_info=guest_info,
        notes=parse_str(payload.get("notes"), "notes", max_length=MAX_NOTES_LENGTH),
        apply_service_charge=parse_bool(payload.get("apply_service_charge"), "apply_service_charge"),
    )


# =============================================================================
# Order listing / transitions / payment
# =============================================================================

@dataclass(frozen=True)
class OrderFilters:
    status: str | None = None
    payment_status: str | None = None
    order_source: str | None = None
    table_id: int | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    page: int = 1
    limit: int = 20


def parse_order_filters(args: Mapping[str, Any], *, max_limit: int) -> OrderFilters:
    page, limit = parse_pagination(args, max_limit=max_limit)
    return OrderFilters(
        status=parse_choice(args.get("status"), "status", ORDER_STATUSES, required=False),
        payment_status=parse_choice(
            args.get("payment_status"), "payment_status", PAYMENT_STATUSES, required=False
        ),
        order_source=parse_choice(args.get("order_source"), "order_source", ORDER_SOURCES, required=False),
        table_id=parse_int(args.get("table_id"), "table_id", minimum=1, required=False),
        date_from=parse_datetime(args.get("date_from"), "date_from"),
        date_to=parse_datetime(args.get("date_to"), "date_to"),
        page=page,
        limit=limit,
    )


def parse_status(payload: Any) -> str:
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return parse_choice(payload.get("status"), "status", ORDER_STATUSES)


def parse_payment(payload: Any) -> tuple[str, int]:
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    method = parse_choice(payload.get("payment_method"), "payment_method", PAYMENT_METHODS)
    amount = parse_int(payload.get("amount"), "amount", minimum=1)
    return method, amount
