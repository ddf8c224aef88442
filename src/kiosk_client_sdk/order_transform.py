from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from pydantic import ValidationError

from .models_orders import CartLine

logger = logging.getLogger(__name__)


def coerce_cart_line(line: CartLine | Mapping[str, Any]) -> CartLine:
    if isinstance(line, CartLine):
        return line
    return CartLine.model_validate(line)


def expand_line_items(cart: Iterable[CartLine | Mapping[str, Any]]) -> list[dict[str, dict[str, str]]]:
    """One ``{"item": {"id": ...}}`` entry per unit, in cart order.

    The commerce backend models orders unit by unit, so a line with quantity
    3 becomes three consecutive entries. Lines without an item id, and lines
    that are not cart records at all, contribute nothing.
    """
    line_items: list[dict[str, dict[str, str]]] = []
    for index, raw in enumerate(cart):
        try:
            line = coerce_cart_line(raw)
        except ValidationError:
            logger.warning("cart_line_invalid", extra={"line_index": index})
            continue
        if not line.item_id:
            logger.warning("cart_line_missing_item_id", extra={"item_name": line.name})
            continue
        line_items.extend({"item": {"id": line.item_id}} for _ in range(line.quantity))
    return line_items


def build_order_submission(cart: Iterable[CartLine | Mapping[str, Any]]) -> dict[str, Any]:
    return {"orderCart": {"lineItems": expand_line_items(cart)}}
