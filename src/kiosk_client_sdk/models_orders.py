from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Sequence

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


def normalize_quantity(value: Any) -> int:
    """Clamp any quantity input to a non-negative whole number of units.

    Fractions round half up; anything non-numeric counts as zero.
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number) or math.isinf(number):
        return 0
    return max(0, math.floor(number + 0.5))


class CartLine(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    item_id: str = Field(default="", validation_alias=AliasChoices("item_id", "itemId", "clover_item_id", "id"))
    name: str = ""
    unit_price_cents: int = Field(default=0, validation_alias=AliasChoices("unit_price_cents", "unitPriceCents"))
    quantity: int = 0

    @model_validator(mode="before")
    @classmethod
    def _lift_product_fields(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        product = data.get("product")
        if not isinstance(product, Mapping):
            return data
        merged = dict(data)
        # only a Clover id is meaningful to the commerce backend
        if not any(merged.get(key) for key in ("item_id", "itemId", "clover_item_id")) and product.get("clover_item_id"):
            merged["clover_item_id"] = product["clover_item_id"]
        merged.setdefault("name", product.get("name") or "")
        return merged

    @field_validator("item_id", mode="before")
    @classmethod
    def _coerce_item_id(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value).strip()

    @field_validator("name", mode="before")
    @classmethod
    def _coerce_name(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("quantity", mode="before")
    @classmethod
    def _normalize_quantity(cls, value: Any) -> int:
        return normalize_quantity(value)

    @field_validator("unit_price_cents", mode="before")
    @classmethod
    def _coerce_price(cls, value: Any) -> int:
        return normalize_quantity(value)


class OrderConfirmation(BaseModel):
    model_config = ConfigDict(extra="allow")

    order_id: str | None = Field(default=None, validation_alias=AliasChoices("order_id", "orderId", "id"))
    status: str | None = None
    total_amount: Decimal | None = None
    line_items: list[Any] = Field(
        default_factory=list,
        validation_alias=AliasChoices("line_items", "lineItems", "items"),
    )
    message: str | None = None

    @field_validator("order_id", "status", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str | None:
        return None if value is None else str(value)

    @field_validator("line_items", mode="before")
    @classmethod
    def _unwrap_elements(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, Mapping):
            return list(value.get("elements") or [])
        return value

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "OrderConfirmation":
        order = payload.get("order")
        body = dict(order) if isinstance(order, Mapping) else dict(payload)
        if not body.get("message") and isinstance(payload.get("message"), str):
            body["message"] = payload["message"]
        return cls.model_validate(body)


class OrderResultKind(str, Enum):
    SUCCESS = "success"
    MALFORMED_RESPONSE = "malformed_response"
    EMPTY_CART = "empty_cart"
    UPSTREAM_REJECTED = "upstream_rejected"
    SESSION_EXPIRED = "session_expired"
    NETWORK_FAILURE = "network_failure"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class OrderResult:
    kind: OrderResultKind
    message: str
    cart: Sequence[Any]
    idempotency_key: str | None = None
    status_code: int | None = None
    confirmation: OrderConfirmation | None = None
    raw_body: str | None = None
    warning: str | None = None

    @property
    def ok(self) -> bool:
        return self.kind in {OrderResultKind.SUCCESS, OrderResultKind.MALFORMED_RESPONSE}

    @property
    def retryable(self) -> bool:
        return self.kind in {OrderResultKind.NETWORK_FAILURE, OrderResultKind.TIMEOUT, OrderResultKind.CANCELLED}


class SyncKind(str, Enum):
    PRODUCTS = "products"
    ORDERS = "orders"


@dataclass(frozen=True)
class SyncResult:
    sync_kind: SyncKind
    kind: OrderResultKind
    message: str
    status_code: int | None = None
    body: str | None = None
    payload: Any | None = None

    @property
    def ok(self) -> bool:
        return self.kind in {OrderResultKind.SUCCESS, OrderResultKind.MALFORMED_RESPONSE}

    @property
    def marked_for_delete(self) -> int:
        if isinstance(self.payload, Mapping):
            try:
                return int(self.payload.get("marked_for_delete") or 0)
            except (TypeError, ValueError):
                return 0
        return 0
