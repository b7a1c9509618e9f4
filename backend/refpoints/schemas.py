"""
Request schemas

Every JSON body is parsed into a frozen dataclass before it reaches a
service. Parsing rejects:
- non-object payloads
- missing required fields
- unknown fields (clients cannot set counters or balances directly)
- wrongly typed values (no floats for integers, no scientific notation)
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from .errors import InvalidAmount, InvalidInput
from .services.points_service import MAX_AMOUNT, MAX_POINTS
from .time_utils import parse_iso_datetime

MAX_NAME_LENGTH = 255
MAX_CODE_LENGTH = 32
MAX_INTEGER = MAX_POINTS


def check_fields(payload: Any, required: set[str], optional: set[str] = frozenset()) -> dict:
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise InvalidInput("Invalid JSON payload")

    missing = sorted(f for f in required if f not in payload or payload[f] is None)
    if missing:
        raise InvalidInput(f"Missing required fields: {', '.join(missing)}")

    unknown = sorted(k for k in payload if k not in required and k not in optional)
    if unknown:
        raise InvalidInput(f"Unknown fields: {', '.join(unknown)}")
    return payload


def _text(payload: dict, key: str, *, max_length: int = MAX_NAME_LENGTH, allow_blank: bool = False) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidInput(f"{key} must be a string")
    value = value.strip()
    if not value and not allow_blank:
        raise InvalidInput(f"{key} cannot be blank")
    if len(value) > max_length:
        raise InvalidInput(f"{key} exceeds max length {max_length}")
    return value


def _int(payload: dict, key: str, *, minimum: int | None = None) -> int | None:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidInput(f"{key} must be an integer")
    if isinstance(value, float):
        raise InvalidInput(f"{key} must be an integer, not a decimal")
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or 'e' in stripped.lower() or '.' in stripped:
            raise InvalidInput(f"{key} must be a plain integer")
        try:
            value = int(stripped)
        except ValueError:
            raise InvalidInput(f"{key} must be an integer")
    if not isinstance(value, int):
        raise InvalidInput(f"{key} must be an integer")
    if abs(value) > MAX_INTEGER:
        raise InvalidInput(f"{key} is out of range")
    if minimum is not None and value < minimum:
        raise InvalidInput(f"{key} must be >= {minimum}")
    return value


def _amount(payload: dict, key: str) -> Decimal | None:
    """Currency amount in major units (e.g. 97.50)."""
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidAmount(f"{key} must be a number")
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidAmount(f"{key} must be a finite number")
    if not isinstance(value, (int, float, str)):
        raise InvalidAmount(f"{key} must be a number")
    if isinstance(value, str) and "e" in value.lower():
        raise InvalidAmount(f"{key} must be a plain decimal number")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise InvalidAmount(f"{key} must be a number")
    if not amount.is_finite() or amount < 0:
        raise InvalidAmount(f"{key} must be a finite number >= 0")
    if amount > MAX_AMOUNT:
        raise InvalidAmount(f"{key} must be <= {MAX_AMOUNT}")
    return amount


def _cents(payload: dict, key: str) -> int | None:
    amount = _amount(payload, key)
    if amount is None:
        return None
    return int((amount * 100).to_integral_value())


def _bool(payload: dict, key: str) -> bool | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise InvalidInput(f"{key} must be true or false")
    return value


def _datetime(payload: dict, key: str) -> datetime | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidInput(f"{key} must be an ISO-8601 datetime")
    try:
        dt = parse_iso_datetime(value)
    except ValueError:
        raise InvalidInput(f"{key} must be an ISO-8601 datetime")
    if dt is None:
        raise InvalidInput(f"{key} must be an ISO-8601 datetime")
    return dt


@dataclass(frozen=True)
class RedemptionRequest:
    code: str
    referred_customer_name: str
    referred_customer_phone: str
    sale_amount: Decimal | None = None

    @classmethod
    def from_payload(cls, payload: Any, code: str | None = None) -> "RedemptionRequest":
        required = {"referredCustomerName", "referredCustomerPhone"}
        if code is None:
            required.add("code")
        data = check_fields(payload, required, {"saleAmount"})
        return cls(
            code=code if code is not None else _text(data, "code", max_length=MAX_CODE_LENGTH),
            referred_customer_name=_text(data, "referredCustomerName"),
            referred_customer_phone=_text(data, "referredCustomerPhone", max_length=32),
            sale_amount=_amount(data, "saleAmount"),
        )


@dataclass(frozen=True)
class CustomerRegistration:
    name: str
    phone_number: str

    @classmethod
    def from_payload(cls, payload: Any) -> "CustomerRegistration":
        data = check_fields(payload, {"name", "phoneNumber"})
        return cls(name=_text(data, "name"), phone_number=_text(data, "phoneNumber", max_length=32))


@dataclass(frozen=True)
class CustomerUpdate:
    """PATCH body for a customer profile. Points are not accepted here."""
    name: str | None = None
    phone_number: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "CustomerUpdate":
        data = check_fields(payload, set(), {"name", "phoneNumber"})
        body = cls(name=_text(data, "name"), phone_number=_text(data, "phoneNumber", max_length=32))
        if body.name is None and body.phone_number is None:
            raise InvalidInput("Nothing to update: send name and/or phoneNumber")
        return body


@dataclass(frozen=True)
class CampaignInput:
    """Create (partial=False) or PATCH (partial=True) body for a campaign."""
    fields: dict

    FIELD_MAP = {
        "name": "name",
        "description": "description",
        "rewardType": "reward_type",
        "rewardPerReferral": "reward_per_referral",
        "percentageRate": "percentage_rate",
        "minimumPurchase": "minimum_purchase_cents",
        "maximumPoints": "maximum_points",
        "goalCount": "goal_count",
        "startDate": "start_date",
        "endDate": "end_date",
        "isActive": "is_active",
    }
    NOT_NULL = ("name", "reward_type", "reward_per_referral", "goal_count", "start_date", "end_date", "is_active")

    @classmethod
    def from_payload(cls, payload: Any, partial: bool = False) -> "CampaignInput":
        required = set() if partial else {"name", "startDate", "endDate"}
        data = check_fields(payload, required, set(cls.FIELD_MAP) - required)

        parsed: dict = {}
        for key, column in cls.FIELD_MAP.items():
            if key not in data:
                continue
            if key == "name":
                parsed[column] = _text(data, key)
            elif key == "description":
                parsed[column] = _text(data, key, max_length=4000, allow_blank=True)
            elif key == "rewardType":
                parsed[column] = _text(data, key, max_length=32)
            elif key in ("rewardPerReferral", "maximumPoints", "goalCount"):
                parsed[column] = _int(data, key, minimum=0)
            elif key == "percentageRate":
                parsed[column] = _amount(data, key)
            elif key == "minimumPurchase":
                parsed[column] = _cents(data, key)
            elif key in ("startDate", "endDate"):
                parsed[column] = _datetime(data, key)
            elif key == "isActive":
                parsed[column] = _bool(data, key)

        for column in cls.NOT_NULL:
            if column in parsed and parsed[column] is None:
                raise InvalidInput(f"{column} cannot be null")
        return cls(fields=parsed)


@dataclass(frozen=True)
class CouponIssue:
    value: int
    usage_limit: int
    campaign_id: int | None = None
    customer_id: int | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "CouponIssue":
        data = check_fields(payload, {"value", "usageLimit"}, {"campaignId", "customerId"})
        return cls(
            value=_int(data, "value"),
            usage_limit=_int(data, "usageLimit"),
            campaign_id=_int(data, "campaignId", minimum=1),
            customer_id=_int(data, "customerId", minimum=1),
        )


@dataclass(frozen=True)
class PointsRedemption:
    points_to_redeem: int
    reward_description: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "PointsRedemption":
        data = check_fields(payload, {"pointsToRedeem"}, {"rewardDescription"})
        points = _int(data, "pointsToRedeem")
        if points < 1:
            raise InvalidInput("Must redeem at least 1 point")
        return cls(points_to_redeem=points, reward_description=_text(data, "rewardDescription"))


@dataclass(frozen=True)
class PointsAdjustment:
    points: int
    reason: str

    @classmethod
    def from_payload(cls, payload: Any) -> "PointsAdjustment":
        data = check_fields(payload, {"points", "reason"})
        return cls(points=_int(data, "points"), reason=_text(data, "reason"))


@dataclass(frozen=True)
class SaleItem:
    quantity: int
    product_id: int | None = None
    product_name: str | None = None
    unit_price: Decimal | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "SaleItem":
        data = check_fields(payload, {"quantity"}, {"productId", "productName", "unitPrice"})
        item = cls(
            quantity=_int(data, "quantity", minimum=1),
            product_id=_int(data, "productId", minimum=1),
            product_name=_text(data, "productName"),
            unit_price=_amount(data, "unitPrice"),
        )
        if item.product_id is None and item.unit_price is None:
            raise InvalidInput("Each item needs a productId or a unitPrice")
        return item


MAX_SALE_ITEMS = 200


@dataclass(frozen=True)
class SaleRequest:
    """
    POS sale. Either a plain `amount`, or `items` (amount then defaults to
    the sum of the lines), or both (amount is the till total).
    """
    amount: Decimal | None = None
    customer_id: int | None = None
    phone_number: str | None = None
    campaign_id: int | None = None
    sale_reference: str | None = None
    items: tuple[SaleItem, ...] = ()

    @classmethod
    def from_payload(cls, payload: Any, require_customer: bool = True) -> "SaleRequest":
        data = check_fields(
            payload, set(), {"amount", "items", "customerId", "phoneNumber", "campaignId", "saleReference"},
        )
        items = data.get("items")
        if items is not None:
            if not isinstance(items, list) or not items:
                raise InvalidInput("items must be a non-empty list")
            if len(items) > MAX_SALE_ITEMS:
                raise InvalidInput(f"A sale can have at most {MAX_SALE_ITEMS} items")
            items = tuple(SaleItem.from_payload(i) for i in items)
        sale = cls(
            amount=_amount(data, "amount"),
            customer_id=_int(data, "customerId", minimum=1),
            phone_number=_text(data, "phoneNumber", max_length=32),
            campaign_id=_int(data, "campaignId", minimum=1),
            sale_reference=_text(data, "saleReference", max_length=64),
            items=items or (),
        )
        if sale.amount is None and not sale.items:
            raise InvalidInput("amount or items is required")
        if require_customer and sale.customer_id is None and sale.phone_number is None:
            raise InvalidInput("customerId or phoneNumber is required")
        return sale


@dataclass(frozen=True)
class ProductInput:
    """Create (partial=False) or PATCH (partial=True) body for a product."""
    fields: dict

    FIELD_MAP = {
        "productCode": "product_code",
        "name": "name",
        "sku": "sku",
        "category": "category",
        "description": "description",
        "price": "price_cents",
        "pointCalculationType": "point_calculation_type",
        "fixedPoints": "fixed_points",
        "percentageRate": "percentage_rate",
        "minimumQuantity": "minimum_quantity",
        "bonusMultiplier": "bonus_multiplier",
        "isActive": "is_active",
    }
    NOT_NULL = ("product_code", "name", "price_cents", "point_calculation_type",
                "minimum_quantity", "bonus_multiplier", "is_active")

    @classmethod
    def from_payload(cls, payload: Any, partial: bool = False) -> "ProductInput":
        required = set() if partial else {"productCode", "name"}
        allowed = set(cls.FIELD_MAP) - required
        if partial:
            allowed.discard("productCode")
        data = check_fields(payload, required, allowed)

        parsed: dict = {}
        for key, column in cls.FIELD_MAP.items():
            if key not in data:
                continue
            if key == "productCode":
                parsed[column] = _text(data, key, max_length=64)
            elif key in ("name", "category"):
                parsed[column] = _text(data, key, max_length=MAX_NAME_LENGTH if key == "name" else 128)
            elif key == "sku":
                parsed[column] = _text(data, key, max_length=64)
            elif key == "description":
                parsed[column] = _text(data, key, max_length=4000, allow_blank=True)
            elif key == "price":
                parsed[column] = _cents(data, key)
            elif key == "pointCalculationType":
                parsed[column] = _text(data, key, max_length=16)
            elif key in ("fixedPoints", "minimumQuantity"):
                parsed[column] = _int(data, key, minimum=0)
            elif key in ("percentageRate", "bonusMultiplier"):
                parsed[column] = _amount(data, key)
            elif key == "isActive":
                parsed[column] = _bool(data, key)

        for column in cls.NOT_NULL:
            if column in parsed and parsed[column] is None:
                raise InvalidInput(f"{column} cannot be null")
        return cls(fields=parsed)


@dataclass(frozen=True)
class PointTierInput:
    min_amount_cents: int
    points: int
    max_amount_cents: int | None = None
    multiplier: Decimal | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "PointTierInput":
        data = check_fields(payload, {"minAmount", "points"}, {"maxAmount", "multiplier"})
        return cls(
            min_amount_cents=_cents(data, "minAmount"),
            points=_int(data, "points", minimum=0),
            max_amount_cents=_cents(data, "maxAmount"),
            multiplier=_amount(data, "multiplier"),
        )


@dataclass(frozen=True)
class BillSubmissionInput:
    customer_id: int
    total_amount: Decimal
    campaign_id: int | None = None
    bill_reference: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "BillSubmissionInput":
        data = check_fields(payload, {"customerId", "totalAmount"}, {"campaignId", "billReference"})
        return cls(
            customer_id=_int(data, "customerId", minimum=1),
            total_amount=_amount(data, "totalAmount"),
            campaign_id=_int(data, "campaignId", minimum=1),
            bill_reference=_text(data, "billReference", max_length=128),
        )


@dataclass(frozen=True)
class BillVerification:
    status: str
    verified_by: str
    points_awarded: int | None = None
    notes: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "BillVerification":
        data = check_fields(payload, {"status", "verifiedBy"}, {"pointsAwarded", "notes"})
        return cls(
            status=_text(data, "status", max_length=16).lower(),
            verified_by=_text(data, "verifiedBy", max_length=128),
            points_awarded=_int(data, "pointsAwarded", minimum=0),
            notes=_text(data, "notes", max_length=4000, allow_blank=True),
        )


@dataclass(frozen=True)
class BroadcastRequest:
    message: str
    customer_ids: tuple[int, ...] | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "BroadcastRequest":
        data = check_fields(payload, {"message"}, {"customerIds"})
        ids = data.get("customerIds")
        if ids is not None:
            if not isinstance(ids, list):
                raise InvalidInput("customerIds must be a list")
            ids = tuple(_int({"customerId": v}, "customerId", minimum=1) for v in ids)
        return cls(message=_text(data, "message", max_length=4000), customer_ids=ids)
