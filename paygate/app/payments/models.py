"""Domain models for billing records and the entitlement they grant."""
from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

PRICE_SLUG_RE = re.compile(r"[^a-z0-9_]+")


def slugify_price_name(value: str) -> str:
    slug = PRICE_SLUG_RE.sub("-", value.strip().lower())
    return slug.strip("-")


class PriceType(str, Enum):
    """Billing schemes supported by the provider."""

    ONE_TIME = "one_time"
    RECURRING = "recurring"

    @property
    def checkout_mode(self) -> "CheckoutMode":
        if self is PriceType.RECURRING:
            return CheckoutMode.SUBSCRIPTION
        return CheckoutMode.PAYMENT


class CheckoutMode(str, Enum):
    """Checkout session modes; also used as the payment ``type`` tag."""

    PAYMENT = "payment"
    SUBSCRIPTION = "subscription"


class PriceMetadata(BaseModel):
    """Validity rules read from the price's provider metadata."""

    validity_minutes: Optional[int] = None
    lifetime: bool = False

    model_config = ConfigDict(frozen=True)


class Price(BaseModel):
    """A purchasable price as returned by the billing provider."""

    id: str
    nickname: Optional[str] = None
    unit_amount: Optional[int] = None
    currency: Optional[str] = None
    type: PriceType = PriceType.RECURRING
    active: bool = True
    metadata: PriceMetadata = Field(default_factory=PriceMetadata)

    model_config = ConfigDict(frozen=True)

    @property
    def name(self) -> str:
        """Slug key derived from the nickname, falling back to the id."""

        return slugify_price_name(self.nickname or self.id)


class Charge(BaseModel):
    id: str
    refunded: bool = False
    receipt_url: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class Subscription(BaseModel):
    """Provider subscription reduced to the fields entitlement needs."""

    id: str
    price_id: str
    plan_nickname: Optional[str] = None
    status: Optional[str] = None
    paused: bool = False

    model_config = ConfigDict(frozen=True)


class Payment(BaseModel):
    """One-time payment intent linked to a price through its metadata."""

    id: str
    created: datetime
    price_id: str
    type_tag: Optional[str] = None
    amount: Optional[int] = None
    charges: Tuple[Charge, ...] = ()

    model_config = ConfigDict(frozen=True)

    @property
    def refunded(self) -> bool:
        return any(charge.refunded for charge in self.charges)

    @property
    def receipt_urls(self) -> Tuple[str, ...]:
        return tuple(charge.receipt_url for charge in self.charges if charge.receipt_url)


class SubscriptionRecord(BaseModel):
    """A fetched subscription paired with its resolved price."""

    subscription: Subscription
    price: Price

    model_config = ConfigDict(frozen=True)

    @property
    def id(self) -> str:
        return self.subscription.id


class PaymentRecord(BaseModel):
    """A fetched payment paired with its resolved price."""

    payment: Payment
    price: Price

    model_config = ConfigDict(frozen=True)

    @property
    def id(self) -> str:
        return self.payment.id


ActivePlan = Union[SubscriptionRecord, PaymentRecord]


class BillingSnapshot(BaseModel):
    """The raw record set cached per customer; entitlement is derived from it."""

    customer_id: str
    subscriptions: Tuple[SubscriptionRecord, ...] = ()
    payments: Tuple[PaymentRecord, ...] = ()
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


PriceCatalog = Dict[str, Price]


__all__ = [
    "ActivePlan",
    "BillingSnapshot",
    "Charge",
    "CheckoutMode",
    "Payment",
    "PaymentRecord",
    "Price",
    "PriceCatalog",
    "PriceMetadata",
    "PriceType",
    "Subscription",
    "SubscriptionRecord",
    "slugify_price_name",
]
