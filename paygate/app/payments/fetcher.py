"""Fetches billing records from the provider and normalizes them."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple

from .exceptions import PriceCatalogError
from .models import (
    BillingSnapshot,
    Charge,
    CheckoutMode,
    Payment,
    PaymentRecord,
    Price,
    PriceCatalog,
    PriceMetadata,
    PriceType,
    Subscription,
    SubscriptionRecord,
)
from .provider import BillingProvider

logger = logging.getLogger(__name__)

PAYMENT_INTENT_LIMIT = 100
PRICE_ID_METADATA_KEY = "price-id"
TYPE_METADATA_KEY = "type"


def _to_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _to_minutes(value: object) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        logger.warning("Ignoring non-numeric price validity %r", value)
        return None


def _metadata(payload: Mapping[str, Any]) -> Dict[str, Any]:
    value = payload.get("metadata")
    return dict(value) if isinstance(value, Mapping) else {}


def _price_from_payload(payload: Mapping[str, Any]) -> Price:
    metadata = _metadata(payload)
    return Price(
        id=str(payload["id"]),
        nickname=payload.get("nickname") or None,
        unit_amount=payload.get("unit_amount"),
        currency=payload.get("currency"),
        type=PriceType(payload.get("type") or PriceType.RECURRING.value),
        active=bool(payload.get("active", True)),
        metadata=PriceMetadata(
            validity_minutes=_to_minutes(metadata.get("validity")),
            lifetime=_to_bool(metadata.get("lifetime")),
        ),
    )


def _subscription_price_id(payload: Mapping[str, Any]) -> Optional[str]:
    plan = payload.get("plan")
    if isinstance(plan, Mapping) and plan.get("id"):
        return str(plan["id"])
    items = payload.get("items")
    if isinstance(items, Mapping):
        for item in items.get("data") or []:
            price = item.get("price") if isinstance(item, Mapping) else None
            if isinstance(price, Mapping) and price.get("id"):
                return str(price["id"])
    return None


def _subscription_from_payload(payload: Mapping[str, Any], price_id: str) -> Subscription:
    plan = payload.get("plan") if isinstance(payload.get("plan"), Mapping) else {}
    return Subscription(
        id=str(payload["id"]),
        price_id=price_id,
        plan_nickname=plan.get("nickname"),
        status=payload.get("status"),
        paused=bool(payload.get("pause_collection")),
    )


def _charges_from_payload(payload: Mapping[str, Any]) -> Tuple[Charge, ...]:
    charges = payload.get("charges")
    if isinstance(charges, Mapping):
        raw_charges: Iterable[Any] = charges.get("data") or []
    elif isinstance(payload.get("latest_charge"), Mapping):
        raw_charges = [payload["latest_charge"]]
    else:
        raw_charges = []
    return tuple(
        Charge(
            id=str(charge.get("id", "")),
            refunded=bool(charge.get("refunded")),
            receipt_url=charge.get("receipt_url"),
        )
        for charge in raw_charges
        if isinstance(charge, Mapping)
    )


def _payment_from_payload(payload: Mapping[str, Any]) -> Payment:
    metadata = _metadata(payload)
    return Payment(
        id=str(payload["id"]),
        created=datetime.fromtimestamp(int(payload["created"]), tz=timezone.utc),
        price_id=str(metadata[PRICE_ID_METADATA_KEY]),
        type_tag=metadata.get(TYPE_METADATA_KEY),
        amount=payload.get("amount"),
        charges=_charges_from_payload(payload),
    )


def build_price_catalog(prices: Iterable[Price], *, strict: bool = False) -> PriceCatalog:
    """Key prices by their slug name; later prices shadow earlier ones unless ``strict``."""

    catalog: PriceCatalog = {}
    for price in prices:
        existing = catalog.get(price.name)
        if existing is not None and existing.id != price.id:
            if strict:
                raise PriceCatalogError(
                    f"Prices {existing.id} and {price.id} share the name {price.name!r}"
                )
            logger.warning(
                "Price %s shadows %s under name %r", price.id, existing.id, price.name
            )
        catalog[price.name] = price
    return catalog


def get_price_by_id(prices: Mapping[str, Price], price_id: str) -> Optional[Price]:
    for price in prices.values():
        if price.id == price_id:
            return price
    return None


def _index_by_id(prices: Mapping[str, Price]) -> Dict[str, Price]:
    return {price.id: price for price in prices.values()}


class BillingRecordFetcher:
    """Turns provider payloads into price-filtered, price-annotated records."""

    def __init__(
        self,
        provider: BillingProvider,
        *,
        strict_price_names: bool = False,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        self._provider = provider
        self._strict_price_names = strict_price_names
        self._timeout_seconds = timeout_seconds

    async def fetch_prices(self, price_ids: Optional[Sequence[str]] = None) -> PriceCatalog:
        logger.info("Refreshing price info from the billing provider")
        if price_ids:
            payloads = await asyncio.gather(
                *(self._provider.retrieve_price(price_id) for price_id in price_ids)
            )
        else:
            payloads = await self._provider.list_prices()
        prices = [_price_from_payload(payload) for payload in payloads]
        return build_price_catalog(prices, strict=self._strict_price_names)

    async def fetch_subscriptions(
        self, customer_id: str, prices: Mapping[str, Price]
    ) -> Tuple[SubscriptionRecord, ...]:
        by_id = _index_by_id(prices)
        records = []
        for payload in await self._provider.list_subscriptions(customer_id):
            price_id = _subscription_price_id(payload)
            if price_id is None or price_id not in by_id:
                continue
            records.append(
                SubscriptionRecord(
                    subscription=_subscription_from_payload(payload, price_id),
                    price=by_id[price_id],
                )
            )
        return tuple(records)

    async def fetch_payments(
        self, customer_id: str, prices: Mapping[str, Price]
    ) -> Tuple[PaymentRecord, ...]:
        by_id = _index_by_id(prices)
        payloads = await self._provider.list_payment_intents(
            customer_id, limit=PAYMENT_INTENT_LIMIT
        )
        records = []
        for payload in payloads:
            metadata = _metadata(payload)
            price_id = metadata.get(PRICE_ID_METADATA_KEY)
            if price_id not in by_id:
                continue
            # Intents created by subscription checkouts carry type="subscription".
            if metadata.get(TYPE_METADATA_KEY) != CheckoutMode.PAYMENT.value:
                continue
            records.append(
                PaymentRecord(payment=_payment_from_payload(payload), price=by_id[price_id])
            )
        return tuple(records)

    async def fetch_all(
        self, customer_id: Optional[str], prices: Mapping[str, Price]
    ) -> Optional[BillingSnapshot]:
        """Fetch subscriptions and payments together; ``None`` means no data."""

        if not customer_id:
            return None
        logger.info("Refreshing customer payments list: %s", customer_id)
        gathered = asyncio.gather(
            self.fetch_subscriptions(customer_id, prices),
            self.fetch_payments(customer_id, prices),
        )
        try:
            subscriptions, payments = await asyncio.wait_for(gathered, self._timeout_seconds)
        except Exception:
            logger.exception("Error refreshing payments for customer %s", customer_id)
            return None
        return BillingSnapshot(
            customer_id=customer_id,
            subscriptions=subscriptions,
            payments=payments,
        )


__all__ = ["BillingRecordFetcher", "build_price_catalog", "get_price_by_id"]
