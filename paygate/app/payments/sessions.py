"""Builds provider checkout and billing-portal sessions.

Both initiators return the URL the caller should redirect to (303). Provider
failures never escape: checkout falls back to the cancel URL and the portal
falls back to the plain return URL.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..accounts import Account
from .customers import CustomerResolver
from .exceptions import PaymentsError
from .models import CheckoutMode, Price
from .provider import BillingProvider
from .refresh import append_refresh_signal

logger = logging.getLogger(__name__)


class SessionMetadata(BaseModel):
    """Metadata attached to checkouts; read back by the record fetch filters."""

    user_id: str = Field(alias="user-id")
    price_id: str = Field(alias="price-id")
    price_description: Optional[str] = Field(alias="price-description", default=None)
    price_name: str = Field(alias="price-name")
    type: CheckoutMode
    extra: Dict[str, str] = Field(default_factory=dict, exclude=True)

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_provider(self) -> Dict[str, str]:
        fields = self.model_dump(by_alias=True, exclude_none=True, mode="json")
        return {**self.extra, **fields}


class LineItem(BaseModel):
    price: str
    quantity: int = 1

    model_config = ConfigDict(frozen=True)


class CheckoutSessionRequest(BaseModel):
    """Explicit shape of the checkout-session create call."""

    customer: str
    mode: CheckoutMode
    line_items: List[LineItem]
    metadata: SessionMetadata
    success_url: str
    cancel_url: str
    billing_address_collection: str = "auto"
    allow_promotion_codes: bool = True

    model_config = ConfigDict(frozen=True)

    def to_params(self) -> Dict[str, Any]:
        metadata = self.metadata.to_provider()
        # The nested slot is what the provider copies onto the payment intent or subscription.
        nested_key = (
            "subscription_data" if self.mode is CheckoutMode.SUBSCRIPTION else "payment_intent_data"
        )
        return {
            "customer": self.customer,
            "mode": self.mode.value,
            "line_items": [item.model_dump() for item in self.line_items],
            "metadata": metadata,
            nested_key: {"metadata": dict(metadata)},
            "success_url": self.success_url,
            "cancel_url": self.cancel_url,
            "billing_address_collection": self.billing_address_collection,
            "allow_promotion_codes": self.allow_promotion_codes,
        }


class PortalSessionRequest(BaseModel):
    customer: str
    return_url: str
    configuration: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    def to_params(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class SessionInitiator:
    """Starts checkout and portal flows for an account."""

    def __init__(
        self,
        provider: BillingProvider,
        resolver: CustomerResolver,
        *,
        portal_configuration_id: Optional[str] = None,
    ) -> None:
        self._provider = provider
        self._resolver = resolver
        self._portal_configuration_id = portal_configuration_id

    def build_checkout_request(
        self,
        account: Account,
        customer_id: str,
        price: Price,
        success_url: str,
        cancel_url: str,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> CheckoutSessionRequest:
        mode = price.type.checkout_mode
        session_metadata = SessionMetadata(
            user_id=account.id,
            price_id=price.id,
            price_description=price.nickname,
            price_name=price.name,
            type=mode,
            extra=dict(metadata or {}),
        )
        return CheckoutSessionRequest(
            customer=customer_id,
            mode=mode,
            line_items=[LineItem(price=price.id)],
            metadata=session_metadata,
            success_url=append_refresh_signal(success_url),
            cancel_url=cancel_url,
        )

    async def initiate_payment(
        self,
        account: Optional[Account],
        price: Optional[Price],
        success_url: str,
        cancel_url: str,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> str:
        """Return the checkout URL, or ``cancel_url`` when checkout cannot start."""

        if account is None or not account.id or price is None:
            return cancel_url
        try:
            customer_id = await self._resolver.ensure_customer_id(account)
            request = self.build_checkout_request(
                account, customer_id, price, success_url, cancel_url, metadata
            )
            session = await self._provider.create_checkout_session(request.to_params())
        except PaymentsError:
            logger.exception("Could not start checkout for account %s price %s", account.id, price.id)
            return cancel_url
        return str(session.get("url") or cancel_url)

    async def send_to_portal(self, account: Optional[Account], return_url: str) -> str:
        """Return the portal URL, or the bare ``return_url`` without a customer."""

        if account is None:
            return return_url
        try:
            customer_id = await self._resolver.resolve_customer_id(account, verify=True)
        except PaymentsError:
            logger.exception("Could not verify customer for account %s", account.id)
            return return_url
        if not customer_id:
            return return_url

        request = PortalSessionRequest(
            customer=customer_id,
            return_url=append_refresh_signal(return_url),
            configuration=self._portal_configuration_id,
        )
        try:
            session = await self._provider.create_portal_session(request.to_params())
        except PaymentsError:
            logger.exception("Could not open billing portal for customer %s", customer_id)
            return return_url
        return str(session.get("url") or return_url)


__all__ = [
    "CheckoutSessionRequest",
    "LineItem",
    "PortalSessionRequest",
    "SessionInitiator",
    "SessionMetadata",
]
