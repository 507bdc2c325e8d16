"""Billing provider capability and its Stripe implementation."""
from __future__ import annotations

import asyncio
import functools
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence

import stripe

from .exceptions import BillingProviderError

Payload = Dict[str, Any]


class BillingProvider(Protocol):
    """Operations consumed from the external billing provider.

    Results are plain provider payloads (mappings); normalization happens in
    :mod:`.fetcher`. Implementations raise :class:`BillingProviderError` for
    any failure other than "customer does not exist".
    """

    async def create_customer(
        self,
        *,
        email: Optional[str],
        metadata: Mapping[str, str],
        idempotency_key: Optional[str] = None,
    ) -> Payload:
        ...

    async def retrieve_customer(self, customer_id: str) -> Optional[Payload]:
        """Return the customer, or ``None`` when the provider has no such customer."""

    async def retrieve_price(self, price_id: str) -> Payload:
        ...

    async def list_prices(self) -> Sequence[Payload]:
        ...

    async def list_subscriptions(self, customer_id: str) -> Sequence[Payload]:
        ...

    async def list_payment_intents(self, customer_id: str, *, limit: int = 100) -> Sequence[Payload]:
        ...

    async def create_checkout_session(self, params: Mapping[str, Any]) -> Payload:
        ...

    async def create_portal_session(self, params: Mapping[str, Any]) -> Payload:
        ...


def _to_payload(obj: Any) -> Payload:
    if obj is None:
        return {}
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


def _list_data(obj: Any) -> List[Payload]:
    payload = _to_payload(obj)
    return [item if isinstance(item, dict) else _to_payload(item) for item in payload.get("data") or []]


def _is_missing_resource(exc: stripe.StripeError) -> bool:
    return getattr(exc, "code", None) == "resource_missing" or getattr(exc, "http_status", None) == 404


class StripeBillingProvider:
    """Runs the synchronous ``stripe`` SDK calls on the default executor."""

    def __init__(self, api_key: str) -> None:
        if not api_key:
            raise ValueError("api_key must be provided")
        self._api_key = api_key

    async def _call(self, operation: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        kwargs.setdefault("api_key", self._api_key)
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))
        except stripe.StripeError as exc:
            raise BillingProviderError(operation, str(exc)) from exc

    async def create_customer(
        self,
        *,
        email: Optional[str],
        metadata: Mapping[str, str],
        idempotency_key: Optional[str] = None,
    ) -> Payload:
        kwargs: Dict[str, Any] = {"email": email, "metadata": dict(metadata)}
        if idempotency_key:
            kwargs["idempotency_key"] = idempotency_key
        customer = await self._call("create_customer", stripe.Customer.create, **kwargs)
        return _to_payload(customer)

    async def retrieve_customer(self, customer_id: str) -> Optional[Payload]:
        loop = asyncio.get_running_loop()
        call = functools.partial(stripe.Customer.retrieve, customer_id, api_key=self._api_key)
        try:
            customer = await loop.run_in_executor(None, call)
        except stripe.InvalidRequestError as exc:
            if _is_missing_resource(exc):
                return None
            raise BillingProviderError("retrieve_customer", str(exc)) from exc
        except stripe.StripeError as exc:
            raise BillingProviderError("retrieve_customer", str(exc)) from exc
        return _to_payload(customer)

    async def retrieve_price(self, price_id: str) -> Payload:
        price = await self._call("retrieve_price", stripe.Price.retrieve, price_id)
        return _to_payload(price)

    async def list_prices(self) -> Sequence[Payload]:
        prices = await self._call("list_prices", stripe.Price.list, active=True, limit=100)
        return _list_data(prices)

    async def list_subscriptions(self, customer_id: str) -> Sequence[Payload]:
        subscriptions = await self._call(
            "list_subscriptions", stripe.Subscription.list, customer=customer_id
        )
        return _list_data(subscriptions)

    async def list_payment_intents(self, customer_id: str, *, limit: int = 100) -> Sequence[Payload]:
        # TODO: page past the first 100 intents with auto_paging_iter for long-lived customers.
        intents = await self._call(
            "list_payment_intents",
            stripe.PaymentIntent.list,
            customer=customer_id,
            limit=limit,
            expand=["data.latest_charge"],
        )
        return _list_data(intents)

    async def create_checkout_session(self, params: Mapping[str, Any]) -> Payload:
        session = await self._call("create_checkout_session", stripe.checkout.Session.create, **params)
        return _to_payload(session)

    async def create_portal_session(self, params: Mapping[str, Any]) -> Payload:
        session = await self._call(
            "create_portal_session", stripe.billing_portal.Session.create, **params
        )
        return _to_payload(session)


__all__ = ["BillingProvider", "Payload", "StripeBillingProvider"]
