"""Facade tying customer resolution, caching and sessions together."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from ..accounts import Account
from .fetcher import BillingRecordFetcher, get_price_by_id
from .models import Price, PriceCatalog
from .refresh import EntitlementState, RefreshController
from .sessions import SessionInitiator


@dataclass
class PaymentsService:
    """Entry points used by the HTTP layer."""

    controller: RefreshController
    sessions: SessionInitiator
    fetcher: BillingRecordFetcher
    success_path: str = "/account"
    cancel_path: str = "/"
    portal_return_path: str = "/account"

    async def entitlement_state(
        self, account: Optional[Account], *, force_refresh: bool = False
    ) -> EntitlementState:
        return await self.controller.resolve(account, force_refresh=force_refresh)

    async def price_catalog(self) -> PriceCatalog:
        return await self.controller.cached_prices()

    async def find_price(self, key: str) -> Optional[Price]:
        """Look a price up by slug name, then by provider id."""

        prices = await self.price_catalog()
        return prices.get(key) or get_price_by_id(prices, key)

    async def start_checkout(
        self,
        account: Optional[Account],
        price_key: str,
        *,
        success_url: str,
        cancel_url: str,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> str:
        if account is None:
            return cancel_url
        price = await self.find_price(price_key)
        return await self.sessions.initiate_payment(
            account, price, success_url, cancel_url, metadata
        )

    async def portal_url(self, account: Optional[Account], return_url: str) -> str:
        return await self.sessions.send_to_portal(account, return_url)

    async def validate_price_catalog(self, price_ids: Optional[tuple[str, ...]] = None) -> PriceCatalog:
        """Fetch prices straight from the provider, raising on name collisions in strict mode."""

        return await self.fetcher.fetch_prices(price_ids or None)

    async def aclose(self) -> None:
        await self.controller.close()


__all__ = ["PaymentsService"]
