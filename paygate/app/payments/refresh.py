"""Cache-backed entitlement reads with an explicit force-refresh path."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, Mapping, Optional, Sequence
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pydantic import TypeAdapter, ValidationError

from ..accounts import Account
from .cache import CacheStore, SingleFlight
from .customers import CustomerResolver
from .evaluator import select_active_plan
from .fetcher import BillingRecordFetcher
from .models import ActivePlan, BillingSnapshot, Price, PriceCatalog

logger = logging.getLogger(__name__)

REFRESH_PARAM = "refresh"
PRICE_CACHE_TTL = timedelta(minutes=5)
PAYMENTS_CACHE_TTL = timedelta(minutes=60)

_catalog_adapter = TypeAdapter(Dict[str, Price])


def has_refresh_signal(query: Mapping[str, str]) -> bool:
    return REFRESH_PARAM in query


def strip_refresh_signal(url: str) -> str:
    parts = urlsplit(url)
    query = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key != REFRESH_PARAM
    ]
    return urlunsplit(parts._replace(query=urlencode(query)))


def append_refresh_signal(url: str) -> str:
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    if any(key == REFRESH_PARAM for key, _ in query):
        return url
    query.append((REFRESH_PARAM, ""))
    return urlunsplit(parts._replace(query=urlencode(query)))


class RefreshState(str, Enum):
    NORMAL = "normal"
    FORCE_REFRESH = "force_refresh"


@dataclass(frozen=True)
class EntitlementState:
    """Outcome of one resolution cycle for an account."""

    state: RefreshState
    customer_id: Optional[str]
    prices: PriceCatalog = field(default_factory=dict)
    snapshot: Optional[BillingSnapshot] = None
    evaluated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def active_plan(self) -> Optional[ActivePlan]:
        return select_active_plan(self.snapshot, self.evaluated_at)

    @property
    def requires_redirect(self) -> bool:
        return self.state is RefreshState.FORCE_REFRESH


class RefreshController:
    """Serves prices and billing snapshots from the cache, refetching on miss."""

    def __init__(
        self,
        cache: CacheStore,
        fetcher: BillingRecordFetcher,
        resolver: CustomerResolver,
        *,
        price_ids: Sequence[str] = (),
        price_ttl: timedelta = PRICE_CACHE_TTL,
        payments_ttl: timedelta = PAYMENTS_CACHE_TTL,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._cache = cache
        self._fetcher = fetcher
        self._resolver = resolver
        self._price_ids = tuple(price_ids)
        self._price_ttl = price_ttl
        self._payments_ttl = payments_ttl
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._inflight = SingleFlight()

    @property
    def prices_key(self) -> str:
        return "prices:" + (",".join(sorted(self._price_ids)) or "*")

    @staticmethod
    def payments_key(customer_id: str) -> str:
        return f"payments:{customer_id}"

    async def _read(self, key: str) -> Optional[str]:
        try:
            return await self._cache.get(key)
        except Exception:
            logger.exception("Cache read failed for %s", key)
            return None

    async def _write(self, key: str, value: str, ttl: timedelta) -> None:
        try:
            await self._cache.set(key, value, ttl)
        except Exception:
            logger.exception("Cache write failed for %s", key)

    async def cached_prices(self) -> PriceCatalog:
        key = self.prices_key
        raw = await self._read(key)
        if raw is not None:
            try:
                return _catalog_adapter.validate_json(raw)
            except ValidationError:
                logger.warning("Discarding unreadable cached prices under %s", key)
        return await self._inflight.run(key, self._load_prices)

    async def _load_prices(self) -> PriceCatalog:
        try:
            prices = await self._fetcher.fetch_prices(self._price_ids or None)
        except Exception:
            logger.exception("Error refreshing price info")
            return {}
        if prices:
            payload = _catalog_adapter.dump_json(prices).decode("utf-8")
            await self._write(self.prices_key, payload, self._price_ttl)
        return prices

    async def cached_snapshot(
        self,
        customer_id: Optional[str],
        prices: Mapping[str, Price],
        *,
        force_refresh: bool = False,
    ) -> Optional[BillingSnapshot]:
        """Return the customer's record set, fetching when absent, expired or forced.

        A forced refresh never joins an in-flight load started before it, so
        its cache write is strictly newer than whatever it replaced.
        """

        if not customer_id or not prices:
            return None
        key = self.payments_key(customer_id)
        if force_refresh:
            return await self._load_snapshot(customer_id, prices)

        raw = await self._read(key)
        if raw is not None:
            try:
                return BillingSnapshot.model_validate_json(raw)
            except ValidationError:
                logger.warning("Discarding unreadable cached payments under %s", key)
        return await self._inflight.run(key, lambda: self._load_snapshot(customer_id, prices))

    async def _load_snapshot(
        self, customer_id: str, prices: Mapping[str, Price]
    ) -> Optional[BillingSnapshot]:
        snapshot = await self._fetcher.fetch_all(customer_id, prices)
        # "No data" is not cached so the next request retries the provider.
        if snapshot is not None:
            await self._write(
                self.payments_key(customer_id), snapshot.model_dump_json(), self._payments_ttl
            )
        return snapshot

    async def close(self) -> None:
        close = getattr(self._cache, "close", None)
        if close is not None:
            await close()

    async def resolve(self, account: Optional[Account], *, force_refresh: bool = False) -> EntitlementState:
        state = RefreshState.FORCE_REFRESH if force_refresh else RefreshState.NORMAL
        customer_id = None
        if account is not None:
            customer_id = await self._resolver.resolve_customer_id(account)
        if not customer_id:
            return EntitlementState(state=state, customer_id=None, evaluated_at=self._clock())

        prices = await self.cached_prices()
        snapshot = await self.cached_snapshot(customer_id, prices, force_refresh=force_refresh)
        return EntitlementState(
            state=state,
            customer_id=customer_id,
            prices=prices,
            snapshot=snapshot,
            evaluated_at=self._clock(),
        )


__all__ = [
    "EntitlementState",
    "PAYMENTS_CACHE_TTL",
    "PRICE_CACHE_TTL",
    "REFRESH_PARAM",
    "RefreshController",
    "RefreshState",
    "append_refresh_signal",
    "has_refresh_signal",
    "strip_refresh_signal",
]
