"""Application wiring for the payments service."""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from ..accounts import AccountRepository, PostgresAccountRepository
from ..payments import (
    BillingProvider,
    BillingRecordFetcher,
    CacheStore,
    CustomerResolver,
    InMemoryCacheStore,
    PaymentsService,
    RedisCacheStore,
    RefreshController,
    SessionInitiator,
    StripeBillingProvider,
)
from ..payments.config import PaymentsConfig, load_payments_config

logger = logging.getLogger("payments")


def create_cache_store(config: PaymentsConfig) -> CacheStore:
    if config.cache_url:
        logger.info("Using networked payments cache")
        return RedisCacheStore.from_url(config.cache_url)
    return InMemoryCacheStore()


def build_payments_service(
    config: PaymentsConfig,
    *,
    cache: Optional[CacheStore] = None,
    provider: Optional[BillingProvider] = None,
    accounts: Optional[AccountRepository] = None,
) -> PaymentsService:
    cache = cache if cache is not None else create_cache_store(config)
    provider = provider if provider is not None else StripeBillingProvider(config.stripe_secret_key)
    accounts = accounts if accounts is not None else PostgresAccountRepository()

    fetcher = BillingRecordFetcher(
        provider,
        strict_price_names=config.strict_price_names,
        timeout_seconds=config.provider_timeout_seconds,
    )
    resolver = CustomerResolver(provider, accounts)
    controller = RefreshController(
        cache,
        fetcher,
        resolver,
        price_ids=config.price_ids,
        price_ttl=config.price_cache_ttl,
        payments_ttl=config.payments_cache_ttl,
    )
    sessions = SessionInitiator(
        provider,
        resolver,
        portal_configuration_id=config.portal_configuration_id,
    )
    return PaymentsService(
        controller=controller,
        sessions=sessions,
        fetcher=fetcher,
        success_path=config.success_path,
        cancel_path=config.cancel_path,
        portal_return_path=config.portal_return_path,
    )


@lru_cache(maxsize=1)
def get_payments_config() -> PaymentsConfig:
    return load_payments_config()


@lru_cache(maxsize=1)
def get_payments_service() -> PaymentsService:
    return build_payments_service(get_payments_config())


__all__ = [
    "build_payments_service",
    "create_cache_store",
    "get_payments_config",
    "get_payments_service",
]
