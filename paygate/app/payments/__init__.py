"""Entitlement resolution against billing-provider records."""

from .cache import CacheStore, InMemoryCacheStore, RedisCacheStore, SingleFlight
from .customers import CustomerResolver
from .evaluator import (
    is_active_payment,
    is_lifetime_payment,
    is_paused,
    is_refunded,
    plan_name,
    select_active_plan,
)
from .exceptions import (
    AccountStoreError,
    BillingProviderError,
    CustomerPersistenceError,
    PaymentsError,
    PlanRequiredError,
    PriceCatalogError,
)
from .fetcher import BillingRecordFetcher, build_price_catalog, get_price_by_id
from .gating import require_active_plan
from .models import (
    ActivePlan,
    BillingSnapshot,
    Charge,
    CheckoutMode,
    Payment,
    PaymentRecord,
    Price,
    PriceMetadata,
    PriceType,
    Subscription,
    SubscriptionRecord,
)
from .provider import BillingProvider, StripeBillingProvider
from .refresh import (
    EntitlementState,
    RefreshController,
    RefreshState,
    append_refresh_signal,
    has_refresh_signal,
    strip_refresh_signal,
)
from .service import PaymentsService
from .sessions import SessionInitiator

__all__ = [
    "AccountStoreError",
    "ActivePlan",
    "BillingProvider",
    "BillingProviderError",
    "BillingRecordFetcher",
    "BillingSnapshot",
    "CacheStore",
    "Charge",
    "CheckoutMode",
    "CustomerPersistenceError",
    "CustomerResolver",
    "EntitlementState",
    "InMemoryCacheStore",
    "Payment",
    "PaymentRecord",
    "PaymentsError",
    "PaymentsService",
    "PlanRequiredError",
    "Price",
    "PriceCatalogError",
    "PriceMetadata",
    "PriceType",
    "RedisCacheStore",
    "RefreshController",
    "RefreshState",
    "SessionInitiator",
    "SingleFlight",
    "StripeBillingProvider",
    "Subscription",
    "SubscriptionRecord",
    "append_refresh_signal",
    "build_price_catalog",
    "get_price_by_id",
    "has_refresh_signal",
    "is_active_payment",
    "is_lifetime_payment",
    "is_paused",
    "is_refunded",
    "plan_name",
    "require_active_plan",
    "select_active_plan",
    "strip_refresh_signal",
]
