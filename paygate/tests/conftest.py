from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pytest

from paygate.app.accounts import Account
from paygate.app.payments import (
    BillingProviderError,
    BillingRecordFetcher,
    CustomerResolver,
    InMemoryCacheStore,
    PaymentsService,
    RefreshController,
    SessionInitiator,
)
from paygate.tests.payloads import NOW, price_payload


class FakeBillingProvider:
    def __init__(self) -> None:
        self.prices: Dict[str, Dict[str, Any]] = {}
        self.customers: Dict[str, Dict[str, Any]] = {}
        self.subscriptions: Dict[str, List[Dict[str, Any]]] = {}
        self.intents: Dict[str, List[Dict[str, Any]]] = {}
        self.checkout_sessions: List[Dict[str, Any]] = []
        self.portal_sessions: List[Dict[str, Any]] = []
        self.created_customers: List[Dict[str, Any]] = []
        self.calls: List[str] = []
        self.fail_operations: set[str] = set()

    def _record(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.fail_operations:
            raise BillingProviderError(operation, "provider unavailable")

    def add_price(self, payload: Dict[str, Any]) -> None:
        self.prices[payload["id"]] = payload

    async def create_customer(
        self,
        *,
        email: Optional[str],
        metadata: Mapping[str, str],
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        self._record("create_customer")
        customer_id = f"cus_{len(self.created_customers) + 1}"
        customer = {"id": customer_id, "email": email, "metadata": dict(metadata)}
        self.customers[customer_id] = customer
        self.created_customers.append({**customer, "idempotency_key": idempotency_key})
        return customer

    async def retrieve_customer(self, customer_id: str) -> Optional[Dict[str, Any]]:
        self._record("retrieve_customer")
        return self.customers.get(customer_id)

    async def retrieve_price(self, price_id: str) -> Dict[str, Any]:
        self._record("retrieve_price")
        return self.prices[price_id]

    async def list_prices(self) -> Sequence[Dict[str, Any]]:
        self._record("list_prices")
        return list(self.prices.values())

    async def list_subscriptions(self, customer_id: str) -> Sequence[Dict[str, Any]]:
        self._record("list_subscriptions")
        return list(self.subscriptions.get(customer_id, []))

    async def list_payment_intents(self, customer_id: str, *, limit: int = 100) -> Sequence[Dict[str, Any]]:
        self._record("list_payment_intents")
        return list(self.intents.get(customer_id, []))[:limit]

    async def create_checkout_session(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        self._record("create_checkout_session")
        self.checkout_sessions.append(dict(params))
        return {"id": "cs_1", "url": "https://checkout.example/cs_1"}

    async def create_portal_session(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        self._record("create_portal_session")
        self.portal_sessions.append(dict(params))
        return {"id": "bps_1", "url": "https://portal.example/bps_1"}

    def provider_calls(self) -> List[str]:
        return [call for call in self.calls if call not in {"retrieve_price", "list_prices"}]


class InMemoryAccountRepository:
    def __init__(self) -> None:
        self.accounts: Dict[str, Account] = {}
        self.fail_saves = False
        self.saves: List[tuple[str, Optional[str]]] = []

    def add(self, account: Account) -> Account:
        self.accounts[account.id] = account
        return account

    def get_account(self, account_id: str) -> Optional[Account]:
        return self.accounts.get(account_id)

    def save_customer_id(self, account_id: str, customer_id: Optional[str]) -> Account:
        if self.fail_saves:
            raise RuntimeError("database unavailable")
        self.saves.append((account_id, customer_id))
        current = self.accounts.get(account_id) or Account(id=account_id)
        updated = current.model_copy(update={"provider_customer_id": customer_id})
        self.accounts[account_id] = updated
        return updated


class FakeClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def provider() -> FakeBillingProvider:
    fake = FakeBillingProvider()
    fake.add_price(price_payload("price_monthly", "Monthly"))
    fake.add_price(
        price_payload("price_day", "Day Pass", type="one_time", metadata={"validity": "1440"})
    )
    fake.add_price(
        price_payload("price_lifetime", "Lifetime", type="one_time", metadata={"lifetime": "true"})
    )
    return fake


@pytest.fixture
def accounts() -> InMemoryAccountRepository:
    return InMemoryAccountRepository()


@pytest.fixture
def cache(clock: FakeClock) -> InMemoryCacheStore:
    return InMemoryCacheStore(clock=clock)


@pytest.fixture
def fetcher(provider: FakeBillingProvider) -> BillingRecordFetcher:
    return BillingRecordFetcher(provider, timeout_seconds=5)


@pytest.fixture
def resolver(provider: FakeBillingProvider, accounts: InMemoryAccountRepository) -> CustomerResolver:
    return CustomerResolver(provider, accounts)


@pytest.fixture
def controller(cache, fetcher, resolver, clock) -> RefreshController:
    return RefreshController(
        cache,
        fetcher,
        resolver,
        price_ids=("price_monthly", "price_day", "price_lifetime"),
        clock=clock,
    )


@pytest.fixture
def sessions(provider, resolver) -> SessionInitiator:
    return SessionInitiator(provider, resolver, portal_configuration_id="bpc_123")


@pytest.fixture
def payments_service(controller, sessions, fetcher) -> PaymentsService:
    return PaymentsService(controller=controller, sessions=sessions, fetcher=fetcher)
