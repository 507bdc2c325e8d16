from __future__ import annotations

import asyncio

from paygate.app.accounts import Account

SUCCESS = "https://app.example/account"
CANCEL = "https://app.example/"


def _price(fetcher, name):
    prices = asyncio.run(fetcher.fetch_prices(["price_monthly", "price_day", "price_lifetime"]))
    return prices[name]


def test_recurring_price_starts_subscription_checkout(sessions, provider, accounts, fetcher) -> None:
    account = accounts.add(Account(id="acct_1", email="reader@example.com"))
    price = _price(fetcher, "monthly")

    url = asyncio.run(
        sessions.initiate_payment(account, price, SUCCESS, CANCEL, {"campaign": "spring"})
    )

    assert url == "https://checkout.example/cs_1"
    (params,) = provider.checkout_sessions
    assert params["mode"] == "subscription"
    assert params["customer"] == accounts.get_account("acct_1").provider_customer_id
    assert params["line_items"] == [{"price": "price_monthly", "quantity": 1}]
    assert params["success_url"] == SUCCESS + "?refresh="
    assert params["cancel_url"] == CANCEL
    assert "payment_intent_data" not in params
    assert params["subscription_data"]["metadata"] == {
        "campaign": "spring",
        "user-id": "acct_1",
        "price-id": "price_monthly",
        "price-description": "Monthly",
        "price-name": "monthly",
        "type": "subscription",
    }


def test_one_time_price_tags_payment_intent(sessions, provider, accounts, fetcher) -> None:
    account = accounts.add(Account(id="acct_1"))

    asyncio.run(sessions.initiate_payment(account, _price(fetcher, "day-pass"), SUCCESS, CANCEL))

    (params,) = provider.checkout_sessions
    assert params["mode"] == "payment"
    assert params["payment_intent_data"]["metadata"]["type"] == "payment"
    assert params["payment_intent_data"]["metadata"]["price-id"] == "price_day"
    assert params["allow_promotion_codes"] is True
    assert params["billing_address_collection"] == "auto"


def test_checkout_reuses_verified_customer(sessions, provider, accounts, fetcher) -> None:
    provider.customers["cus_existing"] = {"id": "cus_existing"}
    account = accounts.add(Account(id="acct_1", provider_customer_id="cus_existing"))

    asyncio.run(sessions.initiate_payment(account, _price(fetcher, "monthly"), SUCCESS, CANCEL))

    assert provider.created_customers == []
    assert provider.checkout_sessions[0]["customer"] == "cus_existing"


def test_anonymous_or_unknown_price_redirects_to_cancel(sessions, provider, fetcher) -> None:
    price = _price(fetcher, "monthly")
    provider.calls.clear()

    assert asyncio.run(sessions.initiate_payment(None, price, SUCCESS, CANCEL)) == CANCEL
    assert asyncio.run(sessions.initiate_payment(Account(id="acct_1"), None, SUCCESS, CANCEL)) == CANCEL
    assert provider.calls == []


def test_checkout_provider_failure_redirects_to_cancel(sessions, provider, accounts, fetcher) -> None:
    account = accounts.add(Account(id="acct_1"))
    provider.fail_operations.add("create_checkout_session")

    url = asyncio.run(sessions.initiate_payment(account, _price(fetcher, "monthly"), SUCCESS, CANCEL))

    assert url == CANCEL


def test_portal_without_customer_returns_bare_url(sessions, provider) -> None:
    url = asyncio.run(sessions.send_to_portal(Account(id="acct_1"), SUCCESS))

    assert url == SUCCESS
    assert provider.portal_sessions == []


def test_portal_with_deleted_customer_returns_bare_url(sessions, provider, accounts) -> None:
    provider.customers["cus_1"] = {"id": "cus_1", "deleted": True}
    account = accounts.add(Account(id="acct_1", provider_customer_id="cus_1"))

    assert asyncio.run(sessions.send_to_portal(account, SUCCESS)) == SUCCESS
    assert provider.portal_sessions == []


def test_portal_session_scoped_to_configuration(sessions, provider, accounts) -> None:
    provider.customers["cus_1"] = {"id": "cus_1"}
    account = accounts.add(Account(id="acct_1", provider_customer_id="cus_1"))

    url = asyncio.run(sessions.send_to_portal(account, SUCCESS))

    assert url == "https://portal.example/bps_1"
    assert provider.portal_sessions == [
        {"customer": "cus_1", "return_url": SUCCESS + "?refresh=", "configuration": "bpc_123"}
    ]


def test_portal_account_store_failure_returns_bare_url(sessions, provider, accounts) -> None:
    provider.customers["cus_1"] = {"id": "cus_1", "deleted": True}
    account = accounts.add(Account(id="acct_1", provider_customer_id="cus_1"))
    accounts.fail_saves = True

    assert asyncio.run(sessions.send_to_portal(account, SUCCESS)) == SUCCESS
    assert provider.portal_sessions == []


def test_checkout_account_store_failure_redirects_to_cancel(
    sessions, provider, accounts, fetcher, monkeypatch
) -> None:
    account = accounts.add(Account(id="acct_1"))
    price = _price(fetcher, "monthly")

    def broken_get_account(account_id):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(accounts, "get_account", broken_get_account)

    url = asyncio.run(sessions.initiate_payment(account, price, SUCCESS, CANCEL))

    assert url == CANCEL
    assert provider.created_customers == []
    assert provider.checkout_sessions == []
