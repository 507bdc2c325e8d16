from __future__ import annotations

import asyncio

import pytest

from paygate.app.accounts import Account
from paygate.app.payments import PlanRequiredError, require_active_plan
from paygate.tests.payloads import intent_payload


def test_require_active_plan_returns_plan(controller, provider) -> None:
    provider.intents["cus_1"] = [intent_payload("pi_day", "price_day")]
    state = asyncio.run(controller.resolve(Account(id="acct_1", provider_customer_id="cus_1")))

    plan = require_active_plan(state)

    assert plan.id == "pi_day"


def test_require_active_plan_raises_without_plan(controller) -> None:
    state = asyncio.run(controller.resolve(Account(id="acct_1")))

    with pytest.raises(PlanRequiredError) as exc:
        require_active_plan(state)

    assert exc.value.code == "plan_required"
    assert exc.value.to_http_exception().status_code == 402


def test_require_active_plan_filters_by_price(controller, provider) -> None:
    provider.intents["cus_1"] = [intent_payload("pi_day", "price_day")]
    state = asyncio.run(controller.resolve(Account(id="acct_1", provider_customer_id="cus_1")))

    with pytest.raises(PlanRequiredError) as exc:
        require_active_plan(state, price_names={"lifetime"})

    assert exc.value.payload["current_plan"] == "Day Pass"
    assert exc.value.payload["required_prices"] == ["lifetime"]
