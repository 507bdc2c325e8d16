from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from paygate.app.payments import (
    BillingSnapshot,
    Charge,
    Payment,
    PaymentRecord,
    Price,
    PriceMetadata,
    PriceType,
    Subscription,
    SubscriptionRecord,
    is_active_payment,
    plan_name,
    select_active_plan,
)

T0 = datetime(2024, 1, 10, 9, 30, tzinfo=timezone.utc)


def _price(price_id: str, *, validity: Optional[int] = None, lifetime: bool = False) -> Price:
    return Price(
        id=price_id,
        nickname=price_id.upper(),
        type=PriceType.ONE_TIME if (validity or lifetime) else PriceType.RECURRING,
        metadata=PriceMetadata(validity_minutes=validity, lifetime=lifetime),
    )


def _payment(
    payment_id: str,
    price: Price,
    *,
    created: datetime = T0,
    refunded: bool = False,
) -> PaymentRecord:
    return PaymentRecord(
        payment=Payment(
            id=payment_id,
            created=created,
            price_id=price.id,
            type_tag="payment",
            charges=(Charge(id=f"ch_{payment_id}", refunded=refunded),),
        ),
        price=price,
    )


def _subscription(sub_id: str, price: Price, *, paused: bool = False) -> SubscriptionRecord:
    return SubscriptionRecord(
        subscription=Subscription(id=sub_id, price_id=price.id, paused=paused),
        price=price,
    )


def _snapshot(subscriptions=(), payments=()) -> BillingSnapshot:
    return BillingSnapshot(
        customer_id="cus_1",
        subscriptions=tuple(subscriptions),
        payments=tuple(payments),
    )


def test_no_snapshot_means_no_plan() -> None:
    assert select_active_plan(None, T0) is None
    assert select_active_plan(_snapshot(), T0) is None


def test_lifetime_payment_wins_over_everything() -> None:
    lifetime = _payment("pi_life", _price("p3", lifetime=True), created=T0 - timedelta(days=900))
    day_pass = _payment("pi_day", _price("p4", validity=1440))
    subscription = _subscription("sub_1", _price("p1"))

    snapshot = _snapshot([subscription], [day_pass, lifetime])

    assert select_active_plan(snapshot, T0 + timedelta(minutes=5)) == lifetime


def test_time_boxed_payment_boundaries() -> None:
    record = _payment("pi_day", _price("p4", validity=1440))

    assert is_active_payment(record, T0 + timedelta(minutes=1439)) is True
    assert is_active_payment(record, T0 + timedelta(minutes=1440)) is False
    assert is_active_payment(record, T0 + timedelta(minutes=1441)) is False


def test_time_boxed_payment_beats_subscription_until_expiry() -> None:
    day_pass = _payment("pi_day", _price("p4", validity=60))
    subscription = _subscription("sub_1", _price("p1"))
    snapshot = _snapshot([subscription], [day_pass])

    assert select_active_plan(snapshot, T0 + timedelta(minutes=30)) == day_pass
    assert select_active_plan(snapshot, T0 + timedelta(minutes=61)) == subscription


@pytest.mark.parametrize("metadata", [{"lifetime": True}, {"validity": 1440}])
def test_refunded_payments_are_never_selected(metadata) -> None:
    price = _price(
        "p2",
        lifetime=metadata.get("lifetime", False),
        validity=metadata.get("validity"),
    )
    refunded = _payment("pi_refunded", price, refunded=True)

    assert select_active_plan(_snapshot(payments=[refunded]), T0 + timedelta(minutes=1)) is None


def test_refunded_lifetime_falls_back_to_subscription() -> None:
    subscription = _subscription("sub_1", _price("p1"))
    refunded_lifetime = _payment("pi_life", _price("p2", lifetime=True), refunded=True)

    snapshot = _snapshot([subscription], [refunded_lifetime])

    assert select_active_plan(snapshot, T0) == subscription


def test_unpaused_subscription_preferred_regardless_of_order() -> None:
    paused = _subscription("sub_paused", _price("p1"), paused=True)
    running = _subscription("sub_running", _price("p5"))

    assert select_active_plan(_snapshot([paused, running]), T0) == running
    assert select_active_plan(_snapshot([running, paused]), T0) == running


def test_paused_subscription_still_counts_when_alone() -> None:
    paused = _subscription("sub_paused", _price("p1"), paused=True)

    assert select_active_plan(_snapshot([paused]), T0) == paused


def test_payment_without_validity_rules_grants_nothing() -> None:
    plain = _payment("pi_plain", _price("p6"))

    assert select_active_plan(_snapshot(payments=[plain]), T0) is None


def test_selection_is_repeatable_for_same_inputs() -> None:
    snapshot = _snapshot(
        [_subscription("sub_1", _price("p1"))],
        [_payment("pi_day", _price("p4", validity=1440))],
    )
    at = T0 + timedelta(hours=3)

    assert select_active_plan(snapshot, at) == select_active_plan(snapshot, at)


def test_plan_name_prefers_subscription_plan_nickname() -> None:
    price = _price("p1")
    record = SubscriptionRecord(
        subscription=Subscription(id="sub", price_id="p1", plan_nickname="Gold"),
        price=price,
    )

    assert plan_name(record) == "Gold"
    assert plan_name(_payment("pi", price)) == "P1"
