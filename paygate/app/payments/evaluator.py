"""Selects the single record that currently grants access.

Everything here is a pure function of an already-fetched
:class:`~.models.BillingSnapshot` and the current time, so results can be
re-derived at any point without touching the provider or the cache.

Validity rules come from price metadata set in the provider dashboard:

* ``lifetime: "true"`` marks a one-time price granting unlimited access.
* ``validity: "1440"`` grants access for that many minutes after purchase.

Priority is strict: a non-refunded lifetime payment wins over an unexpired
time-boxed payment, which wins over any subscription. Among subscriptions
the non-paused ones come first.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from .models import ActivePlan, BillingSnapshot, PaymentRecord, SubscriptionRecord


def is_refunded(record: PaymentRecord) -> bool:
    return record.payment.refunded


def is_lifetime_payment(record: PaymentRecord) -> bool:
    return record.price.metadata.lifetime and not is_refunded(record)


def payment_expires_at(record: PaymentRecord) -> Optional[datetime]:
    validity = record.price.metadata.validity_minutes
    if validity is None:
        return None
    return record.payment.created + timedelta(minutes=validity)


def is_active_payment(record: PaymentRecord, now: datetime) -> bool:
    """Time-boxed payments are active strictly before ``created + validity``."""

    expires_at = payment_expires_at(record)
    if expires_at is None:
        return False
    return expires_at > now and not is_refunded(record)


def is_paused(record: SubscriptionRecord) -> bool:
    return record.subscription.paused


def select_active_plan(
    snapshot: Optional[BillingSnapshot],
    now: Optional[datetime] = None,
) -> Optional[ActivePlan]:
    if snapshot is None:
        return None
    now = now or datetime.now(timezone.utc)

    for payment in snapshot.payments:
        if is_lifetime_payment(payment):
            return payment

    for payment in snapshot.payments:
        if is_active_payment(payment, now):
            return payment

    subscriptions = sorted(snapshot.subscriptions, key=is_paused)
    if subscriptions:
        return subscriptions[0]
    return None


def plan_name(plan: Union[SubscriptionRecord, PaymentRecord]) -> str:
    """Display name for a plan whether it is a subscription or a payment."""

    if isinstance(plan, SubscriptionRecord) and plan.subscription.plan_nickname:
        return plan.subscription.plan_nickname
    return plan.price.nickname or plan.price.name


__all__ = [
    "is_active_payment",
    "is_lifetime_payment",
    "is_paused",
    "is_refunded",
    "payment_expires_at",
    "plan_name",
    "select_active_plan",
]
