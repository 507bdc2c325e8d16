"""API schemas for account entitlement endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Callable, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..payments import (
    ActivePlan,
    EntitlementState,
    PaymentRecord,
    Price,
    PriceType,
    SubscriptionRecord,
    is_active_payment,
    is_lifetime_payment,
    is_paused,
    is_refunded,
    plan_name,
)
from ..payments.evaluator import payment_expires_at
from ..payments.gating import describe_plan_kind


class PriceSummary(BaseModel):
    id: str
    name: str
    nickname: Optional[str] = None
    unit_amount: Optional[int] = Field(alias="unitAmount", default=None)
    currency: Optional[str] = None
    type: PriceType
    start_url: str = Field(alias="startUrl")

    model_config = ConfigDict(populate_by_name=True)


class PlanSummary(BaseModel):
    id: str
    kind: str
    name: str
    price_id: str = Field(alias="priceId")
    paused: bool = False
    expires_at: Optional[datetime] = Field(alias="expiresAt", default=None)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_plan(cls, plan: ActivePlan) -> "PlanSummary":
        if isinstance(plan, SubscriptionRecord):
            return cls(
                id=plan.id,
                kind=describe_plan_kind(plan),
                name=plan_name(plan),
                price_id=plan.price.id,
                paused=is_paused(plan),
            )
        expires_at = None if plan.price.metadata.lifetime else payment_expires_at(plan)
        return cls(
            id=plan.id,
            kind=describe_plan_kind(plan),
            name=plan_name(plan),
            price_id=plan.price.id,
            expires_at=expires_at,
        )


class SubscriptionSummary(BaseModel):
    id: str
    name: str
    status: Optional[str] = None
    paused: bool

    model_config = ConfigDict(populate_by_name=True)


class PaymentSummary(BaseModel):
    id: str
    name: str
    created: datetime
    refunded: bool
    active: bool
    receipt_urls: List[str] = Field(alias="receiptUrls", default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class EntitlementStateResponse(BaseModel):
    has_active_plan: bool = Field(alias="hasActivePlan")
    active_plan: Optional[PlanSummary] = Field(alias="activePlan", default=None)
    subscriptions: List[SubscriptionSummary] = Field(default_factory=list)
    payments: List[PaymentSummary] = Field(default_factory=list)
    prices: List[PriceSummary] = Field(default_factory=list)
    evaluated_at: datetime = Field(alias="evaluatedAt")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_state(
        cls,
        state: EntitlementState,
        prices: Mapping[str, Price],
        start_url: Callable[[str], str],
    ) -> "EntitlementStateResponse":
        plan = state.active_plan
        snapshot = state.snapshot
        subscriptions: List[SubscriptionSummary] = []
        payments: List[PaymentSummary] = []
        if snapshot is not None:
            subscriptions = [
                SubscriptionSummary(
                    id=record.id,
                    name=plan_name(record),
                    status=record.subscription.status,
                    paused=is_paused(record),
                )
                for record in snapshot.subscriptions
            ]
            payments = [_payment_summary(record, state.evaluated_at) for record in snapshot.payments]
        return cls(
            has_active_plan=plan is not None,
            active_plan=PlanSummary.from_plan(plan) if plan is not None else None,
            subscriptions=subscriptions,
            payments=payments,
            prices=[
                PriceSummary(
                    id=price.id,
                    name=name,
                    nickname=price.nickname,
                    unit_amount=price.unit_amount,
                    currency=price.currency,
                    type=price.type,
                    start_url=start_url(name),
                )
                for name, price in prices.items()
            ],
            evaluated_at=state.evaluated_at,
        )


def _payment_summary(record: PaymentRecord, now: datetime) -> PaymentSummary:
    return PaymentSummary(
        id=record.id,
        name=plan_name(record),
        created=record.payment.created,
        refunded=is_refunded(record),
        active=is_lifetime_payment(record) or is_active_payment(record, now),
        receipt_urls=list(record.payment.receipt_urls),
    )


__all__ = [
    "EntitlementStateResponse",
    "PaymentSummary",
    "PlanSummary",
    "PriceSummary",
    "SubscriptionSummary",
]
