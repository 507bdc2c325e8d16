"""Helpers for gating operations on an active plan."""
from __future__ import annotations

from typing import Optional

from .evaluator import plan_name
from .exceptions import PlanRequiredError
from .models import ActivePlan, PaymentRecord
from .refresh import EntitlementState


def require_active_plan(
    state: EntitlementState,
    *,
    price_names: Optional[set[str]] = None,
    error_code: str = "plan_required",
    message: Optional[str] = None,
) -> ActivePlan:
    """Return the active plan or raise :class:`PlanRequiredError`.

    ``price_names`` optionally restricts which prices (by slug name) qualify.
    """

    plan = state.active_plan
    if plan is not None and (price_names is None or plan.price.name in price_names):
        return plan

    detail = {"required_prices": sorted(price_names)} if price_names else None
    if plan is not None:
        detail = {**(detail or {}), "current_plan": plan_name(plan)}
    raise PlanRequiredError(
        code=error_code,
        message=message or "An active plan is required.",
        detail=detail,
    )


def describe_plan_kind(plan: ActivePlan) -> str:
    if isinstance(plan, PaymentRecord):
        return "lifetime" if plan.price.metadata.lifetime else "payment"
    return "subscription"


__all__ = ["describe_plan_kind", "require_active_plan"]
