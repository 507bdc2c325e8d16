"""API routes for checkout, the billing portal and entitlement state."""
from __future__ import annotations

from typing import Any, Callable, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import RedirectResponse

from ..accounts import Account
from ..payments import PaymentsService, has_refresh_signal, strip_refresh_signal
from ..schemas.payments import EntitlementStateResponse
from ..services.payments import get_payments_service


def _resolve_get_current_account() -> Callable[..., Any]:  # pragma: no cover
    try:
        from paygate.app_context import get_current_account as resolved
    except ModuleNotFoundError as exc:
        if exc.name != "paygate":
            raise
        from ...app_context import get_current_account as resolved  # type: ignore[no-redef]
    return resolved


def _get_current_account(request: Request) -> Optional[Account]:
    return _resolve_get_current_account()(request)


def _local_path(value: Optional[str], default: str) -> str:
    """Accept only same-site paths for caller supplied redirect targets."""

    if value and value.startswith("/") and not value.startswith("//"):
        return value
    return default


def _absolute(request: Request, path: str) -> str:
    return str(request.base_url).rstrip("/") + path


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=status.HTTP_303_SEE_OTHER)


router = APIRouter(prefix="/account", tags=["account"])


@router.get("", response_model=EntitlementStateResponse, name="account_state")
async def account_state(
    request: Request,
    *,
    current_account: Optional[Account] = Depends(_get_current_account),
    service: PaymentsService = Depends(get_payments_service),
):
    force_refresh = has_refresh_signal(request.query_params)
    state = await service.entitlement_state(current_account, force_refresh=force_refresh)
    if state.requires_redirect:
        target = request.url.path
        if request.url.query:
            target = f"{target}?{request.url.query}"
        return _redirect(strip_refresh_signal(target))

    prices = state.prices or await service.price_catalog()
    return EntitlementStateResponse.from_state(
        state,
        prices,
        lambda name: str(request.url_for("start_checkout", price=name)),
    )


@router.get("/start/{price}", name="start_checkout")
async def start_checkout(
    price: str,
    request: Request,
    next_url: Optional[str] = Query(None, alias="next"),
    *,
    current_account: Optional[Account] = Depends(_get_current_account),
    service: PaymentsService = Depends(get_payments_service),
) -> RedirectResponse:
    success_url = _absolute(request, _local_path(next_url, service.success_path))
    cancel_url = _absolute(request, service.cancel_path)
    url = await service.start_checkout(
        current_account,
        price,
        success_url=success_url,
        cancel_url=cancel_url,
    )
    return _redirect(url)


@router.get("/portal", name="billing_portal")
async def billing_portal(
    request: Request,
    return_path: Optional[str] = Query(None, alias="return_url"),
    *,
    current_account: Optional[Account] = Depends(_get_current_account),
    service: PaymentsService = Depends(get_payments_service),
) -> RedirectResponse:
    return_url = _absolute(request, _local_path(return_path, service.portal_return_path))
    url = await service.portal_url(current_account, return_url)
    return _redirect(url)
