"""Exceptions raised by the payments domain."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException, status


class PaymentsError(Exception):
    """Base class for payments failures."""


class BillingProviderError(PaymentsError):
    """A call to the billing provider failed (network, auth, 5xx...)."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"{operation}: {message}")
        self.operation = operation


class PriceCatalogError(PaymentsError):
    """The configured prices cannot be keyed unambiguously by name."""


class AccountStoreError(PaymentsError):
    """The account store could not be read or updated."""

    def __init__(self, operation: str, account_id: str) -> None:
        super().__init__(f"{operation} failed for account {account_id}")
        self.operation = operation
        self.account_id = account_id


class CustomerPersistenceError(PaymentsError):
    """A provider customer exists but could not be stored on the account.

    The operation is safe to retry: customer creation uses an idempotency key
    derived from the account, so a retry reuses ``customer_id``.
    """

    def __init__(self, account_id: str, customer_id: str) -> None:
        super().__init__(
            f"Created customer {customer_id} but failed to save it on account {account_id}"
        )
        self.account_id = account_id
        self.customer_id = customer_id


@dataclass
class PlanRequiredError(PaymentsError):
    """Raised when an operation needs an active plan the account lacks."""

    code: str
    message: str
    status_code: int = status.HTTP_402_PAYMENT_REQUIRED
    detail: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        base_detail: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.detail:
            base_detail.update(self.detail)
        object.__setattr__(self, "_payload", base_detail)
        super().__init__(self.message)

    @property
    def payload(self) -> Mapping[str, Any]:
        return self._payload

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=dict(self.payload))


__all__ = [
    "AccountStoreError",
    "BillingProviderError",
    "CustomerPersistenceError",
    "PaymentsError",
    "PlanRequiredError",
    "PriceCatalogError",
]
