"""Resolves and lazily creates the billing-provider customer for an account."""
from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Callable, Dict, Optional

from ..accounts import Account, AccountRepository
from .exceptions import AccountStoreError, CustomerPersistenceError
from .provider import BillingProvider

logger = logging.getLogger(__name__)

ACCOUNT_METADATA_KEY = "user-id"


class CustomerResolver:
    """Maps accounts to provider customer ids, healing deleted customers."""

    def __init__(self, provider: BillingProvider, accounts: AccountRepository) -> None:
        self._provider = provider
        self._accounts = accounts
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    async def _store(self, func: Callable[..., Any], *args: Any) -> Any:
        # Repository calls are blocking database round trips.
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args))

    async def _clear_customer_id(self, account: Account) -> None:
        try:
            await self._store(self._accounts.save_customer_id, account.id, None)
        except Exception as exc:
            logger.exception("Failed to clear customer id on account %s", account.id)
            raise AccountStoreError("save_customer_id", account.id) from exc

    async def _reload(self, account: Account) -> Account:
        try:
            current = await self._store(self._accounts.get_account, account.id)
        except Exception as exc:
            logger.exception("Failed to load account %s", account.id)
            raise AccountStoreError("get_account", account.id) from exc
        return current or account

    async def resolve_customer_id(self, account: Account, *, verify: bool = False) -> Optional[str]:
        """Return the stored customer id, optionally confirming it with the provider.

        Without ``verify`` the stored id is trusted unconditionally. With it, a
        customer that no longer exists (or is marked deleted) is cleared from
        the account and ``None`` is returned so the caller creates a new one.
        Transient provider errors propagate as :class:`BillingProviderError`
        and account store failures as :class:`AccountStoreError`.
        """

        customer_id = account.provider_customer_id
        if not customer_id or not verify:
            return customer_id or None

        customer = await self._provider.retrieve_customer(customer_id)
        if customer is not None and not customer.get("deleted"):
            return customer_id

        logger.warning(
            "Customer %s for account %s not found at provider, clearing", customer_id, account.id
        )
        await self._clear_customer_id(account)
        return None

    async def create_customer(self, account: Account) -> str:
        # Keyed on the replaced id so a healed account does not get the deleted customer back.
        idempotency_key = f"paygate-customer:{account.id}:{account.provider_customer_id or 'new'}"
        customer = await self._provider.create_customer(
            email=account.email,
            metadata={ACCOUNT_METADATA_KEY: account.id},
            idempotency_key=idempotency_key,
        )
        customer_id = str(customer["id"])
        try:
            await self._store(self._accounts.save_customer_id, account.id, customer_id)
        except Exception as exc:
            logger.exception(
                "Failed to store customer %s on account %s", customer_id, account.id
            )
            raise CustomerPersistenceError(account.id, customer_id) from exc
        logger.info("Created billing customer %s for account %s", customer_id, account.id)
        return customer_id

    async def ensure_customer_id(self, account: Account) -> str:
        """Return a verified customer id, creating one at most once per account."""

        lock = self._locks.setdefault(account.id, asyncio.Lock())
        self._lock_users[account.id] = self._lock_users.get(account.id, 0) + 1
        try:
            async with lock:
                current = await self._reload(account)
                customer_id = await self.resolve_customer_id(current, verify=True)
                if customer_id:
                    return customer_id
                return await self.create_customer(current)
        finally:
            remaining = self._lock_users[account.id] - 1
            if remaining:
                self._lock_users[account.id] = remaining
            else:
                del self._lock_users[account.id]
                del self._locks[account.id]


__all__ = ["ACCOUNT_METADATA_KEY", "CustomerResolver"]
