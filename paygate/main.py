"""FastAPI application bootstrap for the payments subsystem."""
from __future__ import annotations

import logging
import math
import os
from contextlib import asynccontextmanager
from typing import Any, Optional

import psycopg2
from dotenv import load_dotenv
from fastapi import FastAPI, Request

from paygate import app_context
from paygate.app.accounts import Account
from paygate.app.payments import PaymentsService
from paygate.app.routes.payments import router as payments_router
from paygate.app.services.payments import get_payments_config, get_payments_service

load_dotenv()

logger = logging.getLogger("paygate")


def _parse_connect_timeout(raw_value: str) -> int:
    try:
        timeout = float(raw_value)
    except ValueError as exc:
        raise ValueError("DB_CONNECT_TIMEOUT must be a number") from exc
    if timeout < 0:
        raise ValueError("DB_CONNECT_TIMEOUT must be non-negative")
    return int(math.ceil(timeout))


DB_CFG = dict(
    host=os.getenv("DB_HOST", "127.0.0.1"),
    port=int(os.getenv("DB_PORT", "5432")),
    dbname=os.getenv("DB_NAME", "paygate"),
    user=os.getenv("DB_USER", "paygate"),
    password=os.getenv("DB_PASSWORD", "paygate"),
    connect_timeout=_parse_connect_timeout(os.getenv("DB_CONNECT_TIMEOUT", "5")),
)


def get_conn():
    return psycopg2.connect(**DB_CFG)


def account_from_request_state(request: Request) -> Optional[Account]:
    """Read the account an upstream authentication layer stored on the request."""

    account: Any = getattr(request.state, "account", None)
    if account is None or isinstance(account, Account):
        return account
    return Account(
        id=str(account.id),
        email=getattr(account, "email", None),
        provider_customer_id=getattr(account, "provider_customer_id", None),
    )


def create_app(service: Optional[PaymentsService] = None) -> FastAPI:
    app_context.configure(get_conn=get_conn, get_current_account=account_from_request_state)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        payments = service or get_payments_service()
        if service is None:
            config = get_payments_config()
            if config.strict_price_names:
                # Fails startup when two configured prices share a slug name.
                await payments.validate_price_catalog(config.price_ids)
            logger.info("Payments configured with %d recognized prices", len(config.price_ids))
        try:
            yield
        finally:
            await payments.aclose()

    app = FastAPI(title="paygate", lifespan=lifespan)
    if service is not None:
        app.dependency_overrides[get_payments_service] = lambda: service
    app.include_router(payments_router)
    return app


app = create_app()
