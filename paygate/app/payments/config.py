"""Payments configuration helpers."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Mapping, Optional, Tuple
import os


@dataclass(frozen=True)
class PaymentsConfig:
    """Configuration for billing-provider access and entitlement caching."""

    stripe_secret_key: str
    price_ids: Tuple[str, ...]
    portal_configuration_id: Optional[str]
    payments_cache_ttl: timedelta
    price_cache_ttl: timedelta
    cache_url: Optional[str]
    provider_timeout_seconds: float
    strict_price_names: bool
    success_path: str
    cancel_path: str
    portal_return_path: str


def _to_bool(value: Optional[str], *, default: bool) -> bool:
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    return default


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def _to_float(value: Optional[str], *, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected float value, got {value!r}") from exc


def _split_ids(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return ()
    return tuple(part.strip() for part in value.split(",") if part.strip())


def load_payments_config(env: Optional[Mapping[str, str]] = None) -> PaymentsConfig:
    """Load :class:`PaymentsConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    secret_key = (env_mapping.get("STRIPE_SK") or "").strip()
    if not secret_key:
        raise ValueError("STRIPE_SK must be set")
    if "PRICES" not in env_mapping:
        raise ValueError("PRICES must be set (comma-separated price ids)")

    payments_minutes = _to_int(env_mapping.get("PAYMENTS_CACHE_MINUTES"), default=60)
    price_minutes = _to_int(env_mapping.get("PRICES_CACHE_MINUTES"), default=5)
    if payments_minutes < 0 or price_minutes < 0:
        raise ValueError("Cache durations must be non-negative")

    return PaymentsConfig(
        stripe_secret_key=secret_key,
        price_ids=_split_ids(env_mapping.get("PRICES")),
        portal_configuration_id=env_mapping.get("STRIPE_PORTAL_CONFIG_ID") or None,
        payments_cache_ttl=timedelta(minutes=payments_minutes),
        price_cache_ttl=timedelta(minutes=price_minutes),
        cache_url=env_mapping.get("PAYMENTS_CACHE_URL") or None,
        provider_timeout_seconds=max(
            0.1, _to_float(env_mapping.get("PAYMENTS_PROVIDER_TIMEOUT"), default=10.0)
        ),
        strict_price_names=_to_bool(env_mapping.get("PAYMENTS_STRICT_PRICE_NAMES"), default=False),
        success_path=env_mapping.get("PAYMENTS_SUCCESS_PATH", "/account"),
        cancel_path=env_mapping.get("PAYMENTS_CANCEL_PATH", "/"),
        portal_return_path=env_mapping.get("PAYMENTS_PORTAL_RETURN_PATH", "/account"),
    )


__all__ = ["PaymentsConfig", "load_payments_config"]
