"""Account record fields the payments domain reads and writes."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


class Account(BaseModel):
    """An authenticated account and its link to the billing provider."""

    id: str
    email: Optional[str] = None
    provider_customer_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)
