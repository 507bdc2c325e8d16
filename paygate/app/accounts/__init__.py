"""Account records as seen by the payments domain."""

from .models import Account
from .repository import AccountRepository, PostgresAccountRepository

__all__ = ["Account", "AccountRepository", "PostgresAccountRepository"]
