"""Resolve request credentials to the acting account."""

import hashlib
import logging
import secrets
from typing import Optional

from sqlalchemy.orm import Session

from folio_engine.repositories.account_repository import AccountRepository

logger = logging.getLogger(__name__)


class AccountResolutionError(Exception):
    """Base exception for account resolution errors."""
    pass


class Unauthorized(AccountResolutionError):
    """Credential missing or unknown, or account does not exist."""
    pass


def hash_token(token: str) -> str:
    """SHA-256 hex digest of an API token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class AccountResolver:
    """Maps API tokens to account ids."""

    def __init__(self, db: Session):
        self.db = db
        self.accounts = AccountRepository(db)

    def resolve(self, credential: Optional[str]) -> str:
        """
        Resolve an Authorization header value (or bare token) to an account id.

        Raises:
            Unauthorized: No credential, or it matches no account
        """
        if not credential or not credential.strip():
            raise Unauthorized("No token provided")

        token = credential.strip()
        if token.lower().startswith("bearer "):
            token = token[7:].strip()
        if not token:
            raise Unauthorized("No token provided")

        account = self.accounts.get_by_token_hash(hash_token(token))
        if account is None:
            logger.warning("Rejected request with unknown API token")
            raise Unauthorized("Invalid token")
        return account.id

    def require_account(self, account_id: Optional[str]) -> str:
        """Ensure an account id refers to an existing account."""
        if not account_id or self.accounts.get_by_id(account_id) is None:
            raise Unauthorized(f"Unknown account: {account_id}")
        return account_id

    def issue_token(self, account_id: str) -> str:
        """
        Create a new API token for an account, replacing any previous one.

        Returns:
            The plaintext token; only its hash is stored
        """
        account = self.accounts.get_by_id(account_id)
        if account is None:
            raise Unauthorized(f"Unknown account: {account_id}")
        token = secrets.token_urlsafe(32)
        self.accounts.set_token_hash(account, hash_token(token))
        logger.info(f"Issued new API token for account {account_id}")
        return token
