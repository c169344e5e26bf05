"""Repository for account operations."""

from typing import Optional
from sqlalchemy.orm import Session

from folio_engine.models.account import Account


class AccountRepository:
    """Handle database operations for accounts."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, email: str, display_name: Optional[str] = None) -> Account:
        """
        Create a new account.

        Args:
            email: Unique login email
            display_name: Optional name shown on the public site

        Returns:
            Created account
        """
        account = Account(email=email, display_name=display_name)
        self.db.add(account)
        self.db.commit()
        self.db.refresh(account)
        return account

    def get_by_id(self, account_id: str) -> Optional[Account]:
        return self.db.query(Account).filter(Account.id == account_id).first()

    def get_by_token_hash(self, token_hash: str) -> Optional[Account]:
        return self.db.query(Account).filter(Account.api_token_hash == token_hash).first()

    def set_token_hash(self, account: Account, token_hash: str) -> Account:
        account.api_token_hash = token_hash
        self.db.commit()
        self.db.refresh(account)
        return account
