"""Create an account (if needed) and issue it an API token."""

import argparse
import sys
from pathlib import Path

# Add parent directory to path so we can import folio_engine
sys.path.insert(0, str(Path(__file__).parent.parent))

from folio_engine.db.database import SessionLocal, init_db
from folio_engine.models.account import Account
from folio_engine.repositories import AccountRepository
from folio_engine.services.account_resolver import AccountResolver


def main():
    parser = argparse.ArgumentParser(description="Issue an API token for a Folio Engine account")
    parser.add_argument("email", help="Account email (created if it does not exist)")
    parser.add_argument("--name", help="Display name for a new account")
    args = parser.parse_args()

    init_db()
    db = SessionLocal()
    try:
        account = db.query(Account).filter(Account.email == args.email).first()
        if account is None:
            account = AccountRepository(db).create(args.email, display_name=args.name)
            print(f"Created account {account.id} ({account.email})")
        else:
            print(f"Using existing account {account.id} ({account.email})")

        token = AccountResolver(db).issue_token(account.id)
        print()
        print("API token (shown once, store it now):")
        print(f"  {token}")
        print()
        print("Send it as:  Authorization: Bearer <token>")
    finally:
        db.close()


if __name__ == "__main__":
    main()
