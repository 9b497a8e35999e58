"""Bank account service - balance projection and account bookkeeping."""

import logging
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.orm import Session

from integrations.provider_protocol import ProviderAccount
from models import BankAccount, BankAccountType, BankTransaction

logger = logging.getLogger(__name__)


def project_balance(raw_balance: Decimal | None, account_type: str) -> Decimal | None:
    """Project a provider-reported balance into our sign convention.

    Plaid reports what is owed on a credit card as a positive number; we
    store credit balances as liabilities (negative). A missing balance
    stays missing.
    """
    if raw_balance is None:
        return None
    if account_type == BankAccountType.CREDIT.value:
        return -abs(raw_balance)
    return raw_balance


class BankAccountService:
    """Service for bank accounts linked through Plaid."""

    @staticmethod
    def map_plaid_account_type(plaid_type: str | None, plaid_subtype: str | None) -> str:
        """Map Plaid's type/subtype pair to a BankAccountType value."""
        if (plaid_type or "").lower() == "credit":
            return BankAccountType.CREDIT.value
        if (plaid_subtype or "").lower() == "savings":
            return BankAccountType.SAVINGS.value
        return BankAccountType.CHECKING.value

    @staticmethod
    def apply_balances(
        db: Session,
        accounts: list[BankAccount],
        balances: dict[str, Decimal | None],
    ) -> int:
        """Persist projected balances for the given accounts.

        Accounts that are absent from ``balances`` or reported with a null
        balance keep their stored value.

        Returns:
            Number of accounts whose balance was written.
        """
        rows = []
        for account in accounts:
            projected = project_balance(balances.get(account.plaid_account_id), account.type)
            if projected is None:
                continue
            rows.append({"id": account.id, "current_balance": projected})

        if rows:
            db.execute(update(BankAccount), rows)
        return len(rows)

    @staticmethod
    def create_accounts_for_item(
        db: Session,
        owner_id: str,
        plaid_item_id: str,
        remote_accounts: list[ProviderAccount],
    ) -> list[BankAccount]:
        """Create BankAccount rows for an item's accounts, skipping known ones.

        Does not commit.
        """
        known = {
            row[0]
            for row in db.query(BankAccount.plaid_account_id)
            .filter(BankAccount.plaid_item_id == plaid_item_id)
            .all()
        }
        created = []
        for remote in remote_accounts:
            if remote.id in known:
                continue
            account_type = BankAccountService.map_plaid_account_type(remote.type, remote.subtype)
            account = BankAccount(
                owner_id=owner_id,
                plaid_item_id=plaid_item_id,
                plaid_account_id=remote.id,
                name=remote.name,
                mask=remote.mask,
                type=account_type,
                current_balance=project_balance(remote.current_balance, account_type),
            )
            db.add(account)
            created.append(account)

        db.flush()
        logger.info(
            "Plaid item %s: created %d bank account(s), %d already linked",
            plaid_item_id, len(created), len(known),
        )
        return created

    @staticmethod
    def delete_account(db: Session, account: BankAccount) -> int:
        """Delete an account together with its transactions.

        Transactions removed this way are not tombstoned: once the account
        is gone Plaid rows for it have nowhere to land anyway.

        Returns:
            Number of transactions deleted.
        """
        deleted = (
            db.query(BankTransaction)
            .filter(BankTransaction.account_id == account.id)
            .delete(synchronize_session=False)
        )
        db.delete(account)
        db.flush()
        logger.info("Deleted bank account %s with %d transaction(s)", account.id, deleted)
        return deleted
