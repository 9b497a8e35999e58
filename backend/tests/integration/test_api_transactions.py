"""Integration tests for transaction delete endpoints."""

from decimal import Decimal

from integrations.provider_protocol import TransactionsSyncPage
from models import BankTransaction, DeletedPlaidTransaction
from tests.fixtures import create_transaction
from tests.fixtures.mocks import make_plaid_transaction


class TestDeleteTransaction:
    def test_plaid_row_stays_deleted_after_sync(
        self, client, db, mock_plaid_client, plaid_item, checking_account
    ):
        txn = create_transaction(
            db, checking_account, description="Coffee Shop", plaid_transaction_id="t1"
        )
        db.commit()

        response = client.delete(f"/api/transactions/{txn.id}")

        assert response.status_code == 200
        assert response.json() == {"deleted": 1}
        assert db.query(DeletedPlaidTransaction).one().plaid_transaction_id == "t1"

        # Plaid re-delivers the same transaction as an addition
        mock_plaid_client.pages = [
            TransactionsSyncPage(added=[make_plaid_transaction("t1")], next_cursor="c1")
        ]
        sync = client.post("/api/plaid/sync", json={"plaid_item_id": plaid_item.id})

        assert sync.json()["added"] == 0
        assert db.query(BankTransaction).count() == 0

    def test_manual_row_is_not_tombstoned(self, client, db, checking_account):
        txn = create_transaction(db, checking_account, amount=Decimal("12.00"))
        db.commit()

        response = client.delete(f"/api/transactions/{txn.id}")

        assert response.status_code == 200
        assert db.query(DeletedPlaidTransaction).count() == 0

    def test_unknown_transaction_is_404(self, client):
        response = client.delete("/api/transactions/missing")
        assert response.status_code == 404

    def test_requires_user(self, anonymous_client, db, checking_account):
        txn = create_transaction(db, checking_account)
        db.commit()

        response = anonymous_client.delete(f"/api/transactions/{txn.id}")

        assert response.status_code == 401


class TestBatchDelete:
    def test_deletes_and_ignores_unknown_ids(self, client, db, checking_account):
        a = create_transaction(db, checking_account, plaid_transaction_id="t1")
        b = create_transaction(db, checking_account, plaid_transaction_id="t2")
        keep = create_transaction(db, checking_account)
        db.commit()

        response = client.post(
            "/api/transactions/batch-delete",
            json={"transaction_ids": [a.id, b.id, "missing"]},
        )

        assert response.status_code == 200
        assert response.json() == {"deleted": 2}
        assert [t.id for t in db.query(BankTransaction).all()] == [keep.id]
        assert db.query(DeletedPlaidTransaction).count() == 2

    def test_empty_list_is_rejected(self, client):
        response = client.post("/api/transactions/batch-delete", json={"transaction_ids": []})
        assert response.status_code == 422
