"""Tests for the sync_plaid_items script."""

from unittest.mock import MagicMock, patch

import pytest

from integrations.provider_protocol import TransactionsSyncPage
from scripts.sync_plaid_items import main, print_items, print_outcome, run_sync
from services.rate_limiter import RateLimiter
from services.sync_service import BankSyncOutcome, SyncCounts, SyncErrorKind, SyncService
from tests.fixtures.mocks import MockPlaidClient, make_plaid_transaction


@pytest.fixture
def patched_session(db):
    """Point the script at the test session and skip real setup."""
    with (
        patch("scripts.sync_plaid_items.get_session_local", return_value=lambda: db),
        patch("scripts.sync_plaid_items.setup_logging"),
        patch.object(db, "close"),
    ):
        yield db


class TestPrintItems:
    def test_no_items(self, db, capsys):
        print_items(db)
        assert "No linked Plaid items" in capsys.readouterr().out

    def test_lists_items(self, db, plaid_item, capsys):
        plaid_item.last_error = "Bank unavailable"
        db.commit()

        print_items(db)

        out = capsys.readouterr().out
        assert plaid_item.id in out
        assert "First Platypus Bank" in out
        assert "last sync=never" in out
        assert "Bank unavailable" in out


class TestPrintOutcome:
    def test_success(self, capsys):
        print_outcome(BankSyncOutcome.succeeded("p1", SyncCounts(added=3, merged=1)))
        assert "p1: 3 added, 1 merged" in capsys.readouterr().out

    def test_skipped(self, capsys):
        print_outcome(BankSyncOutcome.succeeded("p1", SyncCounts(skipped=True)))
        assert "skipped" in capsys.readouterr().out

    def test_failure_with_code(self, capsys):
        print_outcome(BankSyncOutcome.failed(
            "p1", SyncErrorKind.LOGIN_REQUIRED, "Reconnect", error_code="ITEM_LOGIN_REQUIRED"
        ))
        out = capsys.readouterr().out
        assert "FAILED LOGIN_REQUIRED [ITEM_LOGIN_REQUIRED]: Reconnect" in out


class TestRunSync:
    def test_single_item_skips_rate_limit(self, db, plaid_item, checking_account):
        limiter = MagicMock()
        client = MockPlaidClient(pages=[
            TransactionsSyncPage(added=[make_plaid_transaction("t1")], next_cursor="c1"),
        ])
        service = SyncService(plaid_client=client, rate_limiter=limiter)

        outcomes = run_sync(db, service, plaid_item.id)

        assert len(outcomes) == 1
        assert outcomes[0].counts.added == 1
        limiter.check.assert_not_called()

    def test_unknown_item_exits(self, db):
        service = SyncService(plaid_client=MockPlaidClient(), rate_limiter=RateLimiter())
        with pytest.raises(SystemExit) as exc_info:
            run_sync(db, service, "missing")
        assert exc_info.value.code == 1

    def test_all_items(self, db, plaid_item, checking_account):
        service = MagicMock()
        service.sync_all_items.return_value = []

        run_sync(db, service, refresh=True)

        service.sync_all_items.assert_called_once_with(db, refresh=True)


class TestMain:
    def test_list_mode_does_not_sync(self, patched_session, plaid_item, capsys):
        with patch("scripts.sync_plaid_items.SyncService") as mock_service:
            main(["--list"])

        mock_service.assert_not_called()
        assert "First Platypus Bank" in capsys.readouterr().out

    def test_sync_reports_summary(self, patched_session, plaid_item, capsys):
        outcome = BankSyncOutcome.succeeded(plaid_item.id, SyncCounts(added=2))
        with patch("scripts.sync_plaid_items.SyncService") as mock_service:
            mock_service.return_value.sync_all_items.return_value = [outcome]
            main([])

        out = capsys.readouterr().out
        assert "1 item(s) synced, 0 failed" in out

    def test_failure_sets_exit_code(self, patched_session, plaid_item):
        outcome = BankSyncOutcome.failed(plaid_item.id, SyncErrorKind.PROVIDER_ERROR, "down")
        with patch("scripts.sync_plaid_items.SyncService") as mock_service:
            mock_service.return_value.sync_all_items.return_value = [outcome]
            with pytest.raises(SystemExit) as exc_info:
                main([])

        assert exc_info.value.code == 1
