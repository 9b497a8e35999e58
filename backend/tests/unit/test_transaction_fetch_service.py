"""Tests for TransactionFetchService."""

import time

from integrations.provider_protocol import ErrorCategory, TransactionsSyncPage
from services.transaction_fetch_service import TransactionFetchService
from tests.fixtures.mocks import MockPlaidClient, make_plaid_transaction, make_provider_error


def test_walks_pages_until_has_more_is_false():
    client = MockPlaidClient(pages=[
        TransactionsSyncPage(
            added=[make_plaid_transaction("t1"), make_plaid_transaction("t2")],
            next_cursor="c1",
            has_more=True,
        ),
        TransactionsSyncPage(
            added=[make_plaid_transaction("t3")],
            removed=["t0"],
            next_cursor="c2",
            has_more=False,
        ),
    ])

    result = TransactionFetchService().fetch_all(client, "access-token", None)

    assert result.ok
    delta = result.value
    assert [t.transaction_id for t in delta.added] == ["t1", "t2", "t3"]
    assert delta.removed == ["t0"]
    assert delta.next_cursor == "c2"
    assert delta.pages == 2
    assert client.sync_calls == [("access-token", None), ("access-token", "c1")]


def test_empty_page_with_has_more_keeps_walking():
    client = MockPlaidClient(pages=[
        TransactionsSyncPage(next_cursor="c1", has_more=True),
        TransactionsSyncPage(added=[make_plaid_transaction("t1")], next_cursor="c2", has_more=False),
    ])

    result = TransactionFetchService().fetch_all(client, "access-token", "c0")

    assert result.value.pages == 2
    assert len(result.value.added) == 1


def test_no_changes_keeps_cursor():
    client = MockPlaidClient()

    result = TransactionFetchService().fetch_all(client, "access-token", "c5")

    assert result.ok
    assert result.value.next_cursor == "c5"
    assert result.value.added == []


def test_page_error_discards_partial_walk():
    client = MockPlaidClient(
        pages=[TransactionsSyncPage(added=[make_plaid_transaction("t1")], next_cursor="c1", has_more=True)],
        sync_error=make_provider_error("TRANSACTIONS_SYNC_MUTATION_DURING_PAGINATION"),
        fail_on_page=2,
    )

    result = TransactionFetchService().fetch_all(client, "access-token", None)

    assert not result.ok
    assert result.value is None
    assert result.error.error_code == "TRANSACTIONS_SYNC_MUTATION_DURING_PAGINATION"


def test_expired_deadline_is_a_connection_error():
    client = MockPlaidClient()

    result = TransactionFetchService().fetch_all(
        client, "access-token", None, deadline=time.monotonic() - 1
    )

    assert not result.ok
    assert result.error.category == ErrorCategory.CONNECTION
    assert result.error.error_code is None
    assert client.sync_calls == []
