"""Tests for transactional batches and the Transaction state machine."""

from __future__ import annotations

import pytest
from structlog.testing import capture_logs

from queryspine.core.database import Database
from queryspine.core.errors import (
    QuerySpineError,
    TransactionAbortedError,
    TransactionStateError,
)
from queryspine.core.settings import QuerySpineSettings
from queryspine.core.transaction import Transaction, TransactionState


class TestStateMachine:
    @pytest.fixture
    def tx(self, fake_backend, fake_db):
        return Transaction(fake_backend.connect(), database=fake_db)

    def test_begin_commit(self, tx):
        assert tx.state is TransactionState.IDLE
        tx.begin()
        assert tx.state is TransactionState.BEGAN
        tx.commit()
        assert tx.state is TransactionState.COMMITTED

    def test_begin_rollback(self, tx):
        tx.begin()
        tx.rollback()
        assert tx.state is TransactionState.ROLLED_BACK

    def test_commit_before_begin(self, tx):
        with pytest.raises(TransactionStateError, match="Cannot commit a transaction in state idle"):
            tx.commit()

    def test_begin_twice(self, tx):
        tx.begin()
        with pytest.raises(TransactionStateError):
            tx.begin()

    @pytest.mark.parametrize("action", ["commit", "rollback", "begin"])
    def test_terminal_states(self, tx, action):
        tx.begin()
        tx.commit()
        with pytest.raises(TransactionStateError):
            getattr(tx, action)()

    def test_ensure_active(self, tx):
        with pytest.raises(TransactionStateError, match="use"):
            tx.ensure_active()
        tx.begin()
        tx.ensure_active()
        first = RuntimeError("first")
        tx.mark_failed(first)
        tx.mark_failed(RuntimeError("second"))
        assert tx.failed
        assert tx.error is first
        with pytest.raises(TransactionAbortedError):
            tx.ensure_active()

    def test_repr(self, tx):
        assert repr(tx) == "Transaction(state=idle, failed=False)"


class TestExecuteTransactionWithFakeBackend:
    def test_commits_batch(self, fake_backend, fake_db):
        def batch(tx):
            tx.execute("INSERT INTO t", params={"id": 1})
            tx.execute("INSERT INTO t", params={"id": 2})
            # writes are not committed one by one
            assert fake_backend.commits == 0
            return "done"

        assert fake_db.execute_transaction(batch) == "done"
        assert fake_backend.rows == [{"id": 1}, {"id": 2}]
        assert fake_backend.commits == 1
        assert fake_backend.opened == 1
        assert fake_backend.open_connections == 0

    def test_reads_see_pending_writes(self, fake_db):
        def batch(tx):
            tx.execute("INSERT INTO t", params={"id": 1, "name": "a"})
            return tx.get_list("SELECT id, name FROM t")

        assert fake_db.execute_transaction(batch) == [{"id": 1, "name": "a"}]

    def test_batch_exception_rolls_back_and_reraises(self, fake_backend, fake_db):
        def batch(tx):
            tx.execute("INSERT INTO t", params={"id": 1})
            raise RuntimeError("partial failure")

        with pytest.raises(RuntimeError, match="partial failure"):
            fake_db.execute_transaction(batch)
        assert fake_backend.rows == []
        assert fake_backend.rollbacks == 1
        assert fake_backend.commits == 0
        assert fake_backend.open_connections == 0

    def test_failed_operation_propagates(self, fake_backend, fake_db):
        def batch(tx):
            tx.execute("INSERT INTO t", params={"id": 1})
            tx.execute("FAIL")

        with pytest.raises(QuerySpineError, match="backend failure"):
            fake_db.execute_transaction(batch)
        assert fake_backend.rows == []
        assert fake_backend.rollbacks == 1

    def test_swallowed_failure_still_aborts(self, fake_backend, fake_db):
        def batch(tx):
            tx.execute("INSERT INTO t", params={"id": 1})
            try:
                tx.execute("FAIL")
            except QuerySpineError:
                pass
            return "ignored"

        with pytest.raises(TransactionAbortedError):
            fake_db.execute_transaction(batch)
        assert fake_backend.rows == []
        assert fake_backend.commits == 0

    def test_fail_quiet_call_inside_batch_aborts(self, fake_backend, fake_db):
        def batch(tx):
            fake_db.execute("INSERT INTO t", params={"id": 1}, transaction=tx)
            outcome = fake_db.execute("FAIL", transaction=tx)
            assert outcome.succeeded is False
            # later statements are refused
            with pytest.raises(TransactionAbortedError):
                tx.execute("INSERT INTO t", params={"id": 2})

        with pytest.raises(TransactionAbortedError):
            fake_db.execute_transaction(batch)
        assert fake_backend.rows == []

    def test_handle_unusable_after_batch(self, fake_db):
        kept = fake_db.execute_transaction(lambda tx: tx)
        assert kept.state is TransactionState.COMMITTED
        with pytest.raises(TransactionStateError):
            kept.execute("INSERT INTO t", params={"id": 9})

    def test_none_batch(self, fake_db):
        with pytest.raises(ValueError):
            fake_db.execute_transaction(None)
        with pytest.raises(ValueError):
            fake_db.try_transaction(None)

    def test_rollback_failure_is_logged(self, fake_backend):
        def connect():
            conn = fake_backend.connect()

            def broken_rollback():
                raise RuntimeError("link down")

            conn.rollback = broken_rollback
            return conn

        db = Database(QuerySpineSettings(), dialect="sqlite", connection_factory=connect)
        with capture_logs() as logs:
            with pytest.raises(KeyError):
                db.execute_transaction(lambda tx: {}["missing"])
        events = [entry["event"] for entry in logs]
        assert "transaction_rollback_failed" in events
        assert "transaction_rolled_back" in events
        assert fake_backend.open_connections == 0

    def test_logs(self, fake_db):
        with capture_logs() as logs:
            fake_db.execute_transaction(lambda tx: tx.execute("INSERT INTO t", params={"id": 1}))
        assert any(entry["event"] == "transaction_committed" for entry in logs)


class TestTryTransaction:
    def test_ok(self, fake_db):
        result = fake_db.try_transaction(lambda tx: tx.execute("INSERT INTO t", params={"id": 1}))
        assert result.is_ok()
        assert result.unwrap() == 1

    def test_err(self, fake_backend, fake_db):
        def batch(tx):
            tx.execute("INSERT INTO t", params={"id": 1})
            raise RuntimeError("nope")

        result = fake_db.try_transaction(batch)
        assert result.is_err()
        assert isinstance(result.error, QuerySpineError)
        assert isinstance(result.error.cause, RuntimeError)
        assert fake_backend.rows == []


class TestTransactionsOnSqlite:
    def test_commit(self, items_db):
        def batch(tx):
            tx.execute("INSERT INTO items (id, name) VALUES (:id, :name)", params={"id": 7, "name": "g"})
            tx.execute("UPDATE items SET price = 0 WHERE id = :id", params={"id": 7})
            return tx.get_scalar("SELECT count(*) FROM items")

        assert items_db.execute_transaction(batch) == 7
        assert items_db.get_scalar("SELECT price FROM items WHERE id = 7").value == 0

    def test_rollback_on_error(self, items_db):
        def batch(tx):
            tx.execute("DELETE FROM items WHERE id > :id", params={"id": 2})
            tx.execute("INSERT INTO items (id, name) VALUES (1, 'duplicate')")

        with pytest.raises(QuerySpineError):
            items_db.execute_transaction(batch)
        assert items_db.get_scalar("SELECT count(*) FROM items").value == 6

    def test_context_manager(self, items_db):
        with items_db.transaction() as tx:
            tx.execute("DELETE FROM items WHERE name = :name", params={"name": "a"})
            rows = tx.get_queryable("select id from items", order_by="id", top=2)
        assert rows == [{"id": 2}, {"id": 3}]
        assert items_db.get_scalar("SELECT count(*) FROM items").value == 4

    def test_single_row_read(self, items_db):
        row = items_db.execute_transaction(
            lambda tx: tx.get_single("SELECT id, name FROM items WHERE id = :id", params={"id": 3})
        )
        assert row == {"id": 3, "name": "c"}
