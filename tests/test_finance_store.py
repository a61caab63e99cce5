"""Tests for the finance data store, on both the local and remote paths."""

import asyncio
import datetime as dt

import pytest

from conftest import USER_ID, make_goal, make_transaction
from moneytrackr.models.finance import (
    GoalStatus,
    GoalUpdate,
    NotificationPreferencesUpdate,
    ProfileUpdate,
    SettingsUpdate,
    Transaction,
    TransactionType,
    TransactionUpdate,
)
from moneytrackr.models.history import EntityType, SnapshotOperation
from moneytrackr.services.storage import (
    GOALS_TABLE,
    SETTINGS_TABLE,
    TRANSACTIONS_TABLE,
    InMemoryBackend,
    NotFoundError,
    StorageError,
    storage_key,
)
from moneytrackr.session import UserSession
from moneytrackr.store import FinanceStore, GoalStateError


run = asyncio.run


class FailingBackend(InMemoryBackend):
    """In-memory backend whose writes (or every call) fail."""

    def __init__(self, fail_reads: bool = False):
        super().__init__()
        self.fail_reads = fail_reads

    async def select(self, table, filters=(), order=(), row_range=None):
        if self.fail_reads:
            raise RuntimeError("backend unreachable")
        return await super().select(table, filters, order, row_range)

    async def insert(self, table, row):
        raise RuntimeError("insert rejected")

    async def update(self, table, filters, patch):
        raise RuntimeError("update rejected")


def seed_remote_transactions(backend, count, user_id=USER_ID):
    for n in range(count):
        t = Transaction(
            id=f"t{n}", type="expense", amount=n + 1, description="x",
            category="Other", date=f"2024-01-{n + 1:02d}", time="12:00:00",
        )
        run(backend.insert(TRANSACTIONS_TABLE, {**t.to_row(), "user_id": user_id}))


@pytest.fixture
def local_finance(local_store):
    return FinanceStore(local_store)


@pytest.fixture
def remote_finance(local_store, backend, session):
    store = FinanceStore(local_store, backend, session)
    run(store.initialize())
    return store


class TestLocalTransactions:
    """Transactions without a remote session."""

    def test_add_prepends_and_mirrors(self, local_finance, local_store):
        first = run(local_finance.add_transaction(make_transaction(description="First")))
        second = run(local_finance.add_transaction(make_transaction(description="Second")))

        assert [t.id for t in local_finance.transactions] == [second.id, first.id]
        mirrored = local_store.get(storage_key("transactions"))
        assert [t["id"] for t in mirrored] == [second.id, first.id]

    def test_local_ids_strictly_increase(self, local_finance):
        ids = [run(local_finance.add_transaction(make_transaction())).id for _ in range(5)]
        assert [int(i) for i in ids] == sorted(int(i) for i in ids)
        assert len(set(ids)) == 5

    def test_currency_defaults_to_profile_currency(self, local_finance):
        run(local_finance.update_settings(SettingsUpdate(profile=ProfileUpdate(currency="EUR"))))
        t = run(local_finance.add_transaction(make_transaction()))
        assert t.currency == "EUR"

        explicit = run(local_finance.add_transaction(make_transaction(currency="gbp")))
        assert explicit.currency == "GBP"

    def test_update_merges_patch(self, local_finance):
        t = run(local_finance.add_transaction(make_transaction(amount=10, notes="keep")))
        updated = run(local_finance.update_transaction(t.id, TransactionUpdate(amount=25)))

        assert updated.amount == 25
        assert updated.notes == "keep"
        assert local_finance.transactions[0].amount == 25

    def test_update_unknown_id_raises_not_found(self, local_finance):
        with pytest.raises(NotFoundError):
            run(local_finance.update_transaction("missing", TransactionUpdate(amount=5)))
        assert local_finance.error is not None

    def test_delete_unknown_id_is_noop(self, local_finance):
        run(local_finance.add_transaction(make_transaction()))
        before = list(local_finance.transactions)

        assert run(local_finance.delete_transaction("does-not-exist")) is False
        assert local_finance.transactions == before

    def test_delete_removes(self, local_finance, local_store):
        t = run(local_finance.add_transaction(make_transaction()))
        assert run(local_finance.delete_transaction(t.id)) is True
        assert local_finance.transactions == []
        assert local_store.get(storage_key("transactions")) == []

    def test_scenario_totals(self, local_finance):
        run(local_finance.add_transaction(make_transaction(amount=42.50, on="2024-01-15")))
        run(local_finance.add_transaction(make_transaction(
            kind=TransactionType.INCOME, amount=1000, category="Employment", on="2024-01-16",
        )))
        assert local_finance.get_total_expenses() == 42.50
        assert local_finance.get_total_income() == 1000
        assert local_finance.get_net_worth() == 957.50
        assert local_finance.get_total_transactions_count() == 2

    def test_initialize_reads_local_mirror(self, local_store):
        store = FinanceStore(local_store)
        run(store.add_transaction(make_transaction(on="2024-01-10")))
        run(store.add_transaction(make_transaction(on="2024-01-20")))

        reloaded = FinanceStore(local_store)
        run(reloaded.initialize())
        assert [t.date for t in reloaded.transactions] == [dt.date(2024, 1, 20), dt.date(2024, 1, 10)]
        assert reloaded.has_more_transactions is False

    def test_local_pagination(self, local_finance):
        for day in range(1, 8):
            run(local_finance.add_transaction(make_transaction(on=f"2024-01-{day:02d}")))

        first = run(local_finance.load_transactions(0, 5))
        assert len(first) == 5
        assert local_finance.has_more_transactions is True
        second = run(local_finance.load_transactions(1, 5))
        assert len(second) == 2
        assert local_finance.has_more_transactions is False
        assert len(local_finance.transactions) == 7

    def test_add_after_loading_one_page_keeps_stored_list(self, local_finance, local_store):
        for day in range(1, 6):
            run(local_finance.add_transaction(make_transaction(on=f"2024-01-{day:02d}")))

        run(local_finance.load_transactions(0, 2))
        assert len(local_finance.transactions) == 2
        added = run(local_finance.add_transaction(make_transaction(on="2024-01-09")))

        stored = local_store.get(storage_key("transactions"))
        assert len(stored) == 6
        assert stored[0]["id"] == added.id

    def test_update_and_delete_outside_loaded_page(self, local_finance, local_store):
        oldest = run(local_finance.add_transaction(make_transaction(amount=1, on="2024-01-01")))
        for day in range(2, 5):
            run(local_finance.add_transaction(make_transaction(on=f"2024-01-{day:02d}")))
        run(local_finance.load_transactions(0, 2))

        updated = run(local_finance.update_transaction(oldest.id, TransactionUpdate(amount=8)))
        assert updated.amount == 8
        stored = {t["id"]: t for t in local_store.get(storage_key("transactions"))}
        assert len(stored) == 4
        assert stored[oldest.id]["amount"] == 8

        assert run(local_finance.delete_transaction(oldest.id)) is True
        assert len(local_store.get(storage_key("transactions"))) == 3


class TestGoals:
    """Goal lifecycle on the local path."""

    def test_overachievement_does_not_complete(self, local_finance):
        goal = run(local_finance.add_goal(make_goal(target=500, current=0)))
        updated = run(local_finance.update_goal(goal.id, GoalUpdate(current_amount=600)))

        assert updated.status == GoalStatus.ACTIVE
        assert updated.current_amount == 600

    def test_toggle_status(self, local_finance):
        goal = run(local_finance.add_goal(make_goal()))
        assert run(local_finance.toggle_goal_status(goal.id)).status == GoalStatus.PAUSED
        assert run(local_finance.toggle_goal_status(goal.id)).status == GoalStatus.ACTIVE

    def test_complete_goal_fills_target(self, local_finance):
        goal = run(local_finance.add_goal(make_goal(target=300, current=120)))
        completed = run(local_finance.complete_goal(goal.id))

        assert completed.status == GoalStatus.COMPLETED
        assert completed.current_amount == 300

    def test_completed_goal_cannot_toggle(self, local_finance):
        goal = run(local_finance.add_goal(make_goal()))
        run(local_finance.complete_goal(goal.id))
        with pytest.raises(GoalStateError):
            run(local_finance.toggle_goal_status(goal.id))

    def test_delete_goal(self, local_finance):
        goal = run(local_finance.add_goal(make_goal()))
        assert run(local_finance.delete_goal(goal.id)) is True
        assert run(local_finance.delete_goal(goal.id)) is False
        assert local_finance.goals == []

    def test_update_unknown_goal(self, local_finance):
        with pytest.raises(NotFoundError):
            run(local_finance.update_goal("nope", GoalUpdate(title="x")))


class TestSettings:
    """Per-group settings merge through the store."""

    def test_update_one_notification_flag(self, local_finance):
        before = local_finance.settings
        after = run(local_finance.update_settings(
            SettingsUpdate(notifications=NotificationPreferencesUpdate(budget_alerts=False))
        ))

        assert after.notifications.budget_alerts is False
        assert after.profile.to_local() == before.profile.to_local()
        assert after.privacy.to_local() == before.privacy.to_local()
        assert after.appearance.to_local() == before.appearance.to_local()
        assert after.notifications.goal_reminders == before.notifications.goal_reminders
        assert after.notifications.weekly_reports == before.notifications.weekly_reports
        assert after.notifications.email_notifications == before.notifications.email_notifications

    def test_default_currency_seeds_profile(self, local_store, backend, session):
        local = FinanceStore(local_store, default_currency="EUR")
        run(local.initialize())
        assert local.settings.profile.currency == "EUR"
        assert run(local.add_transaction(make_transaction())).currency == "EUR"

        remote = FinanceStore(local_store, backend, session, default_currency="GBP")
        run(remote.initialize())
        assert backend.rows(SETTINGS_TABLE)[0]["profile"]["currency"] == "GBP"

    def test_settings_persist_remotely(self, remote_finance, backend):
        run(remote_finance.update_settings(SettingsUpdate(profile=ProfileUpdate(name="Ana"))))
        rows = backend.rows(SETTINGS_TABLE)
        assert len(rows) == 1
        assert rows[0]["profile"]["name"] == "Ana"
        assert rows[0]["notifications"]["budget_alerts"] is True


class TestListeners:
    """Mutation notifications."""

    def test_listener_receives_every_mutation(self, local_finance):
        calls = []

        async def listener(operation, entity_type, entity_id, data):
            calls.append((operation, entity_type, entity_id, data))

        local_finance.add_listener(listener)
        t = run(local_finance.add_transaction(make_transaction(description="Tea")))
        run(local_finance.update_transaction(t.id, TransactionUpdate(amount=3)))
        run(local_finance.delete_transaction(t.id))
        run(local_finance.update_settings(SettingsUpdate(profile=ProfileUpdate(name="Bo"))))

        assert [(c[0], c[1], c[2]) for c in calls] == [
            (SnapshotOperation.CREATE, EntityType.TRANSACTION, t.id),
            (SnapshotOperation.UPDATE, EntityType.TRANSACTION, t.id),
            (SnapshotOperation.DELETE, EntityType.TRANSACTION, t.id),
            (SnapshotOperation.UPDATE, EntityType.SETTINGS, None),
        ]
        assert calls[0][3]["description"] == "Tea"
        assert calls[3][3]["profile"]["name"] == "Bo"

    def test_failing_listener_does_not_break_mutation(self, local_finance):
        async def listener(*args):
            raise RuntimeError("history down")

        local_finance.add_listener(listener)
        t = run(local_finance.add_transaction(make_transaction()))
        assert local_finance.transactions[0].id == t.id


class TestRemotePath:
    """Transactions and goals against the in-memory backend."""

    def test_initialize_creates_default_settings(self, remote_finance, backend):
        rows = backend.rows(SETTINGS_TABLE)
        assert len(rows) == 1
        assert rows[0]["user_id"] == USER_ID
        assert remote_finance.settings.profile.name == "User"

    def test_add_uses_backend_id(self, remote_finance, backend, local_store):
        t = run(remote_finance.add_transaction(make_transaction()))
        rows = backend.rows(TRANSACTIONS_TABLE)

        assert rows[0]["id"] == t.id
        assert rows[0]["user_id"] == USER_ID
        assert local_store.get(storage_key("transactions", USER_ID))[0]["id"] == t.id

    def test_update_other_users_row_raises(self, remote_finance, backend):
        foreign = run(backend.insert(TRANSACTIONS_TABLE, {
            **Transaction(
                id="foreign", type="expense", amount=1, description="x",
                category="Other", date="2024-01-01", time="10:00:00",
            ).to_row(),
            "user_id": "someone-else",
        }))
        with pytest.raises(NotFoundError):
            run(remote_finance.update_transaction(foreign["id"], TransactionUpdate(amount=99)))
        assert backend.rows(TRANSACTIONS_TABLE)[0]["amount"] == 1

    def test_update_and_delete_remote(self, remote_finance, backend):
        t = run(remote_finance.add_transaction(make_transaction(amount=10)))
        run(remote_finance.update_transaction(t.id, TransactionUpdate(amount=11)))
        assert backend.rows(TRANSACTIONS_TABLE)[0]["amount"] == 11

        assert run(remote_finance.delete_transaction(t.id)) is True
        assert backend.rows(TRANSACTIONS_TABLE) == []

    def test_goal_rows_are_scoped(self, remote_finance, backend):
        goal = run(remote_finance.add_goal(make_goal()))
        row = backend.rows(GOALS_TABLE)[0]
        assert row["id"] == goal.id
        assert row["user_id"] == USER_ID
        assert row["created_at"]

    def test_pagination_is_disjoint_and_complete(self, local_store, backend, session):
        entries = [
            ("2024-01-05", "09:00:00"),
            ("2024-01-05", "18:00:00"),
            ("2024-01-07", "08:00:00"),
            ("2024-01-01", "12:00:00"),
            ("2024-01-07", "23:00:00"),
            ("2024-01-03", "12:00:00"),
            ("2024-01-02", "07:30:00"),
        ]
        for n, (day, at) in enumerate(entries):
            t = Transaction(
                id=f"t{n}", type="expense", amount=n + 1, description="x",
                category="Other", date=day, time=at,
            )
            run(backend.insert(TRANSACTIONS_TABLE, {**t.to_row(), "user_id": USER_ID}))

        store = FinanceStore(local_store, backend, session, page_size=3)
        run(store.initialize())
        pages = [list(store.transactions)]
        assert store.has_more_transactions is True

        page = 1
        while store.has_more_transactions:
            pages.append(run(store.load_transactions(page)))
            page += 1

        ids = [t.id for p in pages for t in p]
        assert len(ids) == len(set(ids)) == len(entries)
        keys = [(t.date, t.time) for p in pages for t in p]
        assert keys == sorted(keys, reverse=True)
        assert len(store.transactions) == len(entries)

    def test_initialize_mirrors_every_row_not_just_the_page(self, local_store, backend, session):
        seed_remote_transactions(backend, 5)
        store = FinanceStore(local_store, backend, session, page_size=2)
        run(store.initialize())

        assert len(store.transactions) == 2
        assert len(local_store.get(storage_key("transactions", USER_ID))) == 5

        run(store.add_transaction(make_transaction()))
        assert len(local_store.get(storage_key("transactions", USER_ID))) == 6

    def test_reload_with_one_page_loaded_keeps_every_row(self, local_store, backend, session):
        seed_remote_transactions(backend, 5)
        store = FinanceStore(local_store, backend, session, page_size=2)
        run(store.initialize())

        run(store.reload_from_local())

        assert sorted(r["id"] for r in backend.rows(TRANSACTIONS_TABLE)) == [f"t{n}" for n in range(5)]
        assert len(store.transactions) == 5

    def test_remote_failure_leaves_state_unchanged(self, local_store, session):
        store = FinanceStore(local_store, FailingBackend(), session)
        with pytest.raises(StorageError):
            run(store.add_transaction(make_transaction()))
        assert store.transactions == []
        assert store.error and "add transaction" in store.error

    def test_initialize_falls_back_to_local(self, local_store, session):
        local_store.set(storage_key("transactions", USER_ID), [
            make_transaction().model_dump(mode="json", by_alias=True) | {"id": "local-1"},
        ])
        store = FinanceStore(local_store, FailingBackend(fail_reads=True), session)
        run(store.initialize())

        assert [t.id for t in store.transactions] == ["local-1"]
        assert store.loading is False

    def test_reload_from_local_pushes_to_backend(self, remote_finance, backend, local_store):
        run(remote_finance.add_transaction(make_transaction(description="Old")))
        local_store.set(storage_key("transactions", USER_ID), [
            Transaction(
                id="restored", type="income", amount=5, description="Restored",
                category="Gift", date="2024-02-01", time="10:00:00",
            ).to_local(),
        ])

        run(remote_finance.reload_from_local())

        assert [t.id for t in remote_finance.transactions] == ["restored"]
        rows = backend.rows(TRANSACTIONS_TABLE)
        assert [r["id"] for r in rows] == ["restored"]
        assert rows[0]["user_id"] == USER_ID

    def test_session_switch_reloads(self, local_store, backend):
        store = FinanceStore(local_store, backend)
        run(store.add_transaction(make_transaction()))
        assert len(store.transactions) == 1

        run(store.set_session(UserSession(user_id="fresh-user")))
        assert store.transactions == []
        assert store.uses_remote is True
