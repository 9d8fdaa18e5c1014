"""
Tests for the dynamic-table store and table name sanitization.
"""
import threading

import pytest
from sqlalchemy import create_engine, inspect
from sqlalchemy import exc as sa_exc

from tablekv.config import Settings
from tablekv.db.errors import (
    BackendUnavailable,
    InvalidTableName,
    StatementFailed,
    StoreError,
    ValueTooLarge,
    translate,
)
from tablekv.db.identifiers import sanitize
from tablekv.db.store import TableStore


@pytest.fixture
def store(tmp_path):
    """Store backed by a fresh SQLite file."""
    settings = Settings(DATABASE_URL=f"sqlite:///{tmp_path / 'data' / 'kv.db'}")
    store = TableStore.from_settings(settings)
    yield store
    store.close()


def has_table(store: TableStore, name: str) -> bool:
    return inspect(store.engine).has_table(name)


# === Sanitization ===

@pytest.mark.parametrize(
    "raw,expected",
    [
        ("users", "users"),
        ("users;drop", "usersdrop"),
        ('users"; DROP TABLE x; --', "usersDROPTABLEx"),
        ("my table", "mytable"),
        ("snake_case_123", "snake_case_123"),
        ("café", "café"),
        ("", ""),
        ("!@#$%^&*()", ""),
    ],
)
def test_sanitize(raw, expected):
    assert sanitize(raw) == expected


@pytest.mark.parametrize(
    "raw",
    ["users", "a;b", "  spaced  out ", "日本語-テーブル", "x'y\"z`", "__", "tab\tle\n"],
)
def test_sanitize_is_idempotent(raw):
    once = sanitize(raw)
    assert sanitize(once) == once


# === Table lifecycle ===

def test_ensure_table_is_idempotent(store):
    store.ensure_table("users")
    store.ensure_table("users")
    assert has_table(store, "users")


def test_ensure_table_uses_sanitized_name(store):
    store.ensure_table("orders; DROP TABLE users")
    assert has_table(store, "ordersDROPTABLEusers")


def test_empty_sanitized_name_is_rejected(store):
    with pytest.raises(InvalidTableName):
        store.ensure_table(";;;")

    # Reported as a statement failure, never as a missing record
    with pytest.raises(StatementFailed):
        store.set_data("---", "k", "v")


def test_delete_table_missing_is_noop(store):
    store.delete_table("never_created")
    assert not has_table(store, "never_created")


def test_delete_table_then_get_returns_none(store):
    store.set_data("users", "1", "alice")
    store.delete_table("users")
    assert not has_table(store, "users")

    assert store.get_data("users", "1") is None
    assert has_table(store, "users")


# === Records ===

def test_set_then_get(store):
    store.set_data("users", "1", "alice")
    assert store.get_data("users", "1") == "alice"


def test_set_overwrites(store):
    store.set_data("users", "1", "alice")
    store.set_data("users", "1", "bob")
    assert store.get_data("users", "1") == "bob"


def test_get_missing_key_returns_none(store):
    assert store.get_data("users", "nope") is None


def test_get_provisions_table(store):
    store.get_data("fresh", "k")
    assert has_table(store, "fresh")


def test_update_existing_key(store):
    store.set_data("users", "1", "alice")
    store.update_data("users", "1", "carol")
    assert store.get_data("users", "1") == "carol"


def test_update_missing_key_is_noop(store):
    """Update never inserts; the key stays absent."""
    store.update_data("users", "2", "x")
    assert store.get_data("users", "2") is None


def test_delete_missing_key_succeeds(store):
    store.set_data("users", "1", "alice")
    store.delete_data("users", "2")
    assert store.get_data("users", "1") == "alice"


def test_delete_then_get_returns_none(store):
    store.set_data("users", "1", "alice")
    store.delete_data("users", "1")
    assert store.get_data("users", "1") is None


def test_delete_on_never_created_table(store):
    store.delete_data("ghost", "1")
    assert not has_table(store, "ghost")


def test_tables_are_independent(store):
    store.set_data("users", "1", "alice")
    store.set_data("groups", "1", "admins")
    assert store.get_data("users", "1") == "alice"
    assert store.get_data("groups", "1") == "admins"


def test_colliding_names_share_a_table(store):
    store.set_data("a;b", "k", "v")
    assert store.get_data("ab", "k") == "v"

    store.delete_table("a b")
    assert store.get_data("a;b", "k") is None


def test_hostile_keys_and_values_are_stored_verbatim(store):
    key = "1'); DROP TABLE users; --"
    value = "\"quoted\" 'single' ; -- comment ?1 :value"

    store.set_data("users", key, value)
    assert store.get_data("users", key) == value
    assert has_table(store, "users")

    store.update_data("users", key, "' OR '1'='1")
    assert store.get_data("users", key) == "' OR '1'='1"
    assert store.get_data("users", "' OR '1'='1") is None


def test_empty_key_and_value(store):
    store.set_data("users", "", "")
    assert store.get_data("users", "") == ""


def test_value_length_limit(tmp_path):
    settings = Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'kv.db'}",
        MAX_VALUE_LENGTH=5,
    )
    store = TableStore.from_settings(settings)
    try:
        store.set_data("t", "k", "12345")
        assert store.get_data("t", "k") == "12345"

        with pytest.raises(ValueTooLarge):
            store.set_data("t", "k", "123456")
        with pytest.raises(ValueTooLarge):
            store.update_data("t", "k", "123456")

        assert store.get_data("t", "k") == "12345"
    finally:
        store.close()


# === Errors & health ===

def test_unreachable_backend_raises_backend_unavailable(tmp_path):
    missing = tmp_path / "no" / "such" / "dir" / "kv.db"
    store = TableStore(create_engine(f"sqlite:///{missing}"))
    try:
        with pytest.raises(BackendUnavailable) as excinfo:
            store.set_data("users", "1", "alice")
        assert isinstance(excinfo.value.__cause__, sa_exc.SQLAlchemyError)

        health = store.health()
        assert health["status"] == "unhealthy"
        assert "error" in health
    finally:
        store.close()


def test_translate_maps_error_kinds():
    operational = sa_exc.OperationalError("SELECT 1", {}, Exception("refused"))
    integrity = sa_exc.IntegrityError("INSERT", {}, Exception("NOT NULL"))
    programming = sa_exc.ProgrammingError("CREATE", {}, Exception("syntax"))

    assert isinstance(translate(operational), BackendUnavailable)
    assert isinstance(translate(sa_exc.TimeoutError("pool exhausted")), BackendUnavailable)
    assert isinstance(translate(integrity), StatementFailed)
    assert isinstance(translate(programming), StatementFailed)
    assert all(
        isinstance(translate(e), StoreError)
        for e in (operational, integrity, programming)
    )


def test_health_reports_backend(store):
    assert store.health() == {"status": "healthy", "backend": "sqlite"}


def test_from_settings_creates_data_directory(tmp_path):
    db_path = tmp_path / "nested" / "dir" / "kv.db"
    store = TableStore.from_settings(Settings(DATABASE_URL=f"sqlite:///{db_path}"))
    try:
        store.ensure_table("t")
        assert db_path.exists()
    finally:
        store.close()


def test_in_memory_store_is_shared_across_threads():
    store = TableStore.from_settings(Settings(DATABASE_URL="sqlite://"))
    seen = {}
    try:
        store.set_data("users", "1", "alice")
        reader = threading.Thread(target=lambda: seen.update(v=store.get_data("users", "1")))
        reader.start()
        reader.join()
    finally:
        store.close()

    assert seen == {"v": "alice"}


def test_delete_data_races_with_delete_table(store):
    """Deleting from a table dropped underneath it still succeeds."""
    errors = []
    done = threading.Event()

    def churn():
        try:
            for _ in range(50):
                store.set_data("t", "k", "v")
                store.delete_table("t")
        except StoreError as e:
            errors.append(e)
        finally:
            done.set()

    def deleter():
        while not done.is_set():
            try:
                store.delete_data("t", "k")
            except StoreError as e:
                errors.append(e)

    threads = [threading.Thread(target=churn), threading.Thread(target=deleter)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
