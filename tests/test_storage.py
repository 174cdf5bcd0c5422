"""
Tests for storage backends and unit of work support
"""

import threading
import tempfile
from pathlib import Path

import pytest

from bank_ledger.storage import (
    InMemoryStorage, RollbackOnly, SQLiteStorage, create_storage
)


test_data = {
    "id": "test_001",
    "name": "Test Record",
    "amount": "100.50"
}


@pytest.fixture(params=["memory", "sqlite"])
def storage(request):
    if request.param == "memory":
        backend = InMemoryStorage()
        yield backend
        backend.close()
    else:
        with tempfile.TemporaryDirectory() as temp_dir:
            backend = SQLiteStorage(Path(temp_dir) / "test.db")
            yield backend
            backend.close()


class TestStorageBasics:
    """Basic CRUD operations on both backends"""

    def test_basic_operations(self, storage):
        storage.save("test_table", "record_1", test_data)
        assert storage.load("test_table", "record_1") == test_data

        assert storage.exists("test_table", "record_1")
        assert not storage.exists("test_table", "non_existent")

        storage.save("test_table", "record_2", {"id": "record_2", "name": "Other"})
        assert len(storage.load_all("test_table")) == 2

        results = storage.find("test_table", {"name": "Test Record"})
        assert len(results) == 1
        assert results[0]["id"] == "test_001"

        assert storage.count("test_table") == 2

        assert storage.delete("test_table", "record_1")
        assert not storage.delete("test_table", "record_1")
        assert storage.count("test_table") == 1

        storage.clear_table("test_table")
        assert storage.count("test_table") == 0

    def test_load_all_keeps_insertion_order(self, storage):
        for i in range(5):
            storage.save("ordered", f"r{i}", {"n": i})

        assert [r["n"] for r in storage.load_all("ordered")] == [0, 1, 2, 3, 4]

    def test_loaded_records_are_copies(self, storage):
        storage.save("t", "1", {"values": [1, 2]})

        loaded = storage.load("t", "1")
        loaded["values"].append(3)

        assert storage.load("t", "1") == {"values": [1, 2]}


class TestUnitsOfWork:
    """Atomic units, nesting and rollback"""

    def test_commit(self, storage):
        with storage.atomic():
            storage.save("t", "a", {"v": 1})
            assert storage.in_transaction

        assert not storage.in_transaction
        assert storage.load("t", "a") == {"v": 1}

    def test_rollback_restores_previous_values(self, storage):
        storage.save("t", "a", {"v": 1})

        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("t", "a", {"v": 2})
                storage.save("t", "b", {"v": 3})
                raise RuntimeError("boom")

        assert storage.load("t", "a") == {"v": 1}
        assert storage.load("t", "b") is None

    def test_rollback_of_table_created_inside_unit(self, storage):
        storage.save("existing", "x", {"v": 0})

        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("existing", "y", {"v": 1})
                storage.save("fresh_table", "z", {"v": 2})
                raise RuntimeError("boom")

        assert storage.load("fresh_table", "z") is None
        storage.save("fresh_table", "z", {"v": 3})
        assert storage.load("fresh_table", "z") == {"v": 3}

    def test_nested_units_commit_with_outer(self, storage):
        with storage.atomic():
            storage.save("t", "outer", {"v": 1})
            with storage.atomic():
                storage.save("t", "inner", {"v": 2})

        assert storage.count("t") == 2

    def test_nested_rollback_aborts_outer(self, storage):
        with pytest.raises(RollbackOnly):
            with storage.atomic():
                storage.save("t", "outer", {"v": 1})
                try:
                    with storage.atomic():
                        storage.save("t", "inner", {"v": 2})
                        raise ValueError("inner failure")
                except ValueError:
                    pass

        assert storage.count("t") == 0
        assert not storage.in_transaction

    def test_units_exclude_other_threads(self, storage):
        storage.save("t", "a", {"v": 0})
        entered = threading.Event()
        observed = []

        def writer():
            entered.wait()
            storage.save("t", "a", {"v": 99})

        thread = threading.Thread(target=writer)
        thread.start()

        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("t", "a", {"v": 1})
                entered.set()
                thread.join(timeout=0.2)
                observed.append(thread.is_alive())
                raise RuntimeError("boom")

        thread.join(timeout=5)
        assert observed == [True]
        assert storage.load("t", "a") == {"v": 99}


class TestCreateStorage:
    """Backend selection from database URLs"""

    def test_memory_url(self):
        assert isinstance(create_storage("memory://"), InMemoryStorage)

    def test_sqlite_in_memory_url(self):
        storage = create_storage("sqlite://")
        assert isinstance(storage, SQLiteStorage)
        assert storage.db_path == ":memory:"
        storage.close()

    def test_sqlite_file_url(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "ledger.db"
            storage = create_storage(f"sqlite:///{path}")
            storage.save("t", "1", {"v": 1})
            storage.close()

            reopened = create_storage(f"sqlite:///{path}")
            assert reopened.load("t", "1") == {"v": 1}
            reopened.close()

    def test_unsupported_url(self):
        with pytest.raises(ValueError, match="Unsupported"):
            create_storage("postgresql://localhost/ledger")
