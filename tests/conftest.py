"""
Shared test fixtures.

The mock Supabase client keeps rows in memory and applies eq/ilike/or_
filters, so update-with-filter calls (the session claim) behave like
the real PostgREST API.
"""

import os
import sys
from pathlib import Path

# Add project root to Python path
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")

import copy
import re
import uuid
import pytest
from unittest.mock import patch
from datetime import datetime, timezone
from typing import Any, Callable, Generator

# ===================
# MOCK SUPABASE CLIENT
# ===================


class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: Any = None, count: int = None):
        self.data = data if data is not None else []
        self.count = count if count is not None else (len(self.data) if isinstance(self.data, list) else 1)


def _like(pattern: str) -> re.Pattern:
    parts = [re.escape(p) for p in pattern.split("%")]
    return re.compile(".*".join(parts), re.IGNORECASE | re.DOTALL)


class MockSupabaseQuery:
    """Mock Supabase query builder with chainable methods."""

    def __init__(self, table: "MockSupabaseTable", operation: str, payload: Any = None):
        self._table = table
        self._operation = operation
        self._payload = payload
        self._filters: list[Callable[[dict], bool]] = []
        self._order: list[tuple[str, bool]] = []
        self._range: tuple[int, int] | None = None
        self._limit: int | None = None
        self._is_single = False

    def select(self, *args, **kwargs):
        return self

    def eq(self, column, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        self._filters.append(lambda row: row.get(column) != value)
        return self

    def in_(self, column, values):
        values = list(values)
        self._filters.append(lambda row: row.get(column) in values)
        return self

    def ilike(self, column, pattern):
        compiled = _like(pattern)
        self._filters.append(lambda row: compiled.fullmatch(str(row.get(column) or "")) is not None)
        return self

    def or_(self, expression):
        clauses = []
        for clause in expression.split(","):
            column, operator, value = clause.split(".", 2)
            assert operator == "ilike", f"unsupported or_ operator {operator}"
            clauses.append((column, _like(value)))
        self._filters.append(
            lambda row: any(c.fullmatch(str(row.get(col) or "")) for col, c in clauses)
        )
        return self

    def single(self):
        self._is_single = True
        return self

    def order(self, column, desc=False, **kwargs):
        self._order.append((column, desc))
        return self

    def range(self, start, end):
        self._range = (start, end)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def _matches(self, row: dict) -> bool:
        return all(f(row) for f in self._filters)

    def execute(self) -> MockSupabaseResponse:
        self._table.calls.append(self._operation)
        error = self._table.failures.get(self._operation)
        if error is not None:
            raise error

        now = datetime.now(timezone.utc).isoformat()

        if self._operation == "insert":
            items = self._payload if isinstance(self._payload, list) else [self._payload]
            created = []
            for item in items:
                row = copy.deepcopy(item)
                row.setdefault("id", str(uuid.uuid4()))
                row.setdefault("created_at", now)
                row.setdefault("updated_at", now)
                self._table.rows.append(row)
                created.append(copy.deepcopy(row))
            return MockSupabaseResponse(data=created)

        matched = [row for row in self._table.rows if self._matches(row)]

        if self._operation == "update":
            for row in matched:
                row.update(copy.deepcopy(self._payload))
                row["updated_at"] = now
            return MockSupabaseResponse(data=copy.deepcopy(matched))

        if self._operation == "delete":
            self._table.rows[:] = [row for row in self._table.rows if not self._matches(row)]
            return MockSupabaseResponse(data=copy.deepcopy(matched))

        rows = copy.deepcopy(matched)
        for column, desc in reversed(self._order):
            rows.sort(key=lambda r: (r.get(column) is None, str(r.get(column) or "")), reverse=desc)
        total = len(rows)
        if self._range is not None:
            start, end = self._range
            rows = rows[start:end + 1]
        if self._limit is not None:
            rows = rows[:self._limit]

        if self._is_single:
            data = rows[0] if rows else None
            return MockSupabaseResponse(data=data, count=1 if data else 0)

        count = self._table.count if self._table.count is not None else total
        return MockSupabaseResponse(data=rows, count=count)


class MockSupabaseTable:
    """In-memory table with optional failure injection per operation."""

    def __init__(self, name: str, rows: list = None, count: int = None):
        self.name = name
        self.rows = rows if rows is not None else []
        self.count = count
        self.failures: dict[str, Exception] = {}
        self.calls: list[str] = []

    def select(self, *args, **kwargs):
        return MockSupabaseQuery(self, "select")

    def insert(self, data):
        return MockSupabaseQuery(self, "insert", data)

    def update(self, data):
        return MockSupabaseQuery(self, "update", data)

    def delete(self):
        return MockSupabaseQuery(self, "delete")


class MockStorageBucket:
    """In-memory Supabase Storage bucket."""

    def __init__(self, storage: "MockStorage"):
        self._storage = storage

    def upload(self, path, file, file_options=None):
        if self._storage.fail_upload:
            raise self._storage.fail_upload
        self._storage.objects[path] = bytes(file)
        return {"Key": path}

    def download(self, path):
        if self._storage.fail_download:
            raise self._storage.fail_download
        if path not in self._storage.objects:
            raise FileNotFoundError(path)
        return self._storage.objects[path]

    def remove(self, paths):
        for path in paths:
            self._storage.objects.pop(path, None)
        return [{"name": p} for p in paths]


class MockStorage:
    """Mock of client.storage."""

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.fail_upload: Exception | None = None
        self.fail_download: Exception | None = None

    def from_(self, bucket: str) -> MockStorageBucket:
        return MockStorageBucket(self)


class MockSupabaseClient:
    """Mock Supabase client."""

    def __init__(self):
        self._tables: dict[str, MockSupabaseTable] = {}
        self.storage = MockStorage()

    def set_table_data(self, table_name: str, data: list, count: int = None):
        """Configure mock data for a table."""
        self._tables[table_name] = MockSupabaseTable(table_name, copy.deepcopy(data), count)

    def rows(self, table_name: str) -> list[dict]:
        """Current rows of a table."""
        return self.table(table_name).rows

    def fail(self, table_name: str, operation: str, error: Exception):
        """Make every `operation` on the table raise `error`."""
        self.table(table_name).failures[operation] = error

    def table(self, name: str) -> MockSupabaseTable:
        """Get mock table."""
        if name not in self._tables:
            self._tables[name] = MockSupabaseTable(name)
        return self._tables[name]


# ===================
# FIXTURES
# ===================

CLIENT_MODULES = (
    "config.database.get_supabase_client",
    "services.mapping_template_service.get_supabase_client",
    "services.import_session_service.get_supabase_client",
    "services.order_service.get_supabase_client",
    "services.storage_service.get_storage_client",
)

SINGLETONS = (
    ("services.storage_service", "_storage_service"),
    ("services.mapping_template_service", "_mapping_template_service"),
    ("services.import_session_service", "_import_session_service"),
)


@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("mapping_templates", [
                {"id": "1", "client_id": "c1", ...}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase) -> Generator:
    """
    Patch every Supabase client lookup with the mock.

    Service singletons are reset so routes build fresh services.
    """
    import importlib

    patches = [patch(target, return_value=mock_supabase) for target in CLIENT_MODULES]
    patches += [
        patch.object(importlib.import_module(module), attr, None)
        for module, attr in SINGLETONS
    ]
    for p in patches:
        p.start()
    try:
        yield mock_supabase
    finally:
        for p in reversed(patches):
            p.stop()


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client():
    """
    Create FastAPI test client.

    Usage:
        def test_endpoint(test_client):
            response = test_client.get("/")
            assert response.status_code == 200
    """
    from fastapi.testclient import TestClient
    from main import app

    return TestClient(app)


@pytest.fixture
def test_client_with_mock_db(mock_db):
    """
    Create FastAPI test client with mocked database.

    Usage:
        def test_endpoint(test_client_with_mock_db, mock_supabase):
            mock_supabase.set_table_data("import_sessions", [...])
            response = test_client_with_mock_db.get("/api/imports")
    """
    from fastapi.testclient import TestClient
    from main import app

    yield TestClient(app)
