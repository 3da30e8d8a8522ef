"""
Fixtures communes

  - FakeSupabase: tables en mémoire, même chaîne de requête que supabase-py
  - db: FakeSupabase installé via config.set_db
  - client: TestClient FastAPI
  - mock_http: handler httpx.MockTransport pour les appels externes
"""

import copy
from datetime import datetime, timezone
from types import SimpleNamespace

import httpx
import pytest
from fastapi.testclient import TestClient

import config


def _as_datetime(value):
    if not isinstance(value, str) or len(value) < 10 or value[4:5] != "-":
        return None
    s = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _same(a, b):
    return a == b or (a is not None and b is not None and str(a) == str(b))


def _compare(a, b):
    """-1 / 0 / 1, dates ISO comparées comme des datetimes"""
    da, db_ = _as_datetime(a), _as_datetime(b)
    if da is not None and db_ is not None:
        a, b = da, db_
    return (a > b) - (a < b)


class FakeQuery:
    def __init__(self, store, name):
        self.store = store
        self.name = name
        self.filters = []
        self.op = "select"
        self.payload = None
        self.order_by = None
        self.max_rows = None

    # --- opérations ---
    def select(self, *_columns):
        return self

    def insert(self, payload):
        self.op, self.payload = "insert", payload
        return self

    def update(self, payload):
        self.op, self.payload = "update", payload
        return self

    # --- filtres ---
    def eq(self, column, value):
        self.filters.append(lambda r: _same(r.get(column), value))
        return self

    def gte(self, column, value):
        self.filters.append(lambda r: r.get(column) is not None and _compare(r[column], value) >= 0)
        return self

    def lte(self, column, value):
        self.filters.append(lambda r: r.get(column) is not None and _compare(r[column], value) <= 0)
        return self

    def in_(self, column, values):
        values = list(values)
        self.filters.append(lambda r: any(_same(r.get(column), v) for v in values))
        return self

    def is_(self, column, value):
        if value in ("null", None):
            self.filters.append(lambda r: r.get(column) is None)
        else:
            self.filters.append(lambda r: _same(r.get(column), value))
        return self

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self

    def limit(self, n):
        self.max_rows = n
        return self

    def _matching(self):
        return [r for r in self.store.tables.setdefault(self.name, []) if all(f(r) for f in self.filters)]

    async def execute(self):
        self.store.calls.append((self.name, self.op))
        if self.name in self.store.fail_tables:
            raise RuntimeError(f"relation {self.name} unavailable")

        table = self.store.tables.setdefault(self.name, [])
        if self.op == "insert":
            records = self.payload if isinstance(self.payload, list) else [self.payload]
            created = []
            for record in records:
                row = copy.deepcopy(record)
                if row.get("id") is None:
                    row["id"] = self.store.next_id(self.name)
                table.append(row)
                created.append(copy.deepcopy(row))
            return SimpleNamespace(data=created)

        if self.op == "update":
            updated = []
            for row in self._matching():
                row.update(copy.deepcopy(self.payload))
                updated.append(copy.deepcopy(row))
            return SimpleNamespace(data=updated)

        found = self._matching()
        if self.order_by:
            column, desc = self.order_by
            present = [r for r in found if r.get(column) is not None]
            missing = [r for r in found if r.get(column) is None]
            ordered = sorted(present, key=lambda r: _as_datetime(r[column]) or r[column], reverse=desc)
            found = ordered + missing
        if self.max_rows is not None:
            found = found[: self.max_rows]
        return SimpleNamespace(data=[copy.deepcopy(r) for r in found])


class FakeSupabase:
    def __init__(self, tables=None, fail_tables=()):
        self.tables = {name: [dict(r) for r in data] for name, data in (tables or {}).items()}
        self.fail_tables = set(fail_tables)
        self.calls = []

    def next_id(self, name):
        ids = [r["id"] for r in self.tables.get(name, []) if isinstance(r.get("id"), int)]
        return max(ids, default=0) + 1

    def table(self, name):
        return FakeQuery(self, name)


@pytest.fixture
def db():
    fake = FakeSupabase()
    config.set_db(fake)
    yield fake
    config.set_db(None)


@pytest.fixture
def client(db):
    from server import app
    return TestClient(app)


@pytest.fixture
def mock_http():
    """mock_http(handler) -> liste des requêtes reçues"""
    seen = []

    def install(handler):
        def recorder(request):
            seen.append(request)
            return handler(request)
        config.set_http_transport(httpx.MockTransport(recorder))
        return seen

    yield install
    config.set_http_transport(None)
