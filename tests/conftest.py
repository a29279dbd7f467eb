"""
Pytest configuration.

Adds the project root to the Python path so tests can import domain, repositories,
services and api, and provides `fake_db`: an in-memory stand-in for the Supabase
client that understands the query-builder calls the repositories make.
"""

import copy
import re
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from postgrest.exceptions import APIError  # noqa: E402

from repositories.client import use_supabase  # noqa: E402

# Columns with a unique constraint, per table (see schema.sql).
UNIQUE_COLUMNS: Dict[str, tuple] = {
    "customers": ("customer_id",),
    "products": ("product_id", "sku"),
    "sales": ("sale_id", "invoice_number"),
    "payments": ("payment_id", "receipt_number"),
    "payment_allocations": (),
}


def _comparable(value: Any) -> Any:
    """Numeric strings compare as numbers, everything else as itself."""

    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, (int, float, Decimal)):
        return Decimal(str(value))
    if isinstance(value, str):
        try:
            return Decimal(value)
        except InvalidOperation:
            return value
    return str(value)


def _like(pattern: str) -> "re.Pattern[str]":
    parts = [re.escape(p) for p in pattern.split("%")]
    return re.compile("^" + ".*".join(parts) + "$", re.IGNORECASE | re.DOTALL)


class FakeResponse:
    def __init__(self, data: List[Dict[str, Any]], count: Optional[int] = None) -> None:
        self.data = data
        self.count = count
        self.error = None


class FakeQuery:
    """One PostgREST-style request being built against a FakeSupabase table."""

    def __init__(self, db: "FakeSupabase", table: str) -> None:
        self.db = db
        self.table = table
        self.operation = "select"
        self.columns = "*"
        self.count_mode: Optional[str] = None
        self.payload: Any = None
        self.filters: List[Any] = []
        self.order_by: List[tuple] = []
        self.window: Optional[tuple] = None
        self.max_rows: Optional[int] = None

    # Operations

    def select(self, *columns: str, count: Optional[str] = None) -> "FakeQuery":
        self.operation = "select"
        self.columns = ",".join(columns) if columns else "*"
        self.count_mode = count
        return self

    def insert(self, payload: Any) -> "FakeQuery":
        self.operation = "insert"
        self.payload = payload
        return self

    def update(self, payload: Dict[str, Any]) -> "FakeQuery":
        self.operation = "update"
        self.payload = payload
        return self

    def delete(self) -> "FakeQuery":
        self.operation = "delete"
        return self

    # Filters

    def _add(self, predicate) -> "FakeQuery":
        self.filters.append(predicate)
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        return self._add(lambda row: _comparable(row.get(column)) == _comparable(value))

    def neq(self, column: str, value: Any) -> "FakeQuery":
        return self._add(lambda row: _comparable(row.get(column)) != _comparable(value))

    def gt(self, column: str, value: Any) -> "FakeQuery":
        return self._add(lambda row: row.get(column) is not None and _comparable(row[column]) > _comparable(value))

    def gte(self, column: str, value: Any) -> "FakeQuery":
        return self._add(lambda row: row.get(column) is not None and _comparable(row[column]) >= _comparable(value))

    def lt(self, column: str, value: Any) -> "FakeQuery":
        return self._add(lambda row: row.get(column) is not None and _comparable(row[column]) < _comparable(value))

    def lte(self, column: str, value: Any) -> "FakeQuery":
        return self._add(lambda row: row.get(column) is not None and _comparable(row[column]) <= _comparable(value))

    def in_(self, column: str, values: List[Any]) -> "FakeQuery":
        wanted = {_comparable(v) for v in values}
        return self._add(lambda row: _comparable(row.get(column)) in wanted)

    def ilike(self, column: str, pattern: str) -> "FakeQuery":
        regex = _like(pattern)
        return self._add(lambda row: row.get(column) is not None and bool(regex.match(str(row[column]))))

    def or_(self, expression: str) -> "FakeQuery":
        alternatives = []
        for clause in expression.split(","):
            column, op, value = clause.split(".", 2)
            if op != "ilike":
                raise NotImplementedError(f"or_ operator not supported by the fake: {op}")
            alternatives.append((column, _like(value)))
        return self._add(
            lambda row: any(
                row.get(column) is not None and regex.match(str(row[column]))
                for column, regex in alternatives
            )
        )

    # Shaping

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self.order_by.append((column, desc))
        return self

    def range(self, start: int, end: int) -> "FakeQuery":
        self.window = (start, end)
        return self

    def limit(self, size: int) -> "FakeQuery":
        self.max_rows = size
        return self

    # Execution

    def _matches(self, row: Dict[str, Any]) -> bool:
        return all(predicate(row) for predicate in self.filters)

    def _project(self, row: Dict[str, Any]) -> Dict[str, Any]:
        if self.columns.strip() == "*":
            return copy.deepcopy(row)
        names = [c.strip() for c in self.columns.split(",")]
        return {name: copy.deepcopy(row.get(name)) for name in names}

    def execute(self) -> FakeResponse:
        self.db.calls.append((self.table, self.operation))
        self.db.maybe_fail(self.table, self.operation)
        rows = self.db.tables.setdefault(self.table, [])

        if self.operation == "insert":
            new_rows = self.payload if isinstance(self.payload, list) else [self.payload]
            for new_row in new_rows:
                self.db.check_unique(self.table, new_row, rows)
            inserted = [copy.deepcopy(r) for r in new_rows]
            rows.extend(inserted)
            return FakeResponse([copy.deepcopy(r) for r in inserted])

        matched = [row for row in rows if self._matches(row)]

        if self.operation == "update":
            for row in matched:
                row.update(copy.deepcopy(self.payload))
            return FakeResponse([copy.deepcopy(r) for r in matched])

        if self.operation == "delete":
            self.db.tables[self.table] = [row for row in rows if not self._matches(row)]
            return FakeResponse([copy.deepcopy(r) for r in matched])

        for column, desc in reversed(self.order_by):
            matched.sort(
                key=lambda row: (row.get(column) is None, _comparable(row.get(column)) if row.get(column) is not None else 0),
                reverse=desc,
            )
        total = len(matched)
        if self.window is not None:
            start, end = self.window
            matched = matched[start:end + 1]
        if self.max_rows is not None:
            matched = matched[: self.max_rows]

        return FakeResponse(
            [self._project(r) for r in matched],
            count=total if self.count_mode else None,
        )


class FakeSupabase:
    """In-memory Supabase client double. Tables are lists of dict rows."""

    def __init__(self) -> None:
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.calls: List[tuple] = []
        self._failures: List[Dict[str, Any]] = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.get(table, [])

    def fail_next(self, table: str, operation: str, skip: int = 0, error: Optional[Exception] = None) -> None:
        """Make a future (table, operation) call raise, after letting `skip` matching calls through."""

        self._failures.append(
            {"table": table, "operation": operation, "skip": skip, "error": error}
        )

    def maybe_fail(self, table: str, operation: str) -> None:
        for failure in self._failures:
            if failure["table"] != table or failure["operation"] != operation:
                continue
            if failure["skip"] > 0:
                failure["skip"] -= 1
                return
            self._failures.remove(failure)
            raise failure["error"] or RuntimeError(f"injected failure on {operation} {table}")

    def check_unique(self, table: str, new_row: Dict[str, Any], rows: List[Dict[str, Any]]) -> None:
        for column in UNIQUE_COLUMNS.get(table, ()):
            value = new_row.get(column)
            if value is None:
                continue
            if any(existing.get(column) == value for existing in rows):
                raise APIError(
                    {
                        "code": "23505",
                        "message": f'duplicate key value violates unique constraint "{table}_{column}_key"',
                        "details": f"Key ({column})=({value}) already exists.",
                        "hint": None,
                    }
                )


@pytest.fixture
def fake_db():
    """Install a fresh FakeSupabase as the repositories' client."""

    fake = FakeSupabase()
    use_supabase(fake)
    yield fake
    use_supabase(None)


@pytest.fixture
def customer(fake_db):
    """A retail customer with a 5000 credit limit and no history."""

    from services.customer_account_service import create_customer

    return create_customer("Asha Traders", credit_limit=Decimal("5000"), phone="9800000000")


@pytest.fixture
def product(fake_db):
    """A product priced at 500 with 10 units in stock."""

    from services.catalog_service import create_product

    return create_product("Basmati Rice 5kg", current_stock=Decimal("10"), sku="rice-5kg", selling_price=Decimal("500"))


@pytest.fixture
def other_product(fake_db):
    from services.catalog_service import create_product

    return create_product("Sunflower Oil 1L", current_stock=Decimal("20"), sku="oil-1l", selling_price=Decimal("100"))
