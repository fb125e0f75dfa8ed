"""Generic listing: filter, search, sort and paginate any schema-described table.

Only schema identifiers ever reach SQL. Caller-supplied field names are
admitted against the schema's sortable/filterable sets and dropped (with a
DEBUG log) otherwise; operators are admitted against the field type's
``query_operators``. All values travel as bound parameters.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from schemacrud.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from schemacrud.core.types import FieldTypeHandler
from schemacrud.exceptions import InvalidInputError
from schemacrud.persistence.accessor import TableAccessor

logger = logging.getLogger(__name__)

ALL = "all"
_DIRECTIONS = ("asc", "desc")
# Operators whose value is compared as a stored (transformed) value
_VALUE_OPERATORS = ("eq", "neq", "gt", "gte", "lt", "lte")
_COMPARISONS = {"eq": "=", "neq": "!=", "gt": ">", "gte": ">=", "lt": "<", "lte": "<="}


@dataclass
class Scope:
    """A parameterized restriction on the base row set (built from schema identifiers only)."""

    sql: str
    params: list[Any] = field(default_factory=list)


@dataclass
class ListRequest:
    """Caller input for a listing.

    Attributes:
        sort: ``"name:desc"``, ``"name:desc,price"``, a list of such strings or
            ``(field, direction)`` pairs, or a ``{field: direction}`` map.
        filters: field -> scalar value, or field -> ``{operator: value}``.
        search: Free-text term matched against every searchable filterable field.
        page: 1-indexed page number.
        size: Page size; None uses the default, ``"all"`` disables the limit.
        include_deleted: Include soft-deleted rows.
    """

    sort: Any = None
    filters: dict[str, Any] = field(default_factory=dict)
    search: str | None = None
    page: Any = 1
    size: Any = None
    include_deleted: bool = False

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> ListRequest:
        """Build a request from flat query-string style parameters.

        Accepts ``sort``/``sorts``, ``filters``, ``search``, ``page`` and
        ``size``; ``sorts`` and ``filters`` may be maps.
        """
        return cls(
            sort=params.get("sort", params.get("sorts")),
            filters=dict(params.get("filters") or {}),
            search=params.get("search"),
            page=params.get("page", 1),
            size=params.get("size"),
            include_deleted=bool(params.get("include_deleted", False)),
        )


@dataclass
class ListResult:
    rows: list[dict[str, Any]]
    count: int
    count_filtered: int
    sortable_fields: list[str]
    filterable_fields: list[str]
    listable_fields: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows": self.rows,
            "count": self.count,
            "count_filtered": self.count_filtered,
            "sortable": self.sortable_fields,
            "filterable": self.filterable_fields,
            "listable": self.listable_fields,
        }


def parse_sort(sort: Any) -> list[tuple[str, str]]:
    """Normalize every accepted sort shape into ``(field, direction)`` pairs."""
    if sort is None:
        return []
    if isinstance(sort, Mapping):
        items = [(str(k), str(v or "asc")) for k, v in sort.items()]
    elif isinstance(sort, str):
        items = [_split_sort(part) for part in sort.split(",")]
    else:
        items = []
        for entry in sort:
            if isinstance(entry, str):
                items.append(_split_sort(entry))
            elif isinstance(entry, (tuple, list)) and entry:
                items.append((str(entry[0]), str(entry[1]) if len(entry) > 1 else "asc"))
            else:
                logger.debug("Ignoring malformed sort entry %r", entry)
    return [(name.strip(), (direction or "asc").strip().lower()) for name, direction in items]


def _split_sort(text: str) -> tuple[str, str]:
    name, _, direction = text.partition(":")
    return name, direction or "asc"


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class QueryEngine:
    """Lists rows of one table through a configured TableAccessor."""

    def __init__(
        self,
        accessor: TableAccessor,
        *,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        max_page_size: int = MAX_PAGE_SIZE,
        listable: list[str] | tuple[str, ...] | None = None,
    ):
        self.accessor = accessor
        self.schema = accessor.schema
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

        self.sortable = self.schema.sortable_fields()
        self.filterable = self.schema.filterable_fields()
        if listable:
            readable = set(self.schema.listable_fields()) | {
                f.name for f in self.schema.column_fields() if f.readable
            }
            self.listable = [n for n in listable if n and n.strip() and n in readable]
        else:
            self.listable = self.schema.listable_fields()

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def admit_sorts(self, sort: Any) -> list[tuple[str, str]]:
        admitted: list[tuple[str, str]] = []
        for name, direction in parse_sort(sort):
            if not name or name not in self.sortable:
                logger.debug("Dropping non-sortable field %r on %s", name, self.schema.model)
                continue
            if direction not in _DIRECTIONS:
                logger.debug("Unknown sort direction %r for %s; using asc", direction, name)
                direction = "asc"
            if name not in (n for n, _ in admitted):
                admitted.append((name, direction))
        return admitted

    def admit_filters(self, filters: Mapping[str, Any]) -> list[tuple[str, str, Any]]:
        """Return ``(field, operator, value)`` triples that may reach SQL."""
        admitted: list[tuple[str, str, Any]] = []
        for raw_name, value in (filters or {}).items():
            name = raw_name.strip() if isinstance(raw_name, str) else ""
            if not name or name not in self.filterable:
                logger.debug("Dropping non-filterable field %r on %s", raw_name, self.schema.model)
                continue
            handler = self.schema.fields[name].handler

            if isinstance(value, Mapping):
                for op, op_value in value.items():
                    if not handler.supports(op):
                        logger.debug("Dropping unsupported operator %r for %s", op, name)
                        continue
                    admitted.append((name, op, op_value))
                continue

            if value is None or (isinstance(value, str) and value.strip() == ""):
                continue
            op = "contains" if handler.supports("contains") else "eq"
            admitted.append((name, op, value))
        return admitted

    def search_fields(self) -> list[str]:
        return [
            n for n in self.filterable if self.schema.fields[n].handler.supports("contains")
        ]

    # ------------------------------------------------------------------
    # SQL construction
    # ------------------------------------------------------------------

    def _build_condition(
        self, name: str, op: str, value: Any, handler: FieldTypeHandler
    ) -> tuple[str, list[Any]]:
        """Build SQL condition for one admitted filter."""
        col = self.accessor.q(name)
        mark = self.accessor.adapter.placeholder
        like = self.accessor.adapter.like_operator

        def stored(v: Any) -> Any:
            return handler.transform(v)

        if op in _VALUE_OPERATORS:
            return f"{col} {_COMPARISONS[op]} {mark}", [stored(value)]
        if op in ("in", "notIn"):
            values = value if isinstance(value, (list, tuple, set)) else [value]
            values = [stored(v) for v in values]
            if not values:
                return ("1 = 0" if op == "in" else ""), []
            marks = ", ".join(mark for _ in values)
            keyword = "IN" if op == "in" else "NOT IN"
            return f"{col} {keyword} ({marks})", values
        if op == "contains":
            return f"{col} {like} {mark} ESCAPE '\\'", [f"%{escape_like(str(value))}%"]
        if op == "startsWith":
            return f"{col} {like} {mark} ESCAPE '\\'", [f"{escape_like(str(value))}%"]
        if op == "isNull":
            truthy = value not in (False, 0, "0", "false", "False")
            return f"{col} IS NULL" if truthy else f"{col} IS NOT NULL", []
        if op == "between":
            if not isinstance(value, (list, tuple)) or len(value) != 2:
                raise InvalidInputError(
                    f"Filter 'between' on '{name}' needs two values",
                    {name: ["between requires [low, high]"]},
                )
            return f"{col} BETWEEN {mark} AND {mark}", [stored(value[0]), stored(value[1])]

        return "", []

    def _search_condition(self, term: str | None) -> tuple[str, list[Any]]:
        if not term or not str(term).strip():
            return "", []
        fields = self.search_fields()
        if not fields:
            return "", []
        mark = self.accessor.adapter.placeholder
        like = self.accessor.adapter.like_operator
        pattern = f"%{escape_like(str(term).strip())}%"
        parts = [f"{self.accessor.q(n)} {like} {mark} ESCAPE '\\'" for n in fields]
        return "(" + " OR ".join(parts) + ")", [pattern] * len(parts)

    def _order_by(self, sorts: list[tuple[str, str]]) -> str:
        if not sorts:
            sorts = list(self.schema.default_sort)
        pk = self.schema.primary_key
        if pk not in (n for n, _ in sorts):
            sorts = sorts + [(pk, "asc")]
        return ", ".join(f"{self.accessor.q(n)} {d.upper()}" for n, d in sorts)

    def _page_window(self, page: Any, size: Any) -> tuple[int | None, int]:
        """Return ``(limit, offset)``; limit None means unlimited."""
        if isinstance(size, str) and size.strip().lower() == ALL:
            return None, 0
        try:
            limit = int(size) if size is not None and size != "" else self.default_page_size
        except (TypeError, ValueError):
            limit = self.default_page_size
        if limit < 1:
            limit = self.default_page_size
        limit = min(limit, self.max_page_size)

        try:
            page_number = int(page) if page is not None else 1
        except (TypeError, ValueError):
            page_number = 1
        page_number = max(page_number, 1)
        return limit, (page_number - 1) * limit

    def _count(self, where: list[str], params: list[Any]) -> int:
        where_sql = f" WHERE {' AND '.join(where)}" if where else ""
        row = self.accessor.adapter.fetch_one(
            f"SELECT COUNT(*) AS total FROM {self.accessor.from_sql}{where_sql}", params
        )
        return int(row["total"]) if row else 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def list(self, request: ListRequest | None = None, scope: Scope | None = None) -> ListResult:
        request = request or ListRequest()

        base_where = self.accessor.visibility_conditions(with_trashed=request.include_deleted)
        base_params: list[Any] = []
        if scope is not None:
            base_where.append(scope.sql)
            base_params.extend(scope.params)

        where = list(base_where)
        params = list(base_params)
        for name, op, value in self.admit_filters(request.filters):
            sql, vals = self._build_condition(name, op, value, self.schema.fields[name].handler)
            if sql:
                where.append(sql)
                params.extend(vals)
        search_sql, search_params = self._search_condition(request.search)
        if search_sql:
            where.append(search_sql)
            params.extend(search_params)

        count = self._count(base_where, base_params)
        count_filtered = self._count(where, params) if len(where) > len(base_where) else count

        columns = list(self.listable)
        if self.schema.primary_key not in columns:
            columns.insert(0, self.schema.primary_key)
        select_sql = ", ".join(self.accessor.q(c) for c in columns)
        where_sql = f" WHERE {' AND '.join(where)}" if where else ""
        order_sql = f" ORDER BY {self._order_by(self.admit_sorts(request.sort))}"

        limit, offset = self._page_window(request.page, request.size)
        limit_sql = f" LIMIT {limit} OFFSET {offset}" if limit is not None else ""

        sql = f"SELECT {select_sql} FROM {self.accessor.from_sql}{where_sql}{order_sql}{limit_sql}"
        rows = [self.accessor.cast_row(r) for r in self.accessor.adapter.fetch_all(sql, params)]

        return ListResult(
            rows=rows,
            count=count,
            count_filtered=count_filtered,
            sortable_fields=list(self.sortable),
            filterable_fields=list(self.filterable),
            listable_fields=list(self.listable),
        )
