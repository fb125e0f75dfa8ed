"""Generic listing engine."""

from schemacrud.query.engine import ListRequest, ListResult, QueryEngine, Scope

__all__ = ["ListRequest", "ListResult", "QueryEngine", "Scope"]
