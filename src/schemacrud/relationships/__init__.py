"""Relationship management."""

from schemacrud.relationships.manager import RelationshipManager

__all__ = ["RelationshipManager"]
