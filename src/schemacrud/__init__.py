"""schemacrud: schema-driven CRUD, listing and relationship engine."""

__version__ = "0.1.0"
