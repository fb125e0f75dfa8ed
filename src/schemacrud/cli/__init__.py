"""schemacrud CLI."""
