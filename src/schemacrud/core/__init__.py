"""Core field type system."""
