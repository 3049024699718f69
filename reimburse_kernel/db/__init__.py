"""Database base classes, column types, and engine/session management."""
