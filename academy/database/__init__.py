"""Database base classes and engine lifecycle."""
