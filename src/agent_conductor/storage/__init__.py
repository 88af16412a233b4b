"""SQLite and file persistence helpers."""
