"""Database infrastructure - shared engine, session and ORM base."""
