"""Database Infrastructure — SQLAlchemy Base and session factory."""
