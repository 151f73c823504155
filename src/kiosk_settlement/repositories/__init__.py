"""Persistence helpers wrapping SQLAlchemy sessions."""
