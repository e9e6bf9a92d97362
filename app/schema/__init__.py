"""SQLAlchemy models for the publishing tables."""
