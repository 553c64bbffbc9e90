"""Storage adapters (SQLAlchemy repositories)."""
