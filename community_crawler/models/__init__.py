"""Record, message and ORM models."""
