"""Infrastructure: configuration, database engine and ORM models."""
