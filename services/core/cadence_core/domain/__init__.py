"""Domain layer: ORM models, errors and services."""
