"""Persistence layer: ORM models, log tables, sessions and triggers."""
