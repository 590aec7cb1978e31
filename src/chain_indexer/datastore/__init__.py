"""Datastore — async SQLAlchemy engine, sessions and document operations."""
