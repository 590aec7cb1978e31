"""Indexing engine — index models, services, sync/rollback engines and the driver."""
