"""Service layer for indexer access, categories, listings and draws."""
