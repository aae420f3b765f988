"""Document ingestion services."""
