"""Core configuration and database clients."""
