"""Per-database MySQL connection pools and read-only schema resources addressed by mysql:// URIs."""

__version__ = "0.1.0"

__all__ = ["errors", "pool", "uri", "models", "resources"]