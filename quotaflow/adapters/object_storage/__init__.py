"""Object storage adapters for raw uploads."""
