"""Document store adapters (video assets, alerts, notifications, artifacts)."""
