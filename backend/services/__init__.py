"""Analysis, auth and session services."""
