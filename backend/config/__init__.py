"""Application settings and logging."""
