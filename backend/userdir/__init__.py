"""Internal user directory service."""
