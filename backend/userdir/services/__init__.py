"""Directory operations, lifecycle policy and view projection."""
