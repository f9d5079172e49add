"""Configuration, errors, identifiers and security helpers."""
