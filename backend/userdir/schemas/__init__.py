"""Pydantic schemas for records, payloads and views."""
