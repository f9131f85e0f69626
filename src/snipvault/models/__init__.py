"""Data models for the snippet vault."""
