"""Shared utilities: logging and database management."""
