"""Shared infrastructure: logging, errors, authentication and small utilities."""
