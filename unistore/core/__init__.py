"""Core storage and configuration utilities."""
