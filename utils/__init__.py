"""Shared helpers: retry with backoff, cell sanitization."""
