"""Shared helpers: logging, timing and profile path checks."""
