"""Shared helpers: logging, status translation, metric records."""
