"""Prometheus exporter for HAProxy statistics."""

__version__ = "0.13.0"
