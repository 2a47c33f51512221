"""Delivery tracking core for department projects and sprints."""

__version__ = "1.0.0"
