"""Handoff: versioned media delivery to a shared cloud drive."""

__version__ = "0.3.0"
