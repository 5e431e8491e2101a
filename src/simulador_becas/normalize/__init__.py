"""Canonical engine types and catalog/profile parsing."""
