"""Contacts & companies bulk import: parse, map, validate, preview and commit spreadsheets."""

__version__ = "0.1.0"
