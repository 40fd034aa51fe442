"""Bundled detection rules and reference data."""
