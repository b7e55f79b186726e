"""Bundled suite files."""
